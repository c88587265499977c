"""Connection registry for live WebSocket sessions.

The registry is the single owner of realtime state shared between the other
components:

    - connection id -> WebSocket for every open transport session
    - connection id -> user id once the connection has authenticated
    - user id -> connection id (presence, last writer wins)
    - user id -> every connection id that authenticated as that user

Thread Safety:
    Designed for a single asyncio event loop. All mutations happen in
    synchronous methods, so no handler can observe a half-updated map.
"""
import asyncio
import logging
import uuid
from typing import Dict, List, Optional, Set

from fastapi import WebSocket

from .schemas import OutboundEvent, make_frame

logger = logging.getLogger(__name__)


class ConnectionRegistry:
    """Tracks live connections and which user each one represents."""

    def __init__(self) -> None:
        # connection_id -> WebSocket
        self.connections: Dict[str, WebSocket] = {}

        # connection_id -> user_id (only authenticated connections)
        self.connection_users: Dict[str, str] = {}

        # user_id -> connection_id that currently represents the user
        self.presence: Dict[str, str] = {}

        # user_id -> all connection ids authenticated as the user
        self.sessions: Dict[str, Set[str]] = {}

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def add(self, websocket: WebSocket) -> str:
        """Register an accepted transport session and return its connection id."""
        connection_id = str(uuid.uuid4())
        self.connections[connection_id] = websocket
        logger.info(f"[Registry] Connection opened: {connection_id}")
        return connection_id

    def authenticate(self, connection_id: str, user_id: Optional[str]) -> bool:
        """Associate *user_id* with a connection and mark the user online.

        A later authenticate for the same user overwrites the presence entry;
        the older connection stays open but is no longer found by lookup.

        Returns:
            True if the association was recorded, False for an empty user id
            or an unknown connection.
        """
        if not user_id or connection_id not in self.connections:
            return False

        previous = self.presence.get(user_id)
        if previous and previous != connection_id:
            logger.info(
                f"[Registry] User {user_id} moved from {previous} to {connection_id}"
            )

        self.presence[user_id] = connection_id
        self.connection_users[connection_id] = user_id
        self.sessions.setdefault(user_id, set()).add(connection_id)
        return True

    def remove(self, connection_id: str) -> Optional[str]:
        """Forget a closed connection.

        Returns:
            The user id whose presence entry was removed, or None when the
            connection was unauthenticated or had already been superseded by
            a newer connection for the same user.
        """
        self.connections.pop(connection_id, None)
        user_id = self.connection_users.pop(connection_id, None)
        if user_id is None:
            return None

        sessions = self.sessions.get(user_id)
        if sessions is not None:
            sessions.discard(connection_id)
            if not sessions:
                del self.sessions[user_id]

        if self.presence.get(user_id) != connection_id:
            return None

        del self.presence[user_id]
        return user_id

    # =========================================================================
    # Queries
    # =========================================================================

    def lookup(self, user_id: str) -> Optional[str]:
        """Return the connection id representing *user_id*, None if offline."""
        return self.presence.get(user_id)

    def user_for(self, connection_id: str) -> Optional[str]:
        return self.connection_users.get(connection_id)

    def online_users(self, exclude: Optional[str] = None) -> List[str]:
        return [user_id for user_id in self.presence if user_id != exclude]

    def sessions_of(self, user_id: str) -> Set[str]:
        return set(self.sessions.get(user_id, ()))

    def connection_count(self) -> int:
        return len(self.connections)

    # =========================================================================
    # Delivery
    # =========================================================================

    async def send(
        self, connection_id: str, event: OutboundEvent, data: object
    ) -> bool:
        """Send one event to one connection; False if it is gone or failed."""
        websocket = self.connections.get(connection_id)
        if websocket is None:
            return False
        return await self._safe_send(websocket, make_frame(event, data))

    async def send_to_user(
        self, user_id: str, event: OutboundEvent, data: object
    ) -> bool:
        """Send to the user's live connection; False if the user is offline."""
        connection_id = self.lookup(user_id)
        if connection_id is None:
            return False
        return await self.send(connection_id, event, data)

    async def broadcast_all(self, event: OutboundEvent, data: object) -> int:
        """Send to every open connection. Returns the number delivered."""
        return await self._fan_out(list(self.connections.values()), event, data)

    async def broadcast_except(
        self, connection_id: str, event: OutboundEvent, data: object
    ) -> int:
        """Send to every open connection other than *connection_id*."""
        targets = [
            ws for cid, ws in self.connections.items() if cid != connection_id
        ]
        return await self._fan_out(targets, event, data)

    async def send_many(
        self, connection_ids: Set[str], event: OutboundEvent, data: object
    ) -> int:
        targets = [
            self.connections[cid] for cid in connection_ids if cid in self.connections
        ]
        return await self._fan_out(targets, event, data)

    async def _fan_out(
        self, targets: List[WebSocket], event: OutboundEvent, data: object
    ) -> int:
        if not targets:
            return 0

        frame = make_frame(event, data)
        results = await asyncio.gather(
            *[self._safe_send(ws, frame) for ws in targets],
            return_exceptions=True,
        )
        return sum(1 for result in results if result is True)

    async def _safe_send(self, websocket: WebSocket, frame: dict) -> bool:
        """Send a frame with error handling.

        Dead sockets are not removed here; the transport's disconnect path
        owns cleanup.
        """
        try:
            await websocket.send_json(frame)
            return True
        except Exception as e:
            logger.debug(f"[Registry] Failed to send {frame.get('event')}: {e}")
            return False
