"""Presence fan-out: online, offline and custom status events.

Presence is fire-and-forget. Peers that miss an event are not corrected;
a client learns the full online set only from the snapshot sent when it
authenticates.
"""
import logging

from .registry import ConnectionRegistry
from .schemas import OutboundEvent, utc_now

logger = logging.getLogger(__name__)


class PresenceBroadcaster:
    """Emits status transitions for a user to every other connection."""

    def __init__(self, registry: ConnectionRegistry) -> None:
        self._registry = registry

    async def online(self, connection_id: str, user_id: str) -> int:
        logger.info(f"[Presence] {user_id} is online")
        return await self._registry.broadcast_except(
            connection_id,
            OutboundEvent.USER_STATUS,
            {"userId": user_id, "status": "online"},
        )

    async def offline(self, connection_id: str, user_id: str) -> int:
        logger.info(f"[Presence] {user_id} is offline")
        return await self._registry.broadcast_except(
            connection_id,
            OutboundEvent.USER_STATUS,
            {"userId": user_id, "status": "offline", "lastSeen": utc_now()},
        )

    async def update(self, connection_id: str, user_id: str, status: str) -> int:
        """Broadcast a caller-chosen status string. Values are not validated."""
        logger.debug(f"[Presence] {user_id} status -> {status}")
        return await self._registry.broadcast_except(
            connection_id,
            OutboundEvent.USER_PRESENCE,
            {"userId": user_id, "status": status, "lastSeen": utc_now()},
        )
