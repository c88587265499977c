"""Push integration point for HTTP handlers.

Request handlers persist their data first and then call into the dispatcher
to reach live clients. Nothing here is queued, and callers get no delivery
confirmation back.
"""
import logging
from typing import Any

from .registry import ConnectionRegistry
from .schemas import OutboundEvent, utc_now

logger = logging.getLogger(__name__)


class NotificationDispatcher:

    def __init__(self, registry: ConnectionRegistry) -> None:
        self._registry = registry

    async def push_to_user(self, user_id: str, notification: Any) -> None:
        """Deliver ``notification:new`` to the user's live connection, if any."""
        delivered = await self._registry.send_to_user(
            user_id, OutboundEvent.NOTIFICATION_NEW, notification
        )
        logger.debug(f"[Notify] push to {user_id} delivered={delivered}")

    async def broadcast_all(self, message: str) -> None:
        """Deliver ``announcement`` to every open connection."""
        count = await self._registry.broadcast_all(
            OutboundEvent.ANNOUNCEMENT, {"message": message, "timestamp": utc_now()}
        )
        logger.info(f"[Notify] announcement sent to {count} connections")
