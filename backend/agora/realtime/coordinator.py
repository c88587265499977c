"""Realtime coordinator: one instance per application process.

The coordinator owns every piece of realtime state (through its
ConnectionRegistry and TypingDebouncer) and is the only thing WebSocket
handlers and HTTP routes talk to. It is created by ``create_app()`` and
stored on ``app.state``; nothing here lives in a module-level global.

Inbound signals:
    - authenticate:       userId
    - message:send:       {recipientId, content}
    - message:read:       messageId
    - typing:start:       {recipientId}
    - typing:stop:        {recipientId}
    - notification:read:  notificationId
    - presence:update:    status
    - disconnect:         transport event, see ``disconnect()``
"""
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from fastapi import WebSocket
from pydantic import ValidationError

from .messaging import MessageRouter
from .notifications import NotificationDispatcher
from .presence import PresenceBroadcaster
from .registry import ConnectionRegistry
from .schemas import (
    InboundEvent,
    MessageSendPayload,
    OutboundEvent,
    TypingPayload,
)
from .typing_debouncer import DEFAULT_DEBOUNCE_SECONDS, TypingDebouncer

logger = logging.getLogger(__name__)

Handler = Callable[[str, Any], Awaitable[None]]


def _field(data: Any, key: str) -> Optional[str]:
    """Extract a scalar payload that may arrive bare or wrapped in an object."""
    if isinstance(data, dict):
        data = data.get(key)
    if data is None or isinstance(data, (dict, list, bool)):
        return None
    return str(data)


class RealtimeCoordinator:
    """Presence tracking, private messaging and typing indicators."""

    def __init__(
        self,
        typing_window_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        stop_typing_on_disconnect: bool = False,
    ) -> None:
        self.registry = ConnectionRegistry()
        self.presence = PresenceBroadcaster(self.registry)
        self.typing = TypingDebouncer(self.registry, typing_window_seconds)
        self.messages = MessageRouter(self.registry)
        self.notifications = NotificationDispatcher(self.registry)
        self.stop_typing_on_disconnect = stop_typing_on_disconnect

        self._handlers: Dict[str, Handler] = {
            InboundEvent.AUTHENTICATE.value: self._on_authenticate,
            InboundEvent.MESSAGE_SEND.value: self._on_message_send,
            InboundEvent.MESSAGE_READ.value: self._on_message_read,
            InboundEvent.TYPING_START.value: self._on_typing_start,
            InboundEvent.TYPING_STOP.value: self._on_typing_stop,
            InboundEvent.NOTIFICATION_READ.value: self._on_notification_read,
            InboundEvent.PRESENCE_UPDATE.value: self._on_presence_update,
        }

    # =========================================================================
    # Transport lifecycle
    # =========================================================================

    def connect(self, websocket: WebSocket) -> str:
        return self.registry.add(websocket)

    async def disconnect(self, connection_id: str) -> None:
        """Clean up after a closed connection.

        If the connection was the user's current presence entry, the user
        goes offline: peers get ``user:status`` offline and the user's typing
        expiry is cancelled. By default no ``user:stopped-typing`` is sent
        for the cancelled indicator; set ``stop_typing_on_disconnect`` to
        send one.
        """
        user_id = self.registry.remove(connection_id)
        if user_id is None:
            logger.info(f"[Coordinator] Connection closed: {connection_id}")
            return

        recipient_id = self.typing.clear(user_id)
        if recipient_id and self.stop_typing_on_disconnect:
            await self.registry.send_to_user(
                recipient_id, OutboundEvent.USER_STOPPED_TYPING, {"userId": user_id}
            )

        await self.presence.offline(connection_id, user_id)
        logger.info(f"[Coordinator] User disconnected: {user_id}")

    def shutdown(self) -> None:
        self.typing.clear_all()

    # =========================================================================
    # Inbound dispatch
    # =========================================================================

    async def handle(self, connection_id: str, event: str, data: Any = None) -> None:
        """Run the handler for one inbound signal.

        Unknown events are answered with an ``error`` event; handler-level
        validation failures are answered the same way by the handlers.
        """
        handler = self._handlers.get(event)
        if handler is None:
            await self.send_error(connection_id, f"Unknown event: {event}")
            return
        logger.debug(f"[Coordinator] {connection_id} -> {event}")
        await handler(connection_id, data)

    async def send_error(self, connection_id: str, message: str) -> None:
        await self.registry.send(connection_id, OutboundEvent.ERROR, {"message": message})

    async def _on_authenticate(self, connection_id: str, data: Any) -> None:
        user_id = _field(data, "userId")
        if not user_id:
            return

        current = self.registry.user_for(connection_id)
        if current is not None and current != user_id:
            logger.warning(
                f"[Coordinator] Ignoring re-authentication of {connection_id} "
                f"from {current} to {user_id}"
            )
            return

        if not self.registry.authenticate(connection_id, user_id):
            return

        await self.presence.online(connection_id, user_id)
        await self.registry.send(
            connection_id,
            OutboundEvent.ONLINE_USERS,
            self.registry.online_users(exclude=user_id),
        )
        logger.info(f"[Coordinator] User authenticated: {user_id}")

    async def _on_message_send(self, connection_id: str, data: Any) -> None:
        try:
            payload = MessageSendPayload.model_validate(data or {})
        except ValidationError:
            payload = MessageSendPayload()
        await self.messages.send(connection_id, payload.recipientId, payload.content)

    async def _on_message_read(self, connection_id: str, data: Any) -> None:
        await self.messages.mark_read(connection_id, _field(data, "messageId"))

    async def _on_typing_start(self, connection_id: str, data: Any) -> None:
        recipient_id = self._typing_recipient(data)
        await self.typing.start(self.registry.user_for(connection_id), recipient_id)

    async def _on_typing_stop(self, connection_id: str, data: Any) -> None:
        recipient_id = self._typing_recipient(data)
        await self.typing.stop(self.registry.user_for(connection_id), recipient_id)

    async def _on_notification_read(self, connection_id: str, data: Any) -> None:
        user_id = self.registry.user_for(connection_id)
        notification_id = _field(data, "notificationId")
        if not user_id:
            await self.send_error(connection_id, "Not authenticated")
            return
        if not notification_id:
            await self.send_error(connection_id, "Invalid notification id")
            return

        others = self.registry.sessions_of(user_id) - {connection_id}
        await self.registry.send_many(
            others, OutboundEvent.NOTIFICATION_MARKED_READ, notification_id
        )

    async def _on_presence_update(self, connection_id: str, data: Any) -> None:
        user_id = self.registry.user_for(connection_id)
        status = _field(data, "status")
        if not user_id:
            await self.send_error(connection_id, "Not authenticated")
            return
        if not status:
            await self.send_error(connection_id, "Invalid presence status")
            return
        await self.presence.update(connection_id, user_id, status)

    @staticmethod
    def _typing_recipient(data: Any) -> Optional[str]:
        try:
            return TypingPayload.model_validate(data or {}).recipientId
        except ValidationError:
            return None
