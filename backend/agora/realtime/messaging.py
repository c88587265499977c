"""Private message routing and read receipts.

Delivery is best effort: the recipient gets ``message:new`` only if it has
a live connection at the moment of sending. The sender always gets a
``message:sent`` copy of the same envelope.
"""
import logging
from typing import Optional

from .registry import ConnectionRegistry
from .schemas import MessageEnvelope, OutboundEvent

logger = logging.getLogger(__name__)

INVALID_MESSAGE = "Invalid message data"
INVALID_READ_RECEIPT = "Invalid read receipt"


class MessageRouter:
    """Builds message envelopes and delivers them to live connections."""

    def __init__(self, registry: ConnectionRegistry) -> None:
        self._registry = registry

    async def send(
        self,
        sender_connection_id: str,
        recipient_id: Optional[str],
        content: Optional[str],
    ) -> Optional[MessageEnvelope]:
        """Route a private message.

        Args:
            sender_connection_id: Connection that issued ``message:send``.
            recipient_id: Target user id.
            content: Message text.

        Returns:
            The delivered envelope, or None if the input was rejected (an
            ``error`` event has then been sent to the sender instead).
        """
        sender_id = self._registry.user_for(sender_connection_id)
        if not sender_id or not recipient_id or not content:
            await self._registry.send(
                sender_connection_id, OutboundEvent.ERROR, {"message": INVALID_MESSAGE}
            )
            return None

        envelope = MessageEnvelope(
            senderId=sender_id, recipientId=recipient_id, content=content
        )
        payload = envelope.model_dump()

        delivered = await self._registry.send_to_user(
            recipient_id, OutboundEvent.MESSAGE_NEW, payload
        )
        await self._registry.send(sender_connection_id, OutboundEvent.MESSAGE_SENT, payload)

        logger.debug(
            f"[Messages] {sender_id} -> {recipient_id} id={envelope.id} "
            f"delivered={delivered}"
        )
        return envelope

    async def mark_read(
        self, reader_connection_id: str, message_id: Optional[str]
    ) -> bool:
        """Broadcast a read receipt to every other connection."""
        reader_id = self._registry.user_for(reader_connection_id)
        if not reader_id or not message_id:
            await self._registry.send(
                reader_connection_id,
                OutboundEvent.ERROR,
                {"message": INVALID_READ_RECEIPT},
            )
            return False

        await self._registry.broadcast_except(
            reader_connection_id,
            OutboundEvent.MESSAGE_READ,
            {"messageId": message_id, "readBy": reader_id},
        )
        return True
