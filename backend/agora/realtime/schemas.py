"""Wire models and event names for the realtime WebSocket protocol.

Every frame in either direction is a JSON object of the form::

    {"event": "<name>", "data": <payload>}

Inbound payloads are validated loosely (missing fields become ``None``) so
that the handlers can answer malformed input with an ``error`` event instead
of closing the connection.
"""
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


def utc_now() -> str:
    """Current time as an ISO-8601 UTC string."""
    return datetime.now(timezone.utc).isoformat()


class InboundEvent(str, Enum):
    """Signals a client may send over its connection."""
    AUTHENTICATE = "authenticate"
    MESSAGE_SEND = "message:send"
    MESSAGE_READ = "message:read"
    TYPING_START = "typing:start"
    TYPING_STOP = "typing:stop"
    NOTIFICATION_READ = "notification:read"
    PRESENCE_UPDATE = "presence:update"


class OutboundEvent(str, Enum):
    """Events the server emits to connections."""
    USER_STATUS = "user:status"
    ONLINE_USERS = "online:users"
    MESSAGE_NEW = "message:new"
    MESSAGE_SENT = "message:sent"
    MESSAGE_READ = "message:read"
    USER_TYPING = "user:typing"
    USER_STOPPED_TYPING = "user:stopped-typing"
    NOTIFICATION_MARKED_READ = "notification:marked-read"
    USER_PRESENCE = "user:presence"
    NOTIFICATION_NEW = "notification:new"
    ANNOUNCEMENT = "announcement"
    ERROR = "error"


class Frame(BaseModel):
    """A single inbound frame; ``data`` is event specific."""
    event: str = Field(..., min_length=1)
    data: Any = None


class MessageSendPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    recipientId: Optional[str] = None
    content: Optional[str] = None


class TypingPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    recipientId: Optional[str] = None


class MessageEnvelope(BaseModel):
    """A private message as delivered to sender and recipient.

    Envelopes are built per send and handed to the transport; they are never
    stored by the realtime layer.
    """
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    senderId: str
    recipientId: str
    content: str
    timestamp: str = Field(default_factory=utc_now)
    isRead: bool = False


def make_frame(event: OutboundEvent, data: Any) -> dict:
    return {"event": event.value, "data": data}
