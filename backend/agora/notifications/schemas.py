"""Pydantic schemas for the notifications module."""
from typing import Literal, Optional

from pydantic import BaseModel, Field


NotificationType = Literal[
    "post_like", "post_comment", "new_follower", "community_join", "new_message"
]


class NotificationCreate(BaseModel):
    """Request body for creating a notification for a user."""
    type: NotificationType
    sender_id: Optional[str] = Field(default=None)
    reference_id: Optional[str] = Field(default=None)
    content: Optional[str] = Field(default=None, max_length=500)
