"""Inbound WebSocket payloads.

Every client frame is a JSON object with a ``type`` key; the remaining keys
are validated against one of these models before the handler runs. Unknown
keys (including ``type``) are ignored.
"""
from typing import Optional

from pydantic import BaseModel, Field


class RoomPayload(BaseModel):
    """``get_messages`` / ``join_room``."""
    room: str


class SendMessagePayload(BaseModel):
    """``send_message``: text, image, or both. Neither is validated here;
    emptiness and size limits are business rules reported to the sender."""
    room: str
    content: Optional[str] = None
    imageData: Optional[str] = None


class EditMessagePayload(BaseModel):
    messageId: int
    content: str


class DeleteMessagePayload(BaseModel):
    messageId: int


class ToggleReactionPayload(BaseModel):
    messageId: int
    emoji: str = Field(..., max_length=32)
