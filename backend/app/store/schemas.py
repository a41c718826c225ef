"""Pydantic schemas for persisted chat state.

These are the shapes the real-time core consumes from the durable store and
pushes to clients. Field names follow the wire protocol: records use
snake_case columns, derived views (``userIds``) use the client's camelCase.
"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

DEFAULT_AVATAR_COLOR = "#7289da"


class UserRecord(BaseModel):
    """An identity as stored.

    Attributes:
        id: Stable numeric id assigned on registration.
        username: Unique, immutable login name.
        avatar_color: Hex color (``#rrggbb``) of the avatar background.
        avatar_emoji: Optional emoji drawn on the avatar ('' for none).
        avatar_image: Optional base64 profile picture.
        is_admin: May moderate (ban, clear rooms, delete any message).
        is_banned: May not log in or stay connected.
    """
    id: int
    username: str
    avatar_color: str = DEFAULT_AVATAR_COLOR
    avatar_emoji: str = ""
    avatar_image: Optional[str] = None
    is_admin: bool = False
    is_banned: bool = False

    def avatar(self) -> dict:
        return {
            "avatar_color": self.avatar_color,
            "avatar_emoji": self.avatar_emoji,
            "avatar_image": self.avatar_image,
        }


class UserCredentials(BaseModel):
    """A user record together with its password hash (login only)."""
    user: UserRecord
    password_hash: str


class ReactionGroup(BaseModel):
    """Reactions on one message aggregated by emoji."""
    emoji: str
    count: int
    userIds: List[int] = Field(default_factory=list)


class MessageMeta(BaseModel):
    """The parts of a message needed for authorization checks."""
    id: int
    room: str
    sender_id: int


class MessageRecord(BaseModel):
    """A complete message as broadcast and returned in history.

    ``id`` and ``created_at`` are assigned by the store at persist time and
    are never taken from the client.
    """
    id: int
    sender_id: int
    sender_username: str
    avatar_color: str = DEFAULT_AVATAR_COLOR
    avatar_emoji: str = ""
    avatar_image: Optional[str] = None
    room: str
    content: str = ""
    image_data: Optional[str] = None
    edited: bool = False
    reactions: List[ReactionGroup] = Field(default_factory=list)
    created_at: datetime

    def to_wire(self) -> dict:
        return self.model_dump(mode="json")
