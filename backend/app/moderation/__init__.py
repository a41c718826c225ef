"""Admin moderation: bans and room clearing."""

from .service import (
    InvalidRoomError,
    ModerationController,
    ModerationError,
    NotAdminError,
    SelfBanError,
    UserNotFoundError,
)

__all__ = [
    "InvalidRoomError",
    "ModerationController",
    "ModerationError",
    "NotAdminError",
    "SelfBanError",
    "UserNotFoundError",
]
