"""Profile endpoints: avatar updates and the user roster.

Endpoints:
    PUT /api/avatar - Update the caller's avatar (color, emoji, picture)
    GET /api/users  - Roster of all users with online flags
"""
import logging
import re
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from app.chat.manager import ConnectionManager
from app.config import AppConfig
from app.dependencies import get_app_config, get_gateway, get_manager, require_user
from app.store.gateway import PersistenceGateway
from app.store.schemas import UserRecord

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["profile"])

_COLOR_PATTERN = re.compile(r"^#[0-9a-fA-F]{6}$")


class AvatarUpdate(BaseModel):
    """Request body for PUT /api/avatar."""
    color: str = ""
    emoji: Optional[str] = None
    image: Optional[str] = None


@router.put("/avatar")
async def update_avatar(
    request: AvatarUpdate,
    user: UserRecord = Depends(require_user),
    config: AppConfig = Depends(get_app_config),
    gateway: PersistenceGateway = Depends(get_gateway),
    manager: ConnectionManager = Depends(get_manager),
) -> dict:
    """Update the caller's avatar and broadcast the change to everyone.

    Returns:
        dict: ``{"success": true}``
    """
    if not _COLOR_PATTERN.match(request.color):
        raise HTTPException(status_code=400, detail="Invalid color")
    emoji = request.emoji or ""
    if len(emoji) > config.profile.max_avatar_emoji_chars:
        raise HTTPException(status_code=400, detail="Avatar emoji too long")
    image = request.image or None
    if image and len(image) > config.profile.max_avatar_image_chars:
        raise HTTPException(status_code=400, detail="Profile picture too large")

    await gateway.update_avatar(user.id, request.color, emoji, image)
    await manager.router.broadcast_to_all({
        "type": "avatar_updated",
        "id": user.id,
        "avatar_color": request.color,
        "avatar_emoji": emoji,
        "avatar_image": image,
    })
    logger.info(f"[Profile] user {user.id} updated avatar")
    return {"success": True}


@router.get("/users")
async def list_users(
    user: UserRecord = Depends(require_user),
    gateway: PersistenceGateway = Depends(get_gateway),
    manager: ConnectionManager = Depends(get_manager),
) -> dict:
    """Return every user with an ``online`` flag."""
    users = await gateway.list_users()
    return {"users": manager.roster(users)}
