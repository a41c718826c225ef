"""Admin moderation endpoints.

Endpoints:
    POST   /api/admin/ban/{user_id} - Toggle a user's banned flag
    DELETE /api/admin/clear/{room}  - Delete all messages of a room
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, Request

from app.dependencies import require_admin
from app.store.schemas import UserRecord

from .service import InvalidRoomError, ModerationController, SelfBanError, UserNotFoundError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["moderation"])


def get_moderation(request: Request) -> ModerationController:
    return request.app.state.moderation


@router.post("/ban/{user_id}")
async def toggle_ban(
    user_id: int,
    admin: UserRecord = Depends(require_admin),
    moderation: ModerationController = Depends(get_moderation),
) -> dict:
    """Ban or unban a user.

    Banning disconnects every live session of the target immediately.

    Returns:
        dict: ``{"success": true, "banned": <new state>}``
    """
    try:
        banned = await moderation.toggle_ban(admin, user_id)
    except SelfBanError:
        raise HTTPException(status_code=400, detail="You can't ban yourself")
    except UserNotFoundError:
        raise HTTPException(status_code=404, detail="User not found")
    return {"success": True, "banned": banned}


@router.delete("/clear/{room}")
async def clear_room(
    room: str,
    admin: UserRecord = Depends(require_admin),
    moderation: ModerationController = Depends(get_moderation),
) -> dict:
    """Delete every message in a room and notify its current subscribers."""
    try:
        await moderation.clear_room(admin, room)
    except InvalidRoomError:
        raise HTTPException(status_code=400, detail="Invalid room")
    return {"success": True}
