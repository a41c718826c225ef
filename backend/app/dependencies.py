"""FastAPI dependencies shared by the HTTP routers.

Long-lived services are created in the application lifespan and stored on
``app.state``; routes reach them only through these accessors.
"""
import logging
from typing import Optional

from fastapi import Depends, Header, HTTPException, Request

from app.auth.tokens import AuthenticationError, TokenService
from app.chat.manager import ConnectionManager
from app.config import AppConfig
from app.store.gateway import PersistenceGateway
from app.store.schemas import UserRecord

logger = logging.getLogger(__name__)


def get_app_config(request: Request) -> AppConfig:
    return request.app.state.config


def get_gateway(request: Request) -> PersistenceGateway:
    return request.app.state.gateway


def get_tokens(request: Request) -> TokenService:
    return request.app.state.tokens


def get_manager(request: Request) -> ConnectionManager:
    return request.app.state.manager


async def require_user(
    authorization: Optional[str] = Header(None),
    tokens: TokenService = Depends(get_tokens),
    gateway: PersistenceGateway = Depends(get_gateway),
) -> UserRecord:
    """Resolve ``Authorization: Bearer <token>`` to a non-banned user."""
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Not logged in")
    try:
        user_id = tokens.decode(authorization[len("Bearer "):])
    except AuthenticationError:
        raise HTTPException(status_code=401, detail="Invalid token")

    user = await gateway.get_user(user_id)
    if user is None:
        raise HTTPException(status_code=401, detail="Invalid token")
    if user.is_banned:
        raise HTTPException(status_code=403, detail="Your account has been banned.")
    return user


async def require_admin(user: UserRecord = Depends(require_user)) -> UserRecord:
    if not user.is_admin:
        logger.warning(f"[Auth] non-admin user {user.id} attempted an admin call")
        raise HTTPException(status_code=403, detail="Admin only")
    return user
