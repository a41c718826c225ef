"""Auth router: credential issuance.

Endpoints:
    POST /api/register - Create an account and return a session token
    POST /api/login    - Exchange username/password for a session token

Tokens returned here are presented on the WebSocket ``authenticate`` event
and as ``Authorization: Bearer`` on privileged HTTP calls.
"""
import asyncio
import logging
import re

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from app.config import AppConfig
from app.dependencies import get_app_config, get_gateway, get_tokens
from app.store.gateway import PersistenceGateway
from app.store.service import UsernameTakenError

from .passwords import hash_password, verify_password
from .tokens import TokenService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["auth"])

_USERNAME_PATTERN = re.compile(r"^[a-zA-Z0-9_]+$")

MIN_USERNAME_LENGTH = 3
MAX_USERNAME_LENGTH = 50
MIN_PASSWORD_LENGTH = 6


class CredentialsRequest(BaseModel):
    """Request body for register and login."""
    username: str = ""
    password: str = ""


class TokenResponse(BaseModel):
    token: str
    userId: int
    username: str


def _validate_registration(username: str, password: str) -> None:
    if not username or not password:
        raise HTTPException(status_code=400, detail="Username and password are required")
    if len(username) < MIN_USERNAME_LENGTH:
        raise HTTPException(status_code=400, detail="Username must be at least 3 characters")
    if len(username) > MAX_USERNAME_LENGTH:
        raise HTTPException(status_code=400, detail="Username must be at most 50 characters")
    if not _USERNAME_PATTERN.match(username):
        raise HTTPException(status_code=400, detail="Letters, numbers, and underscores only")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise HTTPException(status_code=400, detail="Password must be at least 6 characters")


@router.post("/register", response_model=TokenResponse)
async def register(
    request: CredentialsRequest,
    config: AppConfig = Depends(get_app_config),
    gateway: PersistenceGateway = Depends(get_gateway),
    tokens: TokenService = Depends(get_tokens),
) -> TokenResponse:
    """Create a new account.

    Usernames listed under ``admin.usernames`` in the settings file are
    created with admin rights.
    """
    _validate_registration(request.username, request.password)

    # Hashing runs off the event loop.
    password_hash = await asyncio.get_event_loop().run_in_executor(
        None, hash_password, request.password
    )
    is_admin = request.username in config.admin.usernames
    try:
        user = await gateway.create_user(request.username, password_hash, is_admin)
    except UsernameTakenError:
        raise HTTPException(status_code=400, detail="That username is already taken")

    logger.info(f"[Auth] Registered user {user.username} (id={user.id}, admin={is_admin})")
    return TokenResponse(token=tokens.issue(user), userId=user.id, username=user.username)


@router.post("/login", response_model=TokenResponse)
async def login(
    request: CredentialsRequest,
    gateway: PersistenceGateway = Depends(get_gateway),
    tokens: TokenService = Depends(get_tokens),
) -> TokenResponse:
    """Exchange username/password for a session token.

    Unknown users and wrong passwords get the same 401 response.
    """
    if not request.username or not request.password:
        raise HTTPException(status_code=400, detail="Username and password are required")

    credentials = await gateway.get_credentials(request.username)
    if credentials is None:
        raise HTTPException(status_code=401, detail="Invalid username or password")
    if credentials.user.is_banned:
        raise HTTPException(status_code=403, detail="Your account has been banned.")

    valid = await asyncio.get_event_loop().run_in_executor(
        None, verify_password, credentials.password_hash, request.password
    )
    if not valid:
        raise HTTPException(status_code=401, detail="Invalid username or password")

    user = credentials.user
    logger.info(f"[Auth] Login for {user.username} (id={user.id})")
    return TokenResponse(token=tokens.issue(user), userId=user.id, username=user.username)
