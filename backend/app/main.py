"""Chat Backend Application.

This is the main entry point for the real-time chat service: authenticated
users exchange text and image messages in public rooms and pairwise direct
messages, with presence, edits, deletes, reactions and admin moderation.

Modules:
    - chat: WebSocket session gateway, presence, room membership, fan-out
    - store: DuckDB persistence for users, messages and reactions
    - auth: password + JWT credential issuance and verification
    - profile: avatar updates and the user roster
    - moderation: admin ban toggling and room clearing
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.auth.router import router as auth_router
from app.auth.service import IdentityVerifier
from app.auth.tokens import TokenService
from app.chat.manager import ConnectionManager
from app.chat.messages import MessageService
from app.chat.router import router as chat_router
from app.config import get_config
from app.moderation.router import router as moderation_router
from app.moderation.service import ModerationController
from app.profile.router import router as profile_router
from app.store.gateway import PersistenceGateway
from app.store.service import ChatStore, StoreError

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

# Silence verbose third-party loggers.
for _noisy in (
    "uvicorn.access",
    "httpx",
    "httpcore",
):
    logging.getLogger(_noisy).setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup/shutdown events."""
    # Startup
    config = get_config()

    # Apply configured log level to root logger so that
    # `logging.level: "debug"` in chat.settings.yaml activates DEBUG output.
    configured_level = getattr(logging, config.logging.level.upper(), None)
    if configured_level is not None:
        logging.getLogger().setLevel(configured_level)
        logger.info("Root logger level set to %s", config.logging.level.upper())

    store = ChatStore.get_instance(db_path=config.store.db_path)
    gateway = PersistenceGateway(store, timeout=config.store.timeout_seconds)
    tokens = TokenService(
        secret_key=config.secrets.jwt.secret_key,
        algorithm=config.secrets.jwt.algorithm,
        expire_minutes=config.auth.token_expire_minutes,
    )
    manager = ConnectionManager(
        default_room=config.chat.default_room,
        send_timeout=config.chat.send_timeout_seconds,
    )

    app.state.config = config
    app.state.gateway = gateway
    app.state.tokens = tokens
    app.state.verifier = IdentityVerifier(tokens, gateway)
    app.state.manager = manager
    app.state.messages = MessageService(gateway, manager, config.chat, config.rooms)
    app.state.moderation = ModerationController(gateway, manager, config.rooms)

    # Promote configured admins that registered before being listed.
    for username in config.admin.usernames:
        if await gateway.set_admin(username, True):
            logger.info("Granted admin rights to %s", username)

    logger.info(
        f"Chat service ready on http://{config.server.host}:{config.server.port} "
        f"(rooms={config.rooms})"
    )

    yield  # Application runs here

    # Shutdown
    ChatStore.reset_instance()
    logger.info("Application shutdown complete")


# Create FastAPI application with metadata
app = FastAPI(
    title="Chat API",
    description="Real-time multi-room chat service",
    version="0.1.0",
    lifespan=lifespan,
)

# Register all routers
app.include_router(chat_router)
app.include_router(auth_router)
app.include_router(profile_router)
app.include_router(moderation_router)


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError) -> JSONResponse:
    """Durable-store failures become a generic 500; details stay in the log."""
    logger.error(f"Store failure on {request.method} {request.url.path}: {exc}")
    return JSONResponse({"detail": "Server error"}, status_code=500)


@app.get("/health")
async def health() -> dict:
    """Health check endpoint.

    Returns:
        dict: Status object indicating the server is running.
    """
    return {"status": "ok"}
