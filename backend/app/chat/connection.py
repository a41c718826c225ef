"""Per-connection state for the session gateway."""
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from app.store.schemas import UserRecord


class SessionState(str, Enum):
    """Lifecycle of one transport connection.

    UNAUTHENTICATED -> AUTHENTICATED -> CLOSED. CLOSED is terminal; a
    connection may also go straight from UNAUTHENTICATED to CLOSED.
    """
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"
    CLOSED = "closed"


@dataclass(eq=False)
class ChatConnection:
    """One live duplex transport session.

    Attributes:
        websocket: Anything with async ``send_json`` and ``close`` (a FastAPI
            WebSocket in production).
        connection_id: Opaque id, unique per physical link.
        identity: The authenticated user, cached read-only; None before auth.
        state: Current session state.
    """
    websocket: Any
    connection_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    identity: Optional[UserRecord] = None
    state: SessionState = SessionState.UNAUTHENTICATED

    @property
    def user_id(self) -> Optional[int]:
        return self.identity.id if self.identity else None

    @property
    def is_authenticated(self) -> bool:
        return self.state is SessionState.AUTHENTICATED

    @property
    def is_closed(self) -> bool:
        return self.state is SessionState.CLOSED
