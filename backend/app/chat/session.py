"""Session gateway: per-connection state machine and inbound event dispatch.

States:
    UNAUTHENTICATED --authenticate(valid, not banned)--> AUTHENTICATED
    UNAUTHENTICATED --authenticate(invalid)--> UNAUTHENTICATED (may retry)
    UNAUTHENTICATED --authenticate(banned)--> CLOSED (after a ``banned`` notice)
    any --transport closed / forced disconnect--> CLOSED

Failure reporting:
    - authentication failures get an explicit negative ``authenticated`` ack
    - authorization failures and events sent before authenticating are
      dropped without a reply, so nothing about private rooms leaks
    - validation failures get ``{"type": "error", "error": reason}``
    - store failures are logged and reported as a generic "Server error"
"""
import logging
from typing import Awaitable, Callable, Dict, Tuple, Type

from pydantic import BaseModel, ValidationError

from app.auth.service import BannedError, IdentityVerifier
from app.auth.tokens import AuthenticationError
from app.store.gateway import PersistenceGateway
from app.store.service import StoreError

from .connection import ChatConnection
from .manager import ConnectionManager
from .messages import MessageRejected, MessageService
from .schemas import (
    DeleteMessagePayload,
    EditMessagePayload,
    RoomPayload,
    SendMessagePayload,
    ToggleReactionPayload,
)

logger = logging.getLogger(__name__)

Handler = Callable[[BaseModel], Awaitable[object]]


class ChatSession:
    """Drives one connection from authentication to close."""

    def __init__(
        self,
        connection: ChatConnection,
        manager: ConnectionManager,
        verifier: IdentityVerifier,
        messages: MessageService,
        gateway: PersistenceGateway,
    ) -> None:
        self.connection = connection
        self.manager = manager
        self.verifier = verifier
        self.messages = messages
        self.gateway = gateway
        self._handlers: Dict[str, Tuple[Type[BaseModel], Handler]] = {
            "get_messages": (RoomPayload, self._on_get_messages),
            "join_room": (RoomPayload, self._on_join_room),
            "send_message": (SendMessagePayload, self._on_send_message),
            "edit_message": (EditMessagePayload, self._on_edit_message),
            "delete_message": (DeleteMessagePayload, self._on_delete_message),
            "toggle_reaction": (ToggleReactionPayload, self._on_toggle_reaction),
        }

    async def reply(self, event: dict) -> None:
        await self.manager.router.send(self.connection, event)

    async def reply_error(self, reason: str) -> None:
        await self.reply({"type": "error", "error": reason})

    async def handle(self, frame: object) -> None:
        """Process one inbound frame to completion."""
        if self.connection.is_closed:
            return
        if not isinstance(frame, dict):
            if self.connection.is_authenticated:
                await self.reply_error("Invalid request")
            return

        event_type = frame.get("type")
        if event_type == "authenticate":
            await self._authenticate(frame.get("token"))
            return

        if not self.connection.is_authenticated:
            logger.debug(
                "[WS] %s dropped %r before authentication",
                self.connection.connection_id, event_type,
            )
            return

        entry = self._handlers.get(event_type) if isinstance(event_type, str) else None
        if entry is None:
            await self.reply_error("Invalid request")
            return
        model, handler = entry
        try:
            payload = model.model_validate(frame)
        except ValidationError:
            await self.reply_error("Invalid request")
            return

        try:
            await handler(payload)
        except MessageRejected as exc:
            await self.reply_error(exc.reason)
        except StoreError as exc:
            logger.error(
                f"[WS] {event_type} from user {self.connection.user_id} failed: {exc}"
            )
            await self.reply_error("Server error")

    async def handle_malformed(self) -> None:
        """Called for frames that were not valid JSON."""
        if self.connection.is_authenticated:
            await self.reply_error("Invalid request")

    # =========================================================================
    # Authentication
    # =========================================================================

    async def _authenticate(self, token: object) -> None:
        if self.connection.is_authenticated:
            logger.debug("[WS] %s re-authentication ignored", self.connection.connection_id)
            return
        try:
            user = await self.verifier.verify(token)
        except BannedError:
            await self.reply({"type": "banned"})
            await self.manager.close(self.connection)
            return
        except AuthenticationError as exc:
            logger.info(f"[WS] {self.connection.connection_id} authentication failed: {exc}")
            await self.reply({"type": "authenticated", "success": False, "error": "Invalid token"})
            return
        except StoreError as exc:
            logger.error(f"[WS] authentication lookup failed: {exc}")
            await self.reply({"type": "authenticated", "success": False, "error": "Server error"})
            return

        # A ban may have been issued while verify() was awaiting the store.
        came_online = self.manager.authenticate(self.connection, user)
        if not self.connection.is_authenticated:
            if self.manager.is_banned(user.id):
                await self.reply({"type": "banned"})
                await self.manager.close(self.connection)
            return
        await self.reply({"type": "authenticated", "success": True, "isAdmin": user.is_admin})

        if came_online:
            await self.manager.router.broadcast_to_all({
                "type": "user_online",
                "id": user.id,
                "username": user.username,
                **user.avatar(),
            })

        try:
            users = await self.gateway.list_users()
        except StoreError as exc:
            logger.error(f"[WS] roster lookup failed: {exc}")
            await self.reply_error("Server error")
            return
        await self.reply({"type": "users_list", "users": self.manager.roster(users)})

    # =========================================================================
    # Room-scoped events
    # =========================================================================

    async def _on_get_messages(self, payload: RoomPayload) -> None:
        await self.messages.history(self.connection, payload.room)

    async def _on_join_room(self, payload: RoomPayload) -> None:
        await self.messages.join(self.connection, payload.room)

    async def _on_send_message(self, payload: SendMessagePayload) -> None:
        await self.messages.send(
            self.connection, payload.room, payload.content, payload.imageData
        )

    async def _on_edit_message(self, payload: EditMessagePayload) -> None:
        await self.messages.edit(self.connection, payload.messageId, payload.content)

    async def _on_delete_message(self, payload: DeleteMessagePayload) -> None:
        await self.messages.delete(self.connection, payload.messageId)

    async def _on_toggle_reaction(self, payload: ToggleReactionPayload) -> None:
        await self.messages.toggle_reaction(
            self.connection, payload.messageId, payload.emoji
        )
