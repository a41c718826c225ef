"""Message lifecycle: history, send, edit, delete and reaction toggles.

Every operation follows the same order:

    1. authorize the acting connection for the room (silent drop on failure)
    2. validate the payload (MessageRejected, reported to the sender)
    3. persist through the gateway (StoreError propagates; nothing is sent)
    4. fan out to the room

so a mutation is broadcast only after it has been durably committed.

Reaction broadcasts always re-read the grouped view from the store instead
of applying a delta. Two toggles on the same message may interleave at the
awaits between steps 3 and 4; whichever broadcast goes out last still carries
the store's current state.
"""
import logging
from typing import List, Optional

from app.config import ChatSettings
from app.store.gateway import PersistenceGateway

from .connection import ChatConnection
from .manager import ConnectionManager
from .rooms import can_access, is_dm_room

logger = logging.getLogger(__name__)


class MessageRejected(Exception):
    """A validation failure that is reported to the sender."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class MessageService:
    """Room-scoped chat operations on behalf of authenticated connections.

    Args:
        gateway: Async access to the durable store.
        manager: Live connection/membership state and fan-out.
        settings: Chat limits (history size, image size).
        public_rooms: Rooms open to every authenticated identity.
    """

    def __init__(
        self,
        gateway: PersistenceGateway,
        manager: ConnectionManager,
        settings: ChatSettings,
        public_rooms: List[str],
    ) -> None:
        self.gateway = gateway
        self.manager = manager
        self.settings = settings
        self.public_rooms = list(public_rooms)

    def _authorized(self, connection: ChatConnection, room: object) -> bool:
        if connection.user_id is None:
            return False
        if can_access(room, connection.user_id, self.public_rooms):
            return True
        logger.debug(
            "[Chat] dropped access by user %s to room %r", connection.user_id, room
        )
        return False

    # =========================================================================
    # Room operations
    # =========================================================================

    async def join(self, connection: ChatConnection, room: str) -> bool:
        if not self._authorized(connection, room):
            return False
        self.manager.membership.subscribe(connection.connection_id, room)
        return True

    async def history(self, connection: ChatConnection, room: str) -> bool:
        """Subscribe the connection to *room* and send it the recent history."""
        if not self._authorized(connection, room):
            return False
        messages = await self.gateway.get_messages(room, self.settings.history_limit)
        if connection.is_closed:
            return False
        self.manager.membership.subscribe(connection.connection_id, room)
        await self.manager.router.send(connection, {
            "type": "message_history",
            "room": room,
            "messages": [m.to_wire() for m in messages],
        })
        return True

    # =========================================================================
    # Message operations
    # =========================================================================

    async def send(
        self,
        connection: ChatConnection,
        room: str,
        content: Optional[str],
        image_data: Optional[str],
    ) -> bool:
        if not self._authorized(connection, room):
            return False

        text = (content or "").strip()
        image = image_data or None
        if not text and not image:
            raise MessageRejected("Message cannot be empty")
        if image and len(image) > self.settings.max_message_image_chars:
            raise MessageRejected("Image is too large. Please use a smaller image.")

        message = await self.gateway.save_message(connection.user_id, room, text, image)

        # The sender has acted in the room, so it receives the echo; in a dm
        # the other party is pulled in before the broadcast goes out.
        if not connection.is_closed:
            self.manager.membership.subscribe(connection.connection_id, room)
        if is_dm_room(room):
            self.manager.membership.ensure_recipient_subscribed(room, connection.user_id)

        await self.manager.router.broadcast_to_room(
            room, {"type": "message", **message.to_wire()}
        )
        logger.info(
            f"[Chat] message {message.id} from user {connection.user_id} in {room}"
        )
        return True

    async def edit(self, connection: ChatConnection, message_id: int, content: str) -> bool:
        meta = await self.gateway.get_message_meta(message_id)
        if meta is None or not self._authorized(connection, meta.room):
            return False
        text = (content or "").strip()
        if not text:
            raise MessageRejected("Message cannot be empty")

        updated = await self.gateway.edit_message(message_id, connection.user_id, text)
        if updated is None:
            return False

        await self.manager.router.broadcast_to_room(updated.room, {
            "type": "message_edited",
            "messageId": updated.id,
            "content": text,
            "edited": True,
        })
        return True

    async def delete(self, connection: ChatConnection, message_id: int) -> bool:
        """Delete a message; authors may delete their own, admins anything."""
        identity = connection.identity
        if identity is None:
            return False
        meta = await self.gateway.get_message_meta(message_id)
        if meta is None:
            return False
        if not identity.is_admin and not self._authorized(connection, meta.room):
            return False
        deleted = await self.gateway.delete_message(message_id, identity.id, identity.is_admin)
        if deleted is None:
            return False

        await self.manager.router.broadcast_to_room(
            deleted.room, {"type": "message_deleted", "messageId": deleted.id}
        )
        logger.info(f"[Chat] message {deleted.id} deleted by user {identity.id}")
        return True

    async def toggle_reaction(
        self, connection: ChatConnection, message_id: int, emoji: str
    ) -> bool:
        meta = await self.gateway.get_message_meta(message_id)
        if meta is None or not self._authorized(connection, meta.room):
            return False
        emoji = (emoji or "").strip()
        if not emoji:
            raise MessageRejected("Reaction cannot be empty")

        await self.gateway.toggle_reaction(message_id, connection.user_id, emoji)
        reactions = await self.gateway.get_reactions(message_id)

        await self.manager.router.broadcast_to_room(meta.room, {
            "type": "reaction_updated",
            "messageId": message_id,
            "reactions": [r.model_dump() for r in reactions],
        })
        return True
