"""Moderation controller: ban toggling and room clearing.

Both operations commit to the store first and only then touch live
sessions, so a failed write never leaves clients believing something changed.
A pending ban is the one exception: the manager refuses new sessions of the
target before the write is awaited, and forgets the ban again if it fails.
"""
import logging
from typing import List

from app.chat.manager import ConnectionManager
from app.chat.rooms import is_valid_room
from app.store.gateway import PersistenceGateway
from app.store.schemas import UserRecord
from app.store.service import StoreError

logger = logging.getLogger(__name__)


class ModerationError(Exception):
    """Base class for rejected moderation requests."""


class NotAdminError(ModerationError):
    pass


class SelfBanError(ModerationError):
    pass


class UserNotFoundError(ModerationError):
    pass


class InvalidRoomError(ModerationError):
    pass


class ModerationController:
    """Admin-gated operations with immediate effect on live sessions."""

    def __init__(
        self,
        gateway: PersistenceGateway,
        manager: ConnectionManager,
        public_rooms: List[str],
    ) -> None:
        self.gateway = gateway
        self.manager = manager
        self.public_rooms = list(public_rooms)

    async def toggle_ban(self, admin: UserRecord, target_id: int) -> bool:
        """Flip the banned flag of *target_id*.

        On a transition to banned, every live connection of the target is sent
        a ``banned`` notice and closed before this returns. The roster is then
        rebroadcast to everyone either way.

        Returns:
            The target's new banned state.

        Raises:
            NotAdminError, SelfBanError, UserNotFoundError.
        """
        if not admin.is_admin:
            raise NotAdminError(f"user {admin.id} is not an admin")
        if target_id == admin.id:
            raise SelfBanError("You can't ban yourself")
        target = await self.gateway.get_user(target_id)
        if target is None:
            raise UserNotFoundError(f"user {target_id} not found")

        banned = not target.is_banned
        if banned:
            # Refuse new sessions before the store write is awaited.
            self.manager.set_banned(target_id, True)
        try:
            await self.gateway.set_banned(target_id, banned)
        except StoreError:
            if banned:
                self.manager.set_banned(target_id, False)
            raise
        if not banned:
            self.manager.set_banned(target_id, False)
        logger.info(
            f"[Moderation] admin {admin.id} set banned={banned} on user {target_id}"
        )

        if banned:
            closed = await self.manager.force_disconnect(target_id, {"type": "banned"})
            if closed:
                logger.info(f"[Moderation] disconnected {closed} session(s) of user {target_id}")

        users = await self.gateway.list_users()
        await self.manager.router.broadcast_to_all(
            {"type": "users_list", "users": self.manager.roster(users)}
        )
        return banned

    async def clear_room(self, admin: UserRecord, room: str) -> int:
        """Delete every stored message of *room* and tell its subscribers.

        Returns:
            Number of messages removed.
        """
        if not admin.is_admin:
            raise NotAdminError(f"user {admin.id} is not an admin")
        if not is_valid_room(room, self.public_rooms):
            raise InvalidRoomError(f"invalid room: {room!r}")

        removed = await self.gateway.clear_room(room)
        logger.info(f"[Moderation] admin {admin.id} cleared {removed} message(s) from {room}")
        await self.manager.router.broadcast_to_room(room, {"type": "room_cleared", "room": room})
        return removed
