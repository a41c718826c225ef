"""Async façade over ChatStore with an explicit per-call timeout.

The real-time core never talks to DuckDB directly. Each call is pushed onto
the default executor and bounded by ``asyncio.wait_for``; a call that does
not finish in time raises StoreTimeoutError so the request fails visibly
instead of hanging. Calls are not retried: send/edit/delete/toggle are not
idempotent, and a timed-out call may still complete in its worker thread.

Any DuckDB error surfaces as StoreError, so callers only handle one family.
"""
import asyncio
import logging
from functools import partial
from typing import Any, Callable, List, Optional

import duckdb

from .schemas import MessageMeta, MessageRecord, ReactionGroup, UserCredentials, UserRecord
from .service import ChatStore, StoreError, StoreTimeoutError

logger = logging.getLogger(__name__)


class PersistenceGateway:
    """Awaitable access to the durable store.

    Args:
        store: The synchronous ChatStore to delegate to.
        timeout: Seconds before a call is abandoned with StoreTimeoutError.
    """

    def __init__(self, store: ChatStore, timeout: float = 10.0) -> None:
        self.store = store
        self.timeout = timeout

    async def _call(self, fn: Callable[..., Any], *args: Any) -> Any:
        loop = asyncio.get_event_loop()
        try:
            return await asyncio.wait_for(
                loop.run_in_executor(None, partial(fn, *args)),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as exc:
            logger.error("[Store] %s timed out after %ss", fn.__name__, self.timeout)
            raise StoreTimeoutError(f"{fn.__name__} timed out") from exc
        except StoreError:
            raise
        except duckdb.Error as exc:
            logger.error("[Store] %s failed: %s", fn.__name__, exc)
            raise StoreError(str(exc)) from exc

    # Users

    async def create_user(
        self, username: str, password_hash: str, is_admin: bool = False
    ) -> UserRecord:
        return await self._call(self.store.create_user, username, password_hash, is_admin)

    async def get_user(self, user_id: int) -> Optional[UserRecord]:
        return await self._call(self.store.get_user, user_id)

    async def get_credentials(self, username: str) -> Optional[UserCredentials]:
        return await self._call(self.store.get_credentials, username)

    async def list_users(self) -> List[UserRecord]:
        return await self._call(self.store.list_users)

    async def update_avatar(
        self, user_id: int, color: str, emoji: str, image: Optional[str]
    ) -> bool:
        return await self._call(self.store.update_avatar, user_id, color, emoji, image)

    async def set_banned(self, user_id: int, banned: bool) -> bool:
        return await self._call(self.store.set_banned, user_id, banned)

    async def set_admin(self, username: str, is_admin: bool = True) -> bool:
        return await self._call(self.store.set_admin, username, is_admin)

    # Messages

    async def save_message(
        self, sender_id: int, room: str, content: str, image_data: Optional[str]
    ) -> MessageRecord:
        return await self._call(self.store.save_message, sender_id, room, content, image_data)

    async def get_message_meta(self, message_id: int) -> Optional[MessageMeta]:
        return await self._call(self.store.get_message_meta, message_id)

    async def get_messages(self, room: str, limit: int) -> List[MessageRecord]:
        return await self._call(self.store.get_messages, room, limit)

    async def edit_message(
        self, message_id: int, user_id: int, content: str
    ) -> Optional[MessageMeta]:
        return await self._call(self.store.edit_message, message_id, user_id, content)

    async def delete_message(
        self, message_id: int, user_id: int, is_admin: bool
    ) -> Optional[MessageMeta]:
        return await self._call(self.store.delete_message, message_id, user_id, is_admin)

    async def clear_room(self, room: str) -> int:
        return await self._call(self.store.clear_room, room)

    # Reactions

    async def toggle_reaction(self, message_id: int, user_id: int, emoji: str) -> bool:
        return await self._call(self.store.toggle_reaction, message_id, user_id, emoji)

    async def get_reactions(self, message_id: int) -> List[ReactionGroup]:
        return await self._call(self.store.get_reactions, message_id)
