"""DuckDB-based durable store for users, messages and reactions.

This module provides persistent storage for the chat service using DuckDB,
a fast embedded database. The service implements the singleton pattern to
ensure only one database connection exists at a time.

Database Schema:
    users table:
        - id: Auto-incrementing primary key
        - username: Unique login name
        - password_hash: argon2 hash
        - avatar_color / avatar_emoji / avatar_image: Avatar descriptor
        - is_admin / is_banned: Moderation flags
        - created_at: Registration time (UTC)
    messages table:
        - id: Auto-incrementing primary key (also the in-room order)
        - sender_id, room, content, image_data, edited, created_at
    reactions table:
        - (message_id, user_id, emoji) primary key; existence is the state
        - seq: insertion order, used to keep grouped views stable

Thread Safety:
    A DuckDB connection must not be used by two threads at once. Every public
    method holds ``self._lock`` for its whole duration, so the store can be
    driven from executor threads (see ``PersistenceGateway``).

Usage:
    store = ChatStore.get_instance()
    user = store.create_user("alice", password_hash)
    message = store.save_message(user.id, "general", "hi", None)
"""
import logging
import threading
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence

import duckdb

from .schemas import (
    MessageMeta,
    MessageRecord,
    ReactionGroup,
    UserCredentials,
    UserRecord,
)

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """A durable-store call failed; nothing was committed."""


class StoreTimeoutError(StoreError):
    """A durable-store call did not finish within the configured timeout."""


class UsernameTakenError(StoreError):
    """Registration hit the unique constraint on ``users.username``."""


_SCHEMA = [
    "CREATE SEQUENCE IF NOT EXISTS users_seq START 1",
    "CREATE SEQUENCE IF NOT EXISTS messages_seq START 1",
    "CREATE SEQUENCE IF NOT EXISTS reactions_seq START 1",
    """
    CREATE TABLE IF NOT EXISTS users (
        id            INTEGER DEFAULT nextval('users_seq') PRIMARY KEY,
        username      VARCHAR NOT NULL UNIQUE,
        password_hash VARCHAR NOT NULL,
        avatar_color  VARCHAR NOT NULL DEFAULT '#7289da',
        avatar_emoji  VARCHAR NOT NULL DEFAULT '',
        avatar_image  VARCHAR,
        is_admin      BOOLEAN NOT NULL DEFAULT FALSE,
        is_banned     BOOLEAN NOT NULL DEFAULT FALSE,
        created_at    TIMESTAMP NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS messages (
        id          INTEGER DEFAULT nextval('messages_seq') PRIMARY KEY,
        sender_id   INTEGER NOT NULL,
        room        VARCHAR NOT NULL,
        content     VARCHAR NOT NULL DEFAULT '',
        image_data  VARCHAR,
        edited      BOOLEAN NOT NULL DEFAULT FALSE,
        created_at  TIMESTAMP NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_messages_room ON messages(room)",
    """
    CREATE TABLE IF NOT EXISTS reactions (
        message_id  INTEGER NOT NULL,
        user_id     INTEGER NOT NULL,
        emoji       VARCHAR NOT NULL,
        seq         INTEGER NOT NULL DEFAULT nextval('reactions_seq'),
        PRIMARY KEY (message_id, user_id, emoji)
    )
    """,
]

_USER_COLUMNS = (
    "id, username, avatar_color, avatar_emoji, avatar_image, is_admin, is_banned"
)

_MESSAGE_SELECT = """
    SELECT m.id, m.sender_id, u.username, u.avatar_color, u.avatar_emoji,
           u.avatar_image, m.room, m.content, m.image_data, m.edited, m.created_at
    FROM messages m
    JOIN users u ON m.sender_id = u.id
"""


def _utcnow() -> datetime:
    """Naive UTC timestamp, matching the TIMESTAMP columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def group_reactions(rows: Sequence[Sequence]) -> List[ReactionGroup]:
    """Turn ``(user_id, emoji)`` rows into the grouped view.

    Groups appear in the order their emoji was first used; reactor ids keep
    their insertion order too.
    """
    grouped: Dict[str, ReactionGroup] = {}
    for user_id, emoji in rows:
        group = grouped.get(emoji)
        if group is None:
            group = grouped[emoji] = ReactionGroup(emoji=emoji, count=0)
        group.count += 1
        group.userIds.append(int(user_id))
    return list(grouped.values())


class ChatStore:
    """Singleton service for chat persistence in DuckDB.

    Attributes:
        _instance: Singleton instance of the service.
        _default_db_path: Path used when none is given.
    """

    _instance: Optional["ChatStore"] = None
    _default_db_path: str = "chat.duckdb"

    def __init__(self, db_path: Optional[str] = None) -> None:
        self._db_path = db_path or self._default_db_path
        self._lock = threading.Lock()
        self._conn: Optional[duckdb.DuckDBPyConnection] = duckdb.connect(self._db_path)
        for statement in _SCHEMA:
            self._conn.execute(statement)
        logger.info("[Store] Initialized with db=%s", self._db_path)

    @classmethod
    def get_instance(cls, db_path: Optional[str] = None) -> "ChatStore":
        """Get or create the singleton instance.

        Args:
            db_path: Optional database path (only used on first call).
        """
        if cls._instance is None:
            cls._instance = cls(db_path)
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Close and forget the singleton. Primarily used by tests."""
        if cls._instance is not None:
            cls._instance.close()
            cls._instance = None

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    def _connection(self) -> duckdb.DuckDBPyConnection:
        if self._conn is None:
            raise StoreError("store is closed")
        return self._conn

    # -----------------------------------------------------------------------
    # Users
    # -----------------------------------------------------------------------

    def create_user(
        self, username: str, password_hash: str, is_admin: bool = False
    ) -> UserRecord:
        with self._lock:
            conn = self._connection()
            try:
                row = conn.execute(
                    f"""
                    INSERT INTO users (username, password_hash, is_admin, created_at)
                    VALUES (?, ?, ?, ?)
                    RETURNING {_USER_COLUMNS}
                    """,
                    [username, password_hash, is_admin, _utcnow()],
                ).fetchone()
            except duckdb.ConstraintException as exc:
                raise UsernameTakenError(username) from exc
        return self._row_to_user(row)

    def get_user(self, user_id: int) -> Optional[UserRecord]:
        with self._lock:
            row = self._connection().execute(
                f"SELECT {_USER_COLUMNS} FROM users WHERE id = ?", [user_id]
            ).fetchone()
        return self._row_to_user(row) if row else None

    def get_credentials(self, username: str) -> Optional[UserCredentials]:
        with self._lock:
            row = self._connection().execute(
                f"SELECT {_USER_COLUMNS}, password_hash FROM users WHERE username = ?",
                [username],
            ).fetchone()
        if not row:
            return None
        return UserCredentials(user=self._row_to_user(row[:7]), password_hash=row[7])

    def list_users(self) -> List[UserRecord]:
        with self._lock:
            rows = self._connection().execute(
                f"SELECT {_USER_COLUMNS} FROM users ORDER BY username ASC"
            ).fetchall()
        return [self._row_to_user(r) for r in rows]

    def update_avatar(
        self, user_id: int, color: str, emoji: str, image: Optional[str]
    ) -> bool:
        with self._lock:
            row = self._connection().execute(
                """
                UPDATE users SET avatar_color = ?, avatar_emoji = ?, avatar_image = ?
                WHERE id = ?
                RETURNING id
                """,
                [color, emoji, image, user_id],
            ).fetchone()
        return row is not None

    def set_banned(self, user_id: int, banned: bool) -> bool:
        with self._lock:
            row = self._connection().execute(
                "UPDATE users SET is_banned = ? WHERE id = ? RETURNING id",
                [banned, user_id],
            ).fetchone()
        return row is not None

    def set_admin(self, username: str, is_admin: bool = True) -> bool:
        with self._lock:
            row = self._connection().execute(
                "UPDATE users SET is_admin = ? WHERE username = ? RETURNING id",
                [is_admin, username],
            ).fetchone()
        return row is not None

    # -----------------------------------------------------------------------
    # Messages
    # -----------------------------------------------------------------------

    def save_message(
        self, sender_id: int, room: str, content: str, image_data: Optional[str]
    ) -> MessageRecord:
        """Persist a new message; id and created_at are assigned here."""
        with self._lock:
            conn = self._connection()
            sender = conn.execute(
                "SELECT id FROM users WHERE id = ?", [sender_id]
            ).fetchone()
            if sender is None:
                raise StoreError(f"sender {sender_id} does not exist")
            message_id = conn.execute(
                """
                INSERT INTO messages (sender_id, room, content, image_data, created_at)
                VALUES (?, ?, ?, ?, ?)
                RETURNING id
                """,
                [sender_id, room, content or "", image_data, _utcnow()],
            ).fetchone()[0]
            row = conn.execute(
                _MESSAGE_SELECT + " WHERE m.id = ?", [message_id]
            ).fetchone()
        return self._row_to_message(row, [])

    def get_message_meta(self, message_id: int) -> Optional[MessageMeta]:
        with self._lock:
            row = self._connection().execute(
                "SELECT id, room, sender_id FROM messages WHERE id = ?", [message_id]
            ).fetchone()
        return MessageMeta(id=row[0], room=row[1], sender_id=row[2]) if row else None

    def get_messages(self, room: str, limit: int = 50) -> List[MessageRecord]:
        """Return the latest *limit* messages of a room, oldest first."""
        with self._lock:
            conn = self._connection()
            rows = conn.execute(
                _MESSAGE_SELECT + " WHERE m.room = ? ORDER BY m.id DESC LIMIT ?",
                [room, limit],
            ).fetchall()
            rows.reverse()
            reactions = self._reactions_for(conn, [r[0] for r in rows])
        return [self._row_to_message(r, reactions.get(r[0], [])) for r in rows]

    def count_messages(self, room: str) -> int:
        with self._lock:
            return self._connection().execute(
                "SELECT COUNT(*) FROM messages WHERE room = ?", [room]
            ).fetchone()[0]

    def edit_message(
        self, message_id: int, user_id: int, content: str
    ) -> Optional[MessageMeta]:
        """Replace the content of a message owned by *user_id*.

        Returns:
            The message's meta, or None when it does not exist or is not owned
            by the caller. The two cases are deliberately indistinguishable.
        """
        with self._lock:
            row = self._connection().execute(
                """
                UPDATE messages SET content = ?, edited = TRUE
                WHERE id = ? AND sender_id = ?
                RETURNING id, room, sender_id
                """,
                [content, message_id, user_id],
            ).fetchone()
        return MessageMeta(id=row[0], room=row[1], sender_id=row[2]) if row else None

    def delete_message(
        self, message_id: int, user_id: int, is_admin: bool = False
    ) -> Optional[MessageMeta]:
        """Delete a message (and its reactions) if the caller may.

        Authors can delete their own messages; admins can delete anything.
        """
        with self._lock:
            conn = self._connection()
            row = conn.execute(
                "SELECT id, room, sender_id FROM messages WHERE id = ?", [message_id]
            ).fetchone()
            if row is None or (not is_admin and row[2] != user_id):
                return None
            conn.begin()
            try:
                conn.execute("DELETE FROM reactions WHERE message_id = ?", [message_id])
                conn.execute("DELETE FROM messages WHERE id = ?", [message_id])
                conn.commit()
            except duckdb.Error:
                conn.rollback()
                raise
        return MessageMeta(id=row[0], room=row[1], sender_id=row[2])

    def clear_room(self, room: str) -> int:
        """Delete every message of a room; returns how many were removed."""
        with self._lock:
            conn = self._connection()
            conn.begin()
            try:
                conn.execute(
                    """
                    DELETE FROM reactions
                    WHERE message_id IN (SELECT id FROM messages WHERE room = ?)
                    """,
                    [room],
                )
                deleted = conn.execute(
                    "DELETE FROM messages WHERE room = ? RETURNING id", [room]
                ).fetchall()
                conn.commit()
            except duckdb.Error:
                conn.rollback()
                raise
        return len(deleted)

    # -----------------------------------------------------------------------
    # Reactions
    # -----------------------------------------------------------------------

    def toggle_reaction(self, message_id: int, user_id: int, emoji: str) -> bool:
        """Flip the existence of the (message, user, emoji) triple.

        Returns:
            True if the reaction was added, False if it was removed.
        """
        with self._lock:
            conn = self._connection()
            removed = conn.execute(
                """
                DELETE FROM reactions
                WHERE message_id = ? AND user_id = ? AND emoji = ?
                RETURNING message_id
                """,
                [message_id, user_id, emoji],
            ).fetchall()
            if removed:
                return False
            conn.execute(
                "INSERT INTO reactions (message_id, user_id, emoji) VALUES (?, ?, ?)",
                [message_id, user_id, emoji],
            )
        return True

    def get_reactions(self, message_id: int) -> List[ReactionGroup]:
        with self._lock:
            grouped = self._reactions_for(self._connection(), [message_id])
        return grouped.get(message_id, [])

    # -----------------------------------------------------------------------
    # Internal
    # -----------------------------------------------------------------------

    @staticmethod
    def _reactions_for(
        conn: duckdb.DuckDBPyConnection, message_ids: List[int]
    ) -> Dict[int, List[ReactionGroup]]:
        if not message_ids:
            return {}
        placeholders = ", ".join("?" for _ in message_ids)
        rows = conn.execute(
            f"""
            SELECT message_id, user_id, emoji FROM reactions
            WHERE message_id IN ({placeholders})
            ORDER BY seq ASC
            """,
            list(message_ids),
        ).fetchall()
        by_message: Dict[int, list] = {}
        for message_id, user_id, emoji in rows:
            by_message.setdefault(message_id, []).append((user_id, emoji))
        return {mid: group_reactions(r) for mid, r in by_message.items()}

    @staticmethod
    def _row_to_user(row) -> UserRecord:
        return UserRecord(
            id=row[0],
            username=row[1],
            avatar_color=row[2],
            avatar_emoji=row[3],
            avatar_image=row[4],
            is_admin=bool(row[5]),
            is_banned=bool(row[6]),
        )

    @staticmethod
    def _row_to_message(row, reactions: List[ReactionGroup]) -> MessageRecord:
        return MessageRecord(
            id=row[0],
            sender_id=row[1],
            sender_username=row[2],
            avatar_color=row[3],
            avatar_emoji=row[4],
            avatar_image=row[5],
            room=row[6],
            content=row[7],
            image_data=row[8],
            edited=bool(row[9]),
            created_at=row[10],
            reactions=reactions,
        )
