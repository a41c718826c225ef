"""Connection manager: the single owner of live chat state.

This module holds the coordinator object that every WebSocket handler and
privileged HTTP route goes through. It owns:

    - the table of live connections (connection_id -> ChatConnection)
    - the presence registry (user id -> connection ids)
    - room membership (connection id <-> rooms)
    - the event router used for fan-out

No other module keeps references to these tables; they are reached only via
the manager's methods, which keeps every mutation on the event loop and in
one place.

Thread Safety:
    Designed for async/await usage with a single event loop. It is NOT
    thread-safe. Methods that do not await are atomic with respect to other
    coroutines; methods that await (release, force_disconnect) finish all
    table mutations before their first await.
"""
import asyncio
import logging
from typing import Dict, Iterable, List, Optional, Set

from app.store.schemas import UserRecord

from .connection import ChatConnection, SessionState
from .fanout import EventRouter
from .membership import RoomMembership
from .presence import PresenceRegistry

logger = logging.getLogger(__name__)

# WebSocket close code for policy violations (banned identities)
POLICY_VIOLATION = 1008


class ConnectionManager:
    """Manages WebSocket connections, presence and room membership.

    Note:
        One instance lives on ``app.state.manager``; it is created in the
        application lifespan, never at import time.
    """

    def __init__(self, default_room: str = "general", send_timeout: float = 5.0) -> None:
        self.default_room = default_room
        # connection_id -> live connection
        self.connections: Dict[str, ChatConnection] = {}
        self.presence = PresenceRegistry()
        self.membership = RoomMembership(self.presence)
        self.router = EventRouter(
            self.connections, self.membership, self.presence, send_timeout=send_timeout
        )
        # Identities whose ban is being committed or has been committed while
        # this process is running. Checked synchronously when binding.
        self.banned_ids: Set[int] = set()

    async def connect(self, websocket) -> ChatConnection:
        """Accept a WebSocket and track it as an unauthenticated connection."""
        await websocket.accept()
        connection = ChatConnection(websocket=websocket)
        self.connections[connection.connection_id] = connection
        logger.info(
            f"[Manager] Connection {connection.connection_id} opened "
            f"({len(self.connections)} live)"
        )
        return connection

    def authenticate(self, connection: ChatConnection, user: UserRecord) -> bool:
        """Bind an identity to a connection and join the default room.

        Identities in ``banned_ids`` are refused: the connection stays
        unauthenticated and the caller is expected to close it.

        Returns:
            True if this is the identity's first live connection (came online).
        """
        if connection.is_closed or user.id in self.banned_ids:
            return False
        connection.identity = user
        connection.state = SessionState.AUTHENTICATED
        came_online = self.presence.add_connection(user.id, connection.connection_id)
        self.membership.subscribe(connection.connection_id, self.default_room)
        logger.info(
            f"[Manager] {connection.connection_id} authenticated as "
            f"{user.username} (id={user.id}, first={came_online})"
        )
        return came_online

    def set_banned(self, user_id: int, banned: bool) -> None:
        """Record or clear a ban for identities that have not bound yet."""
        if banned:
            self.banned_ids.add(user_id)
        else:
            self.banned_ids.discard(user_id)

    def is_banned(self, user_id: int) -> bool:
        return user_id in self.banned_ids

    def disconnect(self, connection: ChatConnection) -> Optional[int]:
        """Move a connection to CLOSED and drop it from every table.

        Idempotent: a second call for the same connection does nothing.

        Returns:
            The user id if this was that identity's last connection (went
            offline), None otherwise.
        """
        if connection.is_closed and connection.connection_id not in self.connections:
            return None
        connection.state = SessionState.CLOSED
        self.connections.pop(connection.connection_id, None)
        self.membership.drop(connection.connection_id)
        user_id = connection.user_id
        if user_id is None:
            return None
        if self.presence.remove_connection(user_id, connection.connection_id):
            return user_id
        return None

    async def release(self, connection: ChatConnection) -> None:
        """Disconnect a connection and announce presence-offline if needed."""
        went_offline = self.disconnect(connection)
        if went_offline is not None:
            logger.info(f"[Manager] User {went_offline} is offline")
            await self.router.broadcast_to_all({"type": "user_offline", "id": went_offline})

    async def close(self, connection: ChatConnection, code: int = POLICY_VIOLATION) -> None:
        """Release a connection and close its transport."""
        await self.release(connection)
        await self._close_transport(connection, code)

    async def force_disconnect(self, user_id: int, notice: dict) -> int:
        """Notify and close every live connection of one identity.

        Each connection receives *notice* first, then is deregistered and its
        transport closed. Deregistration happens before any close is awaited,
        so none of them can act again once this method has started.

        Returns:
            Number of connections that were closed.
        """
        targets = [
            self.connections[cid]
            for cid in sorted(self.presence.connections_of(user_id))
            if cid in self.connections
        ]
        if not targets:
            return 0

        await self.router.send_to_identity(user_id, notice)

        went_offline = None
        for connection in targets:
            went_offline = self.disconnect(connection) or went_offline

        await asyncio.gather(
            *[self._close_transport(conn, POLICY_VIOLATION) for conn in targets]
        )
        logger.info(f"[Manager] Closed {len(targets)} connection(s) of user {user_id}")

        if went_offline is not None:
            await self.router.broadcast_to_all({"type": "user_offline", "id": went_offline})
        return len(targets)

    @staticmethod
    async def _close_transport(connection: ChatConnection, code: int) -> None:
        try:
            await connection.websocket.close(code=code)
        except Exception as e:
            logger.debug(f"Close of {connection.connection_id} failed: {e}")

    # =========================================================================
    # Views
    # =========================================================================

    def roster(self, users: Iterable[UserRecord]) -> List[dict]:
        """Serialize all users for ``users_list`` with their online flag."""
        return [
            {**user.model_dump(), "online": self.presence.is_online(user.id)}
            for user in users
        ]

    def get_connection_count(self) -> int:
        return len(self.connections)

    def connections_of(self, user_id: int) -> List[ChatConnection]:
        return [
            self.connections[cid]
            for cid in sorted(self.presence.connections_of(user_id))
            if cid in self.connections
        ]
