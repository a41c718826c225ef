"""Event fan-out: deliver one event to every connection in a scope.

Delivery is fire-and-forget and at-most-once. Sends run concurrently with
asyncio.gather(), each bounded by a timeout, so a slow or dead connection only
loses its own copy of the event. There is no retry and no queue: a client that
was disconnected while an event was broadcast simply never sees it and must
re-fetch history after reconnecting.
"""
import asyncio
import logging
from typing import Dict, Iterable, List

from .connection import ChatConnection
from .membership import RoomMembership
from .presence import PresenceRegistry

logger = logging.getLogger(__name__)


class EventRouter:
    """Routes events to rooms, identities, or every authenticated connection.

    The router shares the coordinator's connection table rather than owning
    one, so it always sees the current set of live sessions.
    """

    def __init__(
        self,
        connections: Dict[str, ChatConnection],
        membership: RoomMembership,
        presence: PresenceRegistry,
        send_timeout: float = 5.0,
    ) -> None:
        self._connections = connections
        self._membership = membership
        self._presence = presence
        self._send_timeout = send_timeout

    async def broadcast_to_room(self, room: str, event: dict) -> int:
        """Deliver to every connection subscribed to *room*."""
        return await self._deliver(
            self._resolve(self._membership.subscribers(room)), event
        )

    async def broadcast_to_all(self, event: dict) -> int:
        """Deliver to every authenticated connection (roster/presence/avatar)."""
        targets = [c for c in self._connections.values() if c.is_authenticated]
        return await self._deliver(targets, event)

    async def send_to_identity(self, user_id: int, event: dict) -> int:
        """Deliver to every live connection of one identity."""
        return await self._deliver(
            self._resolve(self._presence.connections_of(user_id)), event
        )

    async def send(self, connection: ChatConnection, event: dict) -> bool:
        """Deliver to a single connection."""
        return await self._safe_send(connection, event)

    def _resolve(self, connection_ids: Iterable[str]) -> List[ChatConnection]:
        resolved = []
        for connection_id in sorted(connection_ids):
            connection = self._connections.get(connection_id)
            if connection is not None and not connection.is_closed:
                resolved.append(connection)
        return resolved

    async def _deliver(self, targets: List[ChatConnection], event: dict) -> int:
        if not targets:
            return 0

        results = await asyncio.gather(
            *[self._safe_send(conn, event) for conn in targets],
            return_exceptions=True
        )
        delivered = sum(1 for ok in results if ok is True)
        if delivered < len(targets):
            logger.debug(
                "[Fanout] %s delivered to %d/%d connections",
                event.get("type"), delivered, len(targets),
            )
        return delivered

    async def _safe_send(self, connection: ChatConnection, event: dict) -> bool:
        """Send to one connection; never raises.

        Returns:
            True if successful, False if the connection failed or timed out.
        """
        try:
            await asyncio.wait_for(
                connection.websocket.send_json(event), timeout=self._send_timeout
            )
            return True
        except asyncio.TimeoutError:
            logger.warning(
                "[Fanout] send of %s to %s timed out after %ss",
                event.get("type"), connection.connection_id, self._send_timeout,
            )
            return False
        except Exception as e:
            logger.debug(f"Failed to send to connection {connection.connection_id}: {e}")
            return False
