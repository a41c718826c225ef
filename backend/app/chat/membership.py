"""Room membership: which connections receive broadcasts for which rooms.

Membership is purely in-memory and scoped to a connection's lifetime. A fresh
connection starts with the default room only; direct-message rooms are joined
lazily, either by the client (history fetch / room switch / first send) or by
ensure_recipient_subscribed() when the other party writes first.
"""
import logging
from typing import Dict, List, Set

from .presence import PresenceRegistry
from .rooms import dm_partner

logger = logging.getLogger(__name__)


class RoomMembership:
    """Two-way index of connection id <-> room subscriptions."""

    def __init__(self, presence: PresenceRegistry) -> None:
        self._presence = presence
        # connection_id -> rooms it receives
        self._rooms_by_connection: Dict[str, Set[str]] = {}
        # room -> connection ids subscribed to it
        self._connections_by_room: Dict[str, Set[str]] = {}

    def subscribe(self, connection_id: str, room: str) -> bool:
        """Subscribe a connection to a room. Idempotent.

        Returns:
            True if the subscription is new.
        """
        rooms = self._rooms_by_connection.setdefault(connection_id, set())
        if room in rooms:
            return False
        rooms.add(room)
        self._connections_by_room.setdefault(room, set()).add(connection_id)
        logger.debug("[Rooms] %s joined %s", connection_id, room)
        return True

    def ensure_recipient_subscribed(self, room: str, sender_id: int) -> List[str]:
        """Subscribe every live connection of the other party of a dm room.

        Must run before a new message is broadcast to *room*, otherwise a
        first-contact message would never reach a recipient that has not
        opened the conversation yet. Public rooms and rooms the sender is not
        part of are left untouched.

        Returns:
            Connection ids that were newly subscribed.
        """
        recipient_id = dm_partner(room, sender_id)
        if recipient_id is None:
            return []
        joined = [
            connection_id
            for connection_id in sorted(self._presence.connections_of(recipient_id))
            if self.subscribe(connection_id, room)
        ]
        if joined:
            logger.info(
                "[Rooms] auto-subscribed %d connection(s) of user %s to %s",
                len(joined), recipient_id, room,
            )
        return joined

    def drop(self, connection_id: str) -> Set[str]:
        """Forget every subscription of a connection; returns the rooms it had."""
        rooms = self._rooms_by_connection.pop(connection_id, set())
        for room in rooms:
            members = self._connections_by_room.get(room)
            if members is None:
                continue
            members.discard(connection_id)
            if not members:
                del self._connections_by_room[room]
        return rooms

    def subscribers(self, room: str) -> Set[str]:
        return set(self._connections_by_room.get(room, ()))

    def rooms_of(self, connection_id: str) -> Set[str]:
        return set(self._rooms_by_connection.get(connection_id, ()))

    def is_subscribed(self, connection_id: str, room: str) -> bool:
        return room in self._rooms_by_connection.get(connection_id, ())
