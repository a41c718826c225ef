"""Presence registry: which identities are online, and through which connections.

An identity is online while it owns at least one live connection. The registry
reports the two edges callers care about:

    - add_connection() returns True only on the 0 -> 1 transition
    - remove_connection() returns True only on the 1 -> 0 transition

so a user with two open tabs goes offline only when the second tab closes.

Thread Safety:
    Mutated only from the event loop; no method awaits, so each call is atomic
    with respect to other coroutines.
"""
import logging
from typing import Dict, List, Set

logger = logging.getLogger(__name__)


class PresenceRegistry:
    """Maps user id -> set of live connection ids."""

    def __init__(self) -> None:
        self._connections: Dict[int, Set[str]] = {}

    def add_connection(self, user_id: int, connection_id: str) -> bool:
        """Register a connection for a user.

        Returns:
            True if this is the user's first live connection (went online).
        """
        connections = self._connections.setdefault(user_id, set())
        came_online = not connections
        connections.add(connection_id)
        if came_online:
            logger.debug("[Presence] user %s online via %s", user_id, connection_id)
        return came_online

    def remove_connection(self, user_id: int, connection_id: str) -> bool:
        """Deregister a connection for a user.

        Returns:
            True if this was the user's last live connection (went offline).
            Removing a connection that is not registered returns False.
        """
        connections = self._connections.get(user_id)
        if not connections or connection_id not in connections:
            return False
        connections.discard(connection_id)
        if connections:
            return False
        del self._connections[user_id]
        logger.debug("[Presence] user %s offline", user_id)
        return True

    def connections_of(self, user_id: int) -> Set[str]:
        return set(self._connections.get(user_id, ()))

    def is_online(self, user_id: int) -> bool:
        return bool(self._connections.get(user_id))

    def online_ids(self) -> List[int]:
        return sorted(self._connections)

    def __len__(self) -> int:
        return len(self._connections)
