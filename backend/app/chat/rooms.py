"""Room keys and the per-room access rule.

Two kinds of room exist:
    - public rooms: fixed literals from configuration (``general`` by default),
      open to every authenticated identity.
    - direct-message rooms: ``dm:<low>:<high>`` built from the two identity ids,
      smaller id first, so both parties derive the same key.

The dm key doubles as the storage partition for the pair's messages and as the
authorization predicate: only the two encoded ids may act in the room.
"""
import re
from typing import Iterable, Optional, Tuple

DM_PREFIX = "dm:"

_DM_PATTERN = re.compile(r"^dm:(\d+):(\d+)$")


def dm_room(user_a: int, user_b: int) -> str:
    """Return the canonical direct-message room key for two identities."""
    low, high = sorted((int(user_a), int(user_b)))
    return f"{DM_PREFIX}{low}:{high}"


def is_dm_room(room: str) -> bool:
    return room.startswith(DM_PREFIX)


def parse_dm_room(room: str) -> Optional[Tuple[int, int]]:
    """Return the two ids encoded in a canonical dm key, or None.

    Non-canonical keys (``dm:2:1``), self-pairs and malformed keys yield None,
    which callers treat the same as "no access".
    """
    match = _DM_PATTERN.match(room)
    if not match:
        return None
    low, high = int(match.group(1)), int(match.group(2))
    if low >= high:
        return None
    # Reject zero-padded ids, they would alias the canonical key.
    if room != dm_room(low, high):
        return None
    return low, high


def dm_partner(room: str, user_id: int) -> Optional[int]:
    """Return the other party of a dm room, or None if *user_id* is not in it."""
    pair = parse_dm_room(room)
    if pair is None or user_id not in pair:
        return None
    return pair[1] if pair[0] == user_id else pair[0]


def is_valid_room(room: object, public_rooms: Iterable[str]) -> bool:
    if not isinstance(room, str) or not room:
        return False
    if is_dm_room(room):
        return parse_dm_room(room) is not None
    return room in public_rooms


def can_access(room: object, user_id: int, public_rooms: Iterable[str]) -> bool:
    """Return True if *user_id* may read from or write to *room*."""
    if not is_valid_room(room, public_rooms):
        return False
    if is_dm_room(room):
        return user_id in parse_dm_room(room)
    return True
