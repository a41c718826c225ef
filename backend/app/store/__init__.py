"""Durable store for users, messages and reactions."""

from .gateway import PersistenceGateway
from .schemas import MessageMeta, MessageRecord, ReactionGroup, UserCredentials, UserRecord
from .service import ChatStore, StoreError, StoreTimeoutError, UsernameTakenError, group_reactions

__all__ = [
    "ChatStore",
    "MessageMeta",
    "MessageRecord",
    "PersistenceGateway",
    "ReactionGroup",
    "StoreError",
    "StoreTimeoutError",
    "UserCredentials",
    "UserRecord",
    "UsernameTakenError",
    "group_reactions",
]
