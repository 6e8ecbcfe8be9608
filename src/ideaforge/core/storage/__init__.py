"""永続化層"""

from .gateway import PersistenceGateway
from .jsonl import JsonlStore
from .memory import IMMUTABLE_CANDIDATE_FIELDS, InMemoryStore

__all__ = [
    "PersistenceGateway",
    "InMemoryStore",
    "JsonlStore",
    "IMMUTABLE_CANDIDATE_FIELDS",
]
