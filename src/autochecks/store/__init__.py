"""Local store consumed by the sync engine."""

from autochecks.store.base import LocalStore, MutationListener, StoreTransaction
from autochecks.store.events import Collection, MutationEvent, Operation, WriteOrigin
from autochecks.store.memory import MemoryStore, MemoryTransaction

__all__ = [
    "Collection",
    "LocalStore",
    "MemoryStore",
    "MemoryTransaction",
    "MutationEvent",
    "MutationListener",
    "Operation",
    "StoreTransaction",
    "WriteOrigin",
]
