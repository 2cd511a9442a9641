"""Document store abstraction and in-memory implementation."""

from docproc.store.base import (
    SERVER_TIMESTAMP,
    Change,
    DocumentNotFoundError,
    DocumentSnapshot,
    StoreError,
    StoreWriteError,
    get_field,
    has_field,
)
from docproc.store.memory import DocumentReference, InMemoryStore, StoredSnapshot

__all__ = [
    # Interfaces
    "SERVER_TIMESTAMP",
    "Change",
    "DocumentSnapshot",
    "get_field",
    "has_field",
    # Errors
    "StoreError",
    "StoreWriteError",
    "DocumentNotFoundError",
    # In-memory store
    "InMemoryStore",
    "DocumentReference",
    "StoredSnapshot",
]
