"""Storage collaborator: protocol and in-memory backend."""

from hqtrack.storage.base import Storage
from hqtrack.storage.memory import InMemoryStorage

__all__ = ["InMemoryStorage", "Storage"]
