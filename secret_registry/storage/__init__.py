"""Storage backends for the registry tables."""

from .abstract import AbstractStorage, StorageTransaction
from .memory import MemoryStorage
from .postgres import PostgresStorage

__all__ = [
    "AbstractStorage",
    "StorageTransaction",
    "MemoryStorage",
    "PostgresStorage",
]
