"""Storage backends for HashEnv records."""

from .base import AbstractStore
from .memory import MemoryStore
from .postgres import PostgresStore, SCHEMA

__all__ = [
    "AbstractStore",
    "MemoryStore",
    "PostgresStore",
    "SCHEMA",
]
