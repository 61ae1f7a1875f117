from .base import RosterStore
from .memory import InMemoryStore
from .sqlite_store import SQLiteStore

__all__ = ['RosterStore', 'InMemoryStore', 'SQLiteStore']
