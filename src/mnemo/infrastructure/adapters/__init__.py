# Persistence adapters
from .memory import InMemoryCardStore, InMemoryReviewLog, InMemoryStreakStore
from .sqlite_store import SqliteCardStore, SqliteDatabase, SqliteReviewLog, SqliteStreakStore

__all__ = [
    "InMemoryCardStore",
    "InMemoryReviewLog",
    "InMemoryStreakStore",
    "SqliteCardStore",
    "SqliteDatabase",
    "SqliteReviewLog",
    "SqliteStreakStore",
]
