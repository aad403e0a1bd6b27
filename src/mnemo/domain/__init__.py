# Domain Package
from .errors import (
    InvalidRatingError,
    MnemoError,
    PendingWriteError,
    PersistenceError,
    SessionOrderError,
    StoreFetchError,
)
from .models import Achievement, Card, CardSchedule, Rating, RepairReport, ReviewEvent, UserStreak
from .ports import CardStore, Clock, ReviewLogStore, StreakStore

__all__ = [
    "Achievement",
    "Card",
    "CardSchedule",
    "CardStore",
    "Clock",
    "InvalidRatingError",
    "MnemoError",
    "PendingWriteError",
    "PersistenceError",
    "Rating",
    "RepairReport",
    "ReviewEvent",
    "ReviewLogStore",
    "SessionOrderError",
    "StoreFetchError",
    "StreakStore",
    "UserStreak",
]
