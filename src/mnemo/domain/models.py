"""
Domain models for scheduling and review bookkeeping.

These are pure data structures with no I/O or external dependencies.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import IntEnum

from .constants import (
    INITIAL_EASE_FACTOR,
    MAX_RATING,
    MIN_RATING,
    SUCCESS_THRESHOLD,
)
from .errors import InvalidRatingError


class Rating(IntEnum):
    """Recall quality, 0 (total blackout) to 5 (perfect recall)."""

    BLACKOUT = 0
    WRONG = 1
    HARD = 2
    OKAY = 3
    GOOD = 4
    EASY = 5

    @property
    def is_success(self) -> bool:
        return self >= SUCCESS_THRESHOLD

    @classmethod
    def parse(cls, value: object) -> "Rating":
        """Validate a raw rating at a host boundary."""
        if isinstance(value, bool) or not isinstance(value, int):
            raise InvalidRatingError(f"Rating must be an integer, got {value!r}")
        if not MIN_RATING <= value <= MAX_RATING:
            raise InvalidRatingError(
                f"Rating must be between {MIN_RATING} and {MAX_RATING}, got {value}"
            )
        return cls(value)


@dataclass(frozen=True)
class CardSchedule:
    """
    Scheduling state of a card.

    Attributes:
        interval_days: Days until next review, as set by the previous rating.
        ease_factor: Interval growth multiplier. Never below 1.3.
        repetition_count: Consecutive successful ratings since the last failure.
        next_review_at: When the card becomes due (timezone-aware).
    """

    interval_days: int
    ease_factor: float
    repetition_count: int
    next_review_at: datetime

    @classmethod
    def initial(cls, now: datetime, ease_factor: float = INITIAL_EASE_FACTOR) -> "CardSchedule":
        return cls(
            interval_days=0,
            ease_factor=ease_factor,
            repetition_count=0,
            next_review_at=now,
        )

    def is_due(self, now: datetime) -> bool:
        return self.next_review_at <= now


@dataclass(frozen=True)
class Card:
    """A knowledge card as seen by the scheduler: prompt, answer and schedule."""

    id: str
    user_id: str
    title: str
    content: str
    schedule: CardSchedule | None = None  # None: never scheduled, due immediately
    created_at: datetime | None = None

    def is_due(self, now: datetime) -> bool:
        return self.schedule is None or self.schedule.is_due(now)


@dataclass(frozen=True)
class ReviewEvent:
    """
    A single completed rating.

    Attributes:
        id: Event id (ULID).
        card_id: The card that was rated.
        user_id: Owner of the card.
        rating: Recall quality given.
        reviewed_at: Injected clock reading at the rate call.
        duration_seconds: Time between the card being shown and rated.
    """

    id: str
    card_id: str
    user_id: str
    rating: Rating
    reviewed_at: datetime
    duration_seconds: float


@dataclass(frozen=True)
class UserStreak:
    current_streak: int = 0
    longest_streak: int = 0
    total_reviews: int = 0
    last_review_date: date | None = None


@dataclass
class Achievement:
    id: str
    name: str
    description: str
    requirement_type: str  # review_count | streak_days | cards_created | perfect_reviews
    requirement_value: int
    unlocked: bool = False


@dataclass
class RepairReport:
    total_cards: int = 0
    invalid_cards: int = 0
    fixed_cards: int = 0
    fixed_ids: list[str] = field(default_factory=list)
