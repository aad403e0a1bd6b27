"""
Ports (interfaces) for persistence.

These define the contract that infrastructure adapters must implement.
Application services depend on these abstractions, not concrete implementations.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import datetime

from .models import Card, CardSchedule, ReviewEvent, UserStreak

# Source of "now". Must return a timezone-aware datetime.
Clock = Callable[[], datetime]


class CardStore(ABC):
    """
    Port for reading cards and writing back their schedules.

    Implementations:
        - InMemoryCardStore: Dict-backed, for tests and embedding.
        - SqliteCardStore: Local SQLite database.
    """

    @abstractmethod
    async def fetch_due(self, user_id: str, now: datetime, limit: int | None) -> list[Card]:
        """
        Fetch cards due at ``now``, oldest-due first.

        Args:
            user_id: Owner of the deck.
            now: Cut-off time; cards with ``next_review_at <= now`` are due.
            limit: Maximum number of cards, or None for all.

        Returns:
            List of due Card objects. Unscheduled cards count as due.
        """
        pass

    @abstractmethod
    async def fetch_all(self, user_id: str) -> list[Card]:
        """Fetch every card of a user, regardless of due time."""
        pass

    @abstractmethod
    async def write_schedule(self, card_id: str, schedule: CardSchedule) -> None:
        """
        Persist a card's new schedule. Last write wins.

        Raises:
            KeyError: if the card does not exist.
        """
        pass

    @abstractmethod
    async def add_card(self, card: Card) -> None:
        pass


class StreakStore(ABC):
    """
    Port for per-user streak records.

    ``write_streak`` must be an upsert. ``update_streak`` must be atomic per
    user across every process sharing the store.
    """

    @abstractmethod
    async def read_streak(self, user_id: str) -> UserStreak:
        """Return the stored streak, or an empty UserStreak if none exists."""
        pass

    @abstractmethod
    async def write_streak(self, user_id: str, streak: UserStreak) -> None:
        pass

    @abstractmethod
    async def update_streak(
        self, user_id: str, update: Callable[[UserStreak], UserStreak]
    ) -> UserStreak:
        """
        Read, transform and write a user's streak as one atomic step.

        Returns:
            The streak that was written.
        """
        pass


class ReviewLogStore(ABC):
    """Port for the append-only review log."""

    @abstractmethod
    async def append(self, event: ReviewEvent) -> None:
        pass

    @abstractmethod
    async def events_since(self, user_id: str, since: datetime) -> list[ReviewEvent]:
        """Return a user's events with ``reviewed_at >= since``, oldest first."""
        pass
