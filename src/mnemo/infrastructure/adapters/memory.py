"""
In-memory stores: dict-backed implementations of the persistence ports.

Used by tests and by hosts that embed mnemo without a database.
"""

from collections.abc import Callable
from dataclasses import replace
from datetime import datetime

from mnemo.domain.models import Card, CardSchedule, ReviewEvent, UserStreak
from mnemo.domain.ports import CardStore, ReviewLogStore, StreakStore


class InMemoryCardStore(CardStore):
    def __init__(self, cards: list[Card] | None = None):
        self._cards: dict[str, Card] = {}
        for card in cards or []:
            self._cards[card.id] = card

    async def fetch_due(self, user_id: str, now: datetime, limit: int | None) -> list[Card]:
        due = [c for c in self._cards.values() if c.user_id == user_id and c.is_due(now)]
        # Unscheduled cards first, then oldest due.
        due.sort(
            key=lambda c: (c.schedule is not None, c.schedule.next_review_at if c.schedule else now)
        )
        return due if limit is None else due[:limit]

    async def fetch_all(self, user_id: str) -> list[Card]:
        return [c for c in self._cards.values() if c.user_id == user_id]

    async def write_schedule(self, card_id: str, schedule: CardSchedule) -> None:
        card = self._cards.get(card_id)
        if card is None:
            raise KeyError(card_id)
        self._cards[card_id] = replace(card, schedule=schedule)

    async def add_card(self, card: Card) -> None:
        self._cards[card.id] = card

    def get(self, card_id: str) -> Card | None:
        return self._cards.get(card_id)


class InMemoryStreakStore(StreakStore):
    def __init__(self):
        self._streaks: dict[str, UserStreak] = {}

    async def read_streak(self, user_id: str) -> UserStreak:
        return self._streaks.get(user_id, UserStreak())

    async def write_streak(self, user_id: str, streak: UserStreak) -> None:
        self._streaks[user_id] = streak

    async def update_streak(
        self, user_id: str, update: Callable[[UserStreak], UserStreak]
    ) -> UserStreak:
        # Atomic within one event loop as long as read and write do not yield.
        streak = update(await self.read_streak(user_id))
        await self.write_streak(user_id, streak)
        return streak


class InMemoryReviewLog(ReviewLogStore):
    def __init__(self):
        self.events: list[ReviewEvent] = []

    async def append(self, event: ReviewEvent) -> None:
        self.events.append(event)

    async def events_since(self, user_id: str, since: datetime) -> list[ReviewEvent]:
        return sorted(
            (e for e in self.events if e.user_id == user_id and e.reviewed_at >= since),
            key=lambda e: e.reviewed_at,
        )
