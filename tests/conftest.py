import random
from datetime import datetime, timedelta, timezone

import pytest

from mnemo.application.config import AppConfig
from mnemo.application.service import ReviewService
from mnemo.domain.models import Card, CardSchedule
from mnemo.infrastructure.adapters.memory import (
    InMemoryCardStore,
    InMemoryReviewLog,
    InMemoryStreakStore,
)

T0 = datetime(2024, 3, 4, 9, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class FlakyCardStore(InMemoryCardStore):
    """Card store whose first ``failures`` schedule writes raise."""

    def __init__(self, cards=None, failures: int = 1):
        super().__init__(cards)
        self.failures = failures
        self.write_calls = 0

    async def write_schedule(self, card_id, schedule):
        self.write_calls += 1
        if self.failures > 0:
            self.failures -= 1
            raise OSError("disk unavailable")
        await super().write_schedule(card_id, schedule)


class FlakyStreakStore(InMemoryStreakStore):
    def __init__(self, failures: int = 1):
        super().__init__()
        self.failures = failures

    async def write_streak(self, user_id, streak):
        if self.failures > 0:
            self.failures -= 1
            raise ConnectionError("streak table locked")
        await super().write_streak(user_id, streak)


@pytest.fixture
def mock_home(tmp_path, monkeypatch):
    """Mocks Path.home() to point to a temp dir."""
    home = tmp_path / "home"
    home.mkdir()

    # Mocking HOME to a temp directory to isolate config/logs
    monkeypatch.setenv("HOME", str(home))
    for var in ("MNEMO_SESSION_LIMIT", "MNEMO_TIMEZONE", "MNEMO_BACKEND", "MNEMO_FUZZING"):
        monkeypatch.delenv(var, raising=False)
    return home


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def make_card():
    """Factory for cards; ``due_in`` is relative to T0, None leaves the card unscheduled."""

    def _make(
        card_id: str,
        due_in: timedelta | None = timedelta(0),
        user_id: str = "alice",
        content: str = "The mitochondria is the powerhouse of the cell",
        interval_days: int = 0,
        ease_factor: float = 2.5,
        repetition_count: int = 0,
    ) -> Card:
        schedule = None
        if due_in is not None:
            schedule = CardSchedule(
                interval_days=interval_days,
                ease_factor=ease_factor,
                repetition_count=repetition_count,
                next_review_at=T0 + due_in,
            )
        return Card(
            id=card_id,
            user_id=user_id,
            title=f"Question {card_id}",
            content=content,
            schedule=schedule,
            created_at=T0 - timedelta(days=30),
        )

    return _make


@pytest.fixture
def memory_config(mock_home):
    return AppConfig(backend="memory", fuzzing=False)


@pytest.fixture
def service(memory_config, clock, rng):
    return ReviewService(
        InMemoryCardStore(),
        InMemoryStreakStore(),
        InMemoryReviewLog(),
        memory_config,
        clock=clock,
        rng=rng,
    )


@pytest.fixture
def flaky_card_store():
    def _make(cards=None, failures: int = 1) -> FlakyCardStore:
        return FlakyCardStore(cards, failures)

    return _make


@pytest.fixture
def flaky_streak_store():
    def _make(failures: int = 1) -> FlakyStreakStore:
        return FlakyStreakStore(failures)

    return _make
