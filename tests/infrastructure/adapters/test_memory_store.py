from datetime import datetime, timedelta, timezone

import pytest

from mnemo.domain.models import CardSchedule, UserStreak
from mnemo.infrastructure.adapters.memory import InMemoryCardStore, InMemoryStreakStore

NOW = datetime(2024, 3, 4, 9, 0, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_fetch_due_sorted_and_limited(make_card):
    store = InMemoryCardStore(
        [
            make_card("b", timedelta(hours=-1)),
            make_card("a", timedelta(days=-2)),
            make_card("new", None),
            make_card("later", timedelta(days=1)),
        ]
    )

    assert [c.id for c in await store.fetch_due("alice", NOW, None)] == ["new", "a", "b"]
    assert [c.id for c in await store.fetch_due("alice", NOW, 1)] == ["new"]


@pytest.mark.asyncio
async def test_write_schedule(make_card):
    store = InMemoryCardStore([make_card("a")])
    schedule = CardSchedule(interval_days=6, ease_factor=2.4, repetition_count=2,
                            next_review_at=NOW + timedelta(days=6))

    await store.write_schedule("a", schedule)

    assert store.get("a").schedule == schedule
    with pytest.raises(KeyError):
        await store.write_schedule("missing", schedule)


@pytest.mark.asyncio
async def test_streak_store_defaults_to_empty():
    store = InMemoryStreakStore()
    assert await store.read_streak("alice") == UserStreak()

    await store.write_streak("alice", UserStreak(current_streak=3, total_reviews=4))
    assert (await store.read_streak("alice")).current_streak == 3


@pytest.mark.asyncio
async def test_streak_store_update():
    store = InMemoryStreakStore()
    await store.write_streak("alice", UserStreak(current_streak=1, total_reviews=2))

    result = await store.update_streak(
        "alice", lambda s: UserStreak(current_streak=s.current_streak, total_reviews=s.total_reviews + 1)
    )

    assert result.total_reviews == 3
    assert await store.read_streak("alice") == result
