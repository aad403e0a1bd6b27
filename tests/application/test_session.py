import random
from datetime import timedelta

import pytest

from mnemo.application.hints import HintObfuscator
from mnemo.application.scheduler import ScheduleCalculator, SchedulerOptions
from mnemo.application.session import CardState, ReviewSession, SessionStatus
from mnemo.application.streak import StreakTracker
from mnemo.domain.errors import (
    InvalidRatingError,
    PendingWriteError,
    PersistenceError,
    SessionOrderError,
)
from mnemo.domain.models import Rating, UserStreak
from mnemo.infrastructure.adapters.memory import (
    InMemoryCardStore,
    InMemoryReviewLog,
    InMemoryStreakStore,
)


@pytest.fixture
def cards(make_card):
    return [
        make_card("c1", timedelta(days=-2), interval_days=6, repetition_count=2),
        make_card("c2", timedelta(days=-1)),
        make_card("c3", None, content="Ribosomes build proteins from amino acids"),
    ]


@pytest.fixture
def stores(cards):
    return InMemoryCardStore(cards), InMemoryStreakStore(), InMemoryReviewLog()


@pytest.fixture
def make_session(stores, clock, cards):
    card_store, streak_store, review_log = stores

    def _make(working_set=None, card_store=card_store, streak_store=streak_store):
        return ReviewSession(
            user_id="alice",
            working_set=cards if working_set is None else working_set,
            card_store=card_store,
            streak_tracker=StreakTracker(streak_store),
            calculator=ScheduleCalculator(SchedulerOptions(fuzzing=False)),
            clock=clock,
            obfuscator=HintObfuscator(random.Random(2)),
            review_log=review_log,
        )

    return _make


def test_session_starts_hidden(make_session):
    session = make_session()

    assert session.status is SessionStatus.ACTIVE
    assert session.state is CardState.HIDDEN
    assert session.cursor == 0
    assert session.current_card.id == "c1"
    assert session.view().content is None


def test_empty_working_set_is_complete(make_session):
    session = make_session(working_set=[])

    assert session.is_finished
    assert session.status is SessionStatus.COMPLETED
    assert session.current_card is None
    assert session.view().total == 0


@pytest.mark.asyncio
async def test_rate_before_reveal_is_rejected(make_session, stores, cards):
    card_store, streak_store, review_log = stores
    session = make_session()

    with pytest.raises(SessionOrderError):
        await session.rate(Rating.GOOD)

    assert session.state is CardState.HIDDEN
    assert session.cursor == 0
    assert card_store.get("c1") == cards[0]
    assert await streak_store.read_streak("alice") == UserStreak()
    assert review_log.events == []


@pytest.mark.asyncio
async def test_rate_after_hint_without_reveal_is_rejected(make_session):
    session = make_session()
    session.request_hint()

    with pytest.raises(SessionOrderError):
        await session.rate(Rating.GOOD)
    assert session.state is CardState.HINTED


def test_reveal_returns_content(make_session, cards):
    session = make_session()

    assert session.reveal() == cards[0].content
    assert session.state is CardState.REVEALED
    assert session.view().content == cards[0].content

    with pytest.raises(SessionOrderError):
        session.reveal()


def test_hint_is_cached_per_card(make_session):
    session = make_session()

    first = session.request_hint()
    second = session.request_hint()

    assert first == second
    assert session.hint_shown
    assert session.view().hint == first


def test_hint_after_reveal_is_rejected(make_session):
    session = make_session()
    session.reveal()

    with pytest.raises(SessionOrderError):
        session.request_hint()


def test_reveal_after_hint(make_session, cards):
    session = make_session()
    session.request_hint()

    assert session.reveal() == cards[0].content


@pytest.mark.asyncio
@pytest.mark.parametrize("bad", [6, -1, "4", 3.0, True, None])
async def test_invalid_rating_changes_nothing(make_session, stores, bad):
    card_store, _, review_log = stores
    session = make_session()
    session.reveal()

    with pytest.raises(InvalidRatingError):
        await session.rate(bad)

    assert session.state is CardState.REVEALED
    assert session.cursor == 0
    assert review_log.events == []


@pytest.mark.asyncio
async def test_rate_persists_and_advances(make_session, stores, clock):
    card_store, streak_store, review_log = stores
    session = make_session()
    session.reveal()
    clock.advance(seconds=7)

    outcome = await session.rate(Rating.GOOD)

    # 6 days * 2.5
    assert outcome.schedule.interval_days == 15
    assert card_store.get("c1").schedule == outcome.schedule
    assert outcome.streak.current_streak == 1
    assert (await streak_store.read_streak("alice")).total_reviews == 1
    assert [e.card_id for e in review_log.events] == ["c1"]
    assert review_log.events[0].reviewed_at == clock.now
    assert outcome.duration_seconds == 7.0
    assert not outcome.finished

    assert session.cursor == 1
    assert session.state is CardState.HIDDEN
    assert not session.hint_shown
    assert session.current_card.id == "c2"


@pytest.mark.asyncio
async def test_duration_is_measured_per_card(make_session, clock):
    session = make_session()

    session.reveal()
    clock.advance(seconds=7)
    first = await session.rate(Rating.GOOD)

    clock.advance(seconds=3)
    session.reveal()
    second = await session.rate(Rating.HARD)

    assert first.duration_seconds == 7.0
    assert second.duration_seconds == 3.0


@pytest.mark.asyncio
async def test_unscheduled_card_gets_first_interval(make_session, cards, stores):
    card_store, _, _ = stores
    session = make_session(working_set=[cards[2]])
    session.reveal()

    outcome = await session.rate(Rating.EASY)

    assert outcome.schedule.interval_days == 1
    assert outcome.schedule.repetition_count == 1
    assert card_store.get("c3").schedule == outcome.schedule


@pytest.mark.asyncio
async def test_session_completes_after_last_card(make_session):
    session = make_session()

    for rating in (Rating.EASY, Rating.WRONG, Rating.OKAY):
        session.reveal()
        outcome = await session.rate(rating)

    assert outcome.finished
    assert session.status is SessionStatus.COMPLETED
    assert session.current_card is None

    summary = session.summary()
    assert summary.reviewed == 3
    assert summary.correct == 2

    with pytest.raises(SessionOrderError):
        session.reveal()
    with pytest.raises(SessionOrderError):
        await session.rate(Rating.GOOD)


@pytest.mark.asyncio
async def test_schedule_write_failure_keeps_card_pending(
    make_session, cards, flaky_card_store, stores
):
    _, streak_store, review_log = stores
    store = flaky_card_store(cards, failures=1)
    session = make_session(card_store=store)
    session.reveal()

    with pytest.raises(PersistenceError) as exc:
        await session.rate(Rating.GOOD)

    assert exc.value.stage == "schedule"
    assert exc.value.card_id == "c1"
    assert session.state is CardState.RATED
    assert session.cursor == 0
    assert session.pending is not None
    assert store.get("c1") == cards[0]
    assert review_log.events == []

    outcome = await session.retry()

    assert outcome.card_id == "c1"
    assert store.get("c1").schedule == outcome.schedule
    assert session.cursor == 1
    assert session.pending is None
    assert (await streak_store.read_streak("alice")).total_reviews == 1


@pytest.mark.asyncio
async def test_streak_failure_does_not_rewrite_schedule(
    make_session, cards, flaky_card_store, flaky_streak_store, stores
):
    _, _, review_log = stores
    card_store = flaky_card_store(cards, failures=0)
    streak_store = flaky_streak_store(failures=1)
    session = make_session(card_store=card_store, streak_store=streak_store)
    session.reveal()

    with pytest.raises(PersistenceError) as exc:
        await session.rate(Rating.GOOD)

    assert exc.value.stage == "streak"
    assert card_store.write_calls == 1
    assert len(review_log.events) == 1

    outcome = await session.retry()

    assert card_store.write_calls == 1
    assert len(review_log.events) == 1
    assert outcome.streak.total_reviews == 1


@pytest.mark.asyncio
async def test_retry_without_pending_is_rejected(make_session):
    with pytest.raises(SessionOrderError):
        await make_session().retry()


@pytest.mark.asyncio
async def test_abort_with_pending_requires_discard(make_session, cards, flaky_card_store):
    session = make_session(card_store=flaky_card_store(cards, failures=5))
    session.reveal()
    with pytest.raises(PersistenceError):
        await session.rate(Rating.GOOD)

    with pytest.raises(PendingWriteError):
        session.abort()

    session.abort(discard=True)
    assert session.status is SessionStatus.ABORTED
    assert session.pending is None


@pytest.mark.asyncio
async def test_abort_leaves_unrated_cards_alone(make_session, stores, cards):
    card_store, _, _ = stores
    session = make_session()
    session.reveal()
    await session.rate(Rating.GOOD)

    summary = session.abort()

    assert summary.reviewed == 1
    assert session.status is SessionStatus.ABORTED
    assert card_store.get("c2") == cards[1]
    assert card_store.get("c3") == cards[2]
    with pytest.raises(SessionOrderError):
        session.request_hint()
