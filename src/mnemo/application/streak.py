"""
Streak tracking: consecutive calendar days with at least one review.

``advance_streak`` is the pure rule; StreakTracker applies it to a store
as an atomic read-modify-write per user.
"""

import asyncio
import logging
from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

from mnemo.domain.constants import DEFAULT_DAILY_GOAL, DEFAULT_TIMEZONE
from mnemo.domain.models import ReviewEvent, UserStreak
from mnemo.domain.ports import StreakStore

logger = logging.getLogger(__name__)


def advance_streak(previous: UserStreak, today: date) -> UserStreak:
    """
    Apply one completed review on ``today`` to a streak.

    - Same day as the last review: streak unchanged.
    - Day after the last review: streak + 1.
    - Otherwise (gap, or first review ever): streak restarts at 1.
    """
    last = previous.last_review_date

    if last is not None and today < last:
        # Out-of-order event; only the review count moves.
        logger.warning(f"Review dated {today} precedes last review {last}; streak left as is")
        return UserStreak(
            current_streak=previous.current_streak,
            longest_streak=max(previous.longest_streak, previous.current_streak),
            total_reviews=previous.total_reviews + 1,
            last_review_date=last,
        )

    if last == today:
        current = previous.current_streak
    elif last == today - timedelta(days=1):
        current = previous.current_streak + 1
    else:
        current = 1

    return UserStreak(
        current_streak=current,
        longest_streak=max(previous.longest_streak, current),
        total_reviews=previous.total_reviews + 1,
        last_review_date=today,
    )


def local_date(moment: datetime, tz: ZoneInfo) -> date:
    """Calendar date of ``moment`` in ``tz``. Naive datetimes are rejected."""
    if moment.tzinfo is None:
        raise ValueError(f"Expected a timezone-aware datetime, got {moment!r}")
    return moment.astimezone(tz).date()


class StreakTracker:
    """
    Records review events against per-user streaks.

    Updates for the same user are serialized through a per-user lock so
    two near-simultaneous ratings cannot lose an increment.
    """

    def __init__(self, store: StreakStore, timezone: str | ZoneInfo = DEFAULT_TIMEZONE):
        self._store = store
        self.timezone = timezone if isinstance(timezone, ZoneInfo) else ZoneInfo(timezone)
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def record(self, user_id: str, event: ReviewEvent) -> UserStreak:
        """
        Count ``event`` towards the user's streak and persist the result.

        The review day is the event's timestamp in the tracker's timezone.
        """
        today = local_date(event.reviewed_at, self.timezone)

        # The lock orders updates from this process; the store makes them
        # atomic against other processes sharing the same database.
        async with self._locks[user_id]:
            updated = await self._store.update_streak(
                user_id, lambda previous: advance_streak(previous, today)
            )

        logger.debug(
            f"Streak for {user_id}: {updated.current_streak} days "
            f"(total {updated.total_reviews})"
        )
        return updated

    async def current(self, user_id: str) -> UserStreak:
        return await self._store.read_streak(user_id)


@dataclass
class DailyProgress:
    reviewed_today: int
    daily_goal: int
    completion_rate: int  # percent, capped at 100

    @property
    def today_reviewed(self) -> bool:
        return self.reviewed_today > 0


def daily_progress(
    events: Iterable[ReviewEvent],
    now: datetime,
    timezone: str | ZoneInfo = DEFAULT_TIMEZONE,
    daily_goal: int = DEFAULT_DAILY_GOAL,
) -> DailyProgress:
    """Count reviews on the local calendar day of ``now`` against a daily goal."""
    tz = timezone if isinstance(timezone, ZoneInfo) else ZoneInfo(timezone)
    today = local_date(now, tz)
    count = sum(1 for e in events if local_date(e.reviewed_at, tz) == today)
    goal = max(1, daily_goal)
    return DailyProgress(
        reviewed_today=count,
        daily_goal=goal,
        completion_rate=min(100, round(count * 100 / goal)),
    )
