"""
Review Service — Application layer orchestrator.

Wires the stores, clock and random source into the scheduling components
and hands out review sessions. Hosts (CLI, HTTP) talk to this class only.
"""

import logging
import random
from datetime import datetime, time, timedelta, timezone

from mnemo.application import achievements as achievement_rules
from mnemo.application.config import AppConfig
from mnemo.application.hints import HintObfuscator
from mnemo.application.id_service import new_card
from mnemo.application.maintenance import repair_schedules
from mnemo.application.scheduler import ScheduleCalculator
from mnemo.application.selector import SelectionMode, WorkingSetRequest, build_working_set
from mnemo.application.session import ReviewSession
from mnemo.application.streak import DailyProgress, StreakTracker, daily_progress, local_date
from mnemo.domain.constants import ACHIEVEMENT_LOOKBACK_DAYS
from mnemo.domain.errors import StoreFetchError
from mnemo.domain.models import Achievement, Card, RepairReport, UserStreak
from mnemo.domain.ports import CardStore, Clock, ReviewLogStore, StreakStore

logger = logging.getLogger(__name__)


def system_clock() -> datetime:
    return datetime.now(timezone.utc)


class ReviewService:
    """
    Application service for review sessions and streak bookkeeping.

    Follows Dependency Inversion: depends on the store ports,
    not concrete adapter implementations.
    """

    def __init__(
        self,
        card_store: CardStore,
        streak_store: StreakStore,
        review_log: ReviewLogStore,
        config: AppConfig,
        clock: Clock = system_clock,
        rng: random.Random | None = None,
    ):
        """
        Args:
            card_store: The repository (port) for cards and schedules.
            streak_store: The repository (port) for per-user streaks.
            review_log: The append-only log of completed ratings.
            config: Resolved application configuration.
            clock: Source of "now"; never read ad hoc elsewhere.
            rng: Random source for fuzzing, hints and sampling.
        """
        self._cards = card_store
        self._streak_store = streak_store
        self._review_log = review_log
        self.config = config
        self._clock = clock
        self._rng = rng or random.Random()

        self.calculator = ScheduleCalculator(config.scheduler_options(), self._rng)
        self.streaks = StreakTracker(streak_store, config.timezone)
        self.obfuscator = HintObfuscator(self._rng)

    def now(self) -> datetime:
        return self._clock()

    async def start_session(
        self,
        user_id: str,
        mode: SelectionMode = SelectionMode.DUE,
        limit: int | None = None,
        card_ids: list[str] | None = None,
    ) -> ReviewSession:
        """
        Select a working set and open a session over it.

        Raises:
            StoreFetchError: the card store failed (not the same as "nothing due").
        """
        request = WorkingSetRequest(
            user_id=user_id,
            mode=mode,
            limit=limit if limit is not None else self.config.session_limit,
            card_ids=card_ids,
        )
        working_set = await build_working_set(self._cards, request, self.now(), self._rng)
        if not working_set:
            logger.info(f"Nothing to review for {user_id} ({mode.value})")

        return ReviewSession(
            user_id=user_id,
            working_set=working_set,
            card_store=self._cards,
            streak_tracker=self.streaks,
            calculator=self.calculator,
            clock=self._clock,
            obfuscator=self.obfuscator,
            review_log=self._review_log,
            hint_difficulty=self.config.hint_difficulty,
        )

    async def add_card(self, user_id: str, title: str, content: str) -> Card:
        card = new_card(user_id, title, content, self.now())
        await self._cards.add_card(card)
        logger.info(f"Added card {card.id} for {user_id}")
        return card

    async def due_cards(self, user_id: str, limit: int | None = None) -> list[Card]:
        if limit is not None and limit < 1:
            raise ValueError(f"limit must be at least 1, got {limit}")
        try:
            return await self._cards.fetch_due(user_id, self.now(), limit)
        except Exception as e:
            raise StoreFetchError(f"Could not fetch cards for {user_id}: {e}") from e

    async def streak(self, user_id: str) -> UserStreak:
        return await self.streaks.current(user_id)

    async def daily_progress(self, user_id: str) -> DailyProgress:
        now = self.now()
        tz = self.streaks.timezone
        # Local midnight, so 23- and 25-hour DST days are counted whole.
        start_of_day = datetime.combine(local_date(now, tz), time(), tzinfo=tz)
        events = await self._review_log.events_since(user_id, start_of_day)
        return daily_progress(events, now, self.config.timezone, self.config.daily_goal)

    async def achievements(self, user_id: str) -> list[Achievement]:
        streak = await self.streaks.current(user_id)
        cards = await self._cards.fetch_all(user_id)
        since = self.now() - timedelta(days=ACHIEVEMENT_LOOKBACK_DAYS)
        events = await self._review_log.events_since(user_id, since)
        return achievement_rules.evaluate(streak, len(cards), events)

    async def repair(self, user_id: str, dry_run: bool = False) -> RepairReport:
        return await repair_schedules(self._cards, user_id, self.now(), dry_run=dry_run)
