"""
Review session state machine.

Drives one card at a time through

    HIDDEN -> (HINTED) -> REVEALED -> RATED -> next card (HIDDEN)

until the working set is exhausted or the host aborts. Rating a card
computes its next schedule, writes it back, appends a review event and
updates the user's streak. If any of those writes fails, the session
stays on the rated card with the computed state kept in memory, and
``retry()`` resumes the outstanding writes.
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from mnemo.application.hints import HintObfuscator
from mnemo.application.id_service import generate_event_id, generate_session_id
from mnemo.application.scheduler import ScheduleCalculator
from mnemo.application.streak import StreakTracker
from mnemo.domain.constants import DEFAULT_HINT_DIFFICULTY
from mnemo.domain.errors import PendingWriteError, PersistenceError, SessionOrderError
from mnemo.domain.models import Card, CardSchedule, Rating, ReviewEvent, UserStreak
from mnemo.domain.ports import CardStore, Clock, ReviewLogStore

logger = logging.getLogger(__name__)


class CardState(str, Enum):
    HIDDEN = "hidden"
    HINTED = "hinted"
    REVEALED = "revealed"
    RATED = "rated"


class SessionStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    ABORTED = "aborted"


@dataclass
class PendingReview:
    """A rated card whose writes have not all succeeded yet."""

    card: Card
    schedule: CardSchedule
    event: ReviewEvent
    schedule_written: bool = False
    event_logged: bool = False
    streak: UserStreak | None = None


@dataclass(frozen=True)
class RatingOutcome:
    card_id: str
    rating: Rating
    schedule: CardSchedule
    streak: UserStreak
    duration_seconds: float
    finished: bool


@dataclass(frozen=True)
class SessionView:
    """What a host needs to render the current step."""

    session_id: str
    status: SessionStatus
    position: int
    total: int
    card_id: str | None = None
    title: str | None = None
    content: str | None = None  # only once revealed
    hint: str | None = None
    state: CardState | None = None


@dataclass(frozen=True)
class SessionSummary:
    reviewed: int
    correct: int
    total_seconds: float


class ReviewSession:
    """
    One sitting over a fixed working set.

    Not thread-safe; a session belongs to a single host request flow.
    """

    def __init__(
        self,
        user_id: str,
        working_set: Sequence[Card],
        card_store: CardStore,
        streak_tracker: StreakTracker,
        calculator: ScheduleCalculator,
        clock: Clock,
        obfuscator: HintObfuscator | None = None,
        review_log: ReviewLogStore | None = None,
        hint_difficulty: float = DEFAULT_HINT_DIFFICULTY,
        session_id: str | None = None,
    ):
        self.id = session_id or generate_session_id()
        self.user_id = user_id
        self.working_set: tuple[Card, ...] = tuple(working_set)
        self._cards = card_store
        self._streaks = streak_tracker
        self._calculator = calculator
        self._clock = clock
        self._obfuscator = obfuscator or HintObfuscator()
        self._review_log = review_log
        self.hint_difficulty = hint_difficulty

        self.cursor = 0
        self._state: CardState | None = None
        self._hint: str | None = None
        self._shown_at: datetime | None = None
        self._pending: PendingReview | None = None
        self._outcomes: list[RatingOutcome] = []

        if self.working_set:
            self.status = SessionStatus.ACTIVE
            self._show_current()
        else:
            self.status = SessionStatus.COMPLETED

        logger.info(f"Session {self.id} started for {user_id} with {len(self.working_set)} cards")

    # ------------------------------------------------------------------
    # Read-only state
    # ------------------------------------------------------------------

    @property
    def state(self) -> CardState | None:
        return self._state

    @property
    def current_card(self) -> Card | None:
        if self.status is not SessionStatus.ACTIVE:
            return None
        return self.working_set[self.cursor]

    @property
    def revealed(self) -> bool:
        return self._state in (CardState.REVEALED, CardState.RATED)

    @property
    def hint_shown(self) -> bool:
        return self._hint is not None

    @property
    def pending(self) -> PendingReview | None:
        return self._pending

    @property
    def is_finished(self) -> bool:
        return self.status is not SessionStatus.ACTIVE

    @property
    def outcomes(self) -> list[RatingOutcome]:
        return list(self._outcomes)

    def view(self) -> SessionView:
        card = self.current_card
        if card is None:
            return SessionView(
                session_id=self.id,
                status=self.status,
                position=self.cursor,
                total=len(self.working_set),
            )
        return SessionView(
            session_id=self.id,
            status=self.status,
            position=self.cursor,
            total=len(self.working_set),
            card_id=card.id,
            title=card.title,
            content=card.content if self.revealed else None,
            hint=self._hint,
            state=self._state,
        )

    def summary(self) -> SessionSummary:
        return SessionSummary(
            reviewed=len(self._outcomes),
            correct=sum(1 for o in self._outcomes if o.rating.is_success),
            total_seconds=sum(o.duration_seconds for o in self._outcomes),
        )

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def request_hint(self) -> str:
        """
        Show a partially masked answer.

        The first hint for a card is cached; asking again returns the same text.
        """
        self._require_active()
        if self._state is CardState.HINTED:
            return self._hint
        if self._state is not CardState.HIDDEN:
            raise SessionOrderError(
                f"Hints are only available before reveal (state={self._state.value})"
            )

        self._hint = self._obfuscator.mask(self.current_card.content, self.hint_difficulty)
        self._state = CardState.HINTED
        return self._hint

    def reveal(self) -> str:
        """Show the full answer. Returns the card content."""
        self._require_active()
        if self._state not in (CardState.HIDDEN, CardState.HINTED):
            raise SessionOrderError(f"Cannot reveal card in state {self._state.value}")
        self._state = CardState.REVEALED
        return self.current_card.content

    async def rate(self, rating: Rating | int) -> RatingOutcome:
        """
        Rate the revealed card, persist the result and advance.

        Raises:
            InvalidRatingError: rating outside 0-5.
            SessionOrderError: the card has not been revealed (nothing is changed).
            PersistenceError: a write failed; call ``retry()``.
        """
        rating = Rating.parse(rating)
        self._require_active()
        if self._state is not CardState.REVEALED:
            raise SessionOrderError(
                f"Cannot rate card in state {self._state.value}; reveal it first"
            )

        card = self.current_card
        now = self._clock()
        current = card.schedule or CardSchedule.initial(card.created_at or now)
        next_schedule = self._calculator.compute(current, rating, now)
        duration = max(0.0, (now - self._shown_at).total_seconds())

        event = ReviewEvent(
            id=generate_event_id(),
            card_id=card.id,
            user_id=self.user_id,
            rating=rating,
            reviewed_at=now,
            duration_seconds=duration,
        )
        self._pending = PendingReview(card=card, schedule=next_schedule, event=event)
        self._state = CardState.RATED
        return await self._flush()

    async def retry(self) -> RatingOutcome:
        """Re-attempt the writes that failed for the rated card."""
        if self._pending is None:
            raise SessionOrderError("No pending writes to retry")
        return await self._flush()

    def abort(self, discard: bool = False) -> SessionSummary:
        """
        End the session early. Cards not yet rated keep their schedules.

        Raises:
            PendingWriteError: a rated card has unsaved writes and ``discard`` is False.
        """
        if self._pending is not None:
            if not discard:
                raise PendingWriteError(
                    f"Card {self._pending.card.id} has unsaved writes; retry or abort with discard"
                )
            logger.warning(f"Discarding unsaved review of card {self._pending.card.id}")
            self._pending = None

        if self.status is SessionStatus.ACTIVE:
            self.status = SessionStatus.ABORTED
            self._state = None
            logger.info(f"Session {self.id} aborted at {self.cursor}/{len(self.working_set)}")
        return self.summary()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _require_active(self) -> None:
        if self.status is not SessionStatus.ACTIVE:
            raise SessionOrderError(f"Session {self.id} is {self.status.value}")

    def _show_current(self) -> None:
        self._state = CardState.HIDDEN
        self._hint = None
        self._shown_at = self._clock()

    async def _flush(self) -> RatingOutcome:
        pending = self._pending
        card_id = pending.card.id

        if not pending.schedule_written:
            try:
                await self._cards.write_schedule(card_id, pending.schedule)
            except Exception as e:
                logger.error(f"Schedule write failed for {card_id}: {e}")
                raise PersistenceError(
                    f"Could not save schedule for {card_id}: {e}", card_id, "schedule"
                ) from e
            pending.schedule_written = True

        if self._review_log is not None and not pending.event_logged:
            try:
                await self._review_log.append(pending.event)
            except Exception as e:
                logger.error(f"Review log write failed for {card_id}: {e}")
                raise PersistenceError(
                    f"Could not log review of {card_id}: {e}", card_id, "review_log"
                ) from e
            pending.event_logged = True

        if pending.streak is None:
            try:
                pending.streak = await self._streaks.record(self.user_id, pending.event)
            except Exception as e:
                logger.error(f"Streak update failed for {self.user_id}: {e}")
                raise PersistenceError(
                    f"Could not update streak for {self.user_id}: {e}", card_id, "streak"
                ) from e

        self._pending = None
        self.cursor += 1
        finished = self.cursor >= len(self.working_set)

        outcome = RatingOutcome(
            card_id=card_id,
            rating=pending.event.rating,
            schedule=pending.schedule,
            streak=pending.streak,
            duration_seconds=pending.event.duration_seconds,
            finished=finished,
        )
        self._outcomes.append(outcome)

        if finished:
            self.status = SessionStatus.COMPLETED
            self._state = None
            self._hint = None
            logger.info(f"Session {self.id} completed: {len(self._outcomes)} cards reviewed")
        else:
            self._show_current()
        return outcome
