"""
SM-2 schedule calculator.

Given a card's current schedule and a recall rating, produces the next
schedule. This is a pure computation module with no I/O: the only
non-determinism is interval fuzzing, which draws from an injected
``random.Random`` and can be switched off.
"""

import logging
import math
import random
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

from mnemo.domain.constants import (
    DEFAULT_INTERVAL_MODIFIER,
    DEFAULT_MAX_INTERVAL,
    DEFAULT_MIN_INTERVAL,
    FAILURE_EASE_PENALTY,
    FIRST_INTERVAL_DAYS,
    FUZZ_MIN_INTERVAL,
    FUZZ_RATIO,
    MIN_EASE_FACTOR,
    RELEARN_INTERVAL_DAYS,
    SECOND_INTERVAL_DAYS,
)
from mnemo.domain.models import CardSchedule, Rating

logger = logging.getLogger(__name__)


class FailurePolicy(str, Enum):
    """What a failed rating does to the ease factor."""

    KEEP = "keep"  # classic SM-2: ease unchanged, only the interval resets
    PENALIZE = "penalize"  # ease drops by 0.2 (floored at 1.3) on every failure


@dataclass(frozen=True)
class SchedulerOptions:
    min_interval: int = DEFAULT_MIN_INTERVAL
    max_interval: int = DEFAULT_MAX_INTERVAL
    interval_modifier: float = DEFAULT_INTERVAL_MODIFIER
    fuzzing: bool = True
    failure_policy: FailurePolicy = FailurePolicy.PENALIZE


def round_half_up(value: float) -> int:
    """Round to the nearest whole day, halves away from zero."""
    return int(math.floor(value + 0.5))


def next_ease_factor(ease_factor: float, rating: Rating) -> float:
    """
    SM-2 ease update for a successful rating.

    EF' = EF + (0.1 - (5 - q) * (0.08 + (5 - q) * 0.02)), floored at 1.3.
    """
    q = int(rating)
    updated = ease_factor + (0.1 - (5 - q) * (0.08 + (5 - q) * 0.02))
    return max(MIN_EASE_FACTOR, updated)


class ScheduleCalculator:
    """
    Computes the next CardSchedule for a rating.

    Stateless apart from the random source used for fuzzing.
    """

    def __init__(self, options: SchedulerOptions | None = None, rng: random.Random | None = None):
        self.options = options or SchedulerOptions()
        self._rng = rng or random.Random()

    def compute(self, schedule: CardSchedule, rating: Rating, now: datetime) -> CardSchedule:
        """
        Produce the schedule that follows ``rating``.

        Args:
            schedule: Current scheduling state of the card.
            rating: Recall quality (already validated).
            now: Time of the rating; ``next_review_at`` is measured from here.

        Returns:
            A new CardSchedule. The input is never modified.
        """
        opts = self.options

        if rating.is_success:
            if schedule.repetition_count == 0:
                raw_interval: float = FIRST_INTERVAL_DAYS
            elif schedule.repetition_count == 1:
                raw_interval = SECOND_INTERVAL_DAYS
            else:
                raw_interval = (
                    schedule.interval_days * schedule.ease_factor * opts.interval_modifier
                )
            ease_factor = next_ease_factor(schedule.ease_factor, rating)
            repetition_count = schedule.repetition_count + 1
        else:
            raw_interval = RELEARN_INTERVAL_DAYS
            if opts.failure_policy is FailurePolicy.PENALIZE:
                ease_factor = schedule.ease_factor - FAILURE_EASE_PENALTY
            else:
                ease_factor = schedule.ease_factor
            ease_factor = max(MIN_EASE_FACTOR, ease_factor)
            repetition_count = 0

        if opts.fuzzing and round_half_up(raw_interval) > FUZZ_MIN_INTERVAL:
            raw_interval *= 1 + self._rng.uniform(-FUZZ_RATIO, FUZZ_RATIO)

        interval_days = round_half_up(raw_interval)
        interval_days = max(opts.min_interval, min(opts.max_interval, interval_days))

        logger.debug(
            f"rating={int(rating)} interval {schedule.interval_days}->{interval_days} "
            f"ease {schedule.ease_factor:.3f}->{ease_factor:.3f} reps->{repetition_count}"
        )

        return CardSchedule(
            interval_days=interval_days,
            ease_factor=ease_factor,
            repetition_count=repetition_count,
            next_review_at=now + timedelta(days=interval_days),
        )


def compute_next_schedule(
    schedule: CardSchedule,
    rating: Rating,
    now: datetime,
    options: SchedulerOptions | None = None,
    rng: random.Random | None = None,
) -> CardSchedule:
    """Functional interface to ScheduleCalculator.compute."""
    return ScheduleCalculator(options, rng).compute(schedule, rating, now)
