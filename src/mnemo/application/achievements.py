"""
Achievement evaluation over streak and review-log data.

This is a pure computation module with no I/O.
"""

from collections.abc import Iterable
from dataclasses import replace

from mnemo.domain.models import Achievement, Rating, ReviewEvent, UserStreak

ACHIEVEMENTS: tuple[Achievement, ...] = (
    Achievement(
        id="first_card",
        name="First Step",
        description="Create your first knowledge card",
        requirement_type="cards_created",
        requirement_value=1,
    ),
    Achievement(
        id="first_review",
        name="Beginner",
        description="Complete your first review",
        requirement_type="review_count",
        requirement_value=1,
    ),
    Achievement(
        id="week_streak",
        name="Persistence",
        description="Review on 7 consecutive days",
        requirement_type="streak_days",
        requirement_value=7,
    ),
    Achievement(
        id="perfect_week",
        name="Perfect Week",
        description="Keep a 7-day streak with at least one perfect recall",
        requirement_type="perfect_reviews",
        requirement_value=7,
    ),
)


def is_unlocked(
    achievement: Achievement,
    streak: UserStreak,
    cards_created: int,
    recent_events: list[ReviewEvent],
) -> bool:
    value = achievement.requirement_value
    kind = achievement.requirement_type

    if kind == "cards_created":
        return cards_created >= value
    if kind == "review_count":
        return streak.total_reviews >= value
    if kind == "streak_days":
        return streak.current_streak >= value
    if kind == "perfect_reviews":
        return streak.current_streak >= value and any(
            e.rating == Rating.EASY for e in recent_events
        )
    return False


def evaluate(
    streak: UserStreak,
    cards_created: int,
    recent_events: Iterable[ReviewEvent],
    catalogue: Iterable[Achievement] = ACHIEVEMENTS,
) -> list[Achievement]:
    """
    Return a copy of every achievement with ``unlocked`` set.

    Args:
        streak: The user's current streak record.
        cards_created: Number of cards the user owns.
        recent_events: Review events from the lookback window (30 days).
    """
    events = list(recent_events)
    return [
        replace(a, unlocked=is_unlocked(a, streak, cards_created, events)) for a in catalogue
    ]
