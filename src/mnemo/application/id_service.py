"""Stable ids for cards, review events and sessions."""

from datetime import datetime

from ulid import ULID

from mnemo.domain.models import Card, CardSchedule


def generate_card_id() -> str:
    """Generate a card id using ULID."""
    return f"card_{ULID()}"


def generate_event_id() -> str:
    return f"rev_{ULID()}"


def generate_session_id() -> str:
    return f"ses_{ULID()}"


def new_card(user_id: str, title: str, content: str, now: datetime) -> Card:
    """
    Author a card with a fresh id and an initial schedule.

    New cards are due immediately: interval 0, ease 2.5, no repetitions.
    """
    return Card(
        id=generate_card_id(),
        user_id=user_id,
        title=title,
        content=content,
        schedule=CardSchedule.initial(now),
        created_at=now,
    )
