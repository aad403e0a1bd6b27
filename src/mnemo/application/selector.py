"""
Working-set selection for review sessions.

Builds the ordered, size-bounded list of cards a session presents:
1. Due mode: cards whose next review time has passed, most overdue first
2. Random practice: a uniform sample from the whole deck
3. Curated practice: an explicit caller-supplied set of card ids
"""

import logging
import random
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from mnemo.domain.constants import DEFAULT_SESSION_LIMIT
from mnemo.domain.errors import StoreFetchError
from mnemo.domain.models import Card
from mnemo.domain.ports import CardStore

logger = logging.getLogger(__name__)


class SelectionMode(str, Enum):
    DUE = "due"
    RANDOM = "random"
    CURATED = "curated"


def select(
    cards: Iterable[Card],
    now: datetime,
    limit: int | None = DEFAULT_SESSION_LIMIT,
) -> list[Card]:
    """
    Filter to due cards, order oldest-due first and truncate to ``limit``.

    Args:
        cards: Candidate cards (any order).
        now: Cut-off; a card is due when ``next_review_at <= now``.
        limit: Maximum working-set size, or None for no bound.

    Returns:
        Due cards in non-decreasing ``next_review_at`` order.
    """
    due = [c for c in cards if c.is_due(now)]
    unscheduled = [c for c in due if c.schedule is None]
    scheduled = sorted(
        (c for c in due if c.schedule is not None),
        key=lambda c: c.schedule.next_review_at,
    )
    ordered = unscheduled + scheduled

    if limit is not None and len(ordered) > limit:
        logger.info(f"{len(ordered)} cards due, capping session at {limit}")
        ordered = ordered[:limit]
    return ordered


def sample(
    cards: Sequence[Card],
    limit: int = DEFAULT_SESSION_LIMIT,
    rng: random.Random | None = None,
) -> list[Card]:
    """Uniform random sample of up to ``limit`` cards, ignoring due times."""
    rng = rng or random.Random()
    if len(cards) <= limit:
        chosen = list(cards)
        rng.shuffle(chosen)
        return chosen
    return rng.sample(list(cards), limit)


def pick(cards: Iterable[Card], card_ids: Sequence[str]) -> list[Card]:
    """
    Return the cards named by ``card_ids`` in the caller's order, ignoring due times.

    Unknown ids are skipped; duplicates are kept once.
    """
    by_id = {c.id: c for c in cards}
    picked: list[Card] = []
    seen: set[str] = set()
    missing: list[str] = []

    for card_id in card_ids:
        if card_id in seen:
            continue
        seen.add(card_id)
        card = by_id.get(card_id)
        if card is None:
            missing.append(card_id)
            continue
        picked.append(card)

    if missing:
        logger.warning(f"Skipping {len(missing)} unknown card ids: {', '.join(missing)}")
    return picked


@dataclass
class WorkingSetRequest:
    """Parameters for building a session working set."""

    user_id: str
    mode: SelectionMode = SelectionMode.DUE
    limit: int = DEFAULT_SESSION_LIMIT
    card_ids: list[str] | None = None


async def build_working_set(
    store: CardStore,
    request: WorkingSetRequest,
    now: datetime,
    rng: random.Random | None = None,
) -> list[Card]:
    """
    Fetch cards from the store and select a working set.

    An empty list means nothing to review. A failing store raises
    StoreFetchError instead.
    """
    if request.mode is SelectionMode.CURATED and not request.card_ids:
        raise ValueError("Curated selection requires card_ids")
    if request.limit < 1:
        raise ValueError(f"Session limit must be at least 1, got {request.limit}")

    try:
        if request.mode is SelectionMode.DUE:
            fetched = await store.fetch_due(request.user_id, now, request.limit)
        else:
            fetched = await store.fetch_all(request.user_id)
    except Exception as e:
        logger.error(f"Card fetch failed for user {request.user_id}: {e}")
        raise StoreFetchError(f"Could not fetch cards for {request.user_id}: {e}") from e

    if request.mode is SelectionMode.DUE:
        return select(fetched, now, request.limit)
    if request.mode is SelectionMode.RANDOM:
        return sample(fetched, request.limit, rng)
    return pick(fetched, request.card_ids)
