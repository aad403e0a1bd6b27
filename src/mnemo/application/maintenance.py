"""Schedule repair for cards with missing or out-of-range scheduling data."""

import logging
from dataclasses import replace
from datetime import datetime

from mnemo.domain.constants import MIN_EASE_FACTOR
from mnemo.domain.models import CardSchedule, RepairReport
from mnemo.domain.ports import CardStore

logger = logging.getLogger(__name__)


async def repair_schedules(
    store: CardStore,
    user_id: str,
    now: datetime,
    dry_run: bool = False,
) -> RepairReport:
    """
    Fix every card of a user whose schedule cannot be used as-is.

    - No schedule at all: give it the initial schedule, due at ``now``.
    - Ease factor below 1.3: clamp it to 1.3, keep everything else.

    Returns the number of cards scanned, found invalid and fixed.
    """
    cards = await store.fetch_all(user_id)
    report = RepairReport(total_cards=len(cards))

    for card in cards:
        if card.schedule is None:
            fixed = CardSchedule.initial(now)
        elif card.schedule.ease_factor < MIN_EASE_FACTOR:
            fixed = replace(card.schedule, ease_factor=MIN_EASE_FACTOR)
        else:
            continue

        report.invalid_cards += 1
        if dry_run:
            logger.info(f"[DRY RUN] Would repair schedule of {card.id}")
            continue

        await store.write_schedule(card.id, fixed)
        report.fixed_cards += 1
        report.fixed_ids.append(card.id)
        logger.info(f"Repaired schedule of {card.id}")

    return report
