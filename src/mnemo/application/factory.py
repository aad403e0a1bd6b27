"""
Store Factory
Centralizes the logic for selecting the persistence backend.
"""

import logging
import random

from mnemo.application.config import AppConfig
from mnemo.application.service import ReviewService, system_clock
from mnemo.domain.ports import CardStore, Clock, ReviewLogStore, StreakStore
from mnemo.infrastructure.adapters.memory import (
    InMemoryCardStore,
    InMemoryReviewLog,
    InMemoryStreakStore,
)
from mnemo.infrastructure.adapters.sqlite_store import (
    SqliteCardStore,
    SqliteDatabase,
    SqliteReviewLog,
    SqliteStreakStore,
)

logger = logging.getLogger(__name__)


def get_stores(config: AppConfig) -> tuple[CardStore, StreakStore, ReviewLogStore]:
    """
    Returns the card, streak and review-log stores for the configured backend.
    """
    if config.backend == "memory":
        logger.debug("Backend: memory")
        return InMemoryCardStore(), InMemoryStreakStore(), InMemoryReviewLog()

    logger.debug(f"Backend: sqlite ({config.database_path})")
    db = SqliteDatabase(config.database_path)
    return SqliteCardStore(db), SqliteStreakStore(db), SqliteReviewLog(db)


def build_review_service(
    config: AppConfig,
    clock: Clock = system_clock,
    rng: random.Random | None = None,
) -> ReviewService:
    """Construct a ReviewService with freshly built stores. No shared globals."""
    card_store, streak_store, review_log = get_stores(config)
    return ReviewService(card_store, streak_store, review_log, config, clock=clock, rng=rng)
