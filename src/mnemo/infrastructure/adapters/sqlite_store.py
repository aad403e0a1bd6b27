"""
SQLite stores — Infrastructure adapters for a local database file.

Implements the persistence ports on one SQLite file. Timestamps are stored
as UTC ISO-8601 text with fixed microsecond precision so they sort and
compare as text; ``ease_factor`` is a REAL column and round-trips exactly.
"""

import logging
import sqlite3
from collections.abc import Callable, Iterator
from contextlib import closing, contextmanager
from datetime import date, datetime, timezone
from pathlib import Path

from mnemo.domain.models import Card, CardSchedule, Rating, ReviewEvent, UserStreak
from mnemo.domain.ports import CardStore, ReviewLogStore, StreakStore

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS cards (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    title TEXT NOT NULL,
    content TEXT NOT NULL,
    interval_days INTEGER,
    ease_factor REAL,
    repetition_count INTEGER,
    next_review_at TEXT,
    created_at TEXT,
    updated_at TEXT
);
CREATE INDEX IF NOT EXISTS idx_cards_due ON cards (user_id, next_review_at);

CREATE TABLE IF NOT EXISTS user_streaks (
    user_id TEXT PRIMARY KEY,
    current_streak INTEGER NOT NULL DEFAULT 0,
    longest_streak INTEGER NOT NULL DEFAULT 0,
    total_reviews INTEGER NOT NULL DEFAULT 0,
    last_review_date TEXT,
    updated_at TEXT
);

CREATE TABLE IF NOT EXISTS review_logs (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    card_id TEXT NOT NULL,
    rating INTEGER NOT NULL,
    reviewed_at TEXT NOT NULL,
    duration_seconds REAL NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_review_logs_user ON review_logs (user_id, reviewed_at);
"""

# Server-assigned write time; last write wins.
SERVER_NOW = "strftime('%Y-%m-%dT%H:%M:%fZ', 'now')"

BUSY_TIMEOUT_SECONDS = 10.0

UPSERT_STREAK = (
    "INSERT INTO user_streaks (user_id, current_streak, longest_streak, "
    "total_reviews, last_review_date, updated_at) "
    f"VALUES (?, ?, ?, ?, ?, {SERVER_NOW}) "
    "ON CONFLICT(user_id) DO UPDATE SET "
    "current_streak = excluded.current_streak, "
    "longest_streak = excluded.longest_streak, "
    "total_reviews = excluded.total_reviews, "
    "last_review_date = excluded.last_review_date, "
    "updated_at = excluded.updated_at"
)


def encode_ts(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        raise ValueError(f"Refusing to store naive datetime {value!r}")
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def decode_ts(value: str | None) -> datetime | None:
    if value is None:
        return None
    return datetime.fromisoformat(value)


class SqliteDatabase:
    """Owns the database file and hands out short-lived connections."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.connect() as conn:
            conn.executescript(SCHEMA)
        logger.debug(f"Opened SQLite store at {self.path}")

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        """Yield a connection inside a transaction (commit on success, rollback on error)."""
        with closing(sqlite3.connect(self.path, timeout=BUSY_TIMEOUT_SECONDS)) as conn:
            conn.row_factory = sqlite3.Row
            with conn:
                yield conn

    @contextmanager
    def immediate(self) -> Iterator[sqlite3.Connection]:
        """
        Yield a connection that holds the database write lock from its first read.

        Other connections wait (up to the busy timeout) until this one commits,
        so a read-modify-write inside the block cannot interleave.
        """
        with closing(
            sqlite3.connect(self.path, timeout=BUSY_TIMEOUT_SECONDS, isolation_level=None)
        ) as conn:
            conn.row_factory = sqlite3.Row
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")


def _row_to_card(row: sqlite3.Row) -> Card:
    schedule = None
    if row["next_review_at"] is not None and row["ease_factor"] is not None:
        schedule = CardSchedule(
            interval_days=row["interval_days"] or 0,
            ease_factor=row["ease_factor"],
            repetition_count=row["repetition_count"] or 0,
            next_review_at=decode_ts(row["next_review_at"]),
        )
    return Card(
        id=row["id"],
        user_id=row["user_id"],
        title=row["title"],
        content=row["content"],
        schedule=schedule,
        created_at=decode_ts(row["created_at"]),
    )


class SqliteCardStore(CardStore):
    def __init__(self, db: SqliteDatabase):
        self.db = db

    async def fetch_due(self, user_id: str, now: datetime, limit: int | None) -> list[Card]:
        # NULL next_review_at sorts first: never-scheduled cards are due immediately.
        with self.db.connect() as conn:
            rows = conn.execute(
                "SELECT * FROM cards WHERE user_id = ? "
                "AND (next_review_at IS NULL OR next_review_at <= ?) "
                "ORDER BY next_review_at ASC, id ASC LIMIT ?",
                (user_id, encode_ts(now), -1 if limit is None else limit),
            ).fetchall()
        return [_row_to_card(r) for r in rows]

    async def fetch_all(self, user_id: str) -> list[Card]:
        with self.db.connect() as conn:
            rows = conn.execute(
                "SELECT * FROM cards WHERE user_id = ? ORDER BY created_at ASC, id ASC",
                (user_id,),
            ).fetchall()
        return [_row_to_card(r) for r in rows]

    async def write_schedule(self, card_id: str, schedule: CardSchedule) -> None:
        with self.db.connect() as conn:
            cur = conn.execute(
                "UPDATE cards SET interval_days = ?, ease_factor = ?, repetition_count = ?, "
                f"next_review_at = ?, updated_at = {SERVER_NOW} WHERE id = ?",
                (
                    schedule.interval_days,
                    schedule.ease_factor,
                    schedule.repetition_count,
                    encode_ts(schedule.next_review_at),
                    card_id,
                ),
            )
            if cur.rowcount == 0:
                raise KeyError(card_id)

    async def add_card(self, card: Card) -> None:
        s = card.schedule
        with self.db.connect() as conn:
            conn.execute(
                "INSERT INTO cards (id, user_id, title, content, interval_days, ease_factor, "
                "repetition_count, next_review_at, created_at, updated_at) "
                f"VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, {SERVER_NOW})",
                (
                    card.id,
                    card.user_id,
                    card.title,
                    card.content,
                    s.interval_days if s else None,
                    s.ease_factor if s else None,
                    s.repetition_count if s else None,
                    encode_ts(s.next_review_at) if s else None,
                    encode_ts(card.created_at),
                ),
            )


class SqliteStreakStore(StreakStore):
    def __init__(self, db: SqliteDatabase):
        self.db = db

    async def read_streak(self, user_id: str) -> UserStreak:
        with self.db.connect() as conn:
            return _select_streak(conn, user_id)

    async def write_streak(self, user_id: str, streak: UserStreak) -> None:
        with self.db.connect() as conn:
            conn.execute(UPSERT_STREAK, _streak_params(user_id, streak))

    async def update_streak(
        self, user_id: str, update: Callable[[UserStreak], UserStreak]
    ) -> UserStreak:
        # One IMMEDIATE transaction: concurrent processes queue on the write lock.
        with self.db.immediate() as conn:
            streak = update(_select_streak(conn, user_id))
            conn.execute(UPSERT_STREAK, _streak_params(user_id, streak))
        return streak


def _select_streak(conn: sqlite3.Connection, user_id: str) -> UserStreak:
    row = conn.execute("SELECT * FROM user_streaks WHERE user_id = ?", (user_id,)).fetchone()
    if row is None:
        return UserStreak()
    last = row["last_review_date"]
    return UserStreak(
        current_streak=row["current_streak"],
        longest_streak=row["longest_streak"],
        total_reviews=row["total_reviews"],
        last_review_date=date.fromisoformat(last) if last else None,
    )


def _streak_params(user_id: str, streak: UserStreak) -> tuple:
    last = streak.last_review_date.isoformat() if streak.last_review_date else None
    return (user_id, streak.current_streak, streak.longest_streak, streak.total_reviews, last)


class SqliteReviewLog(ReviewLogStore):
    def __init__(self, db: SqliteDatabase):
        self.db = db

    async def append(self, event: ReviewEvent) -> None:
        with self.db.connect() as conn:
            conn.execute(
                "INSERT INTO review_logs (id, user_id, card_id, rating, reviewed_at, "
                "duration_seconds) VALUES (?, ?, ?, ?, ?, ?)",
                (
                    event.id,
                    event.user_id,
                    event.card_id,
                    int(event.rating),
                    encode_ts(event.reviewed_at),
                    event.duration_seconds,
                ),
            )

    async def events_since(self, user_id: str, since: datetime) -> list[ReviewEvent]:
        with self.db.connect() as conn:
            rows = conn.execute(
                "SELECT * FROM review_logs WHERE user_id = ? AND reviewed_at >= ? "
                "ORDER BY reviewed_at ASC",
                (user_id, encode_ts(since)),
            ).fetchall()
        return [
            ReviewEvent(
                id=r["id"],
                card_id=r["card_id"],
                user_id=r["user_id"],
                rating=Rating(r["rating"]),
                reviewed_at=decode_ts(r["reviewed_at"]),
                duration_seconds=r["duration_seconds"],
            )
            for r in rows
        ]
