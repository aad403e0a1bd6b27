"""Centralized constants for the mnemo scheduling core.

All magic numbers and defaults live here so every layer
imports from a single source of truth.
"""

# ---------- Ratings ----------
MIN_RATING = 0
MAX_RATING = 5
SUCCESS_THRESHOLD = 3  # ratings at or above this are successful recalls

# ---------- SM-2 ----------
INITIAL_EASE_FACTOR = 2.5
MIN_EASE_FACTOR = 1.3
FAILURE_EASE_PENALTY = 0.2
FIRST_INTERVAL_DAYS = 1
SECOND_INTERVAL_DAYS = 6
RELEARN_INTERVAL_DAYS = 1
DEFAULT_MIN_INTERVAL = 1
DEFAULT_MAX_INTERVAL = 365
DEFAULT_INTERVAL_MODIFIER = 1.0

# ---------- Fuzzing ----------
FUZZ_MIN_INTERVAL = 4  # intervals strictly above this are jittered
FUZZ_RATIO = 0.05

# ---------- Sessions ----------
DEFAULT_SESSION_LIMIT = 50
DEFAULT_HINT_DIFFICULTY = 0.6
DEFAULT_SESSION_IDLE_MINUTES = 60

# ---------- Hints ----------
HINT_GROUP_SIZE = 2
HINT_SHORT_TEXT_LEN = 20
HINT_SHORT_WORD_LEN = 3
HINT_LONG_WORD_LEN = 8
GROUP_PLACEHOLDER = "____"
WORD_PLACEHOLDER = "_____"

# ---------- Streaks ----------
DEFAULT_DAILY_GOAL = 10
ACHIEVEMENT_LOOKBACK_DAYS = 30
DEFAULT_TIMEZONE = "UTC"
