"""Exceptions raised by the scheduling core.

Hosts catch these by type: ordering mistakes, bad input and storage
failures each need a different reaction (re-render, reject, retry).
"""


class MnemoError(Exception):
    """Base exception for mnemo."""


class InvalidRatingError(MnemoError, ValueError):
    """Raised when a rating is outside the 0-5 scale."""


class SessionOrderError(MnemoError):
    """Raised when a session operation is called in the wrong state (e.g. rate before reveal)."""


class PendingWriteError(SessionOrderError):
    """Raised when a session is aborted while a rated card still has unsaved writes."""


class StoreFetchError(MnemoError):
    """Raised when the card store cannot produce a working set."""


class PersistenceError(MnemoError):
    """
    Raised when a schedule, review-log or streak write fails.

    The session keeps the computed next state; call ``retry()`` to resume.
    """

    def __init__(self, message: str, card_id: str | None = None, stage: str | None = None):
        super().__init__(message)
        self.card_id = card_id
        self.stage = stage
