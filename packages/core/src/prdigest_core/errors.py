"""Exception types raised by the batch engine.

Per-item problems never surface as exceptions outside the item pipeline —
they become Failure results. The classes here cover the cases that are
fatal for a whole call: bad batch input, unknown or already-run tokens,
and an unavailable store at batch creation time.
"""

from __future__ import annotations


class PrDigestError(Exception):
    """Base class for all prdigest errors."""


class InvalidBatchError(PrDigestError, ValueError):
    """The submitted reference list cannot become a batch."""

    def __init__(self, message: str, details: list[str] | None = None):
        super().__init__(message)
        self.details = details or []


class BatchNotFoundError(PrDigestError, KeyError):
    """No batch exists for the given token."""

    def __init__(self, token: str):
        super().__init__(token)
        self.token = token

    def __str__(self) -> str:
        return f"Batch not found: {self.token}"


class StoreUnavailableError(PrDigestError):
    """The persistence layer could not be reached when creating a batch."""


class ItemCancelled(PrDigestError):
    """Raised by CancelToken.raise_if_cancelled once the item's deadline has passed."""


class BatchStateError(PrDigestError):
    """The batch exists but is not pending, so it cannot be run again."""

    def __init__(self, token: str, status: str):
        super().__init__(token, status)
        self.token = token
        self.status = status

    def __str__(self) -> str:
        return f"Batch {self.token} is already {self.status}"
