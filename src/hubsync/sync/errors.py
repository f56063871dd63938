"""Error taxonomy for the sync engine.

Record-level skips are not errors; they are ``Skipped`` transform outcomes.
"""

from __future__ import annotations


class SyncError(Exception):
    """Base exception for sync engine failures."""


class AuthError(SyncError):
    """The account's refresh token was rejected or the refresh failed.

    Fatal for the account's remaining passes, never for other accounts.
    """

    def __init__(self, message: str, hub_id: str | None = None, error_code: str | None = None):
        super().__init__(message)
        self.hub_id = hub_id
        self.error_code = error_code


class FetchExhaustedError(SyncError):
    """Every fetch attempt failed; aborts the current pass only."""

    def __init__(self, operation: str, attempts: int, last_error: BaseException | None = None):
        super().__init__(
            f"Failed to {operation} after {attempts} attempts. Aborting."
            + (f" Last error: {last_error}" if last_error else "")
        )
        self.operation = operation
        self.attempts = attempts
        self.last_error = last_error


class SinkError(SyncError):
    """One or more action batches could not be delivered to the sink."""

    def __init__(self, failed_batches: int, failed_actions: int):
        super().__init__(
            f"{failed_batches} batch(es) with {failed_actions} action(s) were not delivered"
        )
        self.failed_batches = failed_batches
        self.failed_actions = failed_actions
