"""Incremental HubSpot sync engine.

Pages through companies, contacts and meetings modified since the last
successful run, turns each record into goal actions and delivers them in
batches through an ActionSink.

Exports:
    SyncOrchestrator: Runs every enabled pass for every account.
    SyncPass: One record-type pass for one account.
    Paginator: Cursor paginator with watermark rollover.
    RetryController: Bounded fetch retry with token refresh.
    ActionQueue: Threshold-flushed action buffer.
    SyncError, AuthError, FetchExhaustedError, SinkError: Error taxonomy.
"""

from __future__ import annotations

from src.hubsync.sync.errors import AuthError, FetchExhaustedError, SinkError, SyncError

__all__ = [
    "ActionQueue",
    "AuthError",
    "FetchExhaustedError",
    "Paginator",
    "RetryController",
    "SinkError",
    "SyncError",
    "SyncOrchestrator",
    "SyncPass",
]


def __getattr__(name: str):  # noqa: N807
    """Lazy-load engine components to avoid circular imports with the HubSpot client."""
    if name == "SyncOrchestrator":
        from src.hubsync.sync.orchestrator import SyncOrchestrator

        return SyncOrchestrator
    if name == "SyncPass":
        from src.hubsync.sync.passes import SyncPass

        return SyncPass
    if name == "Paginator":
        from src.hubsync.sync.paginator import Paginator

        return Paginator
    if name == "RetryController":
        from src.hubsync.sync.retry import RetryController

        return RetryController
    if name == "ActionQueue":
        from src.hubsync.sync.queue import ActionQueue

        return ActionQueue
    msg = f"module {__name__!r} has no attribute {name!r}"
    raise AttributeError(msg)
