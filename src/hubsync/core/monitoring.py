"""Prometheus metrics for the sync engine.

Provides:
- Counters for fetched records, emitted actions, skips, retries, flushes
- track_sync_pass(): Context manager recording pass outcome and duration
- write_metrics(): Dump the default registry as a node-exporter textfile
"""

from __future__ import annotations

import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from prometheus_client import REGISTRY, Counter, Histogram, write_to_textfile

# ── Fetch Metrics ────────────────────────────────────────────────────────────

records_fetched_total = Counter(
    "hubsync_records_fetched_total",
    "Records returned by HubSpot search pages",
    ["record_type"],
)

fetch_retries_total = Counter(
    "hubsync_fetch_retries_total",
    "Failed fetch attempts that were retried",
    ["operation"],
)

# ── Transform Metrics ────────────────────────────────────────────────────────

actions_emitted_total = Counter(
    "hubsync_actions_emitted_total",
    "Actions pushed to the action queue",
    ["action_name"],
)

records_skipped_total = Counter(
    "hubsync_records_skipped_total",
    "Records that produced no action",
    ["record_type", "reason"],
)

# ── Sink Metrics ─────────────────────────────────────────────────────────────

sink_flushes_total = Counter(
    "hubsync_sink_flushes_total",
    "Batches handed to the action sink",
    ["status"],
)

# ── Pass Metrics ─────────────────────────────────────────────────────────────

sync_passes_total = Counter(
    "hubsync_sync_passes_total",
    "Record-type sync passes by outcome",
    ["record_type", "status"],
)

sync_pass_duration_seconds = Histogram(
    "hubsync_sync_pass_duration_seconds",
    "Wall time of one record-type sync pass",
    ["record_type"],
    buckets=(1.0, 5.0, 15.0, 30.0, 60.0, 300.0, 900.0, 3600.0),
)


@asynccontextmanager
async def track_sync_pass(record_type: str) -> AsyncGenerator[None, None]:
    """Record the outcome and duration of a sync pass.

    Usage:
        async with track_sync_pass("companies"):
            await sync_pass.run()
    """
    start_time = time.perf_counter()
    status = "success"

    try:
        yield
    except Exception:
        status = "error"
        raise
    finally:
        sync_passes_total.labels(record_type=record_type, status=status).inc()
        sync_pass_duration_seconds.labels(record_type=record_type).observe(
            time.perf_counter() - start_time
        )


def write_metrics(path: str) -> None:
    """Write the default registry to ``path`` in the Prometheus text format."""
    write_to_textfile(path, REGISTRY)
