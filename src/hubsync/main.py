"""Command-line entry point for one sync run.

Builds the store, OAuth client, credential manager and sink from Settings,
runs the orchestrator once and exits non-zero when any pass or drain failed.

Usage:
    hubsync
    hubsync --passes companies,contacts --dry-run
    hubsync --store /var/lib/hubsync/domain.json
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from functools import partial

import structlog

from src.hubsync.accounts.schemas import Domain
from src.hubsync.accounts.store import JsonAccountStore
from src.hubsync.config import Settings, get_settings
from src.hubsync.core.logging import configure_structlog
from src.hubsync.core.monitoring import write_metrics
from src.hubsync.hubspot.client import HubSpotClient
from src.hubsync.hubspot.oauth import HubSpotOAuthClient
from src.hubsync.sync.credentials import CredentialManager
from src.hubsync.sync.orchestrator import SyncOrchestrator, parse_passes
from src.hubsync.sync.schemas import SyncReport
from src.hubsync.sync.sink import ActionSink, HttpActionSink, LogActionSink

logger = structlog.get_logger(__name__)


def build_sink(settings: Settings, domain: Domain) -> ActionSink:
    """HTTP sink when an endpoint is configured, log-only sink otherwise."""
    if not settings.GOAL_ENDPOINT_URL:
        logger.warning("sink.endpoint_not_configured", fallback="log")
        return LogActionSink()
    return HttpActionSink(
        settings.GOAL_ENDPOINT_URL,
        api_key=settings.GOAL_API_KEY or domain.api_key,
        timeout=settings.HUBSPOT_REQUEST_TIMEOUT,
    )


def build_orchestrator(settings: Settings) -> SyncOrchestrator:
    """Wire the orchestrator and its collaborators from settings."""
    oauth = HubSpotOAuthClient(
        settings.HUBSPOT_CID,
        settings.HUBSPOT_CS,
        base_url=settings.HUBSPOT_API_BASE,
        timeout=settings.HUBSPOT_REQUEST_TIMEOUT,
    )
    return SyncOrchestrator(
        store=JsonAccountStore(settings.ACCOUNT_STORE_PATH),
        credentials=CredentialManager(oauth),
        client_factory=partial(
            HubSpotClient,
            base_url=settings.HUBSPOT_API_BASE,
            timeout=settings.HUBSPOT_REQUEST_TIMEOUT,
        ),
        sink_factory=partial(build_sink, settings),
        passes=parse_passes(settings.enabled_passes()),
        dry_run=settings.SYNC_DRY_RUN,
        page_size=settings.SYNC_PAGE_SIZE,
        cursor_ceiling=settings.SYNC_CURSOR_CEILING,
        fetch_max_attempts=settings.FETCH_MAX_ATTEMPTS,
        fetch_backoff_base=settings.FETCH_BACKOFF_BASE_SECONDS,
        flush_threshold=settings.QUEUE_FLUSH_THRESHOLD,
        sink_max_attempts=settings.SINK_MAX_ATTEMPTS,
    )


async def pull_data_from_hubspot(settings: Settings | None = None) -> SyncReport:
    """Run one incremental sync over every account of the domain."""
    settings = settings or get_settings()
    orchestrator = build_orchestrator(settings)
    return await orchestrator.run()


def apply_cli_overrides(settings: Settings, args: argparse.Namespace) -> Settings:
    update = {}
    if args.passes is not None:
        update["SYNC_PASSES"] = args.passes
    if args.store is not None:
        update["ACCOUNT_STORE_PATH"] = args.store
    if args.dry_run:
        update["SYNC_DRY_RUN"] = True
    return settings.model_copy(update=update) if update else settings


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Incremental HubSpot to goal-actions sync")
    parser.add_argument(
        "--passes",
        help="Comma-separated record types to sync (companies,contacts,meetings)",
    )
    parser.add_argument("--store", help="Path to the domain JSON document")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Fetch and emit actions but persist no watermarks or tokens",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = apply_cli_overrides(get_settings(), args)
    configure_structlog(settings)

    try:
        parse_passes(settings.enabled_passes())
    except ValueError as exc:
        logger.error("sync.invalid_passes", error=str(exc))
        return 2

    report = asyncio.run(pull_data_from_hubspot(settings))
    if settings.METRICS_TEXTFILE_PATH:
        write_metrics(settings.METRICS_TEXTFILE_PATH)
        logger.info("sync.metrics_written", path=settings.METRICS_TEXTFILE_PATH)
    failed = [
        account.hub_id
        for account in report.accounts
        if account.failed_passes or not account.drained
    ]
    if failed:
        logger.warning("sync.run_incomplete", failed_accounts=failed)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
