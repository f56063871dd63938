"""Sync orchestrator -- runs every enabled pass for every account of the domain.

Per account, in order:
1. Eager token refresh; a failure is logged and the run continues with the
   stored token.
2. Each enabled pass in fixed order (companies, contacts, meetings). Passes
   are isolated from each other; an AuthError also stops the account's
   remaining passes.
3. A successful pass advances the in-memory watermark to its start instant.
4. The action queue is drained. Watermarks are persisted only when the
   drain delivered everything; a rotated token is persisted either way.

Accounts never affect each other: any failure is logged and the next
account runs.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from datetime import datetime

import structlog

from src.hubsync.accounts.schemas import Account, Domain
from src.hubsync.accounts.store import AccountStore
from src.hubsync.core.monitoring import track_sync_pass
from src.hubsync.hubspot.client import HubSpotClient
from src.hubsync.sync.credentials import CredentialManager, utc_now
from src.hubsync.sync.errors import AuthError, SinkError
from src.hubsync.sync.paginator import CURSOR_CEILING, PAGE_SIZE
from src.hubsync.sync.passes import SyncPass
from src.hubsync.sync.queue import FLUSH_THRESHOLD, ActionQueue
from src.hubsync.sync.retry import RetryController
from src.hubsync.sync.schemas import AccountSyncResult, RecordType, SyncReport
from src.hubsync.sync.session import AccountSession
from src.hubsync.sync.sink import ActionSink

logger = structlog.get_logger(__name__)

PASS_ORDER: tuple[RecordType, ...] = (
    RecordType.COMPANIES,
    RecordType.CONTACTS,
    RecordType.MEETINGS,
)


def parse_passes(names: Sequence[str]) -> list[RecordType]:
    """Validate pass names and return them in execution order.

    Raises:
        ValueError: If a name is not a known record type.
    """
    requested = set()
    for name in names:
        try:
            requested.add(RecordType(name))
        except ValueError:
            valid = ", ".join(rt.value for rt in PASS_ORDER)
            raise ValueError(f"Unknown sync pass {name!r}; expected one of: {valid}") from None
    return [rt for rt in PASS_ORDER if rt in requested]


class SyncOrchestrator:
    """Drives one incremental sync run over a domain.

    Args:
        store: Account store the domain is read from and written back to.
        credentials: Credential manager for token refreshes.
        client_factory: Builds a fresh HubSpot client per account.
        sink_factory: Builds the action sink for the domain.
        passes: Record types to sync; defaults to all in fixed order.
        dry_run: Skip all persistence.
        clock: Returns the current UTC instant.
        sleep: Async sleep used by retry and flush backoff.
    """

    def __init__(
        self,
        store: AccountStore,
        credentials: CredentialManager,
        client_factory: Callable[[], HubSpotClient],
        sink_factory: Callable[[Domain], ActionSink],
        passes: Sequence[RecordType] = PASS_ORDER,
        dry_run: bool = False,
        clock: Callable[[], datetime] = utc_now,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        page_size: int = PAGE_SIZE,
        cursor_ceiling: int = CURSOR_CEILING,
        fetch_max_attempts: int = 5,
        fetch_backoff_base: float = 5.0,
        flush_threshold: int = FLUSH_THRESHOLD,
        sink_max_attempts: int = 3,
    ) -> None:
        self._store = store
        self._credentials = credentials
        self._client_factory = client_factory
        self._sink_factory = sink_factory
        self._passes = [rt for rt in PASS_ORDER if rt in passes]
        self._dry_run = dry_run
        self._clock = clock
        self._sleep = sleep
        self._page_size = page_size
        self._cursor_ceiling = cursor_ceiling
        self._fetch_max_attempts = fetch_max_attempts
        self._fetch_backoff_base = fetch_backoff_base
        self._flush_threshold = flush_threshold
        self._sink_max_attempts = sink_max_attempts

    async def run(self) -> SyncReport:
        """Sync every account of the domain sequentially."""
        domain = await self._store.find_domain()
        sink = self._sink_factory(domain)
        report = SyncReport()

        logger.info(
            "sync.run_started",
            accounts=len(domain.accounts),
            passes=[rt.value for rt in self._passes],
            dry_run=self._dry_run,
        )

        for account in domain.accounts:
            try:
                result = await self.sync_account(account, sink)
            except Exception:
                logger.error(
                    "sync.account_failed",
                    hub_id=account.hub_id,
                    operation="sync_account",
                    exc_info=True,
                )
                result = AccountSyncResult(hub_id=account.hub_id)
            report.accounts.append(result)

        logger.info("sync.run_completed", accounts=len(report.accounts), actions=report.actions)
        return report

    async def sync_account(self, account: Account, sink: ActionSink) -> AccountSyncResult:
        """Run the enabled passes for one account, drain, then persist."""
        result = AccountSyncResult(hub_id=account.hub_id)
        log = logger.bind(hub_id=account.hub_id)
        log.info("sync.account_started")

        async with self._client_factory() as client:
            session = AccountSession(account, client, self._credentials)

            try:
                await session.refresh_token()
            except AuthError:
                result.token_refresh_failed = True
                log.error("sync.token_refresh_failed", operation="refresh_access_token", exc_info=True)

            retry = RetryController(
                session,
                max_attempts=self._fetch_max_attempts,
                backoff_base=self._fetch_backoff_base,
                sleep=self._sleep,
            )

            async with ActionQueue(
                sink,
                flush_threshold=self._flush_threshold,
                sink_max_attempts=self._sink_max_attempts,
                sleep=self._sleep,
                log_context={"hub_id": account.hub_id},
            ) as queue:
                for record_type in self._passes:
                    sync_pass = SyncPass(
                        record_type,
                        session,
                        retry,
                        queue,
                        clock=self._clock,
                        page_size=self._page_size,
                        cursor_ceiling=self._cursor_ceiling,
                    )
                    operation = f"fetch_{record_type.value}"
                    try:
                        async with track_sync_pass(record_type.value):
                            pass_result = await sync_pass.run()
                    except AuthError as exc:
                        result.failed_passes[record_type] = str(exc)
                        log.error("sync.pass_failed", operation=operation, exc_info=True)
                        log.warning(
                            "sync.account_aborted",
                            reason="auth",
                            remaining=self._remaining(record_type),
                        )
                        break
                    except Exception as exc:
                        result.failed_passes[record_type] = str(exc)
                        log.error("sync.pass_failed", operation=operation, exc_info=True)
                        continue

                    session.advance_watermark(record_type.value, pass_result.watermark)
                    result.passes.append(pass_result)

                try:
                    await queue.drain()
                    result.drained = True
                except SinkError:
                    log.error("sync.drain_failed", operation="drain_queue", exc_info=True)

        if self._dry_run:
            log.info("sync.persist_skipped", reason="dry_run")
        else:
            await self._persist(session, result)

        log.info(
            "sync.account_completed",
            passes=len(result.passes),
            failed=[rt.value for rt in result.failed_passes],
            watermarks_persisted=result.watermarks_persisted,
        )
        return result

    async def _persist(self, session: AccountSession, result: AccountSyncResult) -> None:
        # Watermarks only move once every action they cover was delivered
        if result.drained and result.passes:
            await self._store.save_watermarks(session.account)
            result.watermarks_persisted = True
        if session.token_changed:
            await self._store.save_credentials(session.account)
            result.credentials_persisted = True

    def _remaining(self, record_type: RecordType) -> list[str]:
        index = self._passes.index(record_type)
        return [rt.value for rt in self._passes[index + 1 :]]
