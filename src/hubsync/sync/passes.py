"""One record-type sync pass for one account.

A pass captures ``now`` once, pages through every record modified between
the stored watermark and ``now``, transforms each page and pushes the
resulting actions onto the account's queue. On success the pass reports
``now`` as the new watermark; the orchestrator decides whether to keep it.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
from typing import Any

import structlog

from src.hubsync.core.monitoring import (
    actions_emitted_total,
    records_fetched_total,
    records_skipped_total,
)
from src.hubsync.sync.credentials import utc_now
from src.hubsync.sync.paginator import CURSOR_CEILING, PAGE_SIZE, Paginator
from src.hubsync.sync.queue import ActionQueue
from src.hubsync.sync.record_types import RECORD_TYPE_SPECS, RecordTypeSpec
from src.hubsync.sync.retry import RetryController
from src.hubsync.sync.schemas import (
    Emitted,
    PageState,
    PassResult,
    RecordType,
    SearchPage,
)
from src.hubsync.sync.session import AccountSession
from src.hubsync.sync.transformers import RecordTransformer, TRANSFORMERS

logger = structlog.get_logger(__name__)


class SyncPass:
    """Fetch, transform and enqueue every changed record of one type.

    Args:
        record_type: Which object type this pass syncs.
        session: Account session supplying the client and watermark.
        retry: Retry controller wrapping every HubSpot call.
        queue: Queue receiving emitted actions.
        clock: Returns the current UTC instant.
        page_size: Records per search page.
        cursor_ceiling: Cursor value that triggers rollover.
    """

    def __init__(
        self,
        record_type: RecordType,
        session: AccountSession,
        retry: RetryController,
        queue: ActionQueue,
        clock: Callable[[], datetime] = utc_now,
        page_size: int = PAGE_SIZE,
        cursor_ceiling: int = CURSOR_CEILING,
    ) -> None:
        self.record_type = record_type
        self._spec: RecordTypeSpec = RECORD_TYPE_SPECS[record_type]
        self._session = session
        self._retry = retry
        self._queue = queue
        self._clock = clock
        self._page_size = page_size
        self._cursor_ceiling = cursor_ceiling

    def _build_transformer(self, prior_watermark: datetime | None) -> RecordTransformer:
        return TRANSFORMERS[self.record_type](
            self._session.client, prior_watermark, run_lookup=self._retry.call
        )

    async def _fetch(self, body: dict[str, Any]) -> SearchPage:
        return await self._retry.call(
            lambda: self._session.client.search(self._spec.object_type, body),
            operation=f"fetch {self.record_type.value} page",
        )

    async def run(self) -> PassResult:
        """Run the pass to completion.

        Returns:
            PassResult whose ``watermark`` is the instant captured at start.

        Raises:
            FetchExhaustedError: A fetch or lookup failed every attempt.
            AuthError: A token refresh failed mid-pass.
        """
        now = self._clock()
        prior_watermark = self._session.account.watermark_for(self.record_type.value)
        hub_id = self._session.hub_id
        log = logger.bind(hub_id=hub_id, record_type=self.record_type.value)

        log.info(
            "sync.pass_started",
            watermark=prior_watermark.isoformat() if prior_watermark else None,
            now=now.isoformat(),
        )

        transformer = self._build_transformer(prior_watermark)
        paginator = Paginator(
            self._spec,
            prior_watermark,
            now,
            self._fetch,
            page_size=self._page_size,
            cursor_ceiling=self._cursor_ceiling,
        )
        result = PassResult(record_type=self.record_type, watermark=now)

        async for page in paginator:
            result.pages += 1
            result.records += len(page.records)
            records_fetched_total.labels(record_type=self.record_type.value).inc(len(page.records))
            if page.state is PageState.ROLLED_OVER:
                result.rollovers += 1

            for outcome in await transformer.transform_page(page.records):
                if isinstance(outcome, Emitted):
                    for action in outcome.actions:
                        self._queue.push(action)
                        actions_emitted_total.labels(action_name=action.action_name.value).inc()
                    result.actions += len(outcome.actions)
                else:
                    result.count_skip(outcome.reason)
                    records_skipped_total.labels(
                        record_type=self.record_type.value, reason=outcome.reason.value
                    ).inc()

        log.info(
            "sync.pass_completed",
            pages=result.pages,
            records=result.records,
            actions=result.actions,
            skipped=result.skipped_total,
            rollovers=result.rollovers,
        )
        return result
