"""Cursor paginator with modification-time watermark and cursor rollover.

One Paginator drives one record-type pass:

- every request is sorted ascending on the modification property and
  filtered to ``lower_bound <= modified <= now``; ``now`` is captured once
  by the caller and never moves, so records touched during the run are left
  for the next pass;
- a page without a next cursor (or without records) ends the pass;
- when the next cursor reaches the search result window (9900), the cursor
  is reset to the start and the lower bound becomes the modification instant
  of the last record on the current page.

The lower bound is inclusive, so after a rollover the records sharing the
last instant are read again and their actions may be emitted twice.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Awaitable, Callable
from datetime import datetime
from typing import Any

import structlog

from src.hubsync.sync.record_types import RecordTypeSpec
from src.hubsync.sync.schemas import Page, PageState, SearchPage, SyncCursor

logger = structlog.get_logger(__name__)

PAGE_SIZE = 100
CURSOR_CEILING = 9900


def to_epoch_ms(instant: datetime) -> str:
    return str(int(instant.timestamp() * 1000))


def cursor_depth(after: str | None) -> int | None:
    """Numeric value of a cursor, or None if it is not an integer."""
    if after is None:
        return None
    try:
        return int(after)
    except ValueError:
        return None


class Paginator:
    """Lazy, single-use sequence of search pages for one record type.

    Args:
        spec: Object type, modification property and requested properties.
        watermark: Lower bound from the previous successful pass, or None.
        now: Upper bound captured at pass start.
        fetch: Issues one search request body and returns the page.
        page_size: Records per page.
        cursor_ceiling: Cursor value that triggers rollover.
    """

    def __init__(
        self,
        spec: RecordTypeSpec,
        watermark: datetime | None,
        now: datetime,
        fetch: Callable[[dict[str, Any]], Awaitable[SearchPage]],
        page_size: int = PAGE_SIZE,
        cursor_ceiling: int = CURSOR_CEILING,
    ) -> None:
        self._spec = spec
        self._watermark = watermark
        self._now = now
        self._fetch = fetch
        self._page_size = page_size
        self._cursor_ceiling = cursor_ceiling
        self._cursor = SyncCursor()
        self._state = PageState.FETCHING
        self._started = False

    @property
    def state(self) -> PageState:
        return self._state

    @property
    def cursor(self) -> SyncCursor:
        return self._cursor

    @property
    def lower_bound(self) -> datetime | None:
        return self._cursor.watermark_override or self._watermark

    def build_request(self) -> dict[str, Any]:
        """Search body for the next page given the current cursor."""
        prop = self._spec.modified_property
        filters = []
        lower_bound = self.lower_bound
        if lower_bound is not None:
            filters.append({"propertyName": prop, "operator": "GTE", "value": to_epoch_ms(lower_bound)})
        filters.append({"propertyName": prop, "operator": "LTE", "value": to_epoch_ms(self._now)})

        body: dict[str, Any] = {
            "filterGroups": [{"filters": filters}],
            "sorts": [{"propertyName": prop, "direction": "ASCENDING"}],
            "properties": list(self._spec.properties),
            "limit": self._page_size,
        }
        if self._cursor.after is not None:
            body["after"] = self._cursor.after
        return body

    def __aiter__(self) -> AsyncIterator[Page]:
        if self._started:
            raise RuntimeError("Paginator is single-use; create a new one per pass")
        self._started = True
        return self._pages()

    async def _pages(self) -> AsyncIterator[Page]:
        while self._cursor.has_more:
            self._state = PageState.FETCHING
            lower_bound = self.lower_bound
            result = await self._fetch(self.build_request())
            records = result.results

            logger.debug(
                "paginator.page_fetched",
                object_type=self._spec.object_type,
                records=len(records),
                after=self._cursor.after or "initial",
            )

            self._advance(result)
            yield Page(
                records=records,
                state=self._state,
                after=result.next_cursor,
                lower_bound=lower_bound,
            )

    def _advance(self, result: SearchPage) -> None:
        """Apply the transition for a fetched page to the cursor."""
        records = result.results
        next_cursor = result.next_cursor

        if not next_cursor or not records:
            self._cursor = self._cursor.model_copy(update={"after": None, "has_more": False})
            self._state = PageState.DONE
            return

        depth = cursor_depth(next_cursor)
        if depth is not None and depth >= self._cursor_ceiling:
            new_watermark = records[-1].updated_at
            logger.info(
                "paginator.rolled_over",
                object_type=self._spec.object_type,
                cursor=next_cursor,
                watermark=new_watermark.isoformat(),
            )
            self._cursor = SyncCursor(after=None, watermark_override=new_watermark, has_more=True)
            self._state = PageState.ROLLED_OVER
            return

        self._cursor = self._cursor.model_copy(update={"after": next_cursor})
        self._state = PageState.MORE
