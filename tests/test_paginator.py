"""Tests for the cursor paginator.

Covers:
- Search request shape: bounds, sort, properties, cursor
- Page ordering and the DONE transition
- Cursor rollover at the result window ceiling
- Single-use iteration
"""

from __future__ import annotations

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from conftest import NOW, make_record
from src.hubsync.sync.paginator import Paginator, cursor_depth, to_epoch_ms
from src.hubsync.sync.record_types import RECORD_TYPE_SPECS
from src.hubsync.sync.schemas import PageState, RecordType, SearchPage

COMPANIES = RECORD_TYPE_SPECS[RecordType.COMPANIES]


def _page(ids: list[int], next_cursor: str | None = None, base=NOW - timedelta(days=2)) -> SearchPage:
    return SearchPage(
        results=[make_record(i, updated_at=base + timedelta(minutes=i)) for i in ids],
        next_cursor=next_cursor,
    )


def _filters(body: dict) -> list[dict]:
    return body["filterGroups"][0]["filters"]


# ── Helpers ───────────────────────────────────────────────────────────────


class TestHelpers:
    """Tests for cursor and timestamp helpers."""

    def test_to_epoch_ms(self):
        assert to_epoch_ms(NOW) == str(int(NOW.timestamp() * 1000))

    def test_cursor_depth_numeric(self):
        assert cursor_depth("9900") == 9900

    def test_cursor_depth_opaque(self):
        """Non-numeric cursors have no depth and never trigger rollover."""
        assert cursor_depth("NTI1Cg==") is None
        assert cursor_depth(None) is None


# ── Request Shape ─────────────────────────────────────────────────────────


class TestBuildRequest:
    """Tests for the search body built from the cursor."""

    def test_first_sync_has_only_upper_bound(self):
        """A null watermark means no GTE filter, only LTE now."""
        paginator = Paginator(COMPANIES, None, NOW, AsyncMock())
        body = paginator.build_request()

        assert _filters(body) == [
            {"propertyName": "hs_lastmodifieddate", "operator": "LTE", "value": to_epoch_ms(NOW)},
        ]
        assert body["sorts"] == [{"propertyName": "hs_lastmodifieddate", "direction": "ASCENDING"}]
        assert body["limit"] == 100
        assert body["properties"] == list(COMPANIES.properties)
        assert "after" not in body

    def test_watermark_becomes_inclusive_lower_bound(self):
        watermark = NOW - timedelta(days=7)
        paginator = Paginator(COMPANIES, watermark, NOW, AsyncMock())
        filters = _filters(paginator.build_request())

        assert filters[0] == {
            "propertyName": "hs_lastmodifieddate",
            "operator": "GTE",
            "value": to_epoch_ms(watermark),
        }
        assert filters[1]["operator"] == "LTE"

    def test_contacts_use_legacy_property(self):
        spec = RECORD_TYPE_SPECS[RecordType.CONTACTS]
        body = Paginator(spec, None, NOW, AsyncMock()).build_request()
        assert _filters(body)[0]["propertyName"] == "lastmodifieddate"


# ── Iteration ─────────────────────────────────────────────────────────────


class TestIteration:
    """Tests for page-by-page iteration."""

    async def test_pages_yielded_in_order_until_done(self):
        fetch = AsyncMock(side_effect=[_page([1, 2], "100"), _page([3, 4], "200"), _page([5])])
        paginator = Paginator(COMPANIES, None, NOW, fetch)

        pages = [page async for page in paginator]

        assert [[r.id for r in p.records] for p in pages] == [["1", "2"], ["3", "4"], ["5"]]
        assert [p.state for p in pages] == [PageState.MORE, PageState.MORE, PageState.DONE]
        assert paginator.state == PageState.DONE
        assert fetch.await_args_list[1].args[0]["after"] == "100"
        assert fetch.await_args_list[2].args[0]["after"] == "200"

    async def test_upper_bound_constant_across_pages(self):
        fetch = AsyncMock(side_effect=[_page([1], "100"), _page([2])])
        paginator = Paginator(COMPANIES, None, NOW, fetch)

        [page async for page in paginator]

        uppers = {_filters(call.args[0])[-1]["value"] for call in fetch.await_args_list}
        assert uppers == {to_epoch_ms(NOW)}

    async def test_empty_page_ends_pass(self):
        """A page with a cursor but no records still ends the pass."""
        fetch = AsyncMock(return_value=SearchPage(results=[], next_cursor="100"))
        paginator = Paginator(COMPANIES, None, NOW, fetch)

        pages = [page async for page in paginator]

        assert len(pages) == 1
        assert pages[0].state == PageState.DONE
        assert fetch.await_count == 1

    async def test_single_use(self):
        paginator = Paginator(COMPANIES, None, NOW, AsyncMock(return_value=_page([1])))
        [page async for page in paginator]

        with pytest.raises(RuntimeError, match="single-use"):
            [page async for page in paginator]

    async def test_fetch_error_propagates(self):
        fetch = AsyncMock(side_effect=RuntimeError("boom"))
        paginator = Paginator(COMPANIES, None, NOW, fetch)

        with pytest.raises(RuntimeError, match="boom"):
            [page async for page in paginator]


# ── Rollover ──────────────────────────────────────────────────────────────


class TestRollover:
    """Tests for the cursor ceiling rollover."""

    async def test_rollover_resets_cursor_and_raises_lower_bound(self):
        """At cursor 9900 the next request restarts with the last record's instant."""
        first = _page([1, 2, 3], "9900")
        last_instant = first.results[-1].updated_at
        fetch = AsyncMock(side_effect=[first, _page([4])])
        paginator = Paginator(COMPANIES, None, NOW, fetch)

        pages = [page async for page in paginator]

        assert pages[0].state == PageState.ROLLED_OVER
        second_body = fetch.await_args_list[1].args[0]
        assert "after" not in second_body
        assert _filters(second_body)[0] == {
            "propertyName": "hs_lastmodifieddate",
            "operator": "GTE",
            "value": to_epoch_ms(last_instant),
        }
        assert pages[1].lower_bound == last_instant

    async def test_rollover_overrides_stored_watermark(self):
        watermark = NOW - timedelta(days=30)
        first = _page([1], "9950")
        fetch = AsyncMock(side_effect=[first, _page([])])
        paginator = Paginator(COMPANIES, watermark, NOW, fetch)

        [page async for page in paginator]

        assert paginator.lower_bound == first.results[-1].updated_at

    async def test_below_ceiling_keeps_cursor(self):
        fetch = AsyncMock(side_effect=[_page([1], "9899"), _page([2])])
        paginator = Paginator(COMPANIES, None, NOW, fetch)

        pages = [page async for page in paginator]

        assert pages[0].state == PageState.MORE
        assert fetch.await_args_list[1].args[0]["after"] == "9899"

    async def test_opaque_cursor_never_rolls_over(self):
        fetch = AsyncMock(side_effect=[_page([1], "abc"), _page([2])])
        paginator = Paginator(COMPANIES, None, NOW, fetch)

        pages = [page async for page in paginator]

        assert pages[0].state == PageState.MORE
        assert fetch.await_args_list[1].args[0]["after"] == "abc"

    async def test_custom_ceiling(self):
        fetch = AsyncMock(side_effect=[_page([1], "200"), _page([2])])
        paginator = Paginator(COMPANIES, None, NOW, fetch, cursor_ceiling=200)

        pages = [page async for page in paginator]

        assert pages[0].state == PageState.ROLLED_OVER
