"""Tests for the fetch retry controller.

Covers:
- Backoff delays of 5s * 2**attempt
- Exhaustion after 5 attempts
- Reactive token refresh only when a known cached expiry is past
- AuthError is never retried
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from conftest import NOW
from src.hubsync.accounts.schemas import Account
from src.hubsync.hubspot.client import HubSpotError
from src.hubsync.sync.credentials import CredentialManager
from src.hubsync.sync.errors import AuthError, FetchExhaustedError
from src.hubsync.sync.retry import RetryController
from src.hubsync.sync.session import AccountSession


def _tokens(expired: bool = False) -> MagicMock:
    tokens = MagicMock()
    tokens.token_expired.return_value = expired
    tokens.refresh_token = AsyncMock()
    return tokens


# ── Backoff ───────────────────────────────────────────────────────────────


class TestBackoff:
    """Tests for retry timing."""

    async def test_success_first_try_no_sleep(self, recording_sleep):
        fetch = AsyncMock(return_value="page")
        controller = RetryController(_tokens(), sleep=recording_sleep)

        assert await controller.call(fetch, "fetch companies page") == "page"
        assert recording_sleep.delays == []
        assert fetch.await_count == 1

    async def test_four_failures_then_success(self, recording_sleep):
        """Delays are 10, 20, 40, 80 seconds and the page is returned."""
        fetch = AsyncMock(side_effect=[HubSpotError("x")] * 4 + ["page"])
        controller = RetryController(_tokens(), sleep=recording_sleep)

        result = await controller.call(fetch, "fetch companies page")

        assert result == "page"
        assert fetch.await_count == 5
        assert recording_sleep.delays == [10, 20, 40, 80]

    async def test_custom_base(self, recording_sleep):
        fetch = AsyncMock(side_effect=[HubSpotError("x"), "page"])
        controller = RetryController(_tokens(), backoff_base=0.5, sleep=recording_sleep)

        await controller.call(fetch, "op")

        assert recording_sleep.delays == [1]


# ── Exhaustion ────────────────────────────────────────────────────────────


class TestExhaustion:
    """Tests for giving up after the last attempt."""

    async def test_five_failures_raise(self, recording_sleep):
        last = HubSpotError("still down", 503)
        fetch = AsyncMock(side_effect=[HubSpotError("down")] * 4 + [last])
        controller = RetryController(_tokens(), sleep=recording_sleep)

        with pytest.raises(FetchExhaustedError) as exc_info:
            await controller.call(fetch, "fetch companies page")

        assert fetch.await_count == 5
        assert exc_info.value.attempts == 5
        assert exc_info.value.last_error is last
        assert "Failed to fetch companies page after 5 attempts. Aborting." in str(exc_info.value)
        assert len(recording_sleep.delays) == 4

    async def test_custom_attempts(self, recording_sleep):
        fetch = AsyncMock(side_effect=HubSpotError("down"))
        controller = RetryController(_tokens(), max_attempts=2, sleep=recording_sleep)

        with pytest.raises(FetchExhaustedError):
            await controller.call(fetch, "op")

        assert fetch.await_count == 2


# ── Token Refresh ─────────────────────────────────────────────────────────


class TestTokenRefresh:
    """Tests for the reactive refresh between attempts."""

    async def test_refresh_when_expired(self, recording_sleep):
        tokens = _tokens(expired=True)
        fetch = AsyncMock(side_effect=[HubSpotError("401", 401), "page"])
        controller = RetryController(tokens, sleep=recording_sleep)

        assert await controller.call(fetch, "op") == "page"
        tokens.refresh_token.assert_awaited_once()

    async def test_no_refresh_when_valid(self, recording_sleep):
        tokens = _tokens(expired=False)
        fetch = AsyncMock(side_effect=[HubSpotError("500", 500), "page"])
        controller = RetryController(tokens, sleep=recording_sleep)

        await controller.call(fetch, "op")

        tokens.refresh_token.assert_not_awaited()

    async def test_no_refresh_after_last_attempt(self, recording_sleep):
        tokens = _tokens(expired=True)
        fetch = AsyncMock(side_effect=HubSpotError("down"))
        controller = RetryController(tokens, sleep=recording_sleep)

        with pytest.raises(FetchExhaustedError):
            await controller.call(fetch, "op")

        assert tokens.refresh_token.await_count == 4

    async def test_refresh_failure_not_retried(self, recording_sleep):
        tokens = _tokens(expired=True)
        tokens.refresh_token.side_effect = AuthError("bad refresh token", hub_id="hub-1")
        fetch = AsyncMock(side_effect=HubSpotError("401", 401))
        controller = RetryController(tokens, sleep=recording_sleep)

        with pytest.raises(AuthError):
            await controller.call(fetch, "op")

        assert fetch.await_count == 1
        assert recording_sleep.delays == []

    async def test_unknown_expiry_never_refreshes(self, recording_sleep):
        """Only a known, past expiry triggers the reactive refresh."""
        oauth = MagicMock()
        oauth.refresh_tokens = AsyncMock()
        manager = CredentialManager(oauth, clock=lambda: NOW)
        account = Account(hub_id="1", access_token="a1", refresh_token="r")
        session = AccountSession(account, MagicMock(), manager)
        fetch = AsyncMock(side_effect=[HubSpotError("401", 401), HubSpotError("500", 500), "page"])

        assert await RetryController(session, sleep=recording_sleep).call(fetch, "op") == "page"

        oauth.refresh_tokens.assert_not_awaited()
