"""Retry controller for page fetches.

Every HubSpot fetch in a pass goes through ``RetryController.call``:
up to 5 attempts, exponential backoff of ``5s * 2**attempt`` with no jitter
and no cap, and a reactive token refresh when a fetch fails while the cached
token expiry is already in the past.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Protocol, TypeVar

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    retry_if_exception_type,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from src.hubsync.core.monitoring import fetch_retries_total
from src.hubsync.sync.errors import AuthError, FetchExhaustedError

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class TokenRefresher(Protocol):
    """What the retry controller needs from the account session."""

    def token_expired(self) -> bool: ...

    async def refresh_token(self) -> None: ...


class RetryController:
    """Bounded retry with token refresh and exponential backoff.

    Args:
        tokens: Session exposing token expiry and refresh.
        max_attempts: Total attempts including the first one.
        backoff_base: Seconds multiplied by ``2**attempt`` between attempts.
        sleep: Async sleep function; tests pass a recorder.
    """

    def __init__(
        self,
        tokens: TokenRefresher,
        max_attempts: int = 5,
        backoff_base: float = 5.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._tokens = tokens
        self._max_attempts = max_attempts
        self._backoff_base = backoff_base
        self._sleep = sleep

    def _retrying(self, operation: str) -> AsyncRetrying:
        def _log_retry(retry_state: RetryCallState) -> None:
            exc = retry_state.outcome.exception() if retry_state.outcome else None
            fetch_retries_total.labels(operation=operation).inc()
            logger.warning(
                "sync.fetch_retry",
                operation=operation,
                attempt=retry_state.attempt_number,
                delay_seconds=retry_state.next_action.sleep if retry_state.next_action else None,
                error=str(exc),
            )

        return AsyncRetrying(
            stop=stop_after_attempt(self._max_attempts),
            # multiplier * 2**(n-1) == backoff_base * 2**n after the n-th failure
            wait=wait_exponential(multiplier=self._backoff_base * 2),
            retry=retry_if_exception_type(Exception) & retry_if_not_exception_type(AuthError),
            before_sleep=_log_retry,
            sleep=self._sleep,
        )

    async def call(self, fetch: Callable[[], Awaitable[T]], operation: str) -> T:
        """Run ``fetch`` under the retry policy.

        Raises:
            AuthError: A token refresh failed; not retried.
            FetchExhaustedError: Every attempt failed.
        """
        try:
            async for attempt in self._retrying(operation):
                with attempt:
                    try:
                        result = await fetch()
                    except AuthError:
                        raise
                    except Exception:
                        is_last = attempt.retry_state.attempt_number >= self._max_attempts
                        if not is_last and self._tokens.token_expired():
                            await self._tokens.refresh_token()
                        raise
        except RetryError as exc:
            last_error = exc.last_attempt.exception()
            logger.error(
                "sync.fetch_exhausted",
                operation=operation,
                attempts=self._max_attempts,
                error=str(last_error),
            )
            raise FetchExhaustedError(operation, self._max_attempts, last_error) from last_error

        return result
