"""Shared fixtures for the sync engine tests.

Provides:
- A fixed "now" instant and a clock returning it
- A recording async sleep so backoff delays are asserted, never waited
- Record and account factories
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from src.hubsync.accounts.schemas import Account
from src.hubsync.sync.schemas import Record

NOW = datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


class RecordingSleep:
    """Async stand-in for ``asyncio.sleep`` that records requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


def make_record(
    record_id: int | str,
    created_at: datetime | None = None,
    updated_at: datetime | None = None,
    properties: dict[str, Any] | None = None,
) -> Record:
    created_at = created_at or NOW - timedelta(days=1)
    return Record(
        id=str(record_id),
        created_at=created_at,
        updated_at=updated_at or created_at,
        properties=properties,
    )


def make_account(
    hub_id: str = "hub-1",
    access_token: str = "access-old",
    refresh_token: str = "refresh-1",
    token_expires_at: datetime | None = None,
    last_pulled_dates: dict[str, datetime | None] | None = None,
) -> Account:
    return Account(
        hub_id=hub_id,
        access_token=access_token,
        refresh_token=refresh_token,
        token_expires_at=token_expires_at or NOW + timedelta(hours=1),
        last_pulled_dates=last_pulled_dates or {},
    )


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()
