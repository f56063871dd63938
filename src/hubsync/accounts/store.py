"""Account persistence -- abstract store plus a JSON file implementation.

The sync engine only ever reads the domain once per run and writes back
watermarks (and rotated credentials), so the contract is deliberately
small. The JSON store keeps the domain document on disk with restrictive
file permissions because it contains refresh tokens.
"""

from __future__ import annotations

import asyncio
import json
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path

import structlog

from src.hubsync.accounts.schemas import Account, Domain

logger = structlog.get_logger(__name__)


class AccountStore(ABC):
    """Abstract interface for the account/domain persistence store."""

    @abstractmethod
    async def find_domain(self) -> Domain:
        """Load the domain and all of its accounts."""
        ...

    @abstractmethod
    async def save_watermarks(self, account: Account) -> None:
        """Persist the account's last-pulled dates."""
        ...

    @abstractmethod
    async def save_credentials(self, account: Account) -> None:
        """Persist the account's access/refresh token and expiry."""
        ...


class AccountNotFoundError(LookupError):
    """Raised when saving an account the store does not know."""


class JsonAccountStore(AccountStore):
    """Domain document stored as a JSON file.

    Writes go through a temp file and ``os.replace`` so a crash never
    leaves a truncated document behind.

    Args:
        path: Location of the domain JSON file.
    """

    def __init__(self, path: Path | str) -> None:
        self._path = Path(path)
        self._lock = asyncio.Lock()

    async def find_domain(self) -> Domain:
        return await asyncio.to_thread(self._read)

    async def save_watermarks(self, account: Account) -> None:
        await self._update(account, {"last_pulled_dates": account.last_pulled_dates})
        logger.info(
            "store.watermarks_saved",
            hub_id=account.hub_id,
            record_types=sorted(account.last_pulled_dates),
        )

    async def save_credentials(self, account: Account) -> None:
        await self._update(
            account,
            {
                "access_token": account.access_token,
                "refresh_token": account.refresh_token,
                "token_expires_at": account.token_expires_at,
            },
        )
        logger.info("store.credentials_saved", hub_id=account.hub_id)

    async def _update(self, account: Account, fields: dict) -> None:
        async with self._lock:
            domain = await asyncio.to_thread(self._read)
            target = domain.find_account(account.hub_id)
            if target is None:
                raise AccountNotFoundError(f"Account {account.hub_id} not in {self._path}")
            accounts = [
                stored.model_copy(update=fields) if stored is target else stored
                for stored in domain.accounts
            ]
            await asyncio.to_thread(self._write, domain.model_copy(update={"accounts": accounts}))

    def _read(self) -> Domain:
        with open(self._path) as f:
            return Domain.model_validate(json.load(f))

    def _write(self, domain: Domain) -> None:
        content = domain.model_dump_json(indent=2)
        directory = self._path.parent
        fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".domain-", suffix=".json")
        try:
            with os.fdopen(fd, "w") as f:
                f.write(content)
            # Contains refresh tokens
            os.chmod(tmp_path, 0o600)
            os.replace(tmp_path, self._path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise
