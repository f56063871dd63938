"""Per-account session -- the transient view of one account during a run."""

from __future__ import annotations

from datetime import datetime

import structlog

from src.hubsync.accounts.schemas import Account, TokenGrant
from src.hubsync.hubspot.client import HubSpotClient
from src.hubsync.sync.credentials import CredentialManager

logger = structlog.get_logger(__name__)


class AccountSession:
    """Owns the current Account snapshot and the API client bound to it.

    Grants and watermark advances replace the snapshot; nothing else holds
    a reference that could observe a half-applied change.

    Args:
        account: Account as loaded from the store.
        client: HubSpot client used for this account's requests.
        credentials: Credential manager used for refreshes.
    """

    def __init__(
        self,
        account: Account,
        client: HubSpotClient,
        credentials: CredentialManager,
    ) -> None:
        self._account = account
        self._client = client
        self._credentials = credentials
        self._token_changed = False
        self._client.set_access_token(account.access_token)

    @property
    def account(self) -> Account:
        return self._account

    @property
    def client(self) -> HubSpotClient:
        return self._client

    @property
    def hub_id(self) -> str:
        return self._account.hub_id

    @property
    def token_changed(self) -> bool:
        """True once an applied grant carried a different access token."""
        return self._token_changed

    def token_expired(self) -> bool:
        return self._credentials.is_expired(self._account)

    async def refresh_token(self) -> None:
        """Refresh the access token and apply the grant.

        Raises:
            AuthError: Propagated from the credential manager.
        """
        grant = await self._credentials.refresh(self._account)
        self.apply_grant(grant)

    def apply_grant(self, grant: TokenGrant) -> None:
        if grant.access_token != self._account.access_token:
            self._token_changed = True
        self._account = self._account.with_grant(grant)
        self._client.set_access_token(grant.access_token)

    def advance_watermark(self, record_type: str, instant: datetime) -> None:
        self._account = self._account.with_watermark(record_type, instant)
        logger.debug(
            "session.watermark_advanced",
            hub_id=self.hub_id,
            record_type=record_type,
            watermark=instant.isoformat(),
        )
