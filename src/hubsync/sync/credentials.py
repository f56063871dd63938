"""Credential manager -- access token expiry checks and refresh.

Holds no per-account state. A refresh returns a TokenGrant; applying it to
the account (and to the API client) is the caller's job, see
``AccountSession``.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta, timezone

import structlog

from src.hubsync.accounts.schemas import Account, TokenGrant
from src.hubsync.hubspot.oauth import HubSpotOAuthClient, OAuthError
from src.hubsync.sync.errors import AuthError

logger = structlog.get_logger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class CredentialManager:
    """Refreshes HubSpot access tokens for accounts.

    Args:
        oauth: OAuth client configured with the app's client id/secret.
        clock: Returns the current instant; injectable for tests.
    """

    def __init__(
        self,
        oauth: HubSpotOAuthClient,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._oauth = oauth
        self._clock = clock

    def is_expired(self, account: Account) -> bool:
        return account.is_token_expired(self._clock())

    async def ensure_valid_token(self, account: Account) -> TokenGrant:
        """Return the account's current token, or a fresh one when its expiry is not known to be ahead."""
        if account.access_token and account.token_expires_at is not None and not self.is_expired(account):
            return TokenGrant(
                access_token=account.access_token,
                expires_at=account.token_expires_at,
            )
        return await self.refresh(account)

    async def refresh(self, account: Account) -> TokenGrant:
        """Exchange the account's refresh token for a new access token.

        Raises:
            AuthError: If HubSpot rejects the refresh token or the token
                endpoint cannot be reached.
        """
        try:
            tokens = await self._oauth.refresh_tokens(account.refresh_token)
        except OAuthError as exc:
            logger.warning(
                "credentials.refresh_failed",
                hub_id=account.hub_id,
                error_code=exc.error_code,
            )
            raise AuthError(
                f"Token refresh failed for account {account.hub_id}: {exc}",
                hub_id=account.hub_id,
                error_code=exc.error_code,
            ) from exc

        grant = TokenGrant(
            access_token=tokens.access_token,
            expires_at=self._clock() + timedelta(seconds=tokens.expires_in),
            refresh_token=tokens.refresh_token,
        )
        logger.info(
            "credentials.refreshed",
            hub_id=account.hub_id,
            expires_at=grant.expires_at.isoformat(),
            token_changed=grant.access_token != account.access_token,
        )
        return grant
