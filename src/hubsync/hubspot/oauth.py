"""OAuth 2.0 refresh-token client for the HubSpot app.

Only the refresh grant is needed: accounts are connected elsewhere and
the sync engine holds their refresh tokens.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import httpx
import structlog

logger = structlog.get_logger(__name__)

HUBSPOT_TOKEN_PATH = "/oauth/v1/token"


@dataclass
class OAuthTokens:
    """Tokens returned by the HubSpot token endpoint."""

    access_token: str
    expires_in: int  # seconds
    refresh_token: str | None = None
    token_type: str = "bearer"


class OAuthError(Exception):
    """OAuth-related error."""

    def __init__(self, message: str, error_code: str | None = None, details: dict | None = None):
        super().__init__(message)
        self.error_code = error_code
        self.details = details or {}


class HubSpotOAuthClient:
    """Exchanges refresh tokens for access tokens.

    Args:
        client_id: HubSpot app client ID (HUBSPOT_CID).
        client_secret: HubSpot app client secret (HUBSPOT_CS).
        base_url: HubSpot API base URL.
        timeout: Request timeout in seconds.
        transport: Optional httpx transport, used by tests.
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        base_url: str = "https://api.hubapi.com",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.client_id = client_id
        self.client_secret = client_secret
        self._base_url = base_url
        self._timeout = timeout
        self._transport = transport

    async def refresh_tokens(self, refresh_token: str) -> OAuthTokens:
        """Refresh access token using refresh token.

        Raises:
            OAuthError: If the endpoint rejects the token, is unreachable,
                or returns an unusable body.
        """
        try:
            async with httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                transport=self._transport,
            ) as client:
                response = await client.post(
                    HUBSPOT_TOKEN_PATH,
                    data={
                        "grant_type": "refresh_token",
                        "client_id": self.client_id,
                        "client_secret": self.client_secret,
                        "refresh_token": refresh_token,
                    },
                    headers={"Content-Type": "application/x-www-form-urlencoded"},
                )
        except httpx.HTTPError as exc:
            raise OAuthError(
                f"Token refresh request failed: {exc}",
                error_code="transport_error",
            ) from exc

        if response.status_code != 200:
            try:
                error_data = response.json() if response.content else {}
            except ValueError:
                error_data = {"raw_response": response.text[:500]}
            logger.warning(
                "hubspot.token_refresh_rejected",
                status_code=response.status_code,
                error=error_data.get("status") or error_data.get("error"),
            )
            raise OAuthError(
                f"Token refresh failed: {response.status_code}",
                error_code=error_data.get("status") or error_data.get("error", "refresh_failed"),
                details=error_data,
            )

        return self._parse_token_response(response.json())

    def _parse_token_response(self, data: dict[str, Any]) -> OAuthTokens:
        """Parse token response from HubSpot.

        Raises:
            OAuthError: If required fields are missing
        """
        try:
            return OAuthTokens(
                access_token=data["access_token"],
                expires_in=int(data["expires_in"]),
                refresh_token=data.get("refresh_token"),
                token_type=data.get("token_type", "bearer"),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise OAuthError(
                f"Invalid token response: {e}",
                error_code="invalid_response",
                details={"response_keys": list(data.keys()) if isinstance(data, dict) else []},
            ) from e
