"""HubSpot API layer -- CRM search/association client and OAuth token refresh.

Provides:
- HubSpotClient: Async CRM client (search, associations, batch reads)
- HubSpotOAuthClient: Refresh-token exchange against /oauth/v1/token
- HubSpotError hierarchy and OAuthError
"""

from src.hubsync.hubspot.client import (
    HubSpotAuthError,
    HubSpotClient,
    HubSpotError,
    HubSpotRateLimitError,
)
from src.hubsync.hubspot.oauth import HubSpotOAuthClient, OAuthError, OAuthTokens

__all__ = [
    "HubSpotAuthError",
    "HubSpotClient",
    "HubSpotError",
    "HubSpotOAuthClient",
    "HubSpotRateLimitError",
    "OAuthError",
    "OAuthTokens",
]
