"""Connected HubSpot accounts and their persistence.

Provides the immutable Account/Domain schemas, the TokenGrant produced by a
token refresh, and the AccountStore interface with its JSON file
implementation.
"""

from src.hubsync.accounts.schemas import Account, Domain, TokenGrant
from src.hubsync.accounts.store import AccountNotFoundError, AccountStore, JsonAccountStore

__all__ = [
    "Account",
    "AccountNotFoundError",
    "AccountStore",
    "Domain",
    "JsonAccountStore",
    "TokenGrant",
]
