"""Pydantic schemas for connected HubSpot accounts.

An Account is an immutable snapshot: token refreshes and watermark
advances produce a new Account via ``with_grant`` / ``with_watermark``
instead of mutating shared state.

Stored instants without an offset are read as UTC.
"""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field, field_validator


def as_utc(value: datetime | None) -> datetime | None:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class TokenGrant(BaseModel):
    """Result of a token refresh, applied explicitly by the caller."""

    model_config = ConfigDict(frozen=True)

    access_token: str
    expires_at: datetime
    refresh_token: str | None = None

    @field_validator("expires_at")
    @classmethod
    def _expires_at_utc(cls, value: datetime) -> datetime:
        return as_utc(value)


class Account(BaseModel):
    """One connected HubSpot portal and its sync state."""

    model_config = ConfigDict(frozen=True)

    hub_id: str
    access_token: str = ""
    refresh_token: str
    token_expires_at: datetime | None = None
    # record type name -> last successful sync instant (None = never synced)
    last_pulled_dates: dict[str, datetime | None] = Field(default_factory=dict)

    @field_validator("token_expires_at")
    @classmethod
    def _token_expires_at_utc(cls, value: datetime | None) -> datetime | None:
        return as_utc(value)

    @field_validator("last_pulled_dates")
    @classmethod
    def _last_pulled_dates_utc(cls, value: dict[str, datetime | None]) -> dict[str, datetime | None]:
        return {record_type: as_utc(instant) for record_type, instant in value.items()}

    def watermark_for(self, record_type: str) -> datetime | None:
        return self.last_pulled_dates.get(record_type)

    def is_token_expired(self, now: datetime) -> bool:
        """True only when a known expiry is already past."""
        return self.token_expires_at is not None and now > self.token_expires_at

    def with_grant(self, grant: TokenGrant) -> Account:
        update = {
            "access_token": grant.access_token,
            "token_expires_at": grant.expires_at,
        }
        if grant.refresh_token:
            update["refresh_token"] = grant.refresh_token
        return self.model_copy(update=update)

    def with_watermark(self, record_type: str, instant: datetime) -> Account:
        return self.model_copy(
            update={"last_pulled_dates": {**self.last_pulled_dates, record_type: as_utc(instant)}}
        )


class Domain(BaseModel):
    """A customer domain and its HubSpot integration accounts."""

    api_key: str
    accounts: list[Account] = Field(default_factory=list)

    def find_account(self, hub_id: str) -> Account | None:
        for account in self.accounts:
            if account.hub_id == hub_id:
                return account
        return None
