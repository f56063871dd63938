"""Pydantic schemas for the incremental sync engine.

Defines the structured types that flow through a sync run:
- Enums: RecordType, ActionName, PropertyScope, SkipReason, PageState
- Fetched data: Record, SearchPage
- Pagination state: SyncCursor, Page
- Output: Action, Emitted / Skipped transform outcomes
- Reporting: PassResult, AccountSyncResult, SyncReport
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ── Enums ───────────────────────────────────────────────────────────────────


class RecordType(str, Enum):
    """HubSpot object types the engine knows how to sync."""

    COMPANIES = "companies"
    CONTACTS = "contacts"
    MEETINGS = "meetings"


class ActionName(str, Enum):
    """Fixed set of action names emitted to the goal sink."""

    COMPANY_CREATED = "Company Created"
    COMPANY_UPDATED = "Company Updated"
    CONTACT_CREATED = "Contact Created"
    CONTACT_UPDATED = "Contact Updated"
    MEETING_CREATED = "Meeting Created"
    MEETING_UPDATED = "Meeting Updated"


class PropertyScope(str, Enum):
    """Which property bag the sink payload carries."""

    COMPANY = "company"
    USER = "user"


class SkipReason(str, Enum):
    """Why a record produced no action."""

    MISSING_PROPERTIES = "missing_properties"
    MISSING_EMAIL = "missing_email"
    NO_ATTENDEES = "no_attendees"
    MISSING_START_TIME = "missing_start_time"


class PageState(str, Enum):
    """Paginator state after a page has been fetched."""

    FETCHING = "fetching"
    MORE = "more"
    ROLLED_OVER = "rolled_over"
    DONE = "done"


# ── Fetched Data ────────────────────────────────────────────────────────────


class Record(BaseModel):
    """A HubSpot CRM object as returned by search and batch endpoints.

    ``properties`` is None when HubSpot omitted the bag entirely, which
    is distinct from an empty mapping.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime = Field(alias="updatedAt")
    properties: dict[str, Any] | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, value: Any) -> str:
        return str(value)

    def prop(self, name: str) -> Any:
        """Return a property value or None when absent."""
        if not self.properties:
            return None
        return self.properties.get(name)


class SearchPage(BaseModel):
    """One page of search results plus the cursor for the next page."""

    results: list[Record] = Field(default_factory=list)
    next_cursor: str | None = None


# ── Pagination State ────────────────────────────────────────────────────────


class SyncCursor(BaseModel):
    """Transient pagination state for one record-type pass."""

    after: str | None = None
    watermark_override: datetime | None = None
    has_more: bool = True


class Page(BaseModel):
    """A fetched page as yielded by the paginator."""

    records: list[Record]
    state: PageState
    after: str | None = None
    lower_bound: datetime | None = None


# ── Actions ─────────────────────────────────────────────────────────────────


class Action(BaseModel):
    """One analytics event derived from a record change.

    Immutable once constructed. Properties with a None value are dropped
    at construction so the sink never receives nulls.
    """

    model_config = ConfigDict(frozen=True)

    action_name: ActionName
    action_date: datetime
    include_in_analytics: int = 0
    identity: str | None = None
    properties: dict[str, Any] = Field(default_factory=dict)
    scope: PropertyScope = PropertyScope.USER

    @field_validator("properties", mode="before")
    @classmethod
    def _drop_null_properties(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return {k: v for k, v in value.items() if v is not None}
        return value

    def to_payload(self) -> dict[str, Any]:
        """Render the goal sink JSON shape for this action."""
        payload: dict[str, Any] = {
            "actionName": self.action_name.value,
            "actionDate": self.action_date.isoformat(),
            "includeInAnalytics": self.include_in_analytics,
        }
        if self.identity is not None:
            payload["identity"] = self.identity
        key = "companyProperties" if self.scope == PropertyScope.COMPANY else "userProperties"
        payload[key] = dict(self.properties)
        return payload


class Emitted(BaseModel):
    """Transform outcome carrying the actions produced for one record."""

    kind: Literal["emitted"] = "emitted"
    record_id: str
    actions: list[Action]


class Skipped(BaseModel):
    """Transform outcome for a record that deliberately produced nothing."""

    kind: Literal["skipped"] = "skipped"
    record_id: str
    reason: SkipReason


TransformOutcome = Union[Emitted, Skipped]


# ── Reporting ───────────────────────────────────────────────────────────────


class PassResult(BaseModel):
    """Summary of one completed record-type pass."""

    record_type: RecordType
    watermark: datetime
    pages: int = 0
    records: int = 0
    actions: int = 0
    rollovers: int = 0
    skipped: dict[SkipReason, int] = Field(default_factory=dict)

    def count_skip(self, reason: SkipReason) -> None:
        self.skipped[reason] = self.skipped.get(reason, 0) + 1

    @property
    def skipped_total(self) -> int:
        return sum(self.skipped.values())


class AccountSyncResult(BaseModel):
    """Outcome of syncing one account."""

    hub_id: str
    passes: list[PassResult] = Field(default_factory=list)
    failed_passes: dict[RecordType, str] = Field(default_factory=dict)
    token_refresh_failed: bool = False
    drained: bool = False
    watermarks_persisted: bool = False
    credentials_persisted: bool = False


class SyncReport(BaseModel):
    """Outcome of a whole run over every account of the domain."""

    accounts: list[AccountSyncResult] = Field(default_factory=list)

    @property
    def actions(self) -> int:
        return sum(p.actions for a in self.accounts for p in a.passes)
