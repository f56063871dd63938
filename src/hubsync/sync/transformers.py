"""Record transformers -- HubSpot records to goal actions.

Each transformer takes one page of records and returns one TransformOutcome
per record, in page order: ``Emitted`` with the actions to queue, or
``Skipped`` with the reason the record produced nothing.

Created vs Updated is decided against the watermark the pass started from:
a record created after it is new, anything else is an update. Company and
meeting actions are shifted 2 seconds earlier than the record instant so
they sort before activity HubSpot ingests for the same change.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta
from typing import Any, TypeVar

import structlog

from src.hubsync.hubspot.client import HubSpotClient
from src.hubsync.sync.schemas import (
    Action,
    ActionName,
    Emitted,
    PropertyScope,
    Record,
    RecordType,
    Skipped,
    SkipReason,
    TransformOutcome,
)

logger = structlog.get_logger(__name__)

T = TypeVar("T")

# Callable that runs a lookup under the pass's retry policy
LookupRunner = Callable[[Callable[[], Awaitable[T]], str], Awaitable[T]]

ACTION_SKEW = timedelta(seconds=2)

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


def is_created(record: Record, prior_watermark: datetime | None) -> bool:
    return prior_watermark is None or record.created_at > prior_watermark


def action_instant(record: Record, created: bool) -> datetime:
    return record.created_at if created else record.updated_at


def parse_score(value: Any) -> int:
    """Leading integer of a score value, 0 when there is none."""
    if value is None:
        return 0
    match = _LEADING_INT.match(str(value))
    return int(match.group(1)) if match else 0


async def _run_direct(lookup: Callable[[], Awaitable[T]], operation: str) -> T:
    return await lookup()


class RecordTransformer(ABC):
    """Base class for per-record-type transformers.

    Args:
        client: HubSpot client for secondary lookups.
        prior_watermark: Watermark the pass started from.
        run_lookup: Runs secondary lookups; the pass supplies its retry
            controller here.
    """

    record_type: RecordType

    def __init__(
        self,
        client: HubSpotClient,
        prior_watermark: datetime | None,
        run_lookup: LookupRunner | None = None,
    ) -> None:
        self._client = client
        self._prior_watermark = prior_watermark
        self._run_lookup = run_lookup or _run_direct

    @abstractmethod
    async def transform_page(self, records: list[Record]) -> list[TransformOutcome]:
        """Transform a page of records, one outcome per record."""
        ...


class CompanyTransformer(RecordTransformer):
    """One company action per record."""

    record_type = RecordType.COMPANIES

    async def transform_page(self, records: list[Record]) -> list[TransformOutcome]:
        return [self.transform(record) for record in records]

    def transform(self, record: Record) -> TransformOutcome:
        if record.properties is None:
            return Skipped(record_id=record.id, reason=SkipReason.MISSING_PROPERTIES)

        created = is_created(record, self._prior_watermark)
        action = Action(
            action_name=ActionName.COMPANY_CREATED if created else ActionName.COMPANY_UPDATED,
            action_date=action_instant(record, created) - ACTION_SKEW,
            scope=PropertyScope.COMPANY,
            properties={
                "company_id": record.id,
                "company_domain": record.prop("domain"),
                "company_industry": record.prop("industry"),
            },
        )
        return Emitted(record_id=record.id, actions=[action])


class ContactTransformer(RecordTransformer):
    """One contact action per record with an email.

    Company associations for the whole page are fetched in one batch call
    before any record is transformed.
    """

    record_type = RecordType.CONTACTS

    async def transform_page(self, records: list[Record]) -> list[TransformOutcome]:
        if not records:
            return []

        contact_ids = [record.id for record in records]
        company_ids = await self._run_lookup(
            lambda: self._client.get_contact_company_ids(contact_ids),
            "read contact company associations",
        )
        return [self.transform(record, company_ids.get(record.id)) for record in records]

    def transform(self, record: Record, company_id: str | None) -> TransformOutcome:
        email = record.prop("email")
        if not email:
            return Skipped(record_id=record.id, reason=SkipReason.MISSING_EMAIL)

        created = is_created(record, self._prior_watermark)
        full_name = f"{record.prop('firstname') or ''} {record.prop('lastname') or ''}".strip()
        action = Action(
            action_name=ActionName.CONTACT_CREATED if created else ActionName.CONTACT_UPDATED,
            action_date=action_instant(record, created),
            identity=email,
            scope=PropertyScope.USER,
            properties={
                "company_id": company_id,
                "contact_name": full_name,
                "contact_title": record.prop("jobtitle"),
                "contact_source": record.prop("hs_analytics_source"),
                "contact_status": record.prop("hs_lead_status"),
                "contact_score": parse_score(record.prop("hubspotscore")),
            },
        )
        return Emitted(record_id=record.id, actions=[action])


class MeetingTransformer(RecordTransformer):
    """One meeting action per attendee email.

    Attendee lookup failures propagate; only an empty attendee list skips
    the record.
    """

    record_type = RecordType.MEETINGS

    async def transform_page(self, records: list[Record]) -> list[TransformOutcome]:
        outcomes: list[TransformOutcome] = []
        for record in records:
            outcomes.append(await self.transform(record))
        return outcomes

    async def transform(self, record: Record) -> TransformOutcome:
        attendee_emails = await self._run_lookup(
            lambda: self.get_attendee_emails(record.id),
            "read meeting attendees",
        )
        if not attendee_emails:
            logger.warning("meetings.skipped_no_attendees", meeting_id=record.id)
            return Skipped(record_id=record.id, reason=SkipReason.NO_ATTENDEES)

        start_time = record.prop("hs_meeting_start_time")
        if not start_time:
            logger.warning("meetings.skipped_missing_start_time", meeting_id=record.id)
            return Skipped(record_id=record.id, reason=SkipReason.MISSING_START_TIME)

        created = is_created(record, self._prior_watermark)
        action_name = ActionName.MEETING_CREATED if created else ActionName.MEETING_UPDATED
        action_date = action_instant(record, created) - ACTION_SKEW
        properties = {
            "meeting_id": record.id,
            "meeting_title": record.prop("hs_meeting_title") or f"Meeting {record.id}",
            "meeting_timestamp": start_time,
        }

        actions = [
            Action(
                action_name=action_name,
                action_date=action_date,
                identity=email,
                scope=PropertyScope.USER,
                properties=properties,
            )
            for email in attendee_emails
        ]
        logger.debug("meetings.actions_built", meeting_id=record.id, attendees=len(actions))
        return Emitted(record_id=record.id, actions=actions)

    async def get_attendee_emails(self, meeting_id: str) -> list[str]:
        contact_ids = await self._client.get_meeting_contact_ids(meeting_id)
        if not contact_ids:
            return []
        return await self._client.get_contact_emails(contact_ids)


TRANSFORMERS: dict[RecordType, type[RecordTransformer]] = {
    RecordType.COMPANIES: CompanyTransformer,
    RecordType.CONTACTS: ContactTransformer,
    RecordType.MEETINGS: MeetingTransformer,
}
