"""Static search configuration for each synced HubSpot object type."""

from __future__ import annotations

from dataclasses import dataclass

from src.hubsync.sync.schemas import RecordType


@dataclass(frozen=True)
class RecordTypeSpec:
    """How to search one HubSpot object type.

    Attributes:
        record_type: Key used for watermarks and pass toggles.
        object_type: Path segment of the CRM search endpoint.
        modified_property: Property filtered and sorted on.
        properties: Properties requested on each search page.
    """

    record_type: RecordType
    object_type: str
    modified_property: str
    properties: tuple[str, ...]


RECORD_TYPE_SPECS: dict[RecordType, RecordTypeSpec] = {
    RecordType.COMPANIES: RecordTypeSpec(
        record_type=RecordType.COMPANIES,
        object_type="companies",
        modified_property="hs_lastmodifieddate",
        properties=(
            "name",
            "domain",
            "country",
            "industry",
            "description",
            "annualrevenue",
            "numberofemployees",
            "hs_lead_status",
        ),
    ),
    # Contacts use the legacy property name
    RecordType.CONTACTS: RecordTypeSpec(
        record_type=RecordType.CONTACTS,
        object_type="contacts",
        modified_property="lastmodifieddate",
        properties=(
            "firstname",
            "lastname",
            "jobtitle",
            "email",
            "hubspotscore",
            "hs_lead_status",
            "hs_analytics_source",
            "hs_latest_source",
        ),
    ),
    RecordType.MEETINGS: RecordTypeSpec(
        record_type=RecordType.MEETINGS,
        object_type="meetings",
        modified_property="hs_lastmodifieddate",
        properties=("hs_meeting_title", "hs_meeting_start_time"),
    ),
}
