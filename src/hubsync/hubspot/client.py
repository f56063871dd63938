"""HubSpot CRM API client.

Thin async wrapper over the handful of CRM v3/v4 endpoints the sync engine
needs: object search, contact-to-company association batch reads,
meeting-to-contact associations, and contact batch reads. Retries are not
done here; the sync engine owns retry policy so that token refresh and
backoff stay in one place.
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from src.hubsync.sync.schemas import Record, SearchPage

logger = structlog.get_logger(__name__)

HUBSPOT_API_BASE = "https://api.hubapi.com"


class HubSpotError(Exception):
    """Base exception for HubSpot API errors."""

    def __init__(self, message: str, status_code: int | None = None, response: dict | None = None):
        self.message = message
        self.status_code = status_code
        self.response = response
        super().__init__(self.message)


class HubSpotAuthError(HubSpotError):
    """Access token rejected (401)."""


class HubSpotRateLimitError(HubSpotError):
    """Rate limit exceeded (429)."""


class HubSpotClient:
    """Async client for the HubSpot CRM API.

    The access token can be swapped at any time with ``set_access_token``;
    the next request uses the new token.

    Usage:
        async with HubSpotClient(access_token) as client:
            page = await client.search("companies", body)
    """

    def __init__(
        self,
        access_token: str = "",
        base_url: str = HUBSPOT_API_BASE,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._access_token = access_token
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers={"Content-Type": "application/json"},
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> HubSpotClient:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    def set_access_token(self, access_token: str) -> None:
        self._access_token = access_token

    async def _request(
        self,
        method: str,
        path: str,
        params: dict | None = None,
        json: dict | None = None,
    ) -> dict[str, Any]:
        """Make an API request with error mapping."""
        try:
            response = await self._client.request(
                method=method,
                url=path,
                params=params,
                json=json,
                headers={"Authorization": f"Bearer {self._access_token}"},
            )
        except httpx.HTTPError as exc:
            logger.warning("hubspot.request_failed", method=method, path=path, error=str(exc))
            raise HubSpotError(f"Request to {path} failed: {exc}") from exc

        body = _json_or_none(response)

        if response.status_code == 401:
            raise HubSpotAuthError("Access token expired or invalid", 401, body)

        if response.status_code == 429:
            raise HubSpotRateLimitError("Rate limit exceeded", 429, body)

        if response.is_error:
            raise HubSpotError(
                f"API error: {response.status_code}",
                response.status_code,
                body,
            )

        return body or {}

    # ── Search ─────────────────────────────────────────────────────────────

    async def search(self, object_type: str, body: dict[str, Any]) -> SearchPage:
        """Run a CRM search for ``object_type`` and return one page."""
        data = await self._request("POST", f"/crm/v3/objects/{object_type}/search", json=body)
        next_cursor = (data.get("paging") or {}).get("next", {}).get("after")
        return SearchPage(
            results=[Record.model_validate(item) for item in data.get("results") or []],
            next_cursor=str(next_cursor) if next_cursor is not None else None,
        )

    # ── Associations ───────────────────────────────────────────────────────

    async def get_contact_company_ids(self, contact_ids: list[str]) -> dict[str, str]:
        """Map each contact id to its first associated company id.

        Contacts without an association are absent from the result.
        """
        if not contact_ids:
            return {}

        data = await self._request(
            "POST",
            "/crm/v3/associations/CONTACTS/COMPANIES/batch/read",
            json={"inputs": [{"id": contact_id} for contact_id in contact_ids]},
        )

        associations: dict[str, str] = {}
        for result in data.get("results") or []:
            source = result.get("from")
            targets = result.get("to") or []
            if source and targets:
                associations[str(source["id"])] = str(targets[0]["id"])
        return associations

    async def get_meeting_contact_ids(self, meeting_id: str) -> list[str]:
        """Return ids of contacts associated with a meeting."""
        data = await self._request(
            "GET",
            f"/crm/v4/objects/meetings/{meeting_id}/associations/contacts",
            params={"limit": 500},
        )
        return [
            str(item["toObjectId"])
            for item in data.get("results") or []
            if item.get("toObjectId")
        ]

    # ── Batch Reads ────────────────────────────────────────────────────────

    async def get_contact_emails(self, contact_ids: list[str]) -> list[str]:
        """Batch read contacts and return their non-empty emails."""
        if not contact_ids:
            return []

        data = await self._request(
            "POST",
            "/crm/v3/objects/contacts/batch/read",
            json={
                "properties": ["email"],
                "inputs": [{"id": contact_id} for contact_id in contact_ids],
            },
        )
        emails = []
        for result in data.get("results") or []:
            email = (result.get("properties") or {}).get("email")
            if email:
                emails.append(email)
        return emails


def _json_or_none(response: httpx.Response) -> dict | None:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return {"raw_response": response.text[:500]}
