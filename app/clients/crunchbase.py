"""Client for the Crunchbase v4 organization entity API."""

from __future__ import annotations

import os
import re
from typing import Any

import httpx

from app.models.company import CompanyRecord, TeamMember, TeamMemberSource

_FIELD_IDS = (
    "website_url",
    "founded_on",
    "num_employees_enum",
    "location_identifiers",
    "short_description",
)
_EMPLOYEE_ENUM = re.compile(r"^c_0*(\d+)_(\d+|max)$")
_PERMALINK = re.compile(r"[^a-z0-9]+")


class CrunchbaseError(RuntimeError):
    """Base error for Crunchbase client failures."""

    def __init__(self, message: str, code: str = "CRUNCHBASE_ERROR") -> None:
        super().__init__(message)
        self.code = code


class CrunchbaseRateLimitError(CrunchbaseError):
    def __init__(self, message: str = "Rate limited by Crunchbase") -> None:
        super().__init__(message, code="CRUNCHBASE_429")


class CrunchbaseTimeoutError(CrunchbaseError):
    def __init__(self, message: str = "Crunchbase request timed out") -> None:
        super().__init__(message, code="CRUNCHBASE_TIMEOUT")


class CrunchbaseClient:
    """Looks up an organization by permalink and normalizes it to a CompanyRecord."""

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = "https://api.crunchbase.com/api/v4",
        timeout: float = 10.0,
        http_client: httpx.Client | None = None,
    ) -> None:
        if not api_key:
            raise ValueError("CRUNCHBASE_API_KEY is required to create a CrunchbaseClient.")
        self._api_key = api_key
        self._owns_http_client = http_client is None
        self._http = http_client or httpx.Client(base_url=base_url.rstrip("/"), timeout=timeout)

    @classmethod
    def from_env(cls) -> "CrunchbaseClient":
        return cls(api_key=os.getenv("CRUNCHBASE_API_KEY", ""))

    def close(self) -> None:
        if self._owns_http_client:
            self._http.close()

    def lookup(self, company_name: str) -> CompanyRecord | None:
        permalink = _PERMALINK.sub("-", company_name.strip().lower()).strip("-")
        if not permalink:
            return None
        params = {"field_ids": ",".join(_FIELD_IDS), "card_ids": "founders"}
        headers = {"X-cb-user-key": self._api_key}
        try:
            response = self._http.get(f"/entities/organizations/{permalink}", params=params, headers=headers)
        except httpx.TimeoutException as exc:
            raise CrunchbaseTimeoutError() from exc
        except httpx.HTTPError as exc:
            raise CrunchbaseError(f"HTTP error calling Crunchbase: {exc}") from exc

        if response.status_code == 404:
            return None
        if response.status_code == 429:
            raise CrunchbaseRateLimitError()
        if response.status_code in (408, 504):
            raise CrunchbaseTimeoutError()
        if response.status_code >= 400:
            raise CrunchbaseError(f"Crunchbase request failed: {response.status_code} - {response.text[:200]}")

        try:
            data = response.json()
        except ValueError as exc:
            raise CrunchbaseError("Failed to decode Crunchbase response JSON.", code="CRUNCHBASE_SCHEMA_ERR") from exc
        return parse_organization(data, permalink=permalink)

    def __enter__(self) -> "CrunchbaseClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def parse_organization(data: dict[str, Any], *, permalink: str) -> CompanyRecord:
    """Convert a Crunchbase entity payload to a CompanyRecord."""
    properties = data.get("properties") or {}
    cards = data.get("cards") or {}
    founders: list[TeamMember] = []
    for person in cards.get("founders") or []:
        if not isinstance(person, dict):
            continue
        identifier = person.get("identifier") or {}
        name = (identifier.get("value") or "").strip()
        if not name:
            continue
        linkedin = person.get("linkedin") or {}
        founders.append(
            TeamMember(
                name=name,
                title=(person.get("primary_job_title") or "Founder").strip(),
                linkedin_url=linkedin.get("value") if isinstance(linkedin, dict) else None,
                source=TeamMemberSource.STRUCTURED_DB,
            )
        )

    return CompanyRecord(
        website=_value(properties.get("website_url")) or "",
        founded_year=_founded_year(properties.get("founded_on")),
        employee_range=_employee_range(properties.get("num_employees_enum")),
        location=_location(properties.get("location_identifiers")),
        description=(properties.get("short_description") or "").strip(),
        url=f"https://www.crunchbase.com/organization/{permalink}",
        team_members=founders,
    )


def _value(field: Any) -> str | None:
    if isinstance(field, dict):
        field = field.get("value")
    if isinstance(field, str) and field.strip():
        return field.strip()
    return None


def _founded_year(field: Any) -> int:
    raw = _value(field)
    if not raw or len(raw) < 4 or not raw[:4].isdigit():
        return 0
    return int(raw[:4])


def _employee_range(field: Any) -> str:
    raw = _value(field)
    if not raw:
        return ""
    match = _EMPLOYEE_ENUM.match(raw)
    if not match:
        return raw
    low, high = match.groups()
    if high == "max":
        return f"{int(low)}+"
    return f"{int(low)}-{int(high)}"


def _location(field: Any) -> str:
    if not isinstance(field, list):
        return ""
    parts: dict[str, str] = {}
    for item in field:
        if isinstance(item, dict) and item.get("value"):
            parts.setdefault(item.get("location_type") or "other", str(item["value"]))
    ordered = [parts[key] for key in ("city", "region", "country") if key in parts]
    return ", ".join(ordered[:2])
