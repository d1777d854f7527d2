"""Client for the People Data Labs company enrichment API."""

from __future__ import annotations

import os
from typing import Any

import httpx

from app.models.company import CompanyRecord

_ANGELLIST_HOSTS = ("angel.co/", "wellfound.com/")


class PeopleDataLabsError(RuntimeError):
    """Base error for People Data Labs client failures."""

    def __init__(self, message: str, code: str = "PDL_ERROR") -> None:
        super().__init__(message)
        self.code = code


class PeopleDataLabsRateLimitError(PeopleDataLabsError):
    def __init__(self, message: str = "Rate limited by People Data Labs") -> None:
        super().__init__(message, code="PDL_429")


class PeopleDataLabsTimeoutError(PeopleDataLabsError):
    def __init__(self, message: str = "People Data Labs request timed out") -> None:
        super().__init__(message, code="PDL_TIMEOUT")


class PeopleDataLabsClient:
    """Secondary structured source used to fill gaps left by Crunchbase."""

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = "https://api.peopledatalabs.com/v5",
        timeout: float = 10.0,
        http_client: httpx.Client | None = None,
    ) -> None:
        if not api_key:
            raise ValueError("PDL_API_KEY is required to create a PeopleDataLabsClient.")
        self._api_key = api_key
        self._owns_http_client = http_client is None
        self._http = http_client or httpx.Client(base_url=base_url.rstrip("/"), timeout=timeout)

    @classmethod
    def from_env(cls) -> "PeopleDataLabsClient":
        return cls(api_key=os.getenv("PDL_API_KEY", ""))

    def close(self) -> None:
        if self._owns_http_client:
            self._http.close()

    def lookup(self, company_name: str) -> CompanyRecord | None:
        if not company_name.strip():
            return None
        try:
            response = self._http.get(
                "/company/enrich",
                params={"name": company_name.strip()},
                headers={"X-Api-Key": self._api_key},
            )
        except httpx.TimeoutException as exc:
            raise PeopleDataLabsTimeoutError() from exc
        except httpx.HTTPError as exc:
            raise PeopleDataLabsError(f"HTTP error calling People Data Labs: {exc}") from exc

        if response.status_code == 404:
            return None
        if response.status_code == 429:
            raise PeopleDataLabsRateLimitError()
        if response.status_code in (408, 504):
            raise PeopleDataLabsTimeoutError()
        if response.status_code >= 400:
            raise PeopleDataLabsError(
                f"People Data Labs request failed: {response.status_code} - {response.text[:200]}"
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise PeopleDataLabsError("Failed to decode People Data Labs JSON.", code="PDL_SCHEMA_ERR") from exc
        if not isinstance(data, dict):
            raise PeopleDataLabsError("Unexpected People Data Labs payload.", code="PDL_SCHEMA_ERR")
        return parse_company(data)

    def __enter__(self) -> "PeopleDataLabsClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def parse_company(data: dict[str, Any]) -> CompanyRecord:
    location = data.get("location")
    location_name = location.get("name") if isinstance(location, dict) else location
    profiles = [str(p) for p in data.get("profiles") or [] if p]
    angellist = next((p for p in profiles if any(host in p for host in _ANGELLIST_HOSTS)), None)
    if angellist and "://" not in angellist:
        angellist = f"https://{angellist}"
    founded = data.get("founded")
    return CompanyRecord(
        website=(data.get("website") or "").strip(),
        founded_year=founded if isinstance(founded, int) else 0,
        employee_range=(data.get("size") or "").strip(),
        location=_title_location(location_name),
        description=(data.get("summary") or "").strip(),
        angellist_url=angellist,
    )


def _title_location(value: Any) -> str:
    if not isinstance(value, str):
        return ""
    return ", ".join(part.strip().title() for part in value.split(",") if part.strip())
