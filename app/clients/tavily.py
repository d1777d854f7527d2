"""Web search provider backed by the Tavily search API."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any

import httpx


class TavilyError(RuntimeError):
    """Base error for Tavily client failures."""

    def __init__(self, message: str, code: str = "TAVILY_ERROR") -> None:
        super().__init__(message)
        self.code = code


class TavilyRateLimitError(TavilyError):
    """Raised when Tavily responds with HTTP 429."""

    def __init__(self, message: str = "Rate limited by Tavily") -> None:
        super().__init__(message, code="TAVILY_429")


class TavilyTimeoutError(TavilyError):
    """Raised when a Tavily request times out."""

    def __init__(self, message: str = "Tavily request timed out") -> None:
        super().__init__(message, code="TAVILY_TIMEOUT")


class TavilySchemaError(TavilyError):
    """Raised when the Tavily response schema does not match expectations."""

    def __init__(self, message: str = "Unexpected Tavily response schema") -> None:
        super().__init__(message, code="TAVILY_SCHEMA_ERR")


@dataclass(frozen=True)
class SearchHit:
    """One ranked search result."""

    url: str
    title: str
    snippet: str = ""


class TavilyClient:
    """Minimal Tavily API client returning ordered search hits."""

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = "https://api.tavily.com",
        timeout: float = 10.0,
        http_client: httpx.Client | None = None,
    ) -> None:
        if not api_key:
            raise ValueError("TAVILY_API_KEY is required to create a TavilyClient.")
        self._api_key = api_key
        self._owns_http_client = http_client is None
        self._http = http_client or httpx.Client(base_url=base_url.rstrip("/"), timeout=timeout)

    @classmethod
    def from_env(cls) -> "TavilyClient":
        """Instantiate the client using the TAVILY_API_KEY environment variable."""
        return cls(api_key=os.getenv("TAVILY_API_KEY", ""))

    def close(self) -> None:
        if self._owns_http_client:
            self._http.close()

    def search(self, query: str, *, max_results: int = 5) -> list[SearchHit]:
        """Execute a web search and return hits in provider rank order."""
        if max_results <= 0:
            raise ValueError("max_results must be a positive integer.")

        payload: dict[str, Any] = {
            "query": query,
            "search_depth": "basic",
            "max_results": max_results,
        }
        headers = {"Authorization": f"Bearer {self._api_key}"}

        try:
            response = self._http.post("/search", json=payload, headers=headers)
        except httpx.TimeoutException as exc:
            raise TavilyTimeoutError() from exc
        except httpx.HTTPError as exc:
            raise TavilyError(f"HTTP error calling Tavily: {exc}") from exc

        if response.status_code == 429:
            raise TavilyRateLimitError()
        if response.status_code in (408, 504):
            raise TavilyTimeoutError()
        if response.status_code == 404:
            return []
        if response.status_code >= 400:
            raise TavilyError(f"Tavily request failed: {response.status_code} - {_error_detail(response)}")

        try:
            data = response.json()
        except ValueError as exc:
            raise TavilySchemaError("Failed to decode Tavily response JSON.") from exc

        results = data.get("results") if isinstance(data, dict) else None
        if not isinstance(results, list):
            raise TavilySchemaError("`results` missing from Tavily response.")

        hits: list[SearchHit] = []
        for item in results:
            if not isinstance(item, dict):
                raise TavilySchemaError("Entries in `results` must be JSON objects.")
            url = item.get("url") or item.get("link")
            title = (item.get("title") or "").strip()
            if not url or not title:
                continue
            snippet = (item.get("content") or item.get("snippet") or "").strip()
            hits.append(SearchHit(url=url, title=title, snippet=snippet))
        return hits

    def __enter__(self) -> "TavilyClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict):
        detail = body.get("message") or body.get("detail")
        if detail:
            return str(detail)
    return response.text[:200]
