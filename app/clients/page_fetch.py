"""Fetch web pages and reduce them to readable text."""

from __future__ import annotations

import logging
import re

import httpx
from bs4 import BeautifulSoup

logger = logging.getLogger("app.clients.page_fetch")

_NOISE_TAGS = ("script", "style", "noscript", "nav", "footer", "header", "form", "svg", "iframe")
_WHITESPACE = re.compile(r"\s+")
_USER_AGENT = "Mozilla/5.0 (compatible; FundingVerificationBot/0.1)"


class PageFetcher:
    """HTTP page fetcher. Every failure is reported as ``None``, never raised."""

    def __init__(
        self,
        *,
        timeout: float = 10.0,
        max_bytes: int = 2_000_000,
        http_client: httpx.Client | None = None,
    ) -> None:
        self._owns_http_client = http_client is None
        self._max_bytes = max_bytes
        self._http = http_client or httpx.Client(
            timeout=timeout,
            follow_redirects=True,
            headers={"User-Agent": _USER_AGENT},
        )

    def close(self) -> None:
        if self._owns_http_client:
            self._http.close()

    def fetch_html(self, url: str) -> str | None:
        target = url if "://" in url else f"https://{url}"
        try:
            response = self._http.get(target)
        except httpx.TimeoutException:
            logger.warning("fetch.timeout", extra={"url": target})
            return None
        except httpx.HTTPError as exc:
            logger.warning("fetch.error", extra={"url": target, "error": type(exc).__name__})
            return None
        if response.status_code >= 400:
            logger.info("fetch.http_status", extra={"url": target, "status": response.status_code})
            return None
        content_type = response.headers.get("content-type", "")
        if content_type and "html" not in content_type and "text" not in content_type:
            logger.info("fetch.unsupported_type", extra={"url": target, "content_type": content_type})
            return None
        return response.text[: self._max_bytes]

    def fetch_text(self, url: str) -> str | None:
        html = self.fetch_html(url)
        if html is None:
            return None
        text = html_to_text(html)
        return text or None

    def __enter__(self) -> "PageFetcher":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def html_to_text(html: str) -> str:
    """Collapse an HTML document into whitespace-normalized visible text."""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(_NOISE_TAGS):
        tag.decompose()
    title = soup.title.get_text(" ", strip=True) if soup.title else ""
    body = soup.body or soup
    text = body.get_text(" ", strip=True)
    if title and not text.startswith(title):
        text = f"{title} {text}"
    return _WHITESPACE.sub(" ", text).strip()
