"""Deterministic normalization for extracted funding fields."""

from __future__ import annotations

import re
from urllib.parse import urlparse

SLUG_PATTERN = re.compile(r"[^a-z0-9]+")
_WHITESPACE = re.compile(r"\s+")
_CORPORATE_SUFFIX = re.compile(r"\b(Inc|LLC|Ltd|Corp|Corporation)\b\.?", re.IGNORECASE)
_NON_WORD = re.compile(r"[^\w\s-]")
_INVESTOR_DESIGNATIONS = re.compile(r"\b(Ventures|Capital|Partners|Fund|LP|Management)\b", re.IGNORECASE)
_AMOUNT = re.compile(r"(\d+(?:\.\d+)?|\.\d+)\s*(?:(thousand|million|billion|bn|mn|k|m|b)\b)?")
_MULTIPLIERS = {
    "k": 1_000,
    "thousand": 1_000,
    "m": 1_000_000,
    "mn": 1_000_000,
    "million": 1_000_000,
    "b": 1_000_000_000,
    "bn": 1_000_000_000,
    "billion": 1_000_000_000,
}

FUNDING_STAGES: dict[str, str] = {
    "seed": "Seed Round",
    "seed round": "Seed Round",
    "pre-seed": "Pre-Seed",
    "pre seed": "Pre-Seed",
    "series a": "Series A",
    "series b": "Series B",
    "series c": "Series C",
    "series d": "Series D",
    "bridge": "Bridge Round",
    "convertible": "Convertible Note",
    "ipo": "IPO",
    "acquisition": "Acquisition",
}

TECHNOLOGY_THEMES: dict[str, str] = {
    "cloud security": "Cloud Security",
    "endpoint security": "Endpoint Security",
    "network security": "Network Security",
    "identity management": "Identity & Access Management",
    "threat intelligence": "Threat Intelligence",
    "security analytics": "Security Analytics",
    "vulnerability management": "Vulnerability Management",
    "incident response": "Incident Response",
    "compliance": "Compliance & Governance",
    "devsecops": "DevSecOps",
    "zero trust": "Zero Trust",
    "ai security": "AI Security",
}


def parse_amount(value: object) -> int:
    """Parse a money mention such as ``"$10M"`` or ``"5.5 billion"`` to an integer amount.

    Digit-only strings are taken literally. Anything unparsable yields 0.
    """
    if isinstance(value, bool) or value is None:
        return 0
    if isinstance(value, int):
        return max(0, value)
    if isinstance(value, float):
        return max(0, round(value))
    text = str(value).strip()
    if text.isdigit():
        return int(text)
    cleaned = text.lower().replace(",", "")
    match = _AMOUNT.search(cleaned)
    if not match:
        return 0
    number, suffix = match.groups()
    try:
        parsed = float(number)
    except ValueError:
        return 0
    multiplier = _MULTIPLIERS.get(suffix or "", 1)
    return max(0, round(parsed * multiplier))


def normalize_company_name(name: str) -> str:
    """Strip corporate suffixes and punctuation from a company name."""
    without_suffix = _CORPORATE_SUFFIX.sub("", name or "")
    cleaned = _NON_WORD.sub("", without_suffix)
    return _WHITESPACE.sub(" ", cleaned).strip()


def standardize_funding_stage(stage: str) -> str:
    key = _WHITESPACE.sub(" ", (stage or "").strip().lower())
    if key in FUNDING_STAGES:
        return FUNDING_STAGES[key]
    if key.startswith("series-"):
        return FUNDING_STAGES.get(key.replace("-", " ", 1), (stage or "").strip())
    return (stage or "").strip()


def normalize_theme(theme: str) -> str:
    key = _WHITESPACE.sub(" ", (theme or "").strip().lower())
    return TECHNOLOGY_THEMES.get(key, (theme or "").strip())


def clean_investor_name(name: str) -> str:
    def _designation(match: re.Match[str]) -> str:
        word = match.group(0)
        if word.upper() == "LP":
            return "LP"
        return word[:1].upper() + word[1:].lower()

    return _WHITESPACE.sub(" ", _INVESTOR_DESIGNATIONS.sub(_designation, name or "")).strip()


def clamp(value: float, lower: float, upper: float) -> float:
    return max(lower, min(upper, value))


def slugify_company(name: str) -> str:
    """Create a URL-friendly slug for a company name."""
    slug = SLUG_PATTERN.sub("-", (name or "").lower()).strip("-")
    return slug or "company"


def linkedin_company_url(name: str) -> str:
    return f"https://linkedin.com/company/{slugify_company(name)}"


def canonical_domain(url: str) -> str:
    """Extract the registrable domain used for reliability lookups."""
    netloc = urlparse(url if "://" in url else f"https://{url}").netloc.lower()
    if ":" in netloc:
        netloc = netloc.split(":", 1)[0]
    if netloc.startswith("www."):
        netloc = netloc[4:]
    parts = [part for part in netloc.split(".") if part]
    if len(parts) >= 2:
        return ".".join(parts[-2:])
    return netloc
