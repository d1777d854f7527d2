"""Domain models for company profiling."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class TeamMemberSource(str, Enum):
    """Where a team member was found."""

    STRUCTURED_DB = "structured_db"
    WEB_SEARCH = "web_search"
    WEBSITE = "website"
    MANUAL = "manual"


class TeamMember(BaseModel):
    name: str = Field(..., min_length=1)
    title: str = ""
    linkedin_url: str | None = None
    source: TeamMemberSource

    model_config = ConfigDict(frozen=True)


class CompanyRecord(BaseModel):
    """Normalized lookup result from a structured company database."""

    website: str = ""
    founded_year: int = 0
    employee_range: str = ""
    location: str = ""
    description: str = ""
    url: str | None = None
    angellist_url: str | None = None
    team_members: list[TeamMember] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True)


class CompanyProfile(BaseModel):
    """Firmographic profile built incrementally across profiling tiers."""

    name: str
    website: str = ""
    founded_year: int = 0
    employee_range: str = ""
    location: str = ""
    description: str = ""
    team_members: list[TeamMember] = Field(default_factory=list)
    crunchbase_url: str | None = None
    angellist_url: str | None = None

    def missing_fields(self) -> list[str]:
        missing: list[str] = []
        if not self.website:
            missing.append("website")
        if not self.founded_year:
            missing.append("founded_year")
        if not self.employee_range:
            missing.append("employee_range")
        if not self.location:
            missing.append("location")
        if not self.description:
            missing.append("description")
        if not self.team_members:
            missing.append("team")
        return missing

    @property
    def is_complete(self) -> bool:
        return not self.missing_fields()

    def add_team_members(self, members: list[TeamMember]) -> int:
        """Append members whose names are not already present; return how many were added."""
        existing = {member.name.strip().lower() for member in self.team_members}
        added = 0
        for member in members:
            key = member.name.strip().lower()
            if not key or key in existing:
                continue
            existing.add(key)
            self.team_members.append(member)
            added += 1
        return added
