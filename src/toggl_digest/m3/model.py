from __future__ import annotations

from dataclasses import dataclass

NO_PROJECT = "No project"
UNKNOWN_PROJECT = "Unknown project"
NO_CLIENT = "No client"
UNKNOWN_CLIENT = "Unknown client"
NO_DESCRIPTION = "(no description)"


@dataclass(frozen=True)
class GroupedEntry:
    description: str
    total_duration_seconds: int
    rounded_duration_seconds: int | None = None

    @property
    def billed_seconds(self) -> int:
        if self.rounded_duration_seconds is None:
            return self.total_duration_seconds
        return self.rounded_duration_seconds

    @property
    def hours(self) -> float:
        return self.billed_seconds / 3600

    @property
    def label(self) -> str:
        return self.description or NO_DESCRIPTION


@dataclass(frozen=True)
class ProjectSummary:
    project_id: int | None
    project_name: str
    entries: list[GroupedEntry]
    client_id: int | None = None
    client_name: str = NO_CLIENT

    @property
    def total_seconds(self) -> int:
        return sum(e.billed_seconds for e in self.entries)

    @property
    def total_hours(self) -> float:
        return self.total_seconds / 3600


@dataclass(frozen=True)
class ClientSummary:
    client_id: int | None
    client_name: str
    projects: list[ProjectSummary]

    @property
    def total_seconds(self) -> int:
        return sum(p.total_seconds for p in self.projects)

    @property
    def total_hours(self) -> float:
        return self.total_seconds / 3600


@dataclass(frozen=True)
class Summary:
    projects: list[ProjectSummary]
    total_seconds: int

    @property
    def total_hours(self) -> float:
        return self.total_seconds / 3600
