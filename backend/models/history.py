"""Data models for ingested commit history.

Records serialize with camelCase aliases (sha, authorEmail, filesChanged,
firstSeen, primaryAuthors, ...) which is the shape the storage layer expects.
Use model_dump(by_alias=True) when handing records over.
"""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class HistoryModel(BaseModel):
    """Base model with camelCase aliases that also accepts field names."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CommitRecord(HistoryModel):
    """One commit parsed from the log stream."""

    sha: str
    message: str
    author: str
    author_email: str
    date: int  # commit time, milliseconds since epoch
    files_changed: list[str] = Field(default_factory=list)
    lines_added: int = 0
    lines_deleted: int = 0
    tags: list[str] = Field(default_factory=list)  # filled by downstream analysis


class FileRecord(HistoryModel):
    """Aggregate of every change to one path within the analyzed window."""

    path: str
    name: str
    directory: str
    depth: int
    extension: str
    language: str | None = None
    first_seen: int
    last_modified: int
    total_changes: int = 1
    lines_added: int = 0
    lines_deleted: int = 0
    change_frequency: float = 0.0  # changes per week
    current_size: int = 0
    max_complexity: int = 0
    current_complexity: int = 0
    primary_authors: list[str] = Field(default_factory=list)
    is_deleted: bool = False


class CommitSummary(HistoryModel):
    """Commit as returned by structured log queries."""

    sha: str
    message: str
    author: str
    author_email: str
    date: int
    parents: list[str] = Field(default_factory=list)


class DateRange(BaseModel):
    """Oldest and newest commit time (ms)."""

    model_config = ConfigDict(populate_by_name=True)

    from_: int = Field(alias="from")
    to: int


class IngestionStats(HistoryModel):
    total_commits: int
    total_files: int
    date_range: DateRange | None = None
    primary_language: str | None = None
