"""Git history parsing for commit ingestion.

This module runs a single `git log --numstat` over the repository and turns
its mixed output (one pipe-delimited header per commit followed by numstat
lines) into CommitRecord and FileRecord objects. Rename detection is off, so
a moved file shows up as a delete of the old path and an add of the new one.
"""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Iterable, Optional

from models.history import CommitRecord, FileRecord
from utils.errors import InvalidParameterError, HistoryReadTimeoutError
from utils.git_runner import run_git
from utils.languages import detect_language, file_extension
from utils.pipeline_config import PipelineLimits
from utils.sanitizer import sanitize_parameter

logger = logging.getLogger(__name__)

LOG_FORMAT = "%H|%s|%an|%ae|%ct"
HEADER_FIELD_COUNT = 5
NUMSTAT_PATTERN = re.compile(r"^(\d+|-)\s+(\d+|-)\s+")

MS_PER_WEEK = 7 * 24 * 60 * 60 * 1000


class ParserState(Enum):
    AWAITING_HEADER = "awaiting_header"
    ACCUMULATING_FILES = "accumulating_files"


@dataclass
class FileChange:
    """Per-commit line counts for one path (one numstat line)."""

    path: str
    lines_added: int
    lines_deleted: int


@dataclass
class ParsedHistory:
    commits: list[CommitRecord] = field(default_factory=list)
    files: dict[str, FileRecord] = field(default_factory=dict)


def _parse_count(value: str) -> int:
    try:
        return int(value.strip())
    except (TypeError, ValueError):
        return 0


def parse_header(line: str) -> Optional[CommitRecord]:
    """Parse a `sha|subject|name|email|epoch` header line.

    The subject may itself contain "|": the first field is the sha and the
    last three are author name, email and commit time.

    Returns:
        CommitRecord with no files, or None if the line has too few fields.
    """
    parts = line.split("|")
    if len(parts) < HEADER_FIELD_COUNT:
        return None

    sha = parts[0].strip()
    author, author_email, epoch = parts[-3], parts[-2], parts[-1]
    message = "|".join(parts[1:-3])
    if not sha:
        return None

    return CommitRecord(
        sha=sha,
        message=message.strip(),
        author=author.strip(),
        author_email=author_email.strip(),
        date=_parse_count(epoch) * 1000,
    )


def parse_numstat(line: str) -> Optional[FileChange]:
    """Parse an `added<TAB>deleted<TAB>path` line.

    Binary files report "-" for both counts; those and any other non-numeric
    count become 0.

    Returns:
        FileChange, or None if the line has no path field.
    """
    parts = line.split("\t", 2)
    if len(parts) < 3 or not parts[2].strip():
        return None
    return FileChange(
        path=parts[2].strip(),
        lines_added=_parse_count(parts[0]),
        lines_deleted=_parse_count(parts[1]),
    )


def _split_path(path: str) -> tuple[str, str, int]:
    segments = path.split("/")
    return segments[-1], "/".join(segments[:-1]), len(segments) - 1


def _change_frequency(record: FileRecord) -> float:
    span_weeks = max(record.last_modified - record.first_seen, MS_PER_WEEK) / MS_PER_WEEK
    return round(record.total_changes / span_weeks, 4)


class HistoryStreamParser:
    """Two-state parser for `git log --pretty=format:... --numstat` output.

    AWAITING_HEADER: no commit is open; numstat lines are dropped.
    ACCUMULATING_FILES: a commit is open; numstat lines add to it.

    A new header, a malformed header, and close() all flush the open commit.
    """

    def __init__(self):
        self.state = ParserState.AWAITING_HEADER
        self._current: Optional[CommitRecord] = None
        self._commits: list[CommitRecord] = []
        self._files: dict[str, FileRecord] = {}
        self.skipped_headers = 0
        self.skipped_file_lines = 0

    def feed(self, raw_line: str) -> None:
        """Consume one line of log output."""
        line = raw_line.strip()
        if not line:
            return

        if NUMSTAT_PATTERN.match(line):
            self._handle_numstat(line)
        elif "|" in line:
            self._handle_header(line)

    def feed_lines(self, lines: Iterable[str]) -> None:
        for line in lines:
            self.feed(line)

    def close(self) -> ParsedHistory:
        """Flush the open commit and return everything parsed so far."""
        self._flush()
        for record in self._files.values():
            record.change_frequency = _change_frequency(record)
        return ParsedHistory(commits=list(self._commits), files=dict(self._files))

    def _flush(self) -> None:
        if self._current is not None:
            self._commits.append(self._current)
        self._current = None
        self.state = ParserState.AWAITING_HEADER

    def _handle_header(self, line: str) -> None:
        commit = parse_header(line)
        self._flush()
        if commit is None:
            self.skipped_headers += 1
            logger.warning("Malformed commit line: %s", line)
            return
        self._current = commit
        self.state = ParserState.ACCUMULATING_FILES

    def _handle_numstat(self, line: str) -> None:
        if self.state is not ParserState.ACCUMULATING_FILES:
            return

        change = parse_numstat(line)
        if change is None:
            self.skipped_file_lines += 1
            return

        try:
            sanitize_parameter(change.path)
        except InvalidParameterError as exc:
            self.skipped_file_lines += 1
            logger.warning("Skipping file with invalid path: %s (%s)", change.path, exc)
            return

        self._apply_change(change)

    def _apply_change(self, change: FileChange) -> None:
        commit = self._current
        commit.files_changed.append(change.path)
        commit.lines_added += change.lines_added
        commit.lines_deleted += change.lines_deleted

        record = self._files.get(change.path)
        if record is None:
            name, directory, depth = _split_path(change.path)
            self._files[change.path] = FileRecord(
                path=change.path,
                name=name,
                directory=directory,
                depth=depth,
                extension=file_extension(change.path),
                language=detect_language(change.path),
                first_seen=commit.date,
                last_modified=commit.date,
                total_changes=1,
                lines_added=change.lines_added,
                lines_deleted=change.lines_deleted,
            )
            return

        record.first_seen = min(record.first_seen, commit.date)
        record.last_modified = max(record.last_modified, commit.date)
        record.total_changes += 1
        record.lines_added += change.lines_added
        record.lines_deleted += change.lines_deleted


def parse_log_output(output: str) -> ParsedHistory:
    """Parse a complete log stream."""
    parser = HistoryStreamParser()
    parser.feed_lines(output.splitlines())
    return parser.close()


async def parse_history(
    repo_path: str | Path, max_commits: int, limits: PipelineLimits
) -> ParsedHistory:
    """Read and parse up to max_commits commits of history.

    Args:
        repo_path: Sanitized repository root.
        max_commits: Commit limit from the size guard.
        limits: Output and timeout ceilings.

    Returns:
        ParsedHistory with commits newest first.

    Raises:
        HistoryReadTimeoutError: If git log exceeds history_timeout.
        OutputTooLargeError: If git log exceeds history_max_output_bytes.
        GitProcessError: If git log fails.
    """
    result = await run_git(
        [
            "log",
            f"--pretty=format:{LOG_FORMAT}",
            "--numstat",
            "--no-renames",
            f"--max-count={max_commits}",
        ],
        repo_path,
        timeout=limits.history_timeout,
        max_output_bytes=limits.history_max_output_bytes,
        timeout_error=HistoryReadTimeoutError,
    )

    parser = HistoryStreamParser()
    parser.feed_lines(result.stdout.splitlines())
    parsed = parser.close()
    logger.info(
        "Parsed %d commits touching %d files (%d malformed headers, %d skipped file lines)",
        len(parsed.commits),
        len(parsed.files),
        parser.skipped_headers,
        parser.skipped_file_lines,
    )
    return parsed
