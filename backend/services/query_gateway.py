"""Ad-hoc git queries against an ingested repository.

Two entry points:
- run_log_query: a parameterized `git log` built from caller filters, each
  filter sanitized before it is placed on the command line.
- run_whitelisted_command: a raw command accepted only if it starts with one
  of the configured read-only subcommands.
"""

import logging
import shlex
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Optional

from models.history import CommitSummary
from utils.errors import CommandNotAllowedError, InvalidParameterError
from utils.git_runner import format_command, run_git
from utils.pipeline_config import PipelineConfig, PipelineLimits
from utils.sanitizer import sanitize_parameter

logger = logging.getLogger(__name__)

PRETTY_LOG_FORMAT = "%H|%s|%an|%ae|%ct|%P"
PRETTY_FIELD_COUNT = 6


class LogFormat(str, Enum):
    PRETTY = "pretty"
    ONELINE = "oneline"
    SHORT = "short"


@dataclass
class LogQuery:
    """Filters for a git log query."""

    format: LogFormat = LogFormat.PRETTY
    stat: bool = False
    numstat: bool = False
    max_count: Optional[int] = None
    since: Optional[str] = None
    until: Optional[str] = None
    author: Optional[str] = None
    grep: Optional[str] = None
    file_path: Optional[str] = None

    def constraints(self) -> dict:
        return {
            "maxCount": self.max_count,
            "since": self.since,
            "until": self.until,
            "author": self.author,
            "grep": self.grep,
            "filePath": self.file_path,
            "stat": self.stat,
            "numstat": self.numstat,
        }


@dataclass
class LogQueryResult:
    command: str
    raw: str
    format: LogFormat
    constraints: dict
    commits: Optional[list[CommitSummary]] = None
    executed_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


@dataclass
class CommandResult:
    command: str
    stdout: str
    stderr: str
    options: dict = field(default_factory=dict)
    executed_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


def parse_log_format(value: str | None) -> LogFormat:
    """Parse a format name, defaulting to pretty.

    Raises:
        InvalidParameterError: For an unknown format.
    """
    if value is None or value == "":
        return LogFormat.PRETTY
    try:
        return LogFormat(value)
    except ValueError as e:
        allowed = ", ".join(f.value for f in LogFormat)
        raise InvalidParameterError(
            f"Invalid format: {value}. Must be one of: {allowed}"
        ) from e


def clamp_max_count(value: Optional[int], limits: PipelineLimits) -> int:
    """Clamp a requested max-count into [1, query_max_count]."""
    if value is None:
        value = limits.query_default_max_count
    return max(1, min(int(value), limits.query_max_count))


def build_log_arguments(query: LogQuery, limits: PipelineLimits) -> list[str]:
    """Build git log arguments for a query.

    Every caller-supplied filter is passed through sanitize_parameter.

    Raises:
        InvalidParameterError: If any filter contains shell metacharacters.
    """
    args = ["log"]

    if query.format is LogFormat.PRETTY:
        args.append(f"--pretty=format:{PRETTY_LOG_FORMAT}")
    elif query.format is LogFormat.ONELINE:
        args.append("--oneline")
    elif query.format is LogFormat.SHORT:
        args.append("--pretty=short")

    if query.stat:
        args.append("--stat")
    if query.numstat:
        args.append("--numstat")

    args.append(f"--max-count={clamp_max_count(query.max_count, limits)}")

    if query.since:
        args.append(f"--since={sanitize_parameter(query.since)}")
    if query.until:
        args.append(f"--until={sanitize_parameter(query.until)}")
    if query.author:
        args.append(f"--author={sanitize_parameter(query.author)}")
    if query.grep:
        args.append(f"--grep={sanitize_parameter(query.grep)}")

    if query.file_path:
        args.extend(["--", sanitize_parameter(query.file_path)])

    return args


def parse_pretty_log(output: str) -> list[CommitSummary]:
    """Parse `%H|%s|%an|%ae|%ct|%P` lines into commit summaries.

    Lines with fewer than six fields are skipped. Extra "|" characters are
    kept in the subject.
    """
    commits: list[CommitSummary] = []
    for line in output.splitlines():
        if not line.strip():
            continue
        parts = line.split("|")
        if len(parts) < PRETTY_FIELD_COUNT:
            logger.warning("Skipping malformed log line: %s", line)
            continue

        sha = parts[0].strip().replace('"', "")
        author, email, timestamp, parents = parts[-4], parts[-3], parts[-2], parts[-1]
        try:
            date = int(timestamp.strip()) * 1000
        except ValueError:
            date = 0

        commits.append(
            CommitSummary(
                sha=sha,
                message="|".join(parts[1:-4]).replace('"', ""),
                author=author.replace('"', ""),
                author_email=email.replace('"', ""),
                date=date,
                parents=[p for p in parents.replace('"', "").split(" ") if p],
            )
        )
    return commits


async def run_log_query(repo_path: Path, query: LogQuery, config: PipelineConfig) -> LogQueryResult:
    """Run a filtered git log and parse it when the format is structured."""
    limits = config.limits
    args = build_log_arguments(query, limits)
    command = format_command(args)
    logger.info("Executing git command: %s", command)

    result = await run_git(
        args,
        repo_path,
        timeout=limits.history_timeout,
        max_output_bytes=limits.history_max_output_bytes,
    )

    commits = None
    if query.format is LogFormat.PRETTY and not query.stat and not query.numstat:
        commits = parse_pretty_log(result.stdout)

    constraints = query.constraints()
    constraints["maxCount"] = clamp_max_count(query.max_count, limits)
    return LogQueryResult(
        command=command,
        raw=result.stdout,
        format=query.format,
        constraints=constraints,
        commits=commits,
    )


def check_command_allowed(command: str, whitelist: tuple[str, ...]) -> list[str]:
    """Validate a raw command against the whitelist.

    The command's leading tokens must equal one whitelist entry token for
    token ("git log --oneline" matches "git log"; "git logx" does not).

    Returns:
        The command split into tokens.

    Raises:
        CommandNotAllowedError: If no whitelist entry matches.
    """
    allowed = list(whitelist)
    try:
        tokens = shlex.split(command) if isinstance(command, str) else []
    except ValueError:
        tokens = []

    for entry in whitelist:
        prefix = entry.split()
        if tokens[:len(prefix)] == prefix:
            return tokens

    raise CommandNotAllowedError(str(command), allowed)


async def run_whitelisted_command(
    repo_path: Path,
    command: str,
    config: PipelineConfig,
    timeout: Optional[float] = None,
    max_output_bytes: Optional[int] = None,
) -> CommandResult:
    """Run a whitelisted read-only git command.

    Caller overrides can only lower the configured timeout and buffer.
    The arguments after the whitelisted prefix are passed to git as-is,
    without a shell.
    """
    tokens = check_command_allowed(command, config.command_whitelist)
    limits = config.limits

    effective_timeout = limits.history_timeout
    if timeout is not None and 0 < timeout < effective_timeout:
        effective_timeout = timeout
    effective_buffer = limits.history_max_output_bytes
    if max_output_bytes is not None and 0 < max_output_bytes < effective_buffer:
        effective_buffer = max_output_bytes

    logger.info("Executing whitelisted git command: %s", command)
    result = await run_git(
        tokens[1:],
        repo_path,
        timeout=effective_timeout,
        max_output_bytes=effective_buffer,
    )
    return CommandResult(
        command=command,
        stdout=result.stdout,
        stderr=result.stderr,
        options={"timeout": effective_timeout, "maxBuffer": effective_buffer},
    )
