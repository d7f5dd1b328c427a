"""File enrichment: on-disk size, complexity and primary authors.

Both passes run over the full file map in fixed-size batches. Items within a
batch run concurrently; the next batch starts only after every item in the
current one has settled. A failing item is logged and never cancels its
siblings.
"""

import asyncio
import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable, Iterable, Optional

from models.history import FileRecord
from utils.complexity import DELETED_COMPLEXITY, UNREADABLE_COMPLEXITY, calculate_complexity
from utils.errors import PipelineError
from utils.git_runner import run_git
from utils.pipeline_config import PipelineLimits
from utils.sanitizer import is_within, sanitize_parameter

logger = logging.getLogger(__name__)

MAX_AUTHOR_NAME_LENGTH = 100

_SHORTLOG_LINE = re.compile(r"^\s*(\d+)\s+(.+?)\s*$")


@dataclass
class BatchOutcome:
    item: Any
    result: Any = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


async def run_settled_batches(
    items: Iterable[Any],
    worker: Callable[[Any], Awaitable[Any]],
    batch_size: int,
) -> list[BatchOutcome]:
    """Run worker over items, batch_size at a time, collecting every outcome.

    Args:
        items: Work items.
        worker: Coroutine function called once per item.
        batch_size: Number of items in flight at once.

    Returns:
        One BatchOutcome per item, in input order.
    """
    pending = list(items)
    size = max(1, batch_size)
    outcomes: list[BatchOutcome] = []

    for start in range(0, len(pending), size):
        batch = pending[start:start + size]
        results = await asyncio.gather(*(worker(item) for item in batch), return_exceptions=True)
        for item, result in zip(batch, results):
            if isinstance(result, BaseException):
                logger.warning(
                    "Enrichment task failed for %s: %s", getattr(item, "path", item), result
                )
                outcomes.append(BatchOutcome(item=item, error=result))
            else:
                outcomes.append(BatchOutcome(item=item, result=result))

    return outcomes


def _read_text(path: Path) -> str:
    return path.read_text(encoding="utf-8")


async def measure_file(repo_root: Path, record: FileRecord, limits: PipelineLimits) -> None:
    """Fill current_size and complexity for one file.

    Missing files are marked deleted. Files above max_file_bytes and files
    that are not valid UTF-8 get UNREADABLE_COMPLEXITY without being scored.
    """
    resolved = Path(os.path.realpath(repo_root / record.path))
    if not is_within(resolved, repo_root):
        logger.warning("Potential path traversal attempt, skipping file: %s", record.path)
        return

    try:
        stats = await asyncio.to_thread(os.stat, resolved)
    except OSError as exc:
        logger.warning("File not accessible: %s (%s)", record.path, exc)
        record.is_deleted = True
        record.current_size = 0
        record.max_complexity = DELETED_COMPLEXITY
        record.current_complexity = DELETED_COMPLEXITY
        return

    record.current_size = stats.st_size

    if stats.st_size > limits.max_file_bytes:
        record.max_complexity = UNREADABLE_COMPLEXITY
        record.current_complexity = UNREADABLE_COMPLEXITY
        return

    try:
        content = await asyncio.to_thread(_read_text, resolved)
    except (OSError, UnicodeDecodeError) as exc:
        logger.warning("Cannot read file for complexity analysis: %s (%s)", record.path, exc)
        record.max_complexity = UNREADABLE_COMPLEXITY
        record.current_complexity = UNREADABLE_COMPLEXITY
        return

    score = calculate_complexity(content, record.language)
    record.max_complexity = score
    record.current_complexity = score


def parse_shortlog(output: str, limit: int) -> list[str]:
    """Extract author names from `git shortlog -s -n` output, keeping the order."""
    authors: list[str] = []
    for line in output.splitlines():
        match = _SHORTLOG_LINE.match(line)
        if not match:
            continue
        name = match.group(2)
        if 0 < len(name) < MAX_AUTHOR_NAME_LENGTH:
            authors.append(name)
        if len(authors) >= limit:
            break
    return authors


async def extract_primary_authors(
    repo_root: Path, record: FileRecord, limits: PipelineLimits
) -> None:
    """Fill primary_authors with the top contributors to one file.

    Any failure leaves an empty list.
    """
    try:
        path = sanitize_parameter(record.path)
        result = await run_git(
            ["shortlog", "-s", "-n", "HEAD", "--", path],
            repo_root,
            timeout=limits.author_timeout,
            max_output_bytes=limits.author_max_output_bytes,
        )
    except PipelineError as exc:
        logger.warning("Failed to extract authors for file: %s (%s)", record.path, exc)
        record.primary_authors = []
        return

    record.primary_authors = parse_shortlog(result.stdout, limits.max_primary_authors)


async def enrich_files(
    repo_root: Path, files: dict[str, FileRecord], limits: PipelineLimits
) -> dict[str, FileRecord]:
    """Run the size/complexity pass, then the author pass, over every file."""
    records = list(files.values())

    measured = await run_settled_batches(
        records,
        lambda record: measure_file(repo_root, record, limits),
        limits.measure_batch_size,
    )
    attributed = await run_settled_batches(
        records,
        lambda record: extract_primary_authors(repo_root, record, limits),
        limits.author_batch_size,
    )

    failures = sum(not o.ok for o in measured) + sum(not o.ok for o in attributed)
    logger.info("Enriched %d files (%d task failures)", len(records), failures)
    return files
