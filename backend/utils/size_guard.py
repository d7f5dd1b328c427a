"""Repository size estimation and enforcement of processing ceilings."""

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from utils.errors import RepositoryTooLargeError
from utils.pipeline_config import MIB, PipelineLimits

logger = logging.getLogger(__name__)

# Work-sizing heuristic, not a measurement.
BYTES_PER_COMMIT_ESTIMATE = 1024


@dataclass(frozen=True)
class RepositorySize:
    size_bytes: int
    estimated_commits: int


def directory_size(path: str | Path) -> int:
    """Recursively sum regular-file sizes under path.

    Symlinks are not followed; unreadable entries are skipped.
    """
    total = 0
    try:
        with os.scandir(path) as entries:
            for entry in entries:
                try:
                    if entry.is_dir(follow_symlinks=False):
                        total += directory_size(entry.path)
                    elif entry.is_file(follow_symlinks=False):
                        total += entry.stat(follow_symlinks=False).st_size
                except OSError:
                    continue
    except OSError:
        return total
    return total


def check_repository_size(repo_path: str | Path) -> RepositorySize:
    """Measure the .git metadata directory of a repository.

    Args:
        repo_path: Repository working tree root.

    Returns:
        RepositorySize with total metadata bytes and a coarse commit estimate.
    """
    size_bytes = directory_size(Path(repo_path) / ".git")
    return RepositorySize(
        size_bytes=size_bytes,
        estimated_commits=size_bytes // BYTES_PER_COMMIT_ESTIMATE,
    )


def commit_limit_for(size: RepositorySize, limits: PipelineLimits) -> int:
    """Enforce the repository size ceiling and derive the commit limit.

    Raises:
        RepositoryTooLargeError: If size_bytes exceeds max_repository_bytes.
    """
    if size.size_bytes > limits.max_repository_bytes:
        raise RepositoryTooLargeError(
            f"Repository too large ({round(size.size_bytes / MIB)}MB). "
            f"Maximum allowed: {limits.max_repository_bytes // MIB}MB"
        )

    limit = max(1, min(size.estimated_commits, limits.max_commits))
    logger.info(
        "Repository metadata is %d bytes, processing up to %d commits",
        size.size_bytes,
        limit,
    )
    return limit
