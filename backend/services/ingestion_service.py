"""Commit history ingestion pipeline.

Sanitize the repository path, enforce the size ceiling, read and parse the
history, then enrich every touched file. The finished record set is returned
to the caller, which hands it to the storage layer; nothing is cached between
runs.
"""

import asyncio
import logging
import shutil
import tempfile
from dataclasses import dataclass, field
from pathlib import Path

from models.history import CommitRecord, DateRange, FileRecord, IngestionStats
from services.enrichment import enrich_files
from utils.git_parser import ParsedHistory, parse_history
from utils.git_repository import (
    clone_repository,
    has_commits,
    open_repository,
    validate_repository_id,
    validate_repository_url,
)
from utils.languages import detect_primary_language
from utils.pipeline_config import PipelineConfig
from utils.sanitizer import sanitize_repository_path
from utils.size_guard import check_repository_size, commit_limit_for

logger = logging.getLogger(__name__)


@dataclass
class IngestionResult:
    """Records produced by one ingestion run."""

    commits: list[CommitRecord] = field(default_factory=list)
    files: dict[str, FileRecord] = field(default_factory=dict)

    @property
    def stats(self) -> IngestionStats:
        date_range = None
        if self.commits:
            dates = [c.date for c in self.commits]
            date_range = DateRange(from_=min(dates), to=max(dates))
        return IngestionStats(
            total_commits=len(self.commits),
            total_files=len(self.files),
            date_range=date_range,
            primary_language=detect_primary_language(self.files.keys()),
        )

    def to_response(self, repository_id: str) -> dict:
        """Build the JSON payload handed to the storage layer."""
        commits = []
        for commit in self.commits:
            payload = commit.model_dump(by_alias=True)
            payload.update(
                repositoryId=repository_id,
                aiSummary=None,
                businessImpact=None,
                complexityScore=None,
            )
            commits.append(payload)

        files = []
        for record in self.files.values():
            payload = record.model_dump(by_alias=True)
            payload["repositoryId"] = repository_id
            files.append(payload)

        return {
            "success": True,
            "data": {"commits": commits, "files": files},
            "stats": self.stats.model_dump(by_alias=True),
        }


async def ingest_repository(
    repository_path: str, repository_id: str, config: PipelineConfig
) -> IngestionResult:
    """Ingest the history of a local repository.

    Args:
        repository_path: Caller-supplied path; sanitized here.
        repository_id: Caller's identifier, used only for logging.
        config: Pipeline configuration.

    Returns:
        IngestionResult with commits newest first and enriched files.

    Raises:
        InvalidPathError: If the path fails sanitization.
        RepositoryNotFoundError: If the path is missing or not a repository.
        RepositoryTooLargeError: If .git exceeds the size ceiling.
        ProcessingError: If the history read fails or times out.
    """
    repo_root = sanitize_repository_path(repository_path, config.path_policy)
    repo = open_repository(repo_root)
    try:
        empty = not has_commits(repo)
    finally:
        repo.close()

    if empty:
        logger.info("Repository %s has no commits", repository_id)
        return IngestionResult()

    size = await asyncio.to_thread(check_repository_size, repo_root)
    max_commits = commit_limit_for(size, config.limits)

    parsed: ParsedHistory = await parse_history(repo_root, max_commits, config.limits)
    await enrich_files(repo_root, parsed.files, config.limits)

    logger.info(
        "Ingested repository %s: %d commits, %d files",
        repository_id,
        len(parsed.commits),
        len(parsed.files),
    )
    return IngestionResult(commits=parsed.commits, files=parsed.files)


def clone_directory_for(repository_id: str, config: PipelineConfig) -> Path:
    """Create a fresh working directory for one clone of a repository.

    Every call gets its own directory under the clone root, so concurrent
    requests for the same repository never share or remove each other's tree.
    """
    clone_root = sanitize_repository_path(str(config.clone_root), config.path_policy)
    clone_root.mkdir(parents=True, exist_ok=True)
    prefix = f"{validate_repository_id(repository_id)}-"
    return Path(tempfile.mkdtemp(prefix=prefix, dir=clone_root))


async def ingest_remote_repository(
    url: str, repository_id: str, config: PipelineConfig
) -> IngestionResult:
    """Clone a remote repository, ingest it, and remove the clone.

    The clone root must itself pass the path sanitizer.
    """
    validate_repository_url(url)
    validate_repository_id(repository_id)
    work_dir = clone_directory_for(repository_id, config)

    try:
        repo_dir = sanitize_repository_path(str(work_dir / "repo"), config.path_policy)
        await clone_repository(url, repo_dir, config.limits)
        return await ingest_repository(str(repo_dir), repository_id, config)
    finally:
        shutil.rmtree(work_dir, ignore_errors=True)
