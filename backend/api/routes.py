"""API route definitions for commit history ingestion."""

import logging
from functools import lru_cache
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from services.ingestion_service import ingest_remote_repository, ingest_repository
from services.query_gateway import (
    LogQuery,
    parse_log_format,
    run_log_query,
    run_whitelisted_command,
)
from utils.errors import (
    CommandNotAllowedError,
    GitTimeoutError,
    PipelineError,
    RepositoryNotFoundError,
    ValidationError,
)
from utils.git_repository import open_repository
from utils.pipeline_config import PipelineConfig, load_pipeline_config
from utils.sanitizer import sanitize_repository_path

logger = logging.getLogger(__name__)

router = APIRouter()


@lru_cache(maxsize=1)
def get_pipeline_config() -> PipelineConfig:
    """Pipeline configuration, built once per process."""
    return load_pipeline_config()


def _error(status_code: int, error: str, details: str | None = None, **extra) -> JSONResponse:
    content = {"error": error}
    if details is not None:
        content["details"] = details
    content.update(extra)
    return JSONResponse(status_code=status_code, content=content)


def _pipeline_error_response(exc: PipelineError, failure_message: str) -> JSONResponse:
    """Map a pipeline error to a {error, details} payload."""
    if isinstance(exc, CommandNotAllowedError):
        return _error(403, "Command not allowed", allowedCommands=exc.allowed_commands)
    if isinstance(exc, ValidationError):
        return _error(400, exc.message, exc.details)
    if isinstance(exc, RepositoryNotFoundError):
        return _error(404, exc.message, exc.details)
    if isinstance(exc, GitTimeoutError):
        return _error(408, "Git operation timed out", exc.details)
    return _error(500, failure_message, exc.message)


def _resolve_repository(raw_path: str, config: PipelineConfig) -> Path:
    """Sanitize a repository path and check that it is a git repository."""
    repo_root = sanitize_repository_path(raw_path, config.path_policy)
    open_repository(repo_root).close()
    return repo_root


@router.get("/health")
async def health_check() -> dict:
    """
    Lightweight endpoint for uptime checks.

    Returns:
        dict: Health status payload.
    """
    return {"status": "healthy"}


# ============================================================================
# INGESTION ENDPOINTS
# ============================================================================


class ParseRepositoryRequest(BaseModel):
    """Request model for the parse endpoint."""

    model_config = ConfigDict(populate_by_name=True)

    repository_path: Optional[str] = Field(default=None, alias="repositoryPath")
    repository_id: Optional[str] = Field(default=None, alias="repositoryId")


class CloneRepositoryRequest(BaseModel):
    """Request model for the clone-and-parse endpoint."""

    model_config = ConfigDict(populate_by_name=True)

    repository_id: Optional[str] = Field(default=None, alias="repositoryId")
    url: Optional[str] = None


@router.post("/api/git/parse")
async def parse_repository(
    payload: ParseRepositoryRequest,
    config: PipelineConfig = Depends(get_pipeline_config),
):
    """
    Ingest the commit history of a local repository.

    Request body:
        {
            "repositoryPath": "/tmp/checkouts/my-repo",
            "repositoryId": "repo-123"
        }

    Returns:
        {success, data: {commits, files}, stats: {totalCommits, totalFiles, dateRange}}

    Errors:
        400 for a missing field, a rejected path or an oversized repository,
        404 if the repository does not exist, 408 on timeout, 500 otherwise.
    """
    if not payload.repository_path or not payload.repository_id:
        return _error(400, "Repository path and ID are required")

    try:
        result = await ingest_repository(payload.repository_path, payload.repository_id, config)
    except PipelineError as exc:
        logger.warning("Parse failed for %s: %s", payload.repository_id, exc)
        return _pipeline_error_response(exc, "Failed to parse git repository")

    return result.to_response(payload.repository_id)


@router.post("/api/clone")
async def clone_and_parse_repository(
    payload: CloneRepositoryRequest,
    config: PipelineConfig = Depends(get_pipeline_config),
):
    """
    Clone a remote repository into a temporary directory and ingest it.

    Request body:
        {
            "repositoryId": "repo-123",
            "url": "https://github.com/user/repo.git"
        }
    """
    if not payload.repository_id or not payload.url:
        return _error(400, "Repository ID and URL are required")

    try:
        result = await ingest_remote_repository(payload.url, payload.repository_id, config)
    except PipelineError as exc:
        logger.warning("Clone failed for %s: %s", payload.repository_id, exc)
        return _pipeline_error_response(exc, "Failed to clone and parse git repository")

    return result.to_response(payload.repository_id)


# ============================================================================
# QUERY ENDPOINTS
# ============================================================================


@router.get("/api/git/{repository_id}/log")
async def git_log(
    repository_id: str,
    path: Optional[str] = None,
    format: Optional[str] = "pretty",
    max_count: Optional[int] = Query(default=None, alias="max-count"),
    since: Optional[str] = None,
    until: Optional[str] = None,
    author: Optional[str] = None,
    grep: Optional[str] = None,
    file: Optional[str] = None,
    stat: bool = False,
    numstat: bool = False,
    config: PipelineConfig = Depends(get_pipeline_config),
):
    """
    Run a filtered `git log` and return parsed commits or raw output.

    The constructed command and the resolved filters are echoed back.
    """
    if not path:
        return _error(400, "Repository path is required")

    try:
        repo_root = _resolve_repository(path, config)
        query = LogQuery(
            format=parse_log_format(format),
            stat=stat,
            numstat=numstat,
            max_count=max_count,
            since=since,
            until=until,
            author=author,
            grep=grep,
            file_path=file,
        )
        result = await run_log_query(repo_root, query, config)
    except PipelineError as exc:
        logger.warning("Git log query failed for %s: %s", repository_id, exc)
        return _pipeline_error_response(exc, "Failed to execute git log")

    data: dict = {"raw": result.raw}
    if result.commits is not None:
        data["commits"] = [c.model_dump(by_alias=True) for c in result.commits]

    return {
        "success": True,
        "repositoryId": repository_id,
        "command": result.command,
        "data": data,
        "metadata": {
            "executedAt": result.executed_at,
            "format": result.format.value,
            "constraints": result.constraints,
        },
    }


class CommandOptions(BaseModel):
    """Optional ceilings for a raw command; they can only be lowered."""

    model_config = ConfigDict(populate_by_name=True)

    timeout: Optional[float] = None  # seconds
    max_buffer: Optional[int] = Field(default=None, alias="maxBuffer")


class GitCommandRequest(BaseModel):
    """Request model for the whitelisted command endpoint."""

    model_config = ConfigDict(populate_by_name=True)

    command: Optional[str] = None
    repo_path: Optional[str] = Field(default=None, alias="repoPath")
    options: CommandOptions = Field(default_factory=CommandOptions)


@router.post("/api/git/{repository_id}/log")
async def git_command(
    repository_id: str,
    payload: GitCommandRequest,
    config: PipelineConfig = Depends(get_pipeline_config),
):
    """
    Run a raw read-only git command.

    The command must start with a whitelisted subcommand (git log, git show,
    git diff, ...); otherwise 403 is returned together with the whitelist.
    """
    if not payload.repo_path or not payload.command:
        return _error(400, "Repository path and command are required")

    try:
        repo_root = _resolve_repository(payload.repo_path, config)
        result = await run_whitelisted_command(
            repo_root,
            payload.command,
            config,
            timeout=payload.options.timeout,
            max_output_bytes=payload.options.max_buffer,
        )
    except PipelineError as exc:
        logger.warning("Git command failed for %s: %s", repository_id, exc)
        return _pipeline_error_response(exc, "Failed to execute git command")

    return {
        "success": True,
        "repositoryId": repository_id,
        "command": result.command,
        "data": {"stdout": result.stdout, "stderr": result.stderr},
        "metadata": {
            "executedAt": result.executed_at,
            "options": result.options,
        },
    }
