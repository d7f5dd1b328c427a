"""Repository access helpers: opening local repositories and cloning remotes."""

import logging
import re
import shutil
from pathlib import Path

from git import InvalidGitRepositoryError, NoSuchPathError, Repo

from utils.errors import (
    InvalidParameterError,
    InvalidRepositoryUrlError,
    RepositoryNotFoundError,
)
from utils.git_runner import run_git
from utils.pipeline_config import PipelineLimits

logger = logging.getLogger(__name__)

_OWNER_REPO = r"[a-zA-Z0-9_.-]+/[a-zA-Z0-9_.-]+"

REPOSITORY_URL_PATTERNS = [
    re.compile(rf"^https://github\.com/{_OWNER_REPO}(\.git)?$"),
    re.compile(rf"^git@github\.com:{_OWNER_REPO}\.git$"),
    re.compile(rf"^https://gitlab\.com/{_OWNER_REPO}(\.git)?$"),
    re.compile(rf"^https://bitbucket\.org/{_OWNER_REPO}(\.git)?$"),
]

REPOSITORY_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,128}$")

# Clone output is discarded; only failures matter.
_CLONE_OUTPUT_BYTES = 1024 * 1024


def open_repository(repo_path: str | Path) -> Repo:
    """Open an existing local repository.

    Raises:
        RepositoryNotFoundError: If the path is missing, not a directory, or
            not a git working tree.
    """
    path = Path(repo_path)

    if not path.exists():
        raise RepositoryNotFoundError(f"Repository path does not exist: {repo_path}")

    if not path.is_dir():
        raise RepositoryNotFoundError(f"Repository path is not a directory: {repo_path}")

    try:
        return Repo(str(path))
    except (InvalidGitRepositoryError, NoSuchPathError) as e:
        raise RepositoryNotFoundError(
            f"Path is not a valid Git repository: {repo_path}"
        ) from e


def has_commits(repo: Repo) -> bool:
    """Return False for a freshly initialized repository with no HEAD commit."""
    return repo.head.is_valid()


def validate_repository_url(url: str) -> str:
    """Accept only GitHub, GitLab and Bitbucket owner/name URLs.

    Raises:
        InvalidRepositoryUrlError: For anything else.
    """
    if not isinstance(url, str) or not any(p.match(url) for p in REPOSITORY_URL_PATTERNS):
        raise InvalidRepositoryUrlError("Invalid Git repository URL", details=f"Rejected URL: {url!r}")
    return url


def validate_repository_id(repository_id: str) -> str:
    """Repository IDs become directory names, so only [A-Za-z0-9_-] is allowed."""
    if not isinstance(repository_id, str) or not REPOSITORY_ID_PATTERN.match(repository_id):
        raise InvalidParameterError(
            "Invalid repository ID",
            details=f"Repository ID must match {REPOSITORY_ID_PATTERN.pattern}",
        )
    return repository_id


async def clone_repository(url: str, destination: Path, limits: PipelineLimits) -> Path:
    """Clone url into destination, replacing any previous directory there.

    Returns:
        The clone path.

    Raises:
        InvalidRepositoryUrlError: If the URL is not accepted.
        GitTimeoutError: If the clone exceeds clone_timeout.
        GitProcessError: If git clone fails.
    """
    validate_repository_url(url)

    if destination.exists():
        shutil.rmtree(destination, ignore_errors=True)
    destination.parent.mkdir(parents=True, exist_ok=True)

    logger.info("Cloning %s into %s", url, destination)
    await run_git(
        ["clone", "--quiet", "--", url, str(destination)],
        destination.parent,
        timeout=limits.clone_timeout,
        max_output_bytes=_CLONE_OUTPUT_BYTES,
    )
    return destination
