"""Tests for repository opening, URL validation and cloning."""

import asyncio
import os
from pathlib import Path

import pytest
from git import Repo

from utils.errors import (
    GitProcessError,
    InvalidParameterError,
    InvalidRepositoryUrlError,
    RepositoryNotFoundError,
)
from utils.git_repository import (
    clone_repository,
    has_commits,
    open_repository,
    validate_repository_id,
    validate_repository_url,
)
from utils.pipeline_config import PipelineLimits


def test_open_repository_missing_path(tmp_path):
    """Test that a missing path is reported as not existing."""
    with pytest.raises(RepositoryNotFoundError, match="does not exist"):
        open_repository(tmp_path / "missing")


def test_open_repository_not_a_directory(tmp_path):
    """Test that a regular file is reported as not a directory."""
    file_path = tmp_path / "file.txt"
    file_path.write_text("x", encoding="utf-8")

    with pytest.raises(RepositoryNotFoundError, match="not a directory"):
        open_repository(file_path)


def test_open_repository_plain_directory(tmp_path):
    """Test that a directory without .git is not a repository."""
    with pytest.raises(RepositoryNotFoundError, match="not a valid Git repository"):
        open_repository(tmp_path)


def test_open_repository_and_has_commits(tmp_path):
    """Test that a freshly initialised repository has no commits."""
    Repo.init(tmp_path)

    repo = open_repository(tmp_path)

    assert has_commits(repo) is False


@pytest.mark.parametrize(
    "url",
    [
        "https://github.com/acme/widgets",
        "https://github.com/acme/widgets.git",
        "git@github.com:acme/widgets.git",
        "https://gitlab.com/acme/widgets",
        "https://bitbucket.org/acme/widgets.git",
    ],
)
def test_accepted_repository_urls(url):
    """Test that supported host URLs are accepted."""
    assert validate_repository_url(url) == url


@pytest.mark.parametrize(
    "url",
    [
        "",
        "file:///etc",
        "https://example.com/acme/widgets.git",
        "https://github.com/acme/widgets.git; rm -rf /",
        "https://github.com/acme",
        "ext::sh -c touch% /tmp/pwned",
        "--upload-pack=touch /tmp/pwned",
    ],
)
def test_rejected_repository_urls(url):
    """Test that other URLs and option-like strings are rejected."""
    with pytest.raises(InvalidRepositoryUrlError):
        validate_repository_url(url)


def test_repository_id_validation():
    """Test that repository ids are limited to safe characters."""
    assert validate_repository_id("repo_123-abc") == "repo_123-abc"
    for bad in ["", "../x", "a/b", "a b", "x" * 129]:
        with pytest.raises(InvalidParameterError):
            validate_repository_id(bad)


def test_clone_failure_raises_process_error(tmp_path, monkeypatch):
    """Cloning is attempted only for accepted URLs; a git failure surfaces as GitProcessError."""
    destination = Path(os.path.realpath(tmp_path)) / "clone" / "repo"
    monkeypatch.setenv("GIT_PYTHON_GIT_EXECUTABLE", str(tmp_path / "no-such-git"))

    with pytest.raises(GitProcessError):
        asyncio.run(
            clone_repository("https://github.com/acme/widgets.git", destination, PipelineLimits())
        )


def test_clone_rejects_bad_url_before_touching_disk(tmp_path):
    """Test that an invalid URL fails before any directory is created."""
    destination = tmp_path / "clone" / "repo"

    with pytest.raises(InvalidRepositoryUrlError):
        asyncio.run(clone_repository("file:///etc", destination, PipelineLimits()))

    assert not destination.parent.exists()
