"""Immutable configuration for the history ingestion pipeline.

Limits, the path allow-list and the raw-command whitelist are built once and
passed explicitly to the sanitizer, parser, enrichment and query gateway.
"""

import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path

from utils.sanitizer import PathPolicy

MIB = 1024 * 1024

DEFAULT_COMMAND_WHITELIST: tuple[str, ...] = (
    "git log",
    "git show",
    "git diff",
    "git blame",
    "git ls-files",
    "git rev-list",
    "git branch",
    "git tag",
    "git status --porcelain",
)


@dataclass(frozen=True)
class PipelineLimits:
    """Resource ceilings for one ingestion run or query."""

    max_repository_bytes: int = 50 * MIB
    max_commits: int = 1000
    history_timeout: float = 60.0
    history_max_output_bytes: int = 5 * MIB
    max_file_bytes: int = 1 * MIB
    measure_batch_size: int = 10
    author_batch_size: int = 5
    author_timeout: float = 10.0
    author_max_output_bytes: int = 64 * 1024
    max_primary_authors: int = 3
    query_max_count: int = 1000
    query_default_max_count: int = 100
    clone_timeout: float = 300.0


@dataclass(frozen=True)
class PipelineConfig:
    """Complete pipeline configuration."""

    path_policy: PathPolicy
    command_whitelist: tuple[str, ...] = DEFAULT_COMMAND_WHITELIST
    limits: PipelineLimits = field(default_factory=PipelineLimits)
    clone_root: Path = field(
        default_factory=lambda: Path(tempfile.gettempdir()) / "codebase-analysis"
    )


def load_pipeline_config() -> PipelineConfig:
    """Build the pipeline configuration from defaults and environment overrides.

    Environment variables:
        HISTORY_ALLOWED_DIRS: os.pathsep-separated list replacing the default
            allowed base directories.
        HISTORY_CLONE_ROOT: directory receiving temporary clones.

    Returns:
        PipelineConfig instance.
    """
    raw_dirs = os.getenv("HISTORY_ALLOWED_DIRS", "").strip()
    if raw_dirs:
        dirs = [d for d in raw_dirs.split(os.pathsep) if d.strip()]
        policy = PathPolicy.from_dirs(dirs)
    else:
        policy = PathPolicy.default()

    clone_root_env = os.getenv("HISTORY_CLONE_ROOT", "").strip()
    if clone_root_env:
        return PipelineConfig(path_policy=policy, clone_root=Path(clone_root_env))
    return PipelineConfig(path_policy=policy)
