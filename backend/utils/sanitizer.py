"""Path and parameter sanitization for git command construction.

Every repository path and every value interpolated into a git command line
passes through this module before any subprocess is started.
"""

import os
import tempfile
from dataclasses import dataclass
from pathlib import Path

from utils.errors import InvalidParameterError, InvalidPathError

SHELL_METACHARACTERS = frozenset(";&|`$(){}[]\\")


@dataclass(frozen=True)
class PathPolicy:
    """Base directories a repository path must live under."""

    allowed_base_dirs: tuple[Path, ...]

    @classmethod
    def default(cls) -> "PathPolicy":
        """Build the standard allow-list: temp dirs, home and working directory."""
        bases = [
            Path(tempfile.gettempdir()),
            Path("/tmp"),
            Path("/var/tmp"),
            Path.home(),
            Path.cwd(),
        ]
        return cls.from_dirs(bases)

    @classmethod
    def from_dirs(cls, dirs) -> "PathPolicy":
        """Build a policy from arbitrary directories, resolving and de-duplicating them."""
        resolved: list[Path] = []
        for base in dirs:
            base_path = Path(os.path.realpath(os.fspath(base)))
            if base_path not in resolved:
                resolved.append(base_path)
        return cls(allowed_base_dirs=tuple(resolved))


def is_within(path: str | Path, root: str | Path) -> bool:
    """Return True if path equals root or lies below it.

    Compares path components, so "/tmpfoo" is not inside "/tmp".
    """
    try:
        Path(path).relative_to(Path(root))
    except ValueError:
        return False
    return True


def sanitize_repository_path(raw: str, policy: PathPolicy) -> Path:
    """Validate and normalize a caller-supplied repository path.

    Args:
        raw: Path as received from the caller.
        policy: Allowed base directories.

    Returns:
        Absolute, normalized path with symlinks resolved.

    Raises:
        InvalidPathError: If the path is empty, contains traversal or home
            shorthand, or is outside every allowed base directory.
    """
    if not isinstance(raw, str) or not raw.strip():
        raise InvalidPathError("Repository path is required")
    if "\x00" in raw:
        raise InvalidPathError("Invalid characters in repository path")

    raw_segments = raw.replace("\\", "/").split("/")
    if ".." in raw_segments:
        raise InvalidPathError("Invalid characters in repository path")

    normalized = Path(os.path.realpath(os.path.abspath(raw)))

    if ".." in normalized.parts or "~" in str(normalized):
        raise InvalidPathError("Invalid characters in repository path")

    if not any(is_within(normalized, base) for base in policy.allowed_base_dirs):
        raise InvalidPathError("Repository path is not in an allowed directory")

    return normalized


def sanitize_parameter(raw: str) -> str:
    """Reject a command parameter containing shell metacharacters.

    The value is never silently stripped: if it contains any character from
    SHELL_METACHARACTERS the call fails.

    Returns:
        The value unchanged.

    Raises:
        InvalidParameterError: If the value is not a string or contains a
            metacharacter.
    """
    if not isinstance(raw, str):
        raise InvalidParameterError(f"Parameter must be a string, got {type(raw).__name__}")
    if "\x00" in raw or any(ch in SHELL_METACHARACTERS for ch in raw):
        raise InvalidParameterError(
            "Invalid characters in parameter",
            details=f"Rejected parameter: {raw!r}",
        )
    return raw
