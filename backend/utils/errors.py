"""Error taxonomy for the history ingestion pipeline.

Three families are distinguished so the HTTP layer can report them
differently:
- ValidationError: bad input (path, parameter, URL, oversized repository).
- RepositoryNotFoundError: the repository path does not exist or is not a repo.
- ProcessingError: git failed, timed out, or produced too much output.
"""


class PipelineError(Exception):
    """Base class for all pipeline failures."""

    def __init__(self, message: str, details: str | None = None):
        super().__init__(message)
        self.message = message
        self.details = details if details is not None else message


class ValidationError(PipelineError, ValueError):
    """Input rejected before any git command ran."""


class InvalidPathError(ValidationError):
    """Repository path outside the allowed base directories or malformed."""


class InvalidParameterError(ValidationError):
    """Command parameter containing shell metacharacters."""


class InvalidRepositoryUrlError(ValidationError):
    """Remote URL not on the accepted hosting patterns."""


class RepositoryTooLargeError(ValidationError):
    """Repository metadata exceeds the processing ceiling."""


class CommandNotAllowedError(ValidationError):
    """Raw command does not start with a whitelisted subcommand."""

    def __init__(self, command: str, allowed_commands: list[str]):
        super().__init__(f"Command not allowed: {command}")
        self.command = command
        self.allowed_commands = allowed_commands


class RepositoryNotFoundError(PipelineError):
    """Repository path is missing or is not a git repository."""


class ProcessingError(PipelineError, RuntimeError):
    """A git command failed while processing a valid request."""


class GitProcessError(ProcessingError):
    """git exited with a non-zero status or could not be started."""

    def __init__(self, message: str, returncode: int | None = None, stderr: str = ""):
        super().__init__(message, details=stderr or message)
        self.returncode = returncode
        self.stderr = stderr


class GitTimeoutError(ProcessingError):
    """git did not finish within its wall-clock timeout."""


class HistoryReadTimeoutError(GitTimeoutError):
    """The whole-history log read timed out."""


class OutputTooLargeError(ProcessingError):
    """git produced more output than the configured ceiling."""
