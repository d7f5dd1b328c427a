"""Bounded asynchronous execution of git commands.

git is always started with an argument vector (never through a shell), with a
wall-clock timeout and a ceiling on captured output. A timeout or overflow
kills that process only.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shlex
from dataclasses import dataclass
from pathlib import Path

from utils.errors import GitProcessError, GitTimeoutError, OutputTooLargeError

logger = logging.getLogger(__name__)

_READ_CHUNK = 64 * 1024


@dataclass(frozen=True)
class GitOutput:
    stdout: str
    stderr: str
    returncode: int


def git_executable() -> str:
    """Return the git binary configured for GitPython, or plain "git"."""
    return os.environ.get("GIT_PYTHON_GIT_EXECUTABLE") or "git"


def format_command(args: list[str]) -> str:
    """Render git arguments as a copy-pastable command line."""
    return shlex.join(["git", *args])


async def _read_capped(stream: asyncio.StreamReader, limit: int) -> bytes:
    chunks: list[bytes] = []
    total = 0
    while True:
        chunk = await stream.read(_READ_CHUNK)
        if not chunk:
            break
        total += len(chunk)
        if total > limit:
            raise OutputTooLargeError(
                f"git output exceeded {limit} bytes",
                details=f"Output larger than the {limit}-byte buffer",
            )
        chunks.append(chunk)
    return b"".join(chunks)


async def _communicate(proc: asyncio.subprocess.Process, limit: int) -> tuple[bytes, bytes]:
    """Drain stdout and stderr concurrently, each under the output ceiling."""
    stdout_task = asyncio.ensure_future(_read_capped(proc.stdout, limit))
    stderr_task = asyncio.ensure_future(_read_capped(proc.stderr, limit))
    try:
        stdout, stderr = await asyncio.gather(stdout_task, stderr_task)
    except BaseException:
        stdout_task.cancel()
        stderr_task.cancel()
        raise
    await proc.wait()
    return stdout, stderr


async def _terminate(proc: asyncio.subprocess.Process) -> None:
    if proc.returncode is None:
        try:
            proc.kill()
        except ProcessLookupError:
            pass
    await proc.wait()


async def run_git(
    args: list[str],
    cwd: str | Path,
    *,
    timeout: float,
    max_output_bytes: int,
    check: bool = True,
    timeout_error: type[GitTimeoutError] = GitTimeoutError,
) -> GitOutput:
    """Run git with the given arguments inside cwd.

    Args:
        args: Arguments after "git" (e.g. ["log", "--oneline"]).
        cwd: Working directory; also trusted via safe.directory for this call.
        timeout: Wall-clock limit in seconds.
        max_output_bytes: Ceiling on stdout (and separately stderr).
        check: Raise GitProcessError on a non-zero exit status.
        timeout_error: Exception class raised on timeout.

    Returns:
        GitOutput with decoded stdout/stderr.

    Raises:
        GitTimeoutError: If the timeout elapses (the process is killed).
        OutputTooLargeError: If output exceeds max_output_bytes.
        GitProcessError: If git cannot start, or exits non-zero with check=True.
    """
    cwd_str = str(cwd)
    command = format_command(args)
    argv = [
        git_executable(),
        "-c",
        f"safe.directory={cwd_str}",
        "-c",
        "core.quotepath=off",
        *args,
    ]
    env = dict(os.environ, GIT_TERMINAL_PROMPT="0")
    logger.debug("Executing git command: %s (cwd=%s)", command, cwd_str)

    try:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            cwd=cwd_str,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=env,
        )
    except OSError as exc:
        raise GitProcessError(f"Failed to start git: {exc}") from exc

    try:
        stdout, stderr = await asyncio.wait_for(_communicate(proc, max_output_bytes), timeout)
    except asyncio.TimeoutError:
        await _terminate(proc)
        raise timeout_error(
            f"git command timed out after {timeout:g}s: {command}",
            details="Repository analysis is taking too long",
        ) from None
    except OutputTooLargeError:
        await _terminate(proc)
        raise

    result = GitOutput(
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
        returncode=proc.returncode,
    )
    if check and result.returncode != 0:
        raise GitProcessError(
            f"git command failed (exit {result.returncode}): {command}",
            returncode=result.returncode,
            stderr=result.stderr.strip(),
        )
    return result
