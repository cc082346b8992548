"""Async execution of the external tools nitrokit drives.

Linters, package managers, cargo and composer all run through
``run_subprocess``; a missing binary becomes a ``SubprocessError`` and a
timeout becomes a failed ``SubprocessResult`` instead of a hung CLI.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
import time
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 120.0
_TIMEOUT_MESSAGE = "Process timed out and was killed"


@dataclass
class SubprocessResult:
    """Outcome of one external command."""

    returncode: int
    """Exit code; -1 when the process never started or was killed."""

    stdout: str
    stderr: str

    success: bool
    """True only for exit code 0 without a timeout."""

    timed_out: bool = False
    duration_ms: float = 0.0

    @property
    def output(self) -> str:
        """Non-empty stdout and stderr joined by a newline."""
        return "\n".join(part for part in (self.stdout.strip(), self.stderr.strip()) if part)

    @classmethod
    def not_started(cls, reason: str) -> SubprocessResult:
        return cls(returncode=-1, stdout="", stderr=reason, success=False)


class SubprocessError(Exception):
    """An external command could not run, or failed under ``check=True``."""

    def __init__(self, message: str, result: SubprocessResult) -> None:
        super().__init__(message)
        self.result = result


def command_exists(name: str) -> bool:
    """Return True when *name* resolves on ``PATH``."""
    return shutil.which(name) is not None


def _describe(command: Sequence[str]) -> str:
    return " ".join(str(part) for part in command)


def _resolve_cwd(cwd: Path | None) -> Path:
    work_dir = cwd.resolve() if cwd else Path.cwd()
    if not work_dir.is_dir():
        raise ValueError(f"Working directory does not exist: {work_dir}")
    return work_dir


async def _communicate(
    process: asyncio.subprocess.Process, timeout: float
) -> tuple[bytes, bytes, bool]:
    """Collect output, killing the process once *timeout* elapses."""
    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except TimeoutError:
        logger.warning("Command timed out after %ss, killing it", timeout)
        if process.returncode is None:
            process.kill()
        await process.wait()
        return b"", _TIMEOUT_MESSAGE.encode(), True
    return stdout, stderr, False


async def run_subprocess(
    command: Sequence[str],
    *,
    cwd: Path | None = None,
    timeout: float = DEFAULT_TIMEOUT,
    env: Mapping[str, str] | None = None,
    check: bool = False,
) -> SubprocessResult:
    """Run *command* and capture its output.

    Args:
        command: Program and arguments, e.g. ``["cargo", "clippy"]``.
        cwd: Working directory; the current directory when omitted.
        timeout: Seconds before the process is killed.
        env: Variables layered over ``os.environ``.
        check: Raise ``SubprocessError`` on a failed result.

    Raises:
        ValueError: Empty command, non-positive timeout or missing ``cwd``.
        SubprocessError: The program is not installed or could not be
            started, or ``check`` is set and the command failed.
    """
    if not command:
        raise ValueError("Command cannot be empty")
    if timeout <= 0:
        raise ValueError(f"Timeout must be positive, got {timeout}")
    work_dir = _resolve_cwd(cwd)
    description = _describe(command)
    logger.debug("$ %s (cwd=%s, timeout=%ss)", description, work_dir, timeout)

    started = time.perf_counter()
    try:
        process = await asyncio.create_subprocess_exec(
            *command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=work_dir,
            env={**os.environ, **env} if env else None,
        )
    except FileNotFoundError as exc:
        raise SubprocessError(
            f"Command not found: {command[0]}", SubprocessResult.not_started(str(exc))
        ) from exc
    except OSError as exc:
        raise SubprocessError(
            f"Could not start {command[0]}: {exc}", SubprocessResult.not_started(str(exc))
        ) from exc

    stdout, stderr, timed_out = await _communicate(process, timeout)
    returncode = -1 if timed_out else (process.returncode or 0)
    result = SubprocessResult(
        returncode=returncode,
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
        success=returncode == 0 and not timed_out,
        timed_out=timed_out,
        duration_ms=(time.perf_counter() - started) * 1000,
    )
    logger.debug("%s exited %d in %.0fms", command[0], returncode, result.duration_ms)

    if check and not result.success:
        raise SubprocessError(f"Command failed with exit code {returncode}: {description}", result)
    return result
