"""Bounded external command execution."""

from __future__ import annotations

import asyncio
import os
import shutil
from collections.abc import Callable, Sequence
from typing import Any, TypeVar

import structlog
from pydantic import BaseModel

from hostwatch.collectors.exceptions import CollectorUnavailableError

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class CommandResult(BaseModel):
    """Exit status and captured output of one command."""

    argv: list[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def command_available(name: str) -> bool:
    return shutil.which(name) is not None


def is_privileged() -> bool:
    """True when running as root."""
    return os.geteuid() == 0


async def run_command(
    argv: Sequence[str],
    timeout: float,
    input_text: str | None = None,
) -> CommandResult:
    """Run *argv* without a shell, bounded by *timeout* seconds.

    Raises:
        CollectorUnavailableError: the binary is missing or the deadline
            passed (the process is killed in that case).
    """
    args = [str(a) for a in argv]
    try:
        proc = await asyncio.create_subprocess_exec(
            *args,
            stdin=asyncio.subprocess.PIPE if input_text is not None else asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError as exc:
        raise CollectorUnavailableError(f"command not found: {args[0]}") from exc
    except PermissionError as exc:
        raise CollectorUnavailableError(f"command not executable: {args[0]}") from exc

    data = input_text.encode() if input_text is not None else None
    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(data), timeout=timeout)
    except asyncio.TimeoutError as exc:
        proc.kill()
        await proc.wait()
        logger.warning("command_timeout", argv=args, timeout=timeout)
        raise CollectorUnavailableError(
            f"{args[0]} timed out after {timeout:g}s"
        ) from exc

    result = CommandResult(
        argv=args,
        returncode=proc.returncode if proc.returncode is not None else -1,
        stdout=stdout.decode(errors="replace"),
        stderr=stderr.decode(errors="replace"),
    )
    logger.debug("command_finished", argv=args, returncode=result.returncode)
    return result


async def run_blocking(func: Callable[..., T], timeout: float, *args: Any) -> T:
    """Run a blocking call in a worker thread, bounded by *timeout*.

    Raises:
        CollectorUnavailableError: the deadline passed.
    """
    try:
        return await asyncio.wait_for(asyncio.to_thread(func, *args), timeout=timeout)
    except asyncio.TimeoutError as exc:
        name = getattr(func, "__name__", repr(func))
        logger.warning("call_timeout", call=name, timeout=timeout)
        raise CollectorUnavailableError(f"{name} timed out after {timeout:g}s") from exc
