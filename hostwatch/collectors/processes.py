"""Process listing and control via psutil."""

from __future__ import annotations

import asyncio
import time

import psutil
import structlog
from pydantic import BaseModel

logger = structlog.get_logger(__name__)

_ATTRS = ["pid", "ppid", "name", "cmdline", "username", "create_time", "memory_percent"]


class ProcessInfo(BaseModel):
    """A point-in-time view of one process."""

    pid: int
    ppid: int = 0
    name: str
    cmdline: str = ""
    username: str = ""
    cpu_percent: float = 0.0
    memory_percent: float = 0.0
    create_time: float = 0.0

    def age_secs(self, now: float) -> float:
        return max(0.0, now - self.create_time)


def _sample(interval: float) -> list[ProcessInfo]:
    procs = list(psutil.process_iter(_ATTRS))
    for proc in procs:
        try:
            proc.cpu_percent(None)
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            continue

    time.sleep(interval)

    result: list[ProcessInfo] = []
    for proc in procs:
        try:
            cpu = proc.cpu_percent(None)
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            continue
        info = proc.info
        result.append(ProcessInfo(
            pid=info["pid"],
            ppid=info.get("ppid") or 0,
            name=info.get("name") or "",
            cmdline=" ".join(info.get("cmdline") or []),
            username=info.get("username") or "",
            cpu_percent=cpu,
            memory_percent=info.get("memory_percent") or 0.0,
            create_time=info.get("create_time") or 0.0,
        ))
    return result


async def list_processes(interval: float = 0.5) -> list[ProcessInfo]:
    """Every visible process with CPU usage measured over *interval* seconds."""
    return await asyncio.to_thread(_sample, interval)


def top_by_cpu(processes: list[ProcessInfo], limit: int = 10) -> list[ProcessInfo]:
    return sorted(processes, key=lambda p: p.cpu_percent, reverse=True)[:limit]


def top_by_memory(processes: list[ProcessInfo], limit: int = 10) -> list[ProcessInfo]:
    return sorted(processes, key=lambda p: p.memory_percent, reverse=True)[:limit]


def _terminate(pid: int, wait_secs: float) -> str:
    proc = psutil.Process(pid)
    proc.terminate()
    try:
        proc.wait(timeout=wait_secs)
        return "terminated"
    except psutil.TimeoutExpired:
        proc.kill()
    try:
        proc.wait(timeout=wait_secs)
        return "killed"
    except psutil.TimeoutExpired:
        # Stuck in uninterruptible sleep; SIGKILL is pending but not delivered.
        return "unkillable"


async def terminate_process(pid: int, wait_secs: float) -> str:
    """SIGTERM *pid*, wait, then SIGKILL if it is still alive.

    Returns "terminated", "killed", "gone" (already exited) or "unkillable"
    (still alive after SIGKILL).

    Raises:
        psutil.AccessDenied: not permitted to signal the process.
    """
    try:
        return await asyncio.to_thread(_terminate, pid, wait_secs)
    except psutil.NoSuchProcess:
        return "gone"


def renice(pid: int, increment: int) -> int:
    """Raise the niceness of *pid* by *increment*; returns the new value.

    Also drops the I/O class to idle where the platform supports it.
    """
    proc = psutil.Process(pid)
    new_nice = min(19, proc.nice() + increment)
    proc.nice(new_nice)
    if hasattr(psutil, "IOPRIO_CLASS_IDLE"):
        try:
            proc.ionice(psutil.IOPRIO_CLASS_IDLE)
        except (psutil.AccessDenied, OSError):
            logger.debug("ionice_failed", pid=pid)
    return new_nice
