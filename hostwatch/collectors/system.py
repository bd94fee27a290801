"""Memory, disk and uptime readings via psutil."""

from __future__ import annotations

import time

import psutil
from pydantic import BaseModel

from hostwatch.collectors.exceptions import CollectorUnavailableError

# Pseudo/virtual filesystems that never fill up in a way worth alerting on.
_IGNORED_FSTYPES = frozenset({
    "squashfs", "tmpfs", "devtmpfs", "overlay", "iso9660", "proc", "sysfs",
    "cgroup", "cgroup2", "ramfs", "efivarfs",
})


class MountUsage(BaseModel):
    mountpoint: str
    device: str
    fstype: str
    percent: float
    free_bytes: int


def memory_percent() -> float:
    return float(psutil.virtual_memory().percent)


def memory_summary() -> dict[str, float]:
    vm = psutil.virtual_memory()
    swap = psutil.swap_memory()
    return {
        "total_mb": vm.total / 2**20,
        "available_mb": vm.available / 2**20,
        "used_percent": vm.percent,
        "swap_percent": swap.percent,
    }


def disk_usage() -> list[MountUsage]:
    """Usage of every real local mount, fullest first."""
    mounts: list[MountUsage] = []
    for part in psutil.disk_partitions(all=False):
        if part.fstype in _IGNORED_FSTYPES or part.mountpoint.startswith("/snap/"):
            continue
        try:
            usage = psutil.disk_usage(part.mountpoint)
        except (PermissionError, OSError):
            continue
        mounts.append(MountUsage(
            mountpoint=part.mountpoint,
            device=part.device,
            fstype=part.fstype,
            percent=usage.percent,
            free_bytes=usage.free,
        ))
    if not mounts:
        raise CollectorUnavailableError("no readable local filesystems")
    return sorted(mounts, key=lambda m: m.percent, reverse=True)


def uptime_secs(now: float | None = None) -> float:
    return (now if now is not None else time.time()) - psutil.boot_time()
