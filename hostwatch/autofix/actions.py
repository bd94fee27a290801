"""Remediation actions.

Every action is an ``async`` callable returning an :class:`AutofixResult`.
They never fake success: missing tooling is UNSUPPORTED, a failing command
is FAILED. Privilege is checked by the gate before an action runs, so the
functions here assume they are allowed to act.
"""

from __future__ import annotations

import shutil
import time
from collections.abc import Sequence
from pathlib import Path

import psutil
import structlog

from hostwatch.autofix.emergency import ProtectionPolicy
from hostwatch.collectors.command import command_available, run_command
from hostwatch.collectors.exceptions import CollectorUnavailableError
from hostwatch.collectors.processes import ProcessInfo, list_processes, renice
from hostwatch.core.types import AutofixOutcome, AutofixResult

logger = structlog.get_logger(__name__)

I915_GRUB_FLAGS = "i915.enable_psr=0 i915.enable_fbc=0"
USB_STORAGE_MODULES = ("uas", "usb_storage")


def _ok(action: str, detail: str) -> AutofixResult:
    return AutofixResult(action_name=action, outcome=AutofixOutcome.SUCCESS, detail=detail)


def _failed(action: str, detail: str) -> AutofixResult:
    return AutofixResult(action_name=action, outcome=AutofixOutcome.FAILED, detail=detail)


def _unsupported(action: str, detail: str) -> AutofixResult:
    return AutofixResult(action_name=action, outcome=AutofixOutcome.UNSUPPORTED, detail=detail)


async def _run_steps(action: str, steps: Sequence[Sequence[str]], timeout: float) -> AutofixResult:
    """Run commands in order, stopping at the first failure."""
    for argv in steps:
        try:
            result = await run_command(argv, timeout=timeout)
        except CollectorUnavailableError as exc:
            return _unsupported(action, str(exc))
        if not result.ok:
            return _failed(action, f"{' '.join(argv)}: {result.stderr.strip()[:200]}")
    return _ok(action, "; ".join(" ".join(a) for a in steps))


# ── Thermal ──────────────────────────────────────────────────────


async def throttle_greedy_process(
    policy: ProtectionPolicy,
    processes: list[ProcessInfo] | None = None,
    increment: int = 10,
) -> AutofixResult:
    """Renice (and ionice idle) the top non-protected CPU consumer."""
    action = "throttle-greedy-process"
    procs = processes if processes is not None else await list_processes()
    now = time.time()
    for proc in sorted(procs, key=lambda p: p.cpu_percent, reverse=True):
        if proc.cpu_percent < policy.config.min_cpu_percent:
            break
        if policy.is_protected(proc) or proc.age_secs(now) < policy.config.startup_grace_secs:
            continue
        try:
            nice = renice(proc.pid, increment)
        except psutil.NoSuchProcess:
            continue
        except psutil.AccessDenied:
            return _failed(action, f"not permitted to renice {proc.name} ({proc.pid})")
        logger.info("process_throttled", pid=proc.pid, name=proc.name, nice=nice)
        return _ok(action, f"{proc.name} ({proc.pid}) niceness {nice}")
    return _unsupported(action, "no eligible process to throttle")


# ── Memory ───────────────────────────────────────────────────────


async def memory_cleanup(
    timeout: float,
    drop_caches: Path = Path("/proc/sys/vm/drop_caches"),
) -> AutofixResult:
    """Flush dirty pages and drop the page cache, dentries and inodes."""
    action = "memory-cleanup"
    if not drop_caches.exists():
        return _unsupported(action, f"{drop_caches} not present")
    result = await _run_steps(action, [["sync"]], timeout)
    if result.outcome != AutofixOutcome.SUCCESS:
        return result
    try:
        drop_caches.write_text("3\n")
    except OSError as exc:
        return _failed(action, f"writing {drop_caches}: {exc}")
    return _ok(action, "page cache dropped")


# ── USB ──────────────────────────────────────────────────────────


async def usb_storage_reset(
    timeout: float,
    sys_module_root: Path = Path("/sys/module"),
) -> AutofixResult:
    """Reload the USB storage drivers (uas before usb_storage on unload)."""
    action = "usb-storage-reset"
    if not command_available("modprobe"):
        return _unsupported(action, "modprobe not available")
    loaded = [m for m in USB_STORAGE_MODULES if (sys_module_root / m).is_dir()]
    if not loaded:
        return _unsupported(action, "no USB storage modules loaded")
    steps = [["modprobe", "-r", m] for m in loaded]
    steps += [["modprobe", m] for m in reversed(loaded)]
    return await _run_steps(action, steps, timeout)


# ── GPU (i915) ───────────────────────────────────────────────────


async def dkms_rebuild(timeout: float) -> AutofixResult:
    """Rebuild out-of-tree kernel modules for the running kernel."""
    action = "dkms-rebuild"
    if not command_available("dkms"):
        return _unsupported(action, "dkms not installed")
    return await _run_steps(action, [["dkms", "autoinstall"]], timeout)


def add_grub_flags(content: str, flags: str = I915_GRUB_FLAGS) -> str:
    """Return *content* with *flags* appended to GRUB_CMDLINE_LINUX."""
    lines = content.splitlines()
    for i, line in enumerate(lines):
        if line.startswith("GRUB_CMDLINE_LINUX="):
            value = line.split("=", 1)[1].strip().strip('"')
            lines[i] = f'GRUB_CMDLINE_LINUX="{(value + " " + flags).strip()}"'
            return "\n".join(lines) + "\n"
    lines.append(f'GRUB_CMDLINE_LINUX="{flags}"')
    return "\n".join(lines) + "\n"


async def grub_flags(
    timeout: float,
    grub_file: Path = Path("/etc/default/grub"),
    flags: str = I915_GRUB_FLAGS,
) -> AutofixResult:
    """Add i915 stability flags to the kernel command line and regenerate GRUB.

    The original file is backed up and restored if ``update-grub`` fails.
    """
    action = "grub-flags"
    if not grub_file.is_file():
        return _unsupported(action, f"{grub_file} not found")
    content = grub_file.read_text()
    if flags.split()[0] in content:
        return _ok(action, "flags already present")
    if not command_available("update-grub"):
        return _unsupported(action, "update-grub not available")

    backup = grub_file.with_name(f"{grub_file.name}.backup.{time.strftime('%Y%m%d-%H%M%S')}")
    shutil.copy2(grub_file, backup)
    grub_file.write_text(add_grub_flags(content, flags))

    result = await _run_steps(action, [["update-grub"]], timeout)
    if result.outcome != AutofixOutcome.SUCCESS:
        shutil.copy2(backup, grub_file)
        logger.error("grub_restored", backup=str(backup))
        return result
    return _ok(action, f"flags added, reboot required (backup {backup})")


# ── Network ──────────────────────────────────────────────────────


async def network_restart(timeout: float) -> AutofixResult:
    action = "network-restart"
    if not command_available("systemctl"):
        return _unsupported(action, "systemctl not available")
    return await _run_steps(action, [["systemctl", "restart", "NetworkManager"]], timeout)


# ── Disk ─────────────────────────────────────────────────────────


async def disk_cleanup(timeout: float, journal_retention: str = "7d") -> AutofixResult:
    """Vacuum the journal and clear the package cache where tools exist."""
    action = "disk-cleanup"
    steps: list[list[str]] = []
    if command_available("journalctl"):
        steps.append(["journalctl", f"--vacuum-time={journal_retention}"])
    if command_available("apt-get"):
        steps.append(["apt-get", "clean"])
    elif command_available("dnf"):
        steps.append(["dnf", "clean", "packages"])
    if not steps:
        return _unsupported(action, "no cleanup tooling available")
    return await _run_steps(action, steps, timeout)
