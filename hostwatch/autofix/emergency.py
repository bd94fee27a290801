"""Thermal emergency response.

This path bypasses the AutofixGate: it is a direct safety response to an
EMERGENCY temperature. It still honours ``--no-auto-fix`` (the caller does
not invoke it) and ``--dry-run`` (everything is logged, nothing executed).

Sequence:

1. select a kill target (pure, see :func:`select_kill_target`)
2. if one exists: SIGTERM, wait, SIGKILL if still alive
3. otherwise, or if the target survives SIGKILL: write a diagnostic
   snapshot and schedule a delayed shutdown (once; a pending one is kept)
"""

from __future__ import annotations

import re
import time
from collections.abc import Awaitable, Callable, Sequence
from datetime import datetime
from pathlib import Path

import psutil
import structlog
from pydantic import BaseModel

from hostwatch.alerts.dispatcher import AlertDispatcher
from hostwatch.alerts.types import AlertMessage
from hostwatch.collectors import sensors, system
from hostwatch.collectors.command import is_privileged as _is_root
from hostwatch.collectors.command import run_command
from hostwatch.collectors.exceptions import CollectorUnavailableError
from hostwatch.collectors.kernel_log import HARDWARE_ERROR_PATTERN, matching_lines, read_kernel_log
from hostwatch.collectors.processes import (
    ProcessInfo,
    list_processes,
    terminate_process,
    top_by_cpu,
    top_by_memory,
)
from hostwatch.core.config import EmergencyConfig
from hostwatch.core.types import AutofixOutcome, AutofixResult, Severity

logger = structlog.get_logger(__name__)

SUBJECT = "thermal"

# Present while a `shutdown -h +N` is pending (systemd-logind).
SHUTDOWN_SCHEDULED_MARKER = Path("/run/systemd/shutdown/scheduled")

_KTHREADD_PID = 2


class ProtectionPolicy:
    """Which processes an automated response may never touch."""

    def __init__(self, config: EmergencyConfig | None = None) -> None:
        self._config = config or EmergencyConfig()
        self._patterns = [re.compile(p) for p in self._config.protected_process_patterns]

    @property
    def config(self) -> EmergencyConfig:
        return self._config

    def is_protected(self, proc: ProcessInfo) -> bool:
        # Kernel threads have no argv and are children of kthreadd (pid 2).
        if not proc.cmdline.strip() or proc.ppid == _KTHREADD_PID:
            return True
        if proc.pid <= self._config.max_system_pid:
            return True
        first = proc.cmdline.split()[0]
        candidates = [proc.name, first, Path(first).name]
        return any(p.search(c) for p in self._patterns for c in candidates if c)


class KillSelection(BaseModel):
    """Outcome of target selection; ``target`` is None when nothing qualifies."""

    target: ProcessInfo | None = None
    reason: str = ""
    skipped: dict[int, str] = {}


def select_kill_target(
    processes: Sequence[ProcessInfo],
    policy: ProtectionPolicy,
    uptime_secs: float,
    now: float,
) -> KillSelection:
    """Pick the process to terminate, deterministically.

    Processes are ordered by CPU usage, descending; ties keep their input
    order. The first one that is not protected, uses at least
    ``min_cpu_percent`` and is older than ``startup_grace_secs`` wins. During
    the boot grace period nothing is selected.
    """
    cfg = policy.config
    if uptime_secs < cfg.boot_grace_secs:
        return KillSelection(reason=f"boot grace period ({uptime_secs:.0f}s uptime)")

    skipped: dict[int, str] = {}
    for proc in sorted(processes, key=lambda p: p.cpu_percent, reverse=True):
        if proc.cpu_percent < cfg.min_cpu_percent:
            skipped[proc.pid] = "below cpu threshold"
            break
        if policy.is_protected(proc):
            skipped[proc.pid] = "protected"
            continue
        if proc.age_secs(now) < cfg.startup_grace_secs:
            skipped[proc.pid] = "startup grace"
            continue
        return KillSelection(target=proc, reason="highest cpu consumer", skipped=skipped)

    return KillSelection(reason="no eligible process", skipped=skipped)


def render_snapshot(
    temperature: float,
    readings: dict[str, list[tuple[str, float]]],
    processes: Sequence[ProcessInfo],
    kernel_lines: Sequence[str],
    when: datetime,
) -> str:
    lines = [
        f"hostwatch thermal emergency snapshot {when.isoformat(timespec='seconds')}",
        f"cpu_temperature_c={temperature:.1f}",
        "",
        "== sensors ==",
    ]
    for driver, entries in sorted(readings.items()):
        for label, value in entries:
            lines.append(f"{driver}/{label}: {value:.1f}")
    lines += ["", "== top cpu =="]
    lines += [
        f"{p.pid:>7} {p.cpu_percent:6.1f}% {p.name} {p.cmdline[:120]}"
        for p in top_by_cpu(list(processes))
    ]
    lines += ["", "== top memory =="]
    lines += [
        f"{p.pid:>7} {p.memory_percent:6.1f}% {p.name}"
        for p in top_by_memory(list(processes))
    ]
    lines += ["", "== recent hardware errors =="]
    lines += list(kernel_lines[-50:]) or ["(none)"]
    return "\n".join(lines) + "\n"


ProcessLister = Callable[[], Awaitable[list[ProcessInfo]]]


class EmergencyResponder:
    """Carries out the thermal emergency sequence."""

    def __init__(
        self,
        config: EmergencyConfig,
        snapshot_dir: Path,
        notifier: AlertDispatcher | None = None,
        command_timeout: float = 10.0,
        clock: Callable[[], float] = time.time,
        is_privileged: Callable[[], bool] = _is_root,
        process_lister: ProcessLister = list_processes,
        uptime: Callable[[float], float] = system.uptime_secs,
        shutdown_marker: Path = SHUTDOWN_SCHEDULED_MARKER,
    ) -> None:
        self._config = config
        self._policy = ProtectionPolicy(config)
        self._snapshot_dir = Path(snapshot_dir)
        self._notifier = notifier
        self._timeout = command_timeout
        self._clock = clock
        self._is_privileged = is_privileged
        self._list_processes = process_lister
        self._uptime = uptime
        self._shutdown_marker = Path(shutdown_marker)

    async def handle(self, temperature: float, dry_run: bool = False) -> list[AutofixResult]:
        log = logger.bind(subject=SUBJECT, temperature=temperature, dry_run=dry_run)
        now = self._clock()
        processes = await self._list_processes()
        selection = select_kill_target(processes, self._policy, self._uptime(now), now)

        results: list[AutofixResult] = []
        if selection.target is not None:
            killed = await self._kill(selection.target, temperature, dry_run)
            if killed.outcome != AutofixOutcome.FAILED:
                return [killed]
            results.append(killed)
            log.critical("emergency_kill_ineffective", pid=selection.target.pid)
        else:
            log.critical("emergency_no_kill_target", reason=selection.reason)

        if self._config.diagnostics_enabled:
            results.append(await self._snapshot(temperature, processes, dry_run))
        if self._config.shutdown_enabled:
            results.append(await self._shutdown(temperature, dry_run))
        return results

    # ── Steps ────────────────────────────────────────────────────

    async def _kill(self, target: ProcessInfo, temperature: float, dry_run: bool) -> AutofixResult:
        log = logger.bind(
            subject=SUBJECT, pid=target.pid, name=target.name, cpu=target.cpu_percent,
        )
        if dry_run:
            log.warning("emergency_kill_dry_run")
            return _result(
                "emergency-process-kill",
                AutofixOutcome.SUCCESS,
                f"would terminate {target.name} ({target.pid})",
                dry_run=True,
            )

        log.critical("emergency_kill")
        try:
            how = await terminate_process(target.pid, self._config.kill_wait_secs)
        except psutil.AccessDenied:
            log.error("emergency_kill_denied")
            await self._announce(
                "Emergency: cannot terminate process",
                f"{target.name} (pid {target.pid}) at {target.cpu_percent:.0f}% CPU, "
                f"CPU {temperature:.0f}°C. Run: sudo kill {target.pid}",
            )
            return _result(
                "emergency-process-kill", AutofixOutcome.RECOMMENDED, f"sudo kill {target.pid}",
            )

        if how == "unkillable":
            log.error("emergency_kill_failed")
            return _result(
                "emergency-process-kill",
                AutofixOutcome.FAILED,
                f"{target.name} ({target.pid}) survived SIGKILL",
            )

        await self._announce(
            "Emergency: process terminated",
            f"{target.name} (pid {target.pid}) {how} at CPU {temperature:.0f}°C",
        )
        return _result(
            "emergency-process-kill", AutofixOutcome.SUCCESS, f"{target.name} ({target.pid}) {how}",
        )

    async def _snapshot(
        self, temperature: float, processes: Sequence[ProcessInfo], dry_run: bool,
    ) -> AutofixResult:
        when = datetime.fromtimestamp(self._clock())
        path = self._snapshot_dir / f"emergency-{when:%Y%m%d-%H%M%S}.log"
        if dry_run:
            logger.warning("emergency_snapshot_dry_run", subject=SUBJECT, path=str(path))
            return _result(
                "emergency-diagnostics", AutofixOutcome.SUCCESS, f"would write {path}", dry_run=True,
            )

        try:
            kernel = matching_lines(
                await read_kernel_log("10 minutes ago", timeout=self._timeout),
                [HARDWARE_ERROR_PATTERN],
            )
        except CollectorUnavailableError:
            kernel = []
        body = render_snapshot(temperature, sensors.all_readings(), processes, kernel, when)
        try:
            self._snapshot_dir.mkdir(parents=True, exist_ok=True)
            path.write_text(body)
        except OSError as exc:
            logger.error("emergency_snapshot_failed", subject=SUBJECT, path=str(path), error=str(exc))
            return _result("emergency-diagnostics", AutofixOutcome.FAILED, str(exc))
        logger.warning("emergency_snapshot_written", subject=SUBJECT, path=str(path))
        return _result("emergency-diagnostics", AutofixOutcome.SUCCESS, str(path))

    async def _shutdown(self, temperature: float, dry_run: bool) -> AutofixResult:
        delay = self._config.shutdown_delay_minutes
        argv = ["shutdown", "-h", f"+{delay}", f"hostwatch: thermal emergency {temperature:.0f}C"]
        if dry_run:
            logger.warning("emergency_shutdown_dry_run", subject=SUBJECT, argv=argv)
            return _result(
                "emergency-shutdown",
                AutofixOutcome.SUCCESS,
                f"would run {' '.join(argv[:3])}",
                dry_run=True,
            )

        # Re-issuing `shutdown +N` would push a pending shutdown back.
        if self._shutdown_marker.exists():
            logger.critical("emergency_shutdown_pending", subject=SUBJECT)
            return _result(
                "emergency-shutdown", AutofixOutcome.SUCCESS, "shutdown already scheduled",
            )

        if not self._is_privileged():
            logger.critical("emergency_shutdown_recommended", subject=SUBJECT)
            await self._announce(
                "Emergency: shut down now",
                f"CPU at {temperature:.0f}°C and no process could be throttled. "
                f"Run: sudo shutdown -h +{delay}",
            )
            return _result(
                "emergency-shutdown", AutofixOutcome.RECOMMENDED, f"sudo shutdown -h +{delay}",
            )

        try:
            result = await run_command(argv, timeout=self._timeout)
        except CollectorUnavailableError as exc:
            return _result("emergency-shutdown", AutofixOutcome.UNSUPPORTED, str(exc))
        if not result.ok:
            logger.error("emergency_shutdown_failed", subject=SUBJECT, stderr=result.stderr[:200])
            return _result("emergency-shutdown", AutofixOutcome.FAILED, result.stderr.strip()[:200])

        logger.critical("emergency_shutdown_scheduled", subject=SUBJECT, delay_minutes=delay)
        await self._announce(
            "Emergency shutdown scheduled",
            f"CPU at {temperature:.0f}°C. Shutting down in {delay} minute(s); "
            "cancel with: sudo shutdown -c",
        )
        return _result("emergency-shutdown", AutofixOutcome.SUCCESS, f"shutdown in {delay}m")

    async def _announce(self, title: str, body: str) -> None:
        if self._notifier is None:
            return
        await self._notifier.notify(AlertMessage(
            subject=SUBJECT, severity=Severity.EMERGENCY, title=title, body=body,
        ))


def _result(
    action: str, outcome: AutofixOutcome, detail: str, dry_run: bool = False,
) -> AutofixResult:
    return AutofixResult(
        action_name=action,
        calling_module=SUBJECT,
        outcome=outcome,
        detail=detail,
        dry_run=dry_run,
    )
