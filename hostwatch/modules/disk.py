"""Filesystem usage of the fullest local mount."""

from __future__ import annotations

import functools

from hostwatch.autofix import actions
from hostwatch.autofix.gate import AutofixAction
from hostwatch.collectors import system
from hostwatch.collectors.command import run_blocking
from hostwatch.core.types import CheckResult, Severity
from hostwatch.hardware.predicates import always
from hostwatch.modules.base import AutofixSpec, MonitorModule


class DiskModule(MonitorModule):
    name = "disk"
    description = "Disk usage"
    unit = "%"
    default_thresholds = {"warning": 80.0, "critical": 90.0}
    default_options = {"journal_retention": "7d"}
    autofixes = (
        AutofixSpec(
            name="disk-cleanup",
            description="vacuum the journal and clean the package cache",
            trigger=Severity.CRITICAL,
            grace_period=3600.0,
            requires_privilege=True,
            recommendation="sudo journalctl --vacuum-time=7d && sudo apt-get clean",
        ),
    )

    def exists(self) -> bool:
        return always()

    async def read_metric(self) -> tuple[float, str]:
        mounts = await run_blocking(system.disk_usage, self.command_timeout)
        fullest = mounts[0]
        free_gb = fullest.free_bytes / 2**30
        return fullest.percent, f"{fullest.mountpoint} ({free_gb:.1f} GB free)"

    def build_action(self, spec: AutofixSpec, check: CheckResult) -> AutofixAction:
        return functools.partial(
            actions.disk_cleanup,
            self.command_timeout * 6,
            str(self.options["journal_retention"]),
        )
