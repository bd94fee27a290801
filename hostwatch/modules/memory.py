"""RAM usage."""

from __future__ import annotations

import functools

from hostwatch.autofix import actions
from hostwatch.autofix.gate import AutofixAction
from hostwatch.collectors import system
from hostwatch.collectors.command import run_blocking
from hostwatch.core.types import CheckResult, Severity
from hostwatch.hardware.predicates import always
from hostwatch.modules.base import AutofixSpec, MonitorModule


class MemoryModule(MonitorModule):
    name = "memory"
    description = "Memory usage"
    unit = "%"
    default_thresholds = {"warning": 85.0, "critical": 95.0}
    autofixes = (
        AutofixSpec(
            name="memory-cleanup",
            description="sync and drop page caches",
            trigger=Severity.CRITICAL,
            grace_period=900.0,
            requires_privilege=True,
            recommendation="sudo sync && echo 3 | sudo tee /proc/sys/vm/drop_caches",
        ),
    )

    def exists(self) -> bool:
        return always()

    async def read_metric(self) -> tuple[float, str]:
        summary = await run_blocking(system.memory_summary, self.command_timeout)
        return (
            round(summary["used_percent"], 1),
            f"{summary['available_mb']:.0f} MB available, swap {summary['swap_percent']:.0f}%",
        )

    def build_action(self, spec: AutofixSpec, check: CheckResult) -> AutofixAction:
        return functools.partial(actions.memory_cleanup, self.command_timeout)
