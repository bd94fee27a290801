"""CPU package temperature."""

from __future__ import annotations

import functools

from hostwatch.autofix import actions
from hostwatch.autofix.emergency import ProtectionPolicy
from hostwatch.autofix.gate import AutofixAction
from hostwatch.collectors import sensors
from hostwatch.collectors.command import run_blocking
from hostwatch.core.types import AutofixResult, CheckResult, Severity
from hostwatch.hardware.predicates import thermal_sensor_present
from hostwatch.modules.base import AutofixSpec, ModuleContext, MonitorModule


class ThermalModule(MonitorModule):
    """Escalates from throttling the hottest process to the emergency path.

    EMERGENCY does not go through the gate: it hands the reading to the
    :class:`~hostwatch.autofix.emergency.EmergencyResponder`.
    """

    name = "thermal"
    description = "CPU temperature"
    unit = "°C"
    default_thresholds = {"warning": 85.0, "critical": 90.0, "emergency": 95.0}
    autofixes = (
        AutofixSpec(
            name="throttle-greedy-process",
            description="renice +10 and ionice idle the top CPU consumer",
            trigger=Severity.CRITICAL,
            grace_period=300.0,
        ),
    )

    def exists(self) -> bool:
        return thermal_sensor_present()

    async def read_metric(self) -> tuple[float, str]:
        temp = await run_blocking(sensors.read_cpu_temperature, self.command_timeout)
        return temp, "cpu package"

    def build_action(self, spec: AutofixSpec, check: CheckResult) -> AutofixAction:
        return functools.partial(
            actions.throttle_greedy_process,
            ProtectionPolicy(self.settings.emergency),
        )

    async def remediate(self, check: CheckResult, ctx: ModuleContext) -> list[AutofixResult]:
        if check.severity == Severity.EMERGENCY and ctx.emergency is not None:
            return await ctx.emergency.handle(check.value or 0.0, dry_run=ctx.options.dry_run)
        return await super().remediate(check, ctx)
