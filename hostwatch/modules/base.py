"""MonitorModule — the contract every health check implements.

A module reads one metric, classifies it against ascending thresholds and
then reacts:

- NORMAL: nothing
- WARNING: alert
- CRITICAL / EMERGENCY: alert, then gated autofix if enabled

A metric that cannot be read yields a "not evaluated" result, never NORMAL.
"""

from __future__ import annotations

import abc
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any, ClassVar

import structlog
from pydantic import BaseModel, ConfigDict

from hostwatch.alerts.dispatcher import AlertDispatcher
from hostwatch.autofix.emergency import EmergencyResponder
from hostwatch.autofix.gate import AutofixAction, AutofixGate
from hostwatch.collectors.exceptions import CollectorUnavailableError
from hostwatch.core.config import ModuleConfig, Settings
from hostwatch.core.types import (
    AutofixInvocation,
    AutofixResult,
    CheckResult,
    RunOptions,
    RunResult,
    Severity,
    StatusReport,
    TimeWindow,
)
from hostwatch.modules.exceptions import ModuleConfigError
from hostwatch.state.store import StateStore

logger = structlog.get_logger(__name__)

THRESHOLD_LEVELS: tuple[tuple[str, Severity], ...] = (
    ("warning", Severity.WARNING),
    ("critical", Severity.CRITICAL),
    ("emergency", Severity.EMERGENCY),
)


# ── Thresholds ───────────────────────────────────────────────────


def validate_thresholds(name: str, raw: Mapping[str, Any]) -> dict[str, float]:
    """Numeric, known levels, strictly ascending in severity order."""
    known = {level for level, _ in THRESHOLD_LEVELS}
    unknown = set(raw) - known
    if unknown:
        raise ModuleConfigError(f"{name}: unknown threshold level(s) {sorted(unknown)}")

    thresholds: dict[str, float] = {}
    for level, _ in THRESHOLD_LEVELS:
        if level not in raw or raw[level] is None:
            continue
        value = raw[level]
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ModuleConfigError(f"{name}: threshold {level}={value!r} is not a number")
        thresholds[level] = float(value)

    values = list(thresholds.values())
    if any(b <= a for a, b in zip(values, values[1:])):
        raise ModuleConfigError(f"{name}: thresholds must ascend, got {thresholds}")
    return thresholds


def validate_grace_periods(
    name: str, raw: Mapping[str, Any], actions: set[str],
) -> dict[str, float]:
    """Grace overrides must name a known action and be non-negative seconds."""
    stray = set(raw) - actions
    if stray:
        raise ModuleConfigError(f"{name}: grace period for unknown action(s) {sorted(stray)}")

    grace: dict[str, float] = {}
    for action, value in raw.items():
        if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
            raise ModuleConfigError(
                f"{name}: grace period {action}={value!r} is not a non-negative number"
            )
        grace[action] = float(value)
    return grace


def classify(value: float, thresholds: Mapping[str, float]) -> Severity:
    """Highest level whose threshold *value* reaches; ties go to the higher level."""
    severity = Severity.NORMAL
    for level, sev in THRESHOLD_LEVELS:
        limit = thresholds.get(level)
        if limit is not None and value >= limit:
            severity = sev
    return severity


# ── Descriptors and context ──────────────────────────────────────


class AutofixSpec(BaseModel):
    """A remediation a module may request, and when."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: str
    trigger: Severity = Severity.CRITICAL
    grace_period: float
    requires_privilege: bool = False
    recommendation: str = ""


class ModuleDescriptor(BaseModel):
    """Immutable per-run identity and configuration of one module."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: str = ""
    thresholds: dict[str, float]
    enabled: bool = False
    autofix_enabled: bool = True
    grace_periods: dict[str, float] = {}
    options: dict[str, Any] = {}
    hardware_predicate: Callable[[], bool]


@dataclass
class AutofixPlan:
    spec: AutofixSpec
    action: AutofixAction


@dataclass
class ModuleContext:
    """Collaborators a module needs for one evaluation."""

    dispatcher: AlertDispatcher
    gate: AutofixGate
    store: StateStore
    options: RunOptions = field(default_factory=RunOptions)
    emergency: EmergencyResponder | None = None


# ── Base class ───────────────────────────────────────────────────


class MonitorModule(abc.ABC):
    """Base class for health modules.

    Subclasses declare ``name``, ``default_thresholds`` and optionally
    ``autofixes``/``default_options``, and implement :meth:`exists`,
    :meth:`read_metric` and :meth:`build_action`.
    """

    name: ClassVar[str]
    description: ClassVar[str] = ""
    unit: ClassVar[str] = ""
    default_thresholds: ClassVar[dict[str, float]] = {}
    default_options: ClassVar[dict[str, Any]] = {}
    autofixes: ClassVar[tuple[AutofixSpec, ...]] = ()

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.descriptor = self.build_descriptor(settings.module(self.name))

    def build_descriptor(self, override: ModuleConfig) -> ModuleDescriptor:
        """Layer module defaults under the configured override."""
        thresholds = validate_thresholds(
            self.name, {**self.default_thresholds, **override.thresholds},
        )
        grace_periods = validate_grace_periods(
            self.name, override.grace_periods, {spec.name for spec in self.autofixes},
        )
        return ModuleDescriptor(
            name=self.name,
            description=self.description,
            thresholds=thresholds,
            enabled=override.enabled,
            autofix_enabled=override.autofix,
            grace_periods={
                **{spec.name: spec.grace_period for spec in self.autofixes},
                **grace_periods,
            },
            options={**self.default_options, **override.options},
            hardware_predicate=self.exists,
        )

    @property
    def thresholds(self) -> dict[str, float]:
        return self.descriptor.thresholds

    @property
    def options(self) -> dict[str, Any]:
        return self.descriptor.options

    @property
    def command_timeout(self) -> float:
        return self.settings.collectors.command_timeout_secs

    # ── Contract ─────────────────────────────────────────────────

    @abc.abstractmethod
    def exists(self) -> bool:
        """Whether the hardware this module watches is present."""

    @abc.abstractmethod
    async def read_metric(self) -> tuple[float, str]:
        """Return ``(value, details)``.

        Raises:
            CollectorUnavailableError: the metric cannot be read.
        """

    def build_action(self, spec: AutofixSpec, check: CheckResult) -> AutofixAction:
        raise NotImplementedError(f"{self.name} has no action for {spec.name}")

    async def recent_events(self, window: TimeWindow) -> list[str]:
        return []

    # ── Evaluation ───────────────────────────────────────────────

    async def check_status(self) -> CheckResult:
        try:
            value, details = await self.read_metric()
        except CollectorUnavailableError as exc:
            return CheckResult.unavailable(self.name, str(exc))
        return CheckResult(
            module=self.name,
            severity=classify(value, self.thresholds),
            value=value,
            unit=self.unit,
            details=details,
        )

    def alert_message(self, check: CheckResult) -> str:
        reading = f"{check.value:g}{self.unit}" if check.value is not None else "n/a"
        limit = self.thresholds.get((check.severity or Severity.NORMAL).name.lower())
        text = f"{self.description or self.name}: {reading}"
        if limit is not None:
            text += f" (threshold {limit:g}{self.unit})"
        if check.details:
            text += f"; {check.details}"
        return text

    def grace_period(self, spec: AutofixSpec) -> float:
        return self.descriptor.grace_periods.get(spec.name, spec.grace_period)

    def plan_autofixes(self, check: CheckResult) -> list[AutofixPlan]:
        """Actions for this severity, least invasive first."""
        if check.severity is None:
            return []
        specs = sorted(
            (s for s in self.autofixes if s.trigger <= check.severity),
            key=lambda s: s.trigger,
        )
        return [AutofixPlan(spec=s, action=self.build_action(s, check)) for s in specs]

    async def remediate(self, check: CheckResult, ctx: ModuleContext) -> list[AutofixResult]:
        results: list[AutofixResult] = []
        for plan in self.plan_autofixes(check):
            invocation = AutofixInvocation(
                action_name=plan.spec.name,
                calling_module=self.name,
                grace_period=self.grace_period(plan.spec),
                dry_run=ctx.options.dry_run,
                force=ctx.options.force,
                requires_privilege=plan.spec.requires_privilege,
                description=plan.spec.recommendation or plan.spec.description,
            )
            results.append(await ctx.gate.run_gated(invocation, plan.action))
        return results

    async def evaluate(self, ctx: ModuleContext) -> RunResult:
        """Run one full check → alert → autofix cycle."""
        started = time.monotonic()
        log = logger.bind(subject=self.name)

        check = await self.check_status()
        if not check.evaluated:
            log.warning("metric_unavailable", reason=check.details)
            return RunResult(
                module_name=self.name,
                evaluated=False,
                details=check.details,
                duration_secs=time.monotonic() - started,
            )

        severity = check.severity or Severity.NORMAL
        log.info("check_complete", value=check.value, unit=self.unit, severity=severity.name)

        alerts_sent = 0
        if severity >= Severity.WARNING:
            sent = await ctx.dispatcher.send(self.name, severity, self.alert_message(check))
            alerts_sent = 1 if sent is not None else 0

        autofixes: list[AutofixResult] = []
        if severity >= Severity.CRITICAL:
            if ctx.options.autofix and self.descriptor.autofix_enabled:
                autofixes = await self.remediate(check, ctx)
            else:
                log.info("autofix_not_requested", severity=severity.name)

        return RunResult(
            module_name=self.name,
            evaluated=True,
            severity=severity,
            value=check.value,
            details=check.details,
            alerts_sent=alerts_sent,
            autofixes=autofixes,
            duration_secs=time.monotonic() - started,
        )

    async def status_report(self, store: StateStore, window: TimeWindow) -> StatusReport:
        """Read-only view: no alerts, no autofix."""
        check = await self.check_status()
        prefixes = (f"alert:{self.name}:", f"autofix:{self.name}:")
        cooldowns = {
            key: ts for key, ts in (await store.entries()).items()
            if key.startswith(prefixes)
        }
        try:
            events = await self.recent_events(window)
        except CollectorUnavailableError as exc:
            events = [f"(kernel log unavailable: {exc})"]
        return StatusReport(
            module=self.name,
            description=self.description,
            check=check,
            thresholds=self.thresholds,
            cooldowns=cooldowns,
            recent_events=events,
        )
