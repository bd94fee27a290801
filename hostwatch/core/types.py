"""Shared domain types used across hostwatch modules."""

from __future__ import annotations

import time
from enum import Enum, IntEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Severity(IntEnum):
    """Health severity, ordered so comparisons work naturally."""

    NORMAL = 0
    WARNING = 1
    CRITICAL = 2
    EMERGENCY = 3


class CheckResult(BaseModel):
    """Outcome of reading and classifying one module's metric.

    ``evaluated=False`` means the metric could not be read; ``severity`` is
    then ``None`` and must never be treated as NORMAL.
    """

    module: str
    severity: Severity | None = None
    value: float | None = None
    unit: str = ""
    details: str = ""
    evaluated: bool = True
    extra: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def unavailable(cls, module: str, reason: str) -> CheckResult:
        return cls(module=module, details=reason, evaluated=False)


class AutofixOutcome(str, Enum):
    """Three-valued remediation outcome plus the gate's own short-circuits."""

    SUCCESS = "success"
    SKIPPED = "skipped"
    RECOMMENDED = "recommended"
    UNSUPPORTED = "unsupported"
    FAILED = "failed"
    DISABLED = "disabled"


class AutofixInvocation(BaseModel):
    """A request to run one remediation action through the gate."""

    model_config = ConfigDict(frozen=True)

    action_name: str
    calling_module: str
    grace_period: float
    dry_run: bool = False
    force: bool = False
    requires_privilege: bool = False
    description: str = ""

    @property
    def key(self) -> str:
        return f"autofix:{self.calling_module}:{self.action_name}"


class AutofixResult(BaseModel):
    """What happened to an autofix invocation."""

    action_name: str
    calling_module: str = ""
    outcome: AutofixOutcome
    detail: str = ""
    dry_run: bool = False
    timestamp: float = Field(default_factory=time.time)

    @property
    def executed(self) -> bool:
        if self.dry_run:
            return False
        return self.outcome in (AutofixOutcome.SUCCESS, AutofixOutcome.FAILED)


class TimeWindow(BaseModel):
    """Optional start/end bounds for status reports (journalctl syntax)."""

    model_config = ConfigDict(frozen=True)

    start: str | None = None
    end: str | None = None


class RunOptions(BaseModel):
    """Per-run flags coming from the command line."""

    model_config = ConfigDict(frozen=True)

    autofix: bool = True
    dry_run: bool = False
    force: bool = False


class RunResult(BaseModel):
    """Result of a single module run inside an orchestration."""

    module_name: str
    ok: bool = True
    hardware_present: bool = True
    evaluated: bool = False
    severity: Severity | None = None
    value: float | None = None
    details: str = ""
    alerts_sent: int = 0
    autofixes: list[AutofixResult] = Field(default_factory=list)
    error: str = ""
    duration_secs: float = 0.0

    @property
    def has_issue(self) -> bool:
        return self.severity is not None and self.severity > Severity.NORMAL


class StatusReport(BaseModel):
    """Read-only snapshot produced by ``--status``."""

    module: str
    description: str = ""
    check: CheckResult
    thresholds: dict[str, float] = Field(default_factory=dict)
    cooldowns: dict[str, float] = Field(default_factory=dict)
    recent_events: list[str] = Field(default_factory=list)
    generated_at: float = Field(default_factory=time.time)


class RunSummary(BaseModel):
    """Aggregate of all module results for one orchestration."""

    results: list[RunResult] = Field(default_factory=list)
    unknown_modules: list[str] = Field(default_factory=list)
    no_modules_enabled: bool = False
    started_at: float = Field(default_factory=time.time)
    finished_at: float = 0.0

    @property
    def ran(self) -> list[RunResult]:
        return [r for r in self.results if r.hardware_present and r.ok]

    @property
    def failed(self) -> list[RunResult]:
        return [r for r in self.results if not r.ok]

    @property
    def hardware_absent(self) -> list[RunResult]:
        return [r for r in self.results if not r.hardware_present]

    @property
    def issues(self) -> list[RunResult]:
        return [r for r in self.results if r.has_issue]

    @property
    def exit_code(self) -> int:
        """0 for a completed orchestration, even when issues were found.

        Non-zero only for structural failures: nothing enabled, an unknown
        module requested, or every attempted module crashing.
        """
        if self.no_modules_enabled or self.unknown_modules:
            return 1
        attempted = [r for r in self.results if r.hardware_present]
        if attempted and all(not r.ok for r in attempted):
            return 1
        return 0
