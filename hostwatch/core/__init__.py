"""Core configuration, logging and shared types."""

from hostwatch.core.config import Settings, load_settings
from hostwatch.core.logging import setup_logging
from hostwatch.core.types import (
    AutofixInvocation,
    AutofixOutcome,
    AutofixResult,
    CheckResult,
    RunOptions,
    RunResult,
    RunSummary,
    Severity,
    StatusReport,
    TimeWindow,
)

__all__ = [
    "AutofixInvocation",
    "AutofixOutcome",
    "AutofixResult",
    "CheckResult",
    "RunOptions",
    "RunResult",
    "RunSummary",
    "Settings",
    "Severity",
    "StatusReport",
    "TimeWindow",
    "load_settings",
    "setup_logging",
]
