"""Tests for hostwatch/core/types.py — severity ordering and run summaries."""

from __future__ import annotations

from hostwatch.core.types import (
    AutofixOutcome,
    AutofixResult,
    CheckResult,
    RunResult,
    RunSummary,
    Severity,
)


class TestSeverity:
    def test_ordering(self) -> None:
        assert Severity.NORMAL < Severity.WARNING < Severity.CRITICAL < Severity.EMERGENCY

    def test_unavailable_check_has_no_severity(self) -> None:
        check = CheckResult.unavailable("thermal", "no sensor")
        assert check.evaluated is False
        assert check.severity is None


class TestAutofixResult:
    def test_dry_run_is_not_executed(self) -> None:
        r = AutofixResult(action_name="x", outcome=AutofixOutcome.SUCCESS, dry_run=True)
        assert r.executed is False

    def test_failed_counts_as_executed(self) -> None:
        r = AutofixResult(action_name="x", outcome=AutofixOutcome.FAILED)
        assert r.executed is True

    def test_recommendation_is_not_executed(self) -> None:
        r = AutofixResult(action_name="x", outcome=AutofixOutcome.RECOMMENDED)
        assert r.executed is False


class TestRunSummary:
    def test_issues_do_not_change_exit_code(self) -> None:
        summary = RunSummary(results=[
            RunResult(module_name="memory", evaluated=True, severity=Severity.CRITICAL),
            RunResult(module_name="disk", evaluated=True, severity=Severity.NORMAL),
        ])
        assert [r.module_name for r in summary.issues] == ["memory"]
        assert summary.exit_code == 0

    def test_no_modules_enabled_is_fatal(self) -> None:
        assert RunSummary(no_modules_enabled=True).exit_code == 1

    def test_unknown_module_is_fatal(self) -> None:
        assert RunSummary(unknown_modules=["bogus"]).exit_code == 1

    def test_one_failure_is_contained(self) -> None:
        summary = RunSummary(results=[
            RunResult(module_name="a", ok=False, error="boom"),
            RunResult(module_name="b", evaluated=True, severity=Severity.NORMAL),
        ])
        assert len(summary.failed) == 1
        assert summary.exit_code == 0

    def test_all_failed_is_fatal(self) -> None:
        summary = RunSummary(results=[
            RunResult(module_name="a", ok=False, error="boom"),
            RunResult(module_name="b", ok=False, error="boom"),
        ])
        assert summary.exit_code == 1

    def test_hardware_absent_only_is_success(self) -> None:
        summary = RunSummary(results=[
            RunResult(module_name="gpu", hardware_present=False),
        ])
        assert summary.hardware_absent[0].module_name == "gpu"
        assert summary.ran == []
        assert summary.exit_code == 0
