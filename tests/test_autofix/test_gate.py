"""Tests for AutofixGate — grace periods, dry run, privilege downgrade, disable flags."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest

from hostwatch.autofix.exceptions import InvalidActionNameError
from hostwatch.autofix.gate import AutofixGate
from hostwatch.core.config import AutofixConfig
from hostwatch.core.types import (
    AutofixInvocation,
    AutofixOutcome,
    AutofixResult,
    Severity,
)
from hostwatch.state.store import MemoryStateStore


# ── Helpers ─────────────────────────────────────────────────────


class Clock:
    def __init__(self, now: float = 1_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def _inv(**kw: object) -> AutofixInvocation:
    defaults: dict[str, object] = {
        "action_name": "dkms-rebuild",
        "calling_module": "gpu",
        "grace_period": 6 * 3600.0,
    }
    defaults.update(kw)
    return AutofixInvocation(**defaults)  # type: ignore[arg-type]


def _action(outcome: AutofixOutcome = AutofixOutcome.SUCCESS) -> AsyncMock:
    return AsyncMock(return_value=AutofixResult(action_name="ignored", outcome=outcome, detail="done"))


def _gate(
    store: MemoryStateStore | None = None,
    clock: Clock | None = None,
    privileged: bool = True,
    **config: object,
) -> AutofixGate:
    return AutofixGate(
        store or MemoryStateStore(),
        AutofixConfig(**config),  # type: ignore[arg-type]
        clock=clock or Clock(),
        is_privileged=lambda: privileged,
    )


# ── Grace period ────────────────────────────────────────────────


class TestGracePeriod:
    async def test_first_run_executes_and_records(self) -> None:
        store, clock = MemoryStateStore(), Clock()
        gate = _gate(store, clock)
        action = _action()

        result = await gate.run_gated(_inv(), action)

        assert result.outcome == AutofixOutcome.SUCCESS
        assert result.action_name == "dkms-rebuild"
        assert result.calling_module == "gpu"
        action.assert_awaited_once()
        assert await store.get("autofix:gpu:dkms-rebuild") == clock.now

    async def test_repeat_within_grace_is_skipped(self) -> None:
        clock = Clock()
        gate = _gate(clock=clock)
        action = _action()
        await gate.run_gated(_inv(), action)

        clock.now += 3600
        result = await gate.run_gated(_inv(), action)

        assert result.outcome == AutofixOutcome.SKIPPED
        assert action.await_count == 1

    async def test_skip_has_no_side_effect(self) -> None:
        store, clock = MemoryStateStore(), Clock()
        gate = _gate(store, clock)
        await gate.run_gated(_inv(), _action())
        first = await store.get("autofix:gpu:dkms-rebuild")

        clock.now += 60
        await gate.run_gated(_inv(), _action())
        assert await store.get("autofix:gpu:dkms-rebuild") == first

    async def test_runs_again_after_grace(self) -> None:
        clock = Clock()
        gate = _gate(clock=clock)
        action = _action()
        await gate.run_gated(_inv(), action)
        clock.now += 6 * 3600
        result = await gate.run_gated(_inv(), action)
        assert result.outcome == AutofixOutcome.SUCCESS
        assert action.await_count == 2

    async def test_key_includes_calling_module(self) -> None:
        gate = _gate()
        action = _action()
        await gate.run_gated(_inv(calling_module="gpu"), action)
        result = await gate.run_gated(_inv(calling_module="thermal"), action)
        assert result.outcome == AutofixOutcome.SUCCESS
        assert action.await_count == 2

    async def test_force_bypasses_grace(self) -> None:
        clock = Clock()
        gate = _gate(clock=clock)
        action = _action()
        await gate.run_gated(_inv(), action)
        clock.now += 10
        result = await gate.run_gated(_inv(force=True), action)
        assert result.outcome == AutofixOutcome.SUCCESS
        assert action.await_count == 2

    async def test_concurrent_requests_execute_once(self) -> None:
        gate = _gate()

        async def slow() -> AutofixResult:
            await asyncio.sleep(0.01)
            return AutofixResult(action_name="x", outcome=AutofixOutcome.SUCCESS)

        action = AsyncMock(side_effect=slow)
        results = await asyncio.gather(*(gate.run_gated(_inv(), action) for _ in range(5)))

        outcomes = sorted(r.outcome.value for r in results)
        assert outcomes.count("success") == 1
        assert outcomes.count("skipped") == 4
        assert action.await_count == 1


# ── Failure ─────────────────────────────────────────────────────


class TestFailure:
    async def test_exception_is_failed_and_recorded(self) -> None:
        store = MemoryStateStore()
        gate = _gate(store)
        action = AsyncMock(side_effect=RuntimeError("dkms exploded"))

        result = await gate.run_gated(_inv(), action)

        assert result.outcome == AutofixOutcome.FAILED
        assert "dkms exploded" in result.detail
        assert await store.get("autofix:gpu:dkms-rebuild") is not None

    async def test_failed_result_still_consumes_grace(self) -> None:
        clock = Clock()
        gate = _gate(clock=clock)
        await gate.run_gated(_inv(), _action(AutofixOutcome.FAILED))
        clock.now += 60
        result = await gate.run_gated(_inv(), _action())
        assert result.outcome == AutofixOutcome.SKIPPED

    async def test_unsupported_is_surfaced(self) -> None:
        result = await _gate().run_gated(_inv(), _action(AutofixOutcome.UNSUPPORTED))
        assert result.outcome == AutofixOutcome.UNSUPPORTED

    async def test_invalid_action_name(self) -> None:
        with pytest.raises(InvalidActionNameError):
            await _gate().run_gated(_inv(action_name="rm -rf /"), _action())


# ── Dry run ─────────────────────────────────────────────────────


class TestDryRun:
    async def test_action_not_called_but_recorded(self) -> None:
        store = MemoryStateStore()
        gate = _gate(store)
        action = _action()

        result = await gate.run_gated(_inv(dry_run=True), action)

        assert result.outcome == AutofixOutcome.SUCCESS
        assert result.dry_run is True
        action.assert_not_awaited()
        assert await store.get("autofix:gpu:dkms-rebuild") is not None

    async def test_dry_run_respects_grace(self) -> None:
        clock = Clock()
        gate = _gate(clock=clock)
        await gate.run_gated(_inv(dry_run=True), _action())
        clock.now += 10
        result = await gate.run_gated(_inv(dry_run=True), _action())
        assert result.outcome == AutofixOutcome.SKIPPED


# ── Privilege ───────────────────────────────────────────────────


class TestPrivilege:
    async def test_unprivileged_becomes_recommendation(self) -> None:
        store = MemoryStateStore()
        notifier = AsyncMock()
        gate = AutofixGate(
            store,
            AutofixConfig(),
            notifier=notifier,
            clock=Clock(),
            is_privileged=lambda: False,
        )
        action = _action()

        result = await gate.run_gated(
            _inv(requires_privilege=True, description="sudo dkms autoinstall"), action,
        )

        assert result.outcome == AutofixOutcome.RECOMMENDED
        assert result.detail == "sudo dkms autoinstall"
        action.assert_not_awaited()
        notifier.notify.assert_awaited_once()
        msg = notifier.notify.call_args[0][0]
        assert msg.severity == Severity.WARNING
        assert await store.get("autofix:gpu:dkms-rebuild") is not None

    async def test_recommendation_consumes_grace(self) -> None:
        clock = Clock()
        gate = _gate(clock=clock, privileged=False)
        await gate.run_gated(_inv(requires_privilege=True), _action())
        clock.now += 60
        result = await gate.run_gated(_inv(requires_privilege=True), _action())
        assert result.outcome == AutofixOutcome.SKIPPED

    async def test_privileged_executes(self) -> None:
        action = _action()
        result = await _gate(privileged=True).run_gated(_inv(requires_privilege=True), action)
        assert result.outcome == AutofixOutcome.SUCCESS
        action.assert_awaited_once()


# ── Disabled ────────────────────────────────────────────────────


class TestDisabled:
    async def test_globally_disabled(self) -> None:
        store = MemoryStateStore()
        gate = _gate(store, enabled=False)
        action = _action()

        result = await gate.run_gated(_inv(), action)

        assert result.outcome == AutofixOutcome.DISABLED
        action.assert_not_awaited()
        assert await store.get("autofix:gpu:dkms-rebuild") is None

    async def test_selectively_disabled(self) -> None:
        gate = _gate(disabled_actions=("dkms-rebuild",))
        assert gate.is_disabled("dkms-rebuild") is True
        assert gate.is_disabled("grub-flags") is False
        result = await gate.run_gated(_inv(), _action())
        assert result.outcome == AutofixOutcome.DISABLED

    async def test_disabled_notifies(self) -> None:
        notifier = AsyncMock()
        gate = AutofixGate(MemoryStateStore(), AutofixConfig(enabled=False), notifier=notifier)
        await gate.run_gated(_inv(), _action())
        notifier.notify.assert_awaited_once()
