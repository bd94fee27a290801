"""AutofixGate — per (module, action) grace periods around remediation.

Order of checks for one invocation:

1. autofix disabled globally or for this action → DISABLED (no cooldown use)
2. inside the grace period → SKIPPED (no side effect)
3. dry run → log, record timestamp, SUCCESS(dry_run=True); action not called
4. needs root and not root → RECOMMENDED (logged + notified), record timestamp
5. run the action; record timestamp whether it succeeds or fails

Steps 2–5 run under the store's lock for the key, so two concurrent
requests for the same (module, action) cannot both execute.
"""

from __future__ import annotations

import re
import time
from collections.abc import Awaitable, Callable

import structlog

from hostwatch.alerts.dispatcher import AlertDispatcher
from hostwatch.alerts.types import AlertMessage
from hostwatch.autofix.exceptions import InvalidActionNameError
from hostwatch.collectors.command import is_privileged as _is_root
from hostwatch.core.config import AutofixConfig
from hostwatch.core.types import (
    AutofixInvocation,
    AutofixOutcome,
    AutofixResult,
    Severity,
)
from hostwatch.state.store import StateStore, in_cooldown

logger = structlog.get_logger(__name__)

AutofixAction = Callable[[], Awaitable[AutofixResult]]

_ACTION_NAME_RE = re.compile(r"^[A-Za-z0-9_-]+$")


def validate_action_name(name: str) -> str:
    if not _ACTION_NAME_RE.match(name):
        raise InvalidActionNameError(f"invalid autofix action name: {name!r}")
    return name


class AutofixGate:
    """Runs remediation actions at most once per grace period."""

    def __init__(
        self,
        store: StateStore,
        config: AutofixConfig | None = None,
        notifier: AlertDispatcher | None = None,
        clock: Callable[[], float] = time.time,
        is_privileged: Callable[[], bool] = _is_root,
    ) -> None:
        self._store = store
        self._config = config or AutofixConfig()
        self._notifier = notifier
        self._clock = clock
        self._is_privileged = is_privileged

    @property
    def enabled(self) -> bool:
        return self._config.enabled

    def is_disabled(self, action_name: str) -> bool:
        return not self._config.enabled or action_name in self._config.disabled_actions

    async def last_run(self, calling_module: str, action_name: str) -> float | None:
        return await self._store.get(f"autofix:{calling_module}:{action_name}")

    # ── Entry point ──────────────────────────────────────────────

    async def run_gated(
        self,
        invocation: AutofixInvocation,
        action: AutofixAction,
    ) -> AutofixResult:
        validate_action_name(invocation.action_name)
        log = logger.bind(
            subject=invocation.calling_module,
            action=invocation.action_name,
        )

        if self.is_disabled(invocation.action_name):
            log.info(
                "autofix_disabled",
                would_execute=invocation.description or invocation.action_name,
            )
            await self._notify(
                invocation,
                Severity.NORMAL,
                f"Autofix disabled: {invocation.action_name}",
                f"Would have run: {invocation.description or invocation.action_name}",
            )
            return self._result(invocation, AutofixOutcome.DISABLED, "autofix disabled by configuration")

        async with self._store.lock(invocation.key):
            now = self._clock()
            last = await self._store.get(invocation.key)

            if invocation.force:
                log.warning("autofix_grace_bypassed", last_run=last)
            elif in_cooldown(last, invocation.grace_period, now):
                remaining = invocation.grace_period - (now - (last or now))
                log.info("autofix_skipped_cooldown", remaining_secs=round(remaining, 1))
                return self._result(
                    invocation,
                    AutofixOutcome.SKIPPED,
                    f"grace period active, {remaining:.0f}s remaining",
                )

            if invocation.dry_run:
                log.info("autofix_dry_run", would_execute=invocation.description or invocation.action_name)
                await self._store.set(invocation.key, now)
                return self._result(invocation, AutofixOutcome.SUCCESS, "dry run")

            if invocation.requires_privilege and not self._is_privileged():
                log.warning("autofix_recommended", recommendation=invocation.description)
                await self._notify(
                    invocation,
                    Severity.WARNING,
                    f"Manual fix recommended: {invocation.action_name}",
                    invocation.description or "requires root privileges",
                )
                await self._store.set(invocation.key, now)
                return self._result(
                    invocation,
                    AutofixOutcome.RECOMMENDED,
                    invocation.description or "requires root privileges",
                )

            log.info("autofix_executing")
            try:
                result = await action()
            except Exception as exc:
                log.exception("autofix_failed")
                result = self._result(invocation, AutofixOutcome.FAILED, str(exc) or type(exc).__name__)
            finally:
                await self._store.set(invocation.key, self._clock())

        result = result.model_copy(update={
            "action_name": invocation.action_name,
            "calling_module": invocation.calling_module,
        })
        if result.outcome == AutofixOutcome.FAILED:
            log.error("autofix_result", outcome=result.outcome.value, detail=result.detail)
        else:
            log.info("autofix_result", outcome=result.outcome.value, detail=result.detail)
        return result

    # ── Helpers ──────────────────────────────────────────────────

    @staticmethod
    def _result(
        invocation: AutofixInvocation,
        outcome: AutofixOutcome,
        detail: str,
    ) -> AutofixResult:
        return AutofixResult(
            action_name=invocation.action_name,
            calling_module=invocation.calling_module,
            outcome=outcome,
            detail=detail,
            dry_run=invocation.dry_run,
        )

    async def _notify(
        self,
        invocation: AutofixInvocation,
        severity: Severity,
        title: str,
        body: str,
    ) -> None:
        if self._notifier is None:
            return
        await self._notifier.notify(AlertMessage(
            subject=invocation.calling_module,
            severity=severity,
            title=title,
            body=body,
            fields={"action": invocation.action_name},
        ))
