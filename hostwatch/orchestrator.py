"""Orchestrator — runs enabled modules in isolation and aggregates results."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable, Sequence

import structlog
from pydantic import BaseModel

from hostwatch.alerts.dispatcher import AlertDispatcher
from hostwatch.autofix.emergency import EmergencyResponder
from hostwatch.autofix.gate import AutofixGate
from hostwatch.core.config import Settings
from hostwatch.core.types import (
    RunOptions,
    RunResult,
    RunSummary,
    StatusReport,
    TimeWindow,
)
from hostwatch.modules.base import AutofixSpec, ModuleContext, MonitorModule
from hostwatch.modules.exceptions import ModuleError
from hostwatch.modules.registry import ModuleRegistry
from hostwatch.state.store import StateStore

logger = structlog.get_logger(__name__)


class ModuleListing(BaseModel):
    name: str
    description: str = ""
    enabled: bool = False
    hardware_present: bool | None = None
    error: str = ""


class AutofixListing(BaseModel):
    module: str
    action: str
    description: str
    trigger: str
    grace_period: float
    requires_privilege: bool
    disabled: bool = False


class Orchestrator:
    """Discovers enabled modules and runs each one with failure isolation.

    - A module whose hardware is absent is skipped and reported, not failed.
    - An exception or timeout inside one module is recorded; the others run.
    - At most ``orchestrator.max_concurrency`` modules run at once.
    """

    def __init__(
        self,
        settings: Settings,
        registry: ModuleRegistry,
        dispatcher: AlertDispatcher,
        gate: AutofixGate,
        store: StateStore,
        emergency: EmergencyResponder | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._settings = settings
        self._registry = registry
        self._dispatcher = dispatcher
        self._gate = gate
        self._store = store
        self._emergency = emergency
        self._clock = clock

    # ── Selection ────────────────────────────────────────────────

    def select(self, requested: Sequence[str] | None = None) -> tuple[list[str], list[str]]:
        """Resolve which modules to run.

        Returns:
            (names_to_run, unknown_names). With no request, every module
            explicitly enabled in configuration and registered.
        """
        if requested:
            unknown = [n for n in requested if n not in self._registry]
            return [n for n in requested if n in self._registry], unknown
        enabled = self._settings.enabled_modules
        unknown = [n for n in enabled if n not in self._registry]
        return [n for n in enabled if n in self._registry], unknown

    def list_modules(self) -> list[ModuleListing]:
        listings: list[ModuleListing] = []
        for name in self._registry.names():
            cls = self._registry.get(name)
            listing = ModuleListing(
                name=name,
                description=cls.description,
                enabled=self._settings.module(name).enabled,
            )
            try:
                listing.hardware_present = self._registry.create(name, self._settings).exists()
            except ModuleError as exc:
                listing.error = str(exc)
            except Exception as exc:
                logger.exception("hardware_check_failed", subject=name)
                listing.error = f"hardware check failed: {exc}"
            listings.append(listing)
        return listings

    def list_autofixes(self) -> list[AutofixListing]:
        listings: list[AutofixListing] = []
        for name in self._registry.names():
            try:
                module = self._registry.create(name, self._settings)
            except ModuleError as exc:
                logger.warning("module_config_invalid", subject=name, error=str(exc))
                continue
            for spec in module.autofixes:
                listings.append(self._autofix_listing(module, spec))
        return listings

    def _autofix_listing(self, module: MonitorModule, spec: AutofixSpec) -> AutofixListing:
        return AutofixListing(
            module=module.name,
            action=spec.name,
            description=spec.description,
            trigger=spec.trigger.name,
            grace_period=module.grace_period(spec),
            requires_privilege=spec.requires_privilege,
            disabled=self._gate.is_disabled(spec.name) or not module.descriptor.autofix_enabled,
        )

    # ── Run ──────────────────────────────────────────────────────

    async def run(
        self,
        requested: Sequence[str] | None = None,
        options: RunOptions | None = None,
    ) -> RunSummary:
        """Run the selected (or all enabled) modules once."""
        options = options or RunOptions()
        names, unknown = self.select(requested)
        summary = RunSummary(unknown_modules=unknown, started_at=self._clock())

        for name in unknown:
            logger.error("module_unknown", subject=name)

        if not names:
            if not requested:
                summary.no_modules_enabled = True
                logger.error("no_modules_enabled")
            summary.finished_at = self._clock()
            return summary

        await self._store.prune(self._settings.state.prune_after_secs, self._clock())

        logger.info(
            "run_started",
            modules=names,
            autofix=options.autofix,
            dry_run=options.dry_run,
        )
        ctx = ModuleContext(
            dispatcher=self._dispatcher,
            gate=self._gate,
            store=self._store,
            options=options,
            emergency=self._emergency,
        )
        semaphore = asyncio.Semaphore(max(1, self._settings.orchestrator.max_concurrency))

        async def _bounded(name: str) -> RunResult:
            async with semaphore:
                return await self.run_module(name, ctx)

        summary.results = list(await asyncio.gather(*(_bounded(n) for n in names)))
        summary.finished_at = self._clock()

        logger.info(
            "run_finished",
            ran=len(summary.ran),
            issues=[r.module_name for r in summary.issues],
            failed=[r.module_name for r in summary.failed],
            hardware_absent=[r.module_name for r in summary.hardware_absent],
            duration_secs=round(summary.finished_at - summary.started_at, 2),
        )
        return summary

    async def run_module(self, name: str, ctx: ModuleContext) -> RunResult:
        """Build, gate on hardware, and evaluate one module; never raises."""
        log = logger.bind(subject=name)
        started = time.monotonic()

        try:
            module = self._registry.create(name, self._settings)
        except ModuleError as exc:
            log.error("module_config_invalid", error=str(exc))
            return RunResult(module_name=name, ok=False, error=str(exc))

        try:
            present = module.exists()
        except Exception as exc:
            log.exception("hardware_check_failed")
            return RunResult(module_name=name, ok=False, error=f"hardware check failed: {exc}")

        if not present:
            log.info("hardware_absent")
            return RunResult(module_name=name, hardware_present=False)

        timeout = self._settings.orchestrator.module_timeout_secs
        try:
            result = await asyncio.wait_for(module.evaluate(ctx), timeout=timeout)
        except asyncio.TimeoutError:
            log.error("module_timeout", timeout=timeout)
            return RunResult(
                module_name=name,
                ok=False,
                error=f"timed out after {timeout:g}s",
                duration_secs=time.monotonic() - started,
            )
        except Exception as exc:
            log.exception("module_failed")
            return RunResult(
                module_name=name,
                ok=False,
                error=f"{type(exc).__name__}: {exc}",
                duration_secs=time.monotonic() - started,
            )
        return result

    # ── Status ───────────────────────────────────────────────────

    async def status(
        self,
        requested: Sequence[str] | None = None,
        window: TimeWindow | None = None,
    ) -> tuple[list[StatusReport], list[str]]:
        """Read-only reports for the selected modules.

        Returns:
            (reports, unknown_names)
        """
        window = window or TimeWindow()
        names, unknown = self.select(requested)
        reports: list[StatusReport] = []
        for name in names:
            try:
                module = self._registry.create(name, self._settings)
            except ModuleError as exc:
                logger.error("module_config_invalid", subject=name, error=str(exc))
                continue
            try:
                present = module.exists()
            except Exception:
                logger.exception("hardware_check_failed", subject=name)
                continue
            if not present:
                logger.info("hardware_absent", subject=name)
                continue
            reports.append(await module.status_report(self._store, window))
        return reports, unknown

    # ── Lifecycle ────────────────────────────────────────────────

    async def close(self) -> None:
        await self._dispatcher.close()
