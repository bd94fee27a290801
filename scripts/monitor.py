#!/usr/bin/env python3
"""hostwatch entrypoint — run health modules once and exit.

Usage::

    # Run every module enabled in config/settings.yaml
    python scripts/monitor.py

    # Run a subset, without remediation
    python scripts/monitor.py thermal memory --no-auto-fix

    # Run one module even if it is not enabled
    python scripts/monitor.py --test gpu --dry-run

    # Read-only status with a log window
    python scripts/monitor.py --status usb --start-time "2 hours ago"

    # Inventory
    python scripts/monitor.py --list
    python scripts/monitor.py --list-autofixes
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from datetime import datetime

import structlog

from hostwatch.alerts.factory import create_alert_stack
from hostwatch.autofix.emergency import EmergencyResponder
from hostwatch.autofix.gate import AutofixGate
from hostwatch.core.config import Settings, load_settings
from hostwatch.core.logging import setup_logging
from hostwatch.core.types import RunOptions, RunSummary, StatusReport, TimeWindow
from hostwatch.modules.registry import default_registry
from hostwatch.orchestrator import AutofixListing, ModuleListing, Orchestrator
from hostwatch.state.store import FileStateStore

logger = structlog.get_logger(__name__)


# ── Output ───────────────────────────────────────────────────────


def format_listing(listings: list[ModuleListing]) -> str:
    lines = [f"{'MODULE':<10} {'ENABLED':<8} {'HARDWARE':<9} DESCRIPTION"]
    for item in listings:
        if item.error:
            hw = "error"
        elif item.hardware_present is None:
            hw = "?"
        else:
            hw = "present" if item.hardware_present else "absent"
        lines.append(
            f"{item.name:<10} {('yes' if item.enabled else 'no'):<8} {hw:<9} {item.description}"
            + (f"  ({item.error})" if item.error else "")
        )
    return "\n".join(lines)


def format_autofixes(listings: list[AutofixListing]) -> str:
    lines = [f"{'MODULE':<10} {'ACTION':<24} {'TRIGGER':<10} {'GRACE':>8}  NOTES"]
    for item in listings:
        notes = []
        if item.requires_privilege:
            notes.append("root")
        if item.disabled:
            notes.append("disabled")
        lines.append(
            f"{item.module:<10} {item.action:<24} {item.trigger:<10} "
            f"{item.grace_period:>7.0f}s  {', '.join(notes)}  {item.description}"
        )
    return "\n".join(lines)


def format_status(reports: list[StatusReport]) -> str:
    blocks: list[str] = []
    for report in reports:
        check = report.check
        if check.evaluated:
            severity = check.severity.name if check.severity is not None else "?"
            reading = f"{check.value:g}{check.unit} [{severity}]"
        else:
            reading = f"unavailable ({check.details})"
        thresholds = ", ".join(f"{k}={v:g}" for k, v in report.thresholds.items())
        lines = [
            f"== {report.module}: {report.description} ==",
            f"  reading:    {reading}",
            f"  thresholds: {thresholds}",
        ]
        if check.evaluated and check.details:
            lines.append(f"  details:    {check.details}")
        for key, ts in sorted(report.cooldowns.items()):
            when = datetime.fromtimestamp(ts).isoformat(sep=" ", timespec="seconds")
            lines.append(f"  last fired: {key} at {when}")
        if report.recent_events:
            lines.append(f"  recent events ({len(report.recent_events)}):")
            lines.extend(f"    {line}" for line in report.recent_events[-20:])
        blocks.append("\n".join(lines))
    return "\n\n".join(blocks) if blocks else "No modules to report."


def format_summary(summary: RunSummary) -> str:
    lines = []
    for r in summary.results:
        if not r.hardware_present:
            state = "skipped (hardware absent)"
        elif not r.ok:
            state = f"FAILED: {r.error}"
        elif not r.evaluated:
            state = f"not evaluated: {r.details}"
        else:
            state = f"{r.severity.name if r.severity is not None else '?'} {r.value:g}"
        lines.append(f"{r.module_name:<10} {state}")
        for fix in r.autofixes:
            flag = " (dry run)" if fix.dry_run else ""
            lines.append(f"{'':<10}   autofix {fix.action_name}: {fix.outcome.value}{flag} {fix.detail}")
    for name in summary.unknown_modules:
        lines.append(f"{name:<10} unknown module")
    return "\n".join(lines)


# ── Wiring ───────────────────────────────────────────────────────


def build_orchestrator(settings: Settings) -> Orchestrator:
    store = FileStateStore(settings.state.directory)
    dispatcher = create_alert_stack(settings.alerts, store)
    gate = AutofixGate(store, settings.autofix, notifier=dispatcher)
    emergency = EmergencyResponder(
        settings.emergency,
        snapshot_dir=settings.state.snapshot_dir,
        notifier=dispatcher,
        command_timeout=settings.collectors.command_timeout_secs,
    )
    return Orchestrator(
        settings=settings,
        registry=default_registry(),
        dispatcher=dispatcher,
        gate=gate,
        store=store,
        emergency=emergency,
    )


async def run(args: argparse.Namespace) -> int:
    """Execute the requested mode and return the process exit code."""
    if args.test and args.modules:
        print(
            f"--test runs a single module; drop the extra module names: {' '.join(args.modules)}",
            file=sys.stderr,
        )
        return 2

    settings = load_settings(args.config, override_dir=args.override_dir)
    setup_logging(settings.logging, level=args.log_level, fmt=args.log_format)

    orchestrator = build_orchestrator(settings)

    if args.list:
        print(format_listing(orchestrator.list_modules()))
        return 0

    if args.list_autofixes:
        print(format_autofixes(orchestrator.list_autofixes()))
        return 0

    requested = [args.test] if args.test else list(args.modules)

    if args.status:
        reports, unknown = await orchestrator.status(
            requested or None,
            TimeWindow(start=args.start_time, end=args.end_time),
        )
        print(format_status(reports))
        for name in unknown:
            print(f"Unknown module: {name}", file=sys.stderr)
        return 1 if unknown else 0

    options = RunOptions(
        autofix=not args.no_auto_fix,
        dry_run=args.dry_run,
        force=args.force,
    )
    try:
        summary = await orchestrator.run(requested or None, options)
    finally:
        await orchestrator.close()

    if summary.no_modules_enabled:
        print(
            "No modules enabled. Enable at least one module in config/settings.yaml "
            "(modules.<name>.enabled: true) or name modules on the command line.",
            file=sys.stderr,
        )
        return summary.exit_code

    print(format_summary(summary))
    return summary.exit_code


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Run hostwatch health modules once.",
    )
    parser.add_argument(
        "modules",
        nargs="*",
        help="Modules to run (default: every module enabled in config)",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to settings YAML (default: config/settings.yaml)",
    )
    parser.add_argument(
        "--override-dir",
        default=None,
        help="Directory of <module>.yaml files layered over the settings",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level override: DEBUG, INFO, WARNING, ERROR",
    )
    parser.add_argument(
        "--log-format",
        default=None,
        choices=["plain", "json", "console"],
        help="Log renderer override",
    )

    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--list", action="store_true", help="List modules and hardware presence")
    mode.add_argument("--list-autofixes", action="store_true", help="List autofix actions")
    mode.add_argument("--status", action="store_true", help="Read-only status report")
    mode.add_argument("--test", metavar="MODULE", help="Run one module even if not enabled")

    parser.add_argument("--start-time", default=None, help="Status window start (journalctl syntax)")
    parser.add_argument("--end-time", default=None, help="Status window end (journalctl syntax)")
    parser.add_argument("--no-auto-fix", action="store_true", help="Alert only, never remediate")
    parser.add_argument("--dry-run", action="store_true", help="Log autofix actions without running them")
    parser.add_argument("--force", action="store_true", help="Ignore autofix grace periods")
    return parser


def main() -> None:
    args = build_parser().parse_args()
    code = asyncio.run(run(args))
    sys.exit(code)


if __name__ == "__main__":
    main()
