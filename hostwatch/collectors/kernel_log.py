"""Kernel log queries (journalctl -k, falling back to dmesg)."""

from __future__ import annotations

import re
from collections.abc import Sequence
from datetime import datetime, timedelta

import structlog

from hostwatch.collectors.command import command_available, run_command
from hostwatch.collectors.exceptions import CollectorUnavailableError

logger = structlog.get_logger(__name__)

HARDWARE_ERROR_PATTERN = re.compile(
    r"error|fail|timeout|hang|reset|thermal|throttl|mce", re.IGNORECASE,
)

# journalctl exits 0 but shows nothing from the system journal.
_JOURNAL_DENIED = re.compile(r"insufficient permissions|not seeing messages", re.IGNORECASE)

_RELATIVE = re.compile(r"^(\d+)\s*([a-z]+?)s?\s+ago$|^-(\d+)\s*([a-z]+)$")

_UNITS = {
    "s": 1, "sec": 1, "second": 1,
    "m": 60, "min": 60, "minute": 60,
    "h": 3600, "hour": 3600,
    "d": 86400, "day": 86400,
    "w": 604800, "week": 604800,
}


# ── Time windows ─────────────────────────────────────────────────


def parse_time_spec(spec: str, now: datetime) -> datetime:
    """Resolve a journalctl-style time (``now``, ``today``, ``2 hours ago``,
    ``-30m``, ISO timestamp) against the aware datetime *now*.

    Raises:
        ValueError: *spec* is not a form this parser understands.
    """
    text = spec.strip().lower()
    if text == "now":
        return now
    if text in ("today", "yesterday"):
        midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
        return midnight if text == "today" else midnight - timedelta(days=1)

    match = _RELATIVE.match(text)
    if match:
        amount, unit = (match.group(1), match.group(2)) if match.group(1) else match.group(3, 4)
        if unit not in _UNITS:
            raise ValueError(f"unknown time unit in {spec!r}")
        return now - timedelta(seconds=int(amount) * _UNITS[unit])

    return datetime.fromisoformat(spec.strip()).astimezone()


def _line_time(line: str) -> datetime | None:
    stamp = line.split(" ", 1)[0].replace(",", ".")
    try:
        return datetime.fromisoformat(stamp).astimezone()
    except ValueError:
        return None


def filter_window(
    lines: Sequence[str], start: datetime | None, end: datetime | None,
) -> list[str]:
    """Lines whose leading ISO timestamp falls in ``[start, end]``.

    Untimestamped lines follow the nearest timestamped line above them.
    """
    kept: list[str] = []
    inside = False
    for line in lines:
        when = _line_time(line)
        if when is not None:
            inside = (start is None or when >= start) and (end is None or when <= end)
        if inside:
            kept.append(line)
    return kept


# ── Sources ──────────────────────────────────────────────────────


def _journal_argv(since: str | None, until: str | None) -> list[str]:
    argv = ["journalctl", "-k", "--no-pager", "-o", "short-iso"]
    if since:
        argv += ["--since", since]
    if until:
        argv += ["--until", until]
    return argv


async def _from_journal(since: str | None, until: str | None, timeout: float) -> list[str] | None:
    result = await run_command(_journal_argv(since, until), timeout=timeout)
    if not result.ok:
        return None
    if _JOURNAL_DENIED.search(result.stderr):
        logger.warning("journal_not_readable", stderr=result.stderr.strip()[:200])
        return None
    # "-- No entries --", "-- Boot ... --"
    return [line for line in result.stdout.splitlines() if not line.startswith("-- ")]


async def _from_dmesg(since: str | None, until: str | None, timeout: float) -> list[str] | None:
    now = datetime.now().astimezone()
    try:
        start = parse_time_spec(since, now) if since else None
        end = parse_time_spec(until, now) if until else None
    except ValueError as exc:
        raise CollectorUnavailableError(f"cannot apply window to dmesg: {exc}") from exc

    result = await run_command(["dmesg", "--time-format", "iso"], timeout=timeout)
    if not result.ok:
        return None
    return filter_window(result.stdout.splitlines(), start, end)


async def read_kernel_log(
    since: str | None,
    until: str | None = None,
    timeout: float = 10.0,
) -> list[str]:
    """Kernel log lines for the window.

    journalctl is preferred. ``dmesg`` is used when journalctl is missing,
    fails, or cannot see the system journal; its output is filtered to the
    same window.

    Raises:
        CollectorUnavailableError: neither source is readable.
    """
    if command_available("journalctl"):
        lines = await _from_journal(since, until, timeout)
        if lines is not None:
            return lines
    if command_available("dmesg"):
        lines = await _from_dmesg(since, until, timeout)
        if lines is not None:
            return lines
    raise CollectorUnavailableError("kernel log not readable (journalctl/dmesg)")


def matching_lines(lines: Sequence[str], patterns: Sequence[re.Pattern[str]]) -> list[str]:
    return [line for line in lines if any(p.search(line) for p in patterns)]


async def count_matching(
    patterns: Sequence[re.Pattern[str]],
    since: str | None,
    until: str | None = None,
    timeout: float = 10.0,
) -> tuple[int, list[str]]:
    """Number of kernel log lines matching any pattern, plus the lines."""
    lines = matching_lines(await read_kernel_log(since, until, timeout), patterns)
    return len(lines), lines
