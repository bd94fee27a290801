"""Tests for kernel log collection and pattern counting."""

from __future__ import annotations

import re
from datetime import datetime, timedelta
from unittest.mock import AsyncMock, patch

import pytest

from hostwatch.collectors import kernel_log
from hostwatch.collectors.command import CommandResult
from hostwatch.collectors.exceptions import CollectorUnavailableError

LOG = """\
2024-05-01T10:00:00 host kernel: usb 1-1: reset high-speed USB device number 2
2024-05-01T10:00:01 host kernel: i915 0000:00:02.0: [drm] GPU HANG: ecode 9:1:85dffffb
2024-05-01T10:00:02 host kernel: usb 1-1: USB disconnect, device number 2
2024-05-01T10:00:03 host kernel: EXT4-fs (sda1): mounted filesystem
"""

DMESG = """\
2024-05-01T09:00:00,000000+00:00 usb 1-1: reset high-speed USB device number 2
2024-05-01T10:30:00,000000+00:00 i915 0000:00:02.0: [drm] GPU HANG: ecode 9:1:85dffffb
2024-05-01T10:45:00,000000+00:00 mce: [Hardware Error]: CPU 0: Machine Check
 continuation of the machine check report
2024-05-01T12:00:00,000000+00:00 EXT4-fs (sda1): mounted filesystem
"""

NOW = datetime(2024, 5, 1, 11, 0, 0).astimezone()


def _result(argv: list[str], stdout: str = "", rc: int = 0, stderr: str = "") -> CommandResult:
    return CommandResult(argv=argv, returncode=rc, stdout=stdout, stderr=stderr)


# ── Time windows ────────────────────────────────────────────────


class TestParseTimeSpec:
    @pytest.mark.parametrize(("spec", "delta"), [
        ("now", timedelta()),
        ("1 hour ago", timedelta(hours=1)),
        ("10 minutes ago", timedelta(minutes=10)),
        ("2 days ago", timedelta(days=2)),
        ("-30m", timedelta(minutes=30)),
        ("-1h", timedelta(hours=1)),
    ])
    def test_relative(self, spec: str, delta: timedelta) -> None:
        assert kernel_log.parse_time_spec(spec, NOW) == NOW - delta

    def test_today_and_yesterday(self) -> None:
        midnight = NOW.replace(hour=0, minute=0, second=0, microsecond=0)
        assert kernel_log.parse_time_spec("today", NOW) == midnight
        assert kernel_log.parse_time_spec("yesterday", NOW) == midnight - timedelta(days=1)

    def test_iso_timestamp(self) -> None:
        parsed = kernel_log.parse_time_spec("2024-05-01 10:00:00+00:00", NOW)
        assert parsed == datetime.fromisoformat("2024-05-01T10:00:00+00:00")

    @pytest.mark.parametrize("spec", ["last tuesday", "3 fortnights ago", ""])
    def test_rejects_unknown_forms(self, spec: str) -> None:
        with pytest.raises(ValueError):
            kernel_log.parse_time_spec(spec, NOW)


class TestFilterWindow:
    def test_keeps_lines_inside(self) -> None:
        start = datetime.fromisoformat("2024-05-01T10:00:00+00:00")
        end = datetime.fromisoformat("2024-05-01T11:00:00+00:00")
        lines = kernel_log.filter_window(DMESG.splitlines(), start, end)
        assert len(lines) == 3
        assert "GPU HANG" in lines[0]
        assert lines[2].startswith(" continuation")

    def test_open_ended(self) -> None:
        assert len(kernel_log.filter_window(DMESG.splitlines(), None, None)) == 5


# ── Sources ─────────────────────────────────────────────────────


class TestReadKernelLog:
    async def test_journalctl_window(self) -> None:
        run = AsyncMock(return_value=_result(["journalctl"], LOG))
        with (
            patch.object(kernel_log, "command_available", return_value=True),
            patch.object(kernel_log, "run_command", run),
        ):
            lines = await kernel_log.read_kernel_log("1 hour ago", "now")
        assert len(lines) == 4
        argv = run.call_args[0][0]
        assert argv[:2] == ["journalctl", "-k"]
        assert "-q" not in argv
        assert argv[argv.index("--since") + 1] == "1 hour ago"
        assert argv[argv.index("--until") + 1] == "now"

    async def test_journal_markers_dropped(self) -> None:
        run = AsyncMock(return_value=_result(["journalctl"], "-- No entries --\n"))
        with (
            patch.object(kernel_log, "command_available", return_value=True),
            patch.object(kernel_log, "run_command", run),
        ):
            assert await kernel_log.read_kernel_log("1 hour ago") == []

    async def test_unreadable_journal_falls_back_to_dmesg(self) -> None:
        hint = (
            "Hint: You are currently not seeing messages from other users and the system.\n"
            "      Users in groups 'adm', 'systemd-journal' can see all messages.\n"
        )
        run = AsyncMock(side_effect=[
            _result(["journalctl"], "-- No entries --\n", stderr=hint),
            _result(["dmesg"], DMESG),
        ])
        with (
            patch.object(kernel_log, "command_available", return_value=True),
            patch.object(kernel_log, "run_command", run),
        ):
            lines = await kernel_log.read_kernel_log("2024-05-01T10:00:00+00:00")
        assert run.call_args[0][0][0] == "dmesg"
        assert any("Machine Check" in line for line in lines)

    async def test_falls_back_to_dmesg_within_window(self) -> None:
        run = AsyncMock(side_effect=[
            _result(["journalctl"], rc=1),
            _result(["dmesg"], DMESG),
        ])
        with (
            patch.object(kernel_log, "command_available", return_value=True),
            patch.object(kernel_log, "run_command", run),
        ):
            lines = await kernel_log.read_kernel_log(
                "2024-05-01T10:00:00+00:00", "2024-05-01T11:00:00+00:00",
            )
        assert run.call_args[0][0][0] == "dmesg"
        assert len(lines) == 3
        assert not any("reset high-speed" in line for line in lines)
        assert not any("EXT4-fs" in line for line in lines)

    async def test_dmesg_relative_window_excludes_old_lines(self) -> None:
        run = AsyncMock(return_value=_result(["dmesg"], DMESG))
        with (
            patch.object(kernel_log, "command_available", side_effect=lambda n: n == "dmesg"),
            patch.object(kernel_log, "run_command", run),
        ):
            lines = await kernel_log.read_kernel_log("1 hour ago")
        assert lines == []

    async def test_dmesg_unusable_window(self) -> None:
        with (
            patch.object(kernel_log, "command_available", side_effect=lambda n: n == "dmesg"),
            patch.object(kernel_log, "run_command", AsyncMock()) as run,
        ):
            with pytest.raises(CollectorUnavailableError, match="window"):
                await kernel_log.read_kernel_log("last tuesday")
        run.assert_not_awaited()

    async def test_nothing_readable(self) -> None:
        with patch.object(kernel_log, "command_available", return_value=False):
            with pytest.raises(CollectorUnavailableError):
                await kernel_log.read_kernel_log("1 hour ago")


class TestCountMatching:
    async def test_counts_any_pattern(self) -> None:
        patterns = [re.compile(r"usb.*reset"), re.compile(r"USB disconnect")]
        with patch.object(kernel_log, "read_kernel_log", AsyncMock(return_value=LOG.splitlines())):
            count, lines = await kernel_log.count_matching(patterns, "1 hour ago")
        assert count == 2
        assert all("usb" in line.lower() for line in lines)

    def test_line_counted_once(self) -> None:
        patterns = [re.compile("usb"), re.compile("reset")]
        assert len(kernel_log.matching_lines(LOG.splitlines(), patterns)) == 2
