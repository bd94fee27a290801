"""Tests for process signalling."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import psutil

from hostwatch.collectors.processes import ProcessInfo, terminate_process, top_by_cpu


def _fake_process(wait_effects: list[object]) -> MagicMock:
    proc = MagicMock()
    proc.wait.side_effect = wait_effects
    return proc


class TestTerminateProcess:
    async def test_sigterm_is_enough(self) -> None:
        proc = _fake_process([0])
        with patch("hostwatch.collectors.processes.psutil.Process", return_value=proc):
            assert await terminate_process(4200, 0.01) == "terminated"
        proc.kill.assert_not_called()

    async def test_escalates_to_sigkill(self) -> None:
        proc = _fake_process([psutil.TimeoutExpired(0.01, 4200), -9])
        with patch("hostwatch.collectors.processes.psutil.Process", return_value=proc):
            assert await terminate_process(4200, 0.01) == "killed"
        proc.kill.assert_called_once()

    async def test_survives_sigkill(self) -> None:
        proc = _fake_process([
            psutil.TimeoutExpired(0.01, 4200),
            psutil.TimeoutExpired(0.01, 4200),
        ])
        with patch("hostwatch.collectors.processes.psutil.Process", return_value=proc):
            assert await terminate_process(4200, 0.01) == "unkillable"
        proc.kill.assert_called_once()

    async def test_already_gone(self) -> None:
        with patch(
            "hostwatch.collectors.processes.psutil.Process",
            side_effect=psutil.NoSuchProcess(4200),
        ):
            assert await terminate_process(4200, 0.01) == "gone"


class TestOrdering:
    def test_top_by_cpu(self) -> None:
        procs = [
            ProcessInfo(pid=1001, name="a", cpu_percent=5.0),
            ProcessInfo(pid=1002, name="b", cpu_percent=50.0),
        ]
        assert [p.pid for p in top_by_cpu(procs, limit=1)] == [1002]
