"""Connectivity measured as ICMP packet loss to a reference host."""

from __future__ import annotations

import functools
import re

from hostwatch.autofix import actions
from hostwatch.autofix.gate import AutofixAction
from hostwatch.collectors.command import run_command
from hostwatch.collectors.exceptions import CollectorUnavailableError
from hostwatch.core.types import CheckResult, Severity
from hostwatch.hardware.predicates import network_interface_present
from hostwatch.modules.base import AutofixSpec, MonitorModule

_LOSS_RE = re.compile(r"(\d+(?:\.\d+)?)% packet loss")


def parse_packet_loss(returncode: int, stdout: str, stderr: str) -> float | None:
    """Loss percentage from ``ping`` output; None when ping itself failed.

    An unreachable network (exit 2, no statistics) counts as total loss.
    """
    match = _LOSS_RE.search(stdout)
    if match:
        return float(match.group(1))
    if returncode != 0 and "unreachable" in (stdout + stderr).lower():
        return 100.0
    return None


class NetworkModule(MonitorModule):
    name = "network"
    description = "Packet loss"
    unit = "%"
    default_thresholds = {"warning": 20.0, "critical": 100.0}
    default_options = {"target": "8.8.8.8", "count": 3, "timeout": 5}
    autofixes = (
        AutofixSpec(
            name="network-restart",
            description="restart NetworkManager",
            trigger=Severity.CRITICAL,
            grace_period=1800.0,
            requires_privilege=True,
            recommendation="sudo systemctl restart NetworkManager",
        ),
    )

    def exists(self) -> bool:
        return network_interface_present()

    async def read_metric(self) -> tuple[float, str]:
        target = str(self.options["target"])
        count = int(self.options["count"])
        per_ping = int(self.options["timeout"])
        result = await run_command(
            ["ping", "-n", "-q", "-c", str(count), "-W", str(per_ping), target],
            timeout=count * per_ping + 5,
        )
        loss = parse_packet_loss(result.returncode, result.stdout, result.stderr)
        if loss is None:
            raise CollectorUnavailableError(
                f"ping {target} failed: {(result.stderr or result.stdout).strip()[:160]}"
            )
        return loss, f"{count} pings to {target}"

    def build_action(self, spec: AutofixSpec, check: CheckResult) -> AutofixAction:
        return functools.partial(actions.network_restart, self.command_timeout * 3)
