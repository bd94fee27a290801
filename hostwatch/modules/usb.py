"""USB resets, disconnects and descriptor/timeout errors."""

from __future__ import annotations

import functools
import re

from hostwatch.autofix import actions
from hostwatch.autofix.gate import AutofixAction
from hostwatch.core.types import CheckResult, Severity
from hostwatch.hardware.predicates import usb_bus_present
from hostwatch.modules.base import AutofixSpec
from hostwatch.modules.kernel_log import KernelLogModule


class UsbModule(KernelLogModule):
    name = "usb"
    description = "USB errors"
    default_thresholds = {"warning": 10.0, "critical": 20.0}
    patterns = (
        re.compile(r"usb.*reset", re.IGNORECASE),
        re.compile(r"USB disconnect"),
        re.compile(r"device descriptor read", re.IGNORECASE),
        re.compile(r"usb.*timeout", re.IGNORECASE),
    )
    autofixes = (
        AutofixSpec(
            name="usb-storage-reset",
            description="reload the uas/usb_storage drivers",
            trigger=Severity.CRITICAL,
            grace_period=1800.0,
            requires_privilege=True,
            recommendation="sudo modprobe -r uas usb_storage && sudo modprobe usb_storage uas",
        ),
    )

    def exists(self) -> bool:
        return usb_bus_present()

    def build_action(self, spec: AutofixSpec, check: CheckResult) -> AutofixAction:
        return functools.partial(actions.usb_storage_reset, self.command_timeout)
