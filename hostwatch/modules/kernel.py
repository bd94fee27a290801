"""Kernel errors, warnings, oopses and panics."""

from __future__ import annotations

import re

from hostwatch.hardware.predicates import kernel_log_present
from hostwatch.modules.kernel_log import KernelLogModule


class KernelModule(KernelLogModule):
    name = "kernel"
    description = "Kernel errors"
    default_thresholds = {"warning": 1.0}
    patterns = (
        re.compile(r"kernel.*error|kernel.*warning|oops|panic", re.IGNORECASE),
    )

    def exists(self) -> bool:
        return kernel_log_present()
