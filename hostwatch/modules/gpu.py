"""Intel i915 GPU errors, timeouts and hangs."""

from __future__ import annotations

import functools
import re

from hostwatch.autofix import actions
from hostwatch.autofix.gate import AutofixAction
from hostwatch.core.types import CheckResult, Severity
from hostwatch.hardware.predicates import intel_gpu_present
from hostwatch.modules.base import AutofixSpec
from hostwatch.modules.kernel_log import KernelLogModule

# dkms autoinstall compiles every registered module.
_DKMS_TIMEOUT_SECS = 900.0


class GpuModule(KernelLogModule):
    """Rebuilds modules at CRITICAL, adds boot flags at EMERGENCY."""

    name = "gpu"
    description = "i915 GPU errors"
    default_thresholds = {"warning": 5.0, "critical": 50.0, "emergency": 200.0}
    patterns = (
        re.compile(r"i915.*(error|timeout|hang)", re.IGNORECASE),
        re.compile(r"GPU HANG", re.IGNORECASE),
    )
    autofixes = (
        AutofixSpec(
            name="dkms-rebuild",
            description="rebuild DKMS kernel modules",
            trigger=Severity.CRITICAL,
            grace_period=6 * 3600.0,
            requires_privilege=True,
            recommendation="sudo dkms autoinstall",
        ),
        AutofixSpec(
            name="grub-flags",
            description=f"add '{actions.I915_GRUB_FLAGS}' to the kernel command line",
            trigger=Severity.EMERGENCY,
            grace_period=24 * 3600.0,
            requires_privilege=True,
            recommendation=(
                f"add '{actions.I915_GRUB_FLAGS}' to GRUB_CMDLINE_LINUX in "
                "/etc/default/grub, then sudo update-grub"
            ),
        ),
    )

    def exists(self) -> bool:
        return intel_gpu_present()

    def build_action(self, spec: AutofixSpec, check: CheckResult) -> AutofixAction:
        if spec.name == "dkms-rebuild":
            return functools.partial(actions.dkms_rebuild, _DKMS_TIMEOUT_SECS)
        return functools.partial(actions.grub_flags, self.command_timeout * 6)
