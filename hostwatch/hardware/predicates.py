"""Hardware presence predicates.

Each predicate is a pure, synchronous check with no side effects. Any
``OSError`` while checking counts as "absent".
"""

from __future__ import annotations

import os
import shutil
from collections.abc import Callable
from pathlib import Path

HardwarePredicate = Callable[[], bool]

_SYS = Path("/sys")


def command_exists(name: str) -> bool:
    return shutil.which(name) is not None


def path_readable(path: str | Path) -> bool:
    try:
        return os.access(path, os.R_OK)
    except OSError:
        return False


def glob_exists(root: str | Path, pattern: str) -> bool:
    try:
        return any(Path(root).glob(pattern))
    except OSError:
        return False


def directory_not_empty(path: str | Path) -> bool:
    try:
        return any(Path(path).iterdir())
    except OSError:
        return False


def kernel_module_loaded(name: str, sys_root: Path = _SYS) -> bool:
    return (sys_root / "module" / name).is_dir()


def pci_device_present(
    vendor: str,
    class_prefix: str = "",
    sys_root: Path = _SYS,
) -> bool:
    """Any PCI device from *vendor* (e.g. "0x8086") whose class starts with
    *class_prefix* (e.g. "0x03" for display controllers)."""
    devices = sys_root / "bus" / "pci" / "devices"
    try:
        for dev in devices.iterdir():
            try:
                if (dev / "vendor").read_text().strip().lower() != vendor.lower():
                    continue
                if (dev / "class").read_text().strip().lower().startswith(class_prefix.lower()):
                    return True
            except OSError:
                continue
    except OSError:
        return False
    return False


def thermal_sensor_present(sys_root: Path = _SYS) -> bool:
    return (
        glob_exists(sys_root / "class" / "hwmon", "hwmon*/temp*_input")
        or glob_exists(sys_root / "class" / "thermal", "thermal_zone*/temp")
    )


def network_interface_present(sys_root: Path = _SYS) -> bool:
    """At least one interface other than loopback."""
    try:
        return any(p.name != "lo" for p in (sys_root / "class" / "net").iterdir())
    except OSError:
        return False


def usb_bus_present(sys_root: Path = _SYS) -> bool:
    return glob_exists(sys_root / "bus" / "usb" / "devices", "usb*")


def kernel_log_present() -> bool:
    return path_readable("/proc/version") or command_exists("dmesg")


def intel_gpu_present(sys_root: Path = _SYS) -> bool:
    return (
        kernel_module_loaded("i915", sys_root)
        or pci_device_present("0x8086", "0x03", sys_root)
    )


def always() -> bool:
    return True


def any_of(*predicates: HardwarePredicate) -> HardwarePredicate:
    def _check() -> bool:
        return any(p() for p in predicates)

    return _check
