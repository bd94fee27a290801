"""Temperature sensors via psutil, with a sysfs thermal-zone fallback."""

from __future__ import annotations

import re
from pathlib import Path

import psutil
import structlog

from hostwatch.collectors.exceptions import CollectorUnavailableError

logger = structlog.get_logger(__name__)

_THERMAL_ZONES = Path("/sys/class/thermal")

# Driver names whose first "Package"/"Tctl" reading is the CPU package.
_CPU_DRIVERS = ("coretemp", "k10temp", "zenpower", "x86_pkg_temp", "cpu_thermal", "acpitz")
_PACKAGE_LABELS = ("package id 0", "tctl", "tdie")

# Other thermal zones that still describe the CPU (cpu-thermal, soc_thermal, TCPU).
_CPU_ZONE_TYPE = re.compile(r"cpu|pkg|soc", re.IGNORECASE)

# Readings above this are sensor garbage, not heat.
_MAX_PLAUSIBLE_C = 150.0


def _psutil_readings() -> dict[str, list[tuple[str, float]]]:
    if not hasattr(psutil, "sensors_temperatures"):
        return {}
    try:
        raw = psutil.sensors_temperatures()
    except (OSError, RuntimeError):
        logger.debug("sensors_read_failed", exc_info=True)
        return {}
    return {
        name: [(entry.label or name, entry.current) for entry in entries]
        for name, entries in raw.items()
    }


def _sysfs_readings(root: Path = _THERMAL_ZONES) -> dict[str, list[tuple[str, float]]]:
    readings: dict[str, list[tuple[str, float]]] = {}
    for zone in sorted(root.glob("thermal_zone*")):
        try:
            kind = (zone / "type").read_text().strip()
            millideg = int((zone / "temp").read_text().strip())
        except (OSError, ValueError):
            continue
        readings.setdefault(kind, []).append((zone.name, millideg / 1000.0))
    return readings


def all_readings() -> dict[str, list[tuple[str, float]]]:
    """Every temperature reading available, grouped by driver/zone type."""
    return _psutil_readings() or _sysfs_readings()


def pick_cpu_temperature(readings: dict[str, list[tuple[str, float]]]) -> float | None:
    """Choose the CPU package temperature from grouped readings.

    Preference: a package-level label from a known CPU driver, then the first
    reading of a known CPU driver, then the hottest plausible reading from a
    CPU-like thermal zone. Disks, NICs and GPUs are never used; no CPU
    sensor means None.
    """
    for driver in _CPU_DRIVERS:
        for label, value in readings.get(driver, []):
            if label.lower() in _PACKAGE_LABELS and 0 < value < _MAX_PLAUSIBLE_C:
                return value
    for driver in _CPU_DRIVERS:
        for _label, value in readings.get(driver, []):
            if 0 < value < _MAX_PLAUSIBLE_C:
                return value
    plausible = [
        value
        for kind, entries in readings.items()
        if _CPU_ZONE_TYPE.search(kind)
        for _label, value in entries
        if 0 < value < _MAX_PLAUSIBLE_C
    ]
    return max(plausible) if plausible else None


def read_cpu_temperature() -> float:
    """CPU package temperature in °C.

    Raises:
        CollectorUnavailableError: no usable sensor.
    """
    temp = pick_cpu_temperature(all_readings())
    if temp is None:
        raise CollectorUnavailableError("no CPU temperature sensor readable")
    return temp
