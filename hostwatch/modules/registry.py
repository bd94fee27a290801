"""Explicit module registration.

Modules are never discovered by scanning a directory; each one is added
to a :class:`ModuleRegistry`, and enabled only by configuration.
"""

from __future__ import annotations

from hostwatch.core.config import Settings
from hostwatch.modules.base import MonitorModule
from hostwatch.modules.disk import DiskModule
from hostwatch.modules.exceptions import UnknownModuleError
from hostwatch.modules.gpu import GpuModule
from hostwatch.modules.kernel import KernelModule
from hostwatch.modules.memory import MemoryModule
from hostwatch.modules.network import NetworkModule
from hostwatch.modules.thermal import ThermalModule
from hostwatch.modules.usb import UsbModule


class ModuleRegistry:
    """Name → module class."""

    def __init__(self) -> None:
        self._classes: dict[str, type[MonitorModule]] = {}

    def register(self, cls: type[MonitorModule]) -> type[MonitorModule]:
        if cls.name in self._classes:
            raise ValueError(f"module {cls.name!r} already registered")
        self._classes[cls.name] = cls
        return cls

    def __contains__(self, name: object) -> bool:
        return name in self._classes

    def names(self) -> list[str]:
        return sorted(self._classes)

    def get(self, name: str) -> type[MonitorModule]:
        try:
            return self._classes[name]
        except KeyError:
            raise UnknownModuleError(f"unknown module: {name}") from None

    def create(self, name: str, settings: Settings) -> MonitorModule:
        """Instantiate *name*; raises ModuleConfigError on bad thresholds."""
        return self.get(name)(settings)


def default_registry() -> ModuleRegistry:
    registry = ModuleRegistry()
    for cls in (
        ThermalModule, MemoryModule, UsbModule, GpuModule, NetworkModule, DiskModule, KernelModule,
    ):
        registry.register(cls)
    return registry
