"""Health modules and their registry."""

from hostwatch.modules.base import (
    AutofixPlan,
    AutofixSpec,
    ModuleContext,
    ModuleDescriptor,
    MonitorModule,
    classify,
    validate_thresholds,
)
from hostwatch.modules.exceptions import ModuleConfigError, ModuleError, UnknownModuleError
from hostwatch.modules.registry import ModuleRegistry, default_registry

__all__ = [
    "AutofixPlan",
    "AutofixSpec",
    "ModuleConfigError",
    "ModuleContext",
    "ModuleDescriptor",
    "ModuleError",
    "ModuleRegistry",
    "MonitorModule",
    "UnknownModuleError",
    "classify",
    "default_registry",
    "validate_thresholds",
]
