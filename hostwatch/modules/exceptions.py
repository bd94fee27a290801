"""Module exceptions."""

from __future__ import annotations


class ModuleError(Exception):
    """Base exception for monitor module errors."""


class ModuleConfigError(ModuleError):
    """Thresholds or options for one module are malformed.

    Fails that module's initialisation only.
    """


class UnknownModuleError(ModuleError):
    """A module name was requested that is not registered."""
