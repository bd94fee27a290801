"""Autofix exceptions."""

from __future__ import annotations


class AutofixError(Exception):
    """Base exception for remediation errors."""


class InvalidActionNameError(AutofixError):
    """Action names must match ``[A-Za-z0-9_-]+``."""
