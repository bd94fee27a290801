"""State store exceptions."""

from __future__ import annotations


class StateError(Exception):
    """Base exception for cooldown state errors."""


class InvalidKeyError(StateError):
    """A cooldown key contains characters that cannot be stored safely."""
