"""Cooldown state persistence."""

from hostwatch.state.exceptions import InvalidKeyError, StateError
from hostwatch.state.store import (
    FileStateStore,
    MemoryStateStore,
    StateStore,
    in_cooldown,
    validate_key,
)

__all__ = [
    "FileStateStore",
    "InvalidKeyError",
    "MemoryStateStore",
    "StateError",
    "StateStore",
    "in_cooldown",
    "validate_key",
]
