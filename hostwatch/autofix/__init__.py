"""Gated remediation: grace periods, actions and the thermal emergency path."""

from hostwatch.autofix.emergency import (
    EmergencyResponder,
    KillSelection,
    ProtectionPolicy,
    select_kill_target,
)
from hostwatch.autofix.exceptions import AutofixError, InvalidActionNameError
from hostwatch.autofix.gate import AutofixAction, AutofixGate, validate_action_name

__all__ = [
    "AutofixAction",
    "AutofixError",
    "AutofixGate",
    "EmergencyResponder",
    "InvalidActionNameError",
    "KillSelection",
    "ProtectionPolicy",
    "select_kill_target",
    "validate_action_name",
]
