"""Host metric collectors. Every external read is bounded."""

from hostwatch.collectors.command import (
    CommandResult,
    command_available,
    is_privileged,
    run_blocking,
    run_command,
)
from hostwatch.collectors.exceptions import CollectorError, CollectorUnavailableError
from hostwatch.collectors.kernel_log import count_matching, read_kernel_log
from hostwatch.collectors.processes import ProcessInfo, list_processes, terminate_process

__all__ = [
    "CollectorError",
    "CollectorUnavailableError",
    "CommandResult",
    "ProcessInfo",
    "command_available",
    "count_matching",
    "is_privileged",
    "list_processes",
    "read_kernel_log",
    "run_blocking",
    "run_command",
    "terminate_process",
]
