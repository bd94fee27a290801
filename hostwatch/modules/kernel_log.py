"""Shared base for modules that count kernel log events."""

from __future__ import annotations

import re
from typing import ClassVar

from hostwatch.collectors.kernel_log import count_matching
from hostwatch.core.types import TimeWindow
from hostwatch.modules.base import MonitorModule


class KernelLogModule(MonitorModule):
    """Metric = number of kernel log lines matching ``patterns``.

    The look-back defaults to ``collectors.journal_since`` and can be set
    per module with the ``since`` option.
    """

    patterns: ClassVar[tuple[re.Pattern[str], ...]] = ()
    unit = " events"

    @property
    def since(self) -> str:
        return str(self.options.get("since") or self.settings.collectors.journal_since)

    async def read_metric(self) -> tuple[float, str]:
        count, lines = await count_matching(
            self.patterns, self.since, timeout=self.command_timeout,
        )
        details = f"since {self.since}"
        if lines:
            details += f", last: {lines[-1][:160]}"
        return float(count), details

    async def recent_events(self, window: TimeWindow) -> list[str]:
        _, lines = await count_matching(
            self.patterns,
            window.start or self.since,
            window.end,
            timeout=self.command_timeout,
        )
        return lines[-50:]
