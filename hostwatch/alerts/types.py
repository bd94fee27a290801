"""Types for the alerting subsystem."""

from __future__ import annotations

import time

from pydantic import BaseModel, Field

from hostwatch.core.types import Severity


class AlertMessage(BaseModel):
    """Normalised alert ready for dispatch to channels.

    ``subject`` is the module (or component) the alert is about. Only
    ``(subject, severity)`` takes part in dedup; ``body`` may differ freely.
    """

    subject: str
    severity: Severity
    title: str
    body: str = ""
    fields: dict[str, str] = Field(default_factory=dict)
    timestamp: float = Field(default_factory=time.time)

    @property
    def dedup_key(self) -> str:
        return alert_key(self.subject, self.severity)


def alert_key(subject: str, severity: Severity) -> str:
    return f"alert:{subject}:{severity.name.lower()}"
