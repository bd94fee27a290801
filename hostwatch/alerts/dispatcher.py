"""Central alert dispatcher — severity-scoped dedup, then channel fan-out."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable

import structlog

from hostwatch.alerts.channels import NotificationChannel
from hostwatch.alerts.types import AlertMessage, alert_key
from hostwatch.core.config import AlertsConfig
from hostwatch.core.types import Severity
from hostwatch.state.store import StateStore, in_cooldown

logger = structlog.get_logger(__name__)

_LOG_METHOD: dict[Severity, str] = {
    Severity.NORMAL: "info",
    Severity.WARNING: "warning",
    Severity.CRITICAL: "error",
    Severity.EMERGENCY: "critical",
}


def cooldowns_from_config(config: AlertsConfig) -> dict[Severity, float]:
    return {
        Severity.WARNING: config.warning_cooldown_secs,
        Severity.CRITICAL: config.critical_cooldown_secs,
        Severity.EMERGENCY: config.emergency_cooldown_secs,
    }


class AlertDispatcher:
    """Decides whether an alert fires and delivers it to channels.

    - NORMAL never alerts.
    - Each ``(subject, severity)`` pair has its own cooldown; a different
      severity for the same subject is not suppressed by the first.
    - The check and the timestamp write happen under the store's per-key
      lock, so concurrent modules cannot double-fire.
    - Channel delivery is bounded and best-effort; it never raises.
    """

    def __init__(
        self,
        store: StateStore,
        channels: list[NotificationChannel] | None = None,
        cooldowns: dict[Severity, float] | None = None,
        channel_timeout: float = 5.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._channels: list[NotificationChannel] = channels or []
        self._cooldowns = cooldowns or cooldowns_from_config(AlertsConfig())
        self._channel_timeout = channel_timeout
        self._clock = clock

    @property
    def channels(self) -> list[NotificationChannel]:
        return list(self._channels)

    def cooldown_for(self, severity: Severity) -> float:
        return self._cooldowns.get(severity, 0.0)

    # ── Dedup ────────────────────────────────────────────────────

    async def should_alert(self, subject: str, severity: Severity) -> bool:
        """Read-only check: would an alert for this pair fire right now?"""
        if severity <= Severity.NORMAL:
            return False
        last = await self._store.get(alert_key(subject, severity))
        return not in_cooldown(last, self.cooldown_for(severity), self._clock())

    async def send(
        self,
        subject: str,
        severity: Severity,
        message: str,
        title: str | None = None,
        fields: dict[str, str] | None = None,
    ) -> AlertMessage | None:
        """Fire an alert unless its ``(subject, severity)`` cooldown is active.

        Returns:
            The delivered message, or None when suppressed.
        """
        if severity <= Severity.NORMAL:
            return None

        now = self._clock()
        key = alert_key(subject, severity)
        allowed, last = await self._store.try_acquire(key, self.cooldown_for(severity), now)
        if not allowed:
            logger.debug(
                "alert_suppressed",
                subject=subject,
                severity=severity.name,
                remaining=round(self.cooldown_for(severity) - (now - (last or now)), 1),
            )
            return None

        msg = AlertMessage(
            subject=subject,
            severity=severity,
            title=title or f"{subject} {severity.name.lower()}",
            body=message,
            fields=fields or {},
            timestamp=now,
        )
        await self._deliver(msg)
        return msg

    # ── Direct send (recommendations, emergency actions) ─────────

    async def notify(self, msg: AlertMessage) -> None:
        """Dispatch *msg* without consulting the cooldown."""
        await self._deliver(msg)

    # ── Internal routing ─────────────────────────────────────────

    async def _deliver(self, msg: AlertMessage) -> None:
        log = getattr(logger, _LOG_METHOD.get(msg.severity, "info"))
        log(
            "alert_sent",
            subject=msg.subject,
            severity=msg.severity.name,
            title=msg.title,
            body=msg.body,
            fields=msg.fields,
        )
        await self._dispatch_to_channels(msg)

    async def _dispatch_to_channels(self, msg: AlertMessage) -> None:
        for ch in self._channels:
            try:
                await asyncio.wait_for(ch.send(msg), timeout=self._channel_timeout)
            except asyncio.TimeoutError:
                logger.warning(
                    "channel_dispatch_timeout",
                    channel=type(ch).__name__,
                    title=msg.title,
                )
            except Exception:
                logger.exception(
                    "channel_dispatch_error",
                    channel=type(ch).__name__,
                    title=msg.title,
                )

    # ── Lifecycle ────────────────────────────────────────────────

    async def close(self) -> None:
        for ch in self._channels:
            try:
                await ch.close()
            except Exception:
                logger.exception("channel_close_error", channel=type(ch).__name__)
