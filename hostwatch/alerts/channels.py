"""Notification channels — desktop (notify-send) and Discord delivery."""

from __future__ import annotations

import abc
import asyncio
import shutil

import aiohttp
import structlog

from hostwatch.alerts.types import AlertMessage
from hostwatch.core.config import DesktopConfig, DiscordConfig
from hostwatch.core.types import Severity

logger = structlog.get_logger(__name__)

# Discord embed colours keyed by severity.
_DISCORD_COLORS: dict[Severity, int] = {
    Severity.NORMAL: 0x2ECC71,     # green
    Severity.WARNING: 0xF39C12,    # orange
    Severity.CRITICAL: 0xE74C3C,   # red
    Severity.EMERGENCY: 0x8E44AD,  # purple
}

_URGENCY: dict[Severity, str] = {
    Severity.NORMAL: "low",
    Severity.WARNING: "normal",
    Severity.CRITICAL: "critical",
    Severity.EMERGENCY: "critical",
}

_ICONS: dict[Severity, str] = {
    Severity.NORMAL: "dialog-information",
    Severity.WARNING: "dialog-warning",
    Severity.CRITICAL: "dialog-error",
    Severity.EMERGENCY: "dialog-error",
}


class NotificationChannel(abc.ABC):
    """Base class for alert delivery channels."""

    @abc.abstractmethod
    async def send(self, msg: AlertMessage) -> bool:
        """Send an alert message. Returns True on success."""

    @abc.abstractmethod
    async def close(self) -> None:
        """Release resources (HTTP sessions, etc.)."""


class DesktopChannel(NotificationChannel):
    """Delivers alerts as desktop notifications via ``notify-send``.

    Best effort: a missing binary disables the channel for the rest of the
    run, failures are logged and reported as ``False``.
    """

    def __init__(self, config: DesktopConfig | None = None, timeout: float = 5.0) -> None:
        self._config = config or DesktopConfig()
        self._timeout = timeout
        self._available = shutil.which("notify-send") is not None

    @property
    def available(self) -> bool:
        return self._available

    def build_argv(self, msg: AlertMessage) -> list[str]:
        body = msg.body
        if msg.fields:
            body = "\n".join([body, *(f"{k}: {v}" for k, v in msg.fields.items())]).strip()
        return [
            "notify-send",
            "-a", self._config.app_name,
            "-u", _URGENCY.get(msg.severity, "normal"),
            "-i", _ICONS.get(msg.severity, "dialog-information"),
            "-t", str(self._config.timeout_ms),
            f"[{msg.severity.name}] {msg.title}",
            body,
        ]

    async def send(self, msg: AlertMessage) -> bool:
        if not self._available:
            return False
        try:
            proc = await asyncio.create_subprocess_exec(
                *self.build_argv(msg),
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError:
            logger.warning("notify_send_missing")
            self._available = False
            return False

        try:
            _, stderr = await asyncio.wait_for(proc.communicate(), timeout=self._timeout)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            logger.warning("notify_send_timeout", timeout=self._timeout)
            return False

        if proc.returncode != 0:
            logger.warning(
                "notify_send_failed",
                returncode=proc.returncode,
                stderr=stderr.decode(errors="replace")[:200],
            )
            return False
        return True

    async def close(self) -> None:
        return None


class DiscordChannel(NotificationChannel):
    """Delivers alerts via a Discord webhook with colour-coded embeds."""

    def __init__(self, config: DiscordConfig) -> None:
        self._webhook_url = config.webhook_url.get_secret_value()
        self._session: aiohttp.ClientSession | None = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
        return self._session

    def build_payload(self, msg: AlertMessage) -> dict:
        embed: dict = {
            "title": f"[{msg.severity.name}] {msg.title}",
            "color": _DISCORD_COLORS.get(msg.severity, 0x95A5A6),
            "footer": {"text": msg.subject},
        }
        if msg.body:
            embed["description"] = msg.body
        if msg.fields:
            embed["fields"] = [
                {"name": k, "value": v, "inline": True}
                for k, v in msg.fields.items()
            ]
        return {"embeds": [embed]}

    async def send(self, msg: AlertMessage) -> bool:
        try:
            session = self._get_session()
            async with session.post(self._webhook_url, json=self.build_payload(msg)) as resp:
                if resp.status in (200, 204):
                    return True
                body = await resp.text()
                logger.warning(
                    "discord_send_failed",
                    status=resp.status,
                    body=body[:200],
                )
                return False
        except Exception:
            logger.exception("discord_send_error")
            return False

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None
