"""Tests for create_alert_stack."""

from __future__ import annotations

from unittest.mock import patch

from pydantic import SecretStr

from hostwatch.alerts.channels import DesktopChannel, DiscordChannel
from hostwatch.alerts.factory import create_alert_stack
from hostwatch.core.config import AlertsConfig, DesktopConfig, DiscordConfig
from hostwatch.core.types import Severity
from hostwatch.state.store import MemoryStateStore


class TestFactory:
    def test_default_has_desktop_only(self) -> None:
        with patch("hostwatch.alerts.channels.shutil.which", return_value="/usr/bin/notify-send"):
            disp = create_alert_stack(AlertsConfig(), MemoryStateStore())
        assert [type(c) for c in disp.channels] == [DesktopChannel]

    def test_discord_needs_url(self) -> None:
        cfg = AlertsConfig(discord=DiscordConfig(enabled=True))
        disp = create_alert_stack(cfg, MemoryStateStore())
        assert not any(isinstance(c, DiscordChannel) for c in disp.channels)

    def test_discord_enabled(self) -> None:
        cfg = AlertsConfig(
            desktop=DesktopConfig(enabled=False),
            discord=DiscordConfig(enabled=True, webhook_url=SecretStr("https://example.invalid/hook")),
        )
        disp = create_alert_stack(cfg, MemoryStateStore())
        assert [type(c) for c in disp.channels] == [DiscordChannel]

    def test_cooldowns_from_config(self) -> None:
        cfg = AlertsConfig(warning_cooldown_secs=5, critical_cooldown_secs=6, emergency_cooldown_secs=7)
        disp = create_alert_stack(cfg, MemoryStateStore())
        assert disp.cooldown_for(Severity.WARNING) == 5
        assert disp.cooldown_for(Severity.CRITICAL) == 6
        assert disp.cooldown_for(Severity.EMERGENCY) == 7
