"""Convenience factory for wiring the alerting stack."""

from __future__ import annotations

import time
from collections.abc import Callable

from hostwatch.alerts.channels import DesktopChannel, DiscordChannel, NotificationChannel
from hostwatch.alerts.dispatcher import AlertDispatcher, cooldowns_from_config
from hostwatch.core.config import AlertsConfig
from hostwatch.state.store import StateStore


def create_alert_stack(
    config: AlertsConfig,
    store: StateStore,
    clock: Callable[[], float] = time.time,
) -> AlertDispatcher:
    """Build a dispatcher with the channels enabled in *config*."""
    channels: list[NotificationChannel] = []

    if config.desktop.enabled:
        channels.append(DesktopChannel(config.desktop, timeout=config.channel_timeout_secs))

    if config.discord.enabled and config.discord.webhook_url.get_secret_value():
        channels.append(DiscordChannel(config.discord))

    return AlertDispatcher(
        store=store,
        channels=channels,
        cooldowns=cooldowns_from_config(config),
        channel_timeout=config.channel_timeout_secs,
        clock=clock,
    )
