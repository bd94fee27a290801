"""Alert dispatch with per-severity dedup and notification channels."""

from hostwatch.alerts.channels import DesktopChannel, DiscordChannel, NotificationChannel
from hostwatch.alerts.dispatcher import AlertDispatcher, cooldowns_from_config
from hostwatch.alerts.factory import create_alert_stack
from hostwatch.alerts.types import AlertMessage, alert_key

__all__ = [
    "AlertDispatcher",
    "AlertMessage",
    "DesktopChannel",
    "DiscordChannel",
    "NotificationChannel",
    "alert_key",
    "cooldowns_from_config",
    "create_alert_stack",
]
