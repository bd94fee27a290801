"""Pydantic settings loaded from YAML configuration.

Layering, lowest to highest precedence:

1. system defaults (the model defaults below)
2. per-module defaults (declared on each module class)
3. per-module overrides (``modules.<name>`` in settings.yaml, then
   ``<override_dir>/<name>.yaml``)
4. environment variables (``HOSTWATCH_AUTOFIX``, ``HOSTWATCH_DISABLE_AUTOFIX``)

The resulting :class:`Settings` is frozen and passed explicitly to every
component that needs it.
"""

from __future__ import annotations

import os
import re
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, SecretStr

_DEFAULT_CONFIG_PATH = Path("config/settings.yaml")

_ENV_AUTOFIX = "HOSTWATCH_AUTOFIX"
_ENV_DISABLE_AUTOFIX = "HOSTWATCH_DISABLE_AUTOFIX"

_FALSY = {"0", "false", "no", "off"}


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class LoggingConfig(_Frozen):
    """Logging configuration."""

    level: str = "INFO"
    format: str = "plain"
    syslog: bool = True
    syslog_address: str = "/dev/log"


class StateConfig(_Frozen):
    """Where cooldown timestamps and emergency snapshots live."""

    directory: Path = Path("/var/tmp/hostwatch-state")
    snapshot_dir: Path = Path("/var/tmp/hostwatch-state/snapshots")
    prune_after_secs: float = 7 * 86400.0


class DesktopConfig(_Frozen):
    """notify-send delivery."""

    enabled: bool = True
    app_name: str = "hostwatch"
    timeout_ms: int = 10000


class DiscordConfig(_Frozen):
    """Discord webhook delivery."""

    enabled: bool = False
    webhook_url: SecretStr = SecretStr("")


class AlertsConfig(_Frozen):
    """Alert dedup windows (per severity) and channel configuration."""

    warning_cooldown_secs: float = 600.0
    critical_cooldown_secs: float = 180.0
    emergency_cooldown_secs: float = 60.0
    channel_timeout_secs: float = 5.0
    desktop: DesktopConfig = DesktopConfig()
    discord: DiscordConfig = DiscordConfig()


class AutofixConfig(_Frozen):
    """Global autofix switches."""

    enabled: bool = True
    disabled_actions: tuple[str, ...] = ()


class CollectorConfig(_Frozen):
    """Bounds for external commands and kernel log queries."""

    command_timeout_secs: float = 10.0
    journal_since: str = "1 hour ago"


class OrchestratorConfig(_Frozen):
    """How enabled modules are scheduled."""

    max_concurrency: int = 1
    module_timeout_secs: float = 120.0


class EmergencyConfig(_Frozen):
    """Thermal emergency response policy."""

    protected_process_patterns: tuple[str, ...] = (
        r"^\[.*\]$",
        r"^(systemd|kthreadd|ksoftirqd|migration|rcu_|watchdog)",
        r"^(dbus|networkd|resolved|login)",
        r"^(Xorg|Xwayland|gdm|lightdm|sddm)",
        r"^(pipewire|pulseaudio|alsa|wireplumber)",
        r"^ssh",
        r"^NetworkManager",
        r"^init$",
        r"^hostwatch",
    )
    # PIDs at or below this are early-boot system processes.
    max_system_pid: int = 100
    min_cpu_percent: float = 10.0
    boot_grace_secs: float = 60.0
    startup_grace_secs: float = 60.0
    kill_wait_secs: float = 3.0
    shutdown_enabled: bool = True
    shutdown_delay_minutes: int = 1
    diagnostics_enabled: bool = True


class ModuleConfig(_Frozen):
    """Per-module override layer.

    ``thresholds`` and ``grace_periods`` are left loosely typed so a malformed
    value fails only the owning module when its descriptor is built, not the
    whole settings load.
    """

    enabled: bool = False
    autofix: bool = True
    thresholds: dict[str, Any] = {}
    grace_periods: dict[str, Any] = {}
    options: dict[str, Any] = {}


class Settings(_Frozen):
    """Root settings container."""

    logging: LoggingConfig = LoggingConfig()
    state: StateConfig = StateConfig()
    alerts: AlertsConfig = AlertsConfig()
    autofix: AutofixConfig = AutofixConfig()
    collectors: CollectorConfig = CollectorConfig()
    orchestrator: OrchestratorConfig = OrchestratorConfig()
    emergency: EmergencyConfig = EmergencyConfig()
    modules: dict[str, ModuleConfig] = {}

    def module(self, name: str) -> ModuleConfig:
        """Override layer for *name* (empty defaults when unconfigured)."""
        return self.modules.get(name, ModuleConfig())

    @property
    def enabled_modules(self) -> list[str]:
        return sorted(name for name, cfg in self.modules.items() if cfg.enabled)


def _read_yaml(path: Path) -> dict[str, Any]:
    with open(path) as f:
        data = yaml.safe_load(f)
    return data if isinstance(data, dict) else {}


def _merge(base: dict[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), Mapping):
            merged[key] = _merge(dict(merged[key]), value)
        else:
            merged[key] = value
    return merged


def _split_list(raw: str) -> list[str]:
    return [part for part in re.split(r"[\s,]+", raw.strip()) if part]


def _apply_env(data: dict[str, Any], env: Mapping[str, str]) -> dict[str, Any]:
    autofix = dict(data.get("autofix") or {})
    if _ENV_AUTOFIX in env:
        autofix["enabled"] = env[_ENV_AUTOFIX].strip().lower() not in _FALSY
    if _ENV_DISABLE_AUTOFIX in env:
        existing = list(autofix.get("disabled_actions") or [])
        autofix["disabled_actions"] = existing + _split_list(env[_ENV_DISABLE_AUTOFIX])
    if autofix:
        data["autofix"] = autofix
    return data


def load_settings(
    path: str | Path | None = None,
    override_dir: str | Path | None = None,
    env: Mapping[str, str] | None = None,
) -> Settings:
    """Build the immutable settings for one run.

    Args:
        path: YAML settings file. Falls back to ``config/settings.yaml`` and
            to pure defaults when that does not exist either.
        override_dir: Directory of ``<module>.yaml`` files layered over the
            matching ``modules.<module>`` section.
        env: Environment mapping (defaults to ``os.environ``).
    """
    config_path = Path(path) if path else _DEFAULT_CONFIG_PATH
    data: dict[str, Any] = _read_yaml(config_path) if config_path.exists() else {}

    if override_dir is not None:
        modules = dict(data.get("modules") or {})
        for file in sorted(Path(override_dir).glob("*.yaml")):
            name = file.stem
            modules[name] = _merge(dict(modules.get(name) or {}), _read_yaml(file))
        data["modules"] = modules

    if data.get("modules"):
        data["modules"] = {name: cfg or {} for name, cfg in data["modules"].items()}

    data = _apply_env(data, os.environ if env is None else env)
    return Settings(**data)
