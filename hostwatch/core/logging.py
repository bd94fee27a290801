"""Structured logging setup using structlog."""

from __future__ import annotations

import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Any

import structlog

from hostwatch.core.config import LoggingConfig


class PlainRenderer:
    """Render ``timestamp [subject] event key=value`` lines.

    ``subject`` defaults to the logger name when nothing was bound.
    """

    def __call__(self, _logger: Any, _name: str, event_dict: dict[str, Any]) -> str:
        timestamp = event_dict.pop("timestamp", "")
        subject = event_dict.pop("subject", None) or event_dict.get("logger") or "hostwatch"
        event = event_dict.pop("event", "")
        level = event_dict.pop("level", "")
        event_dict.pop("logger", None)
        exc = event_dict.pop("exception", None)

        parts = [f"{timestamp} [{subject}]"]
        if level and level not in ("info", "debug"):
            parts.append(level.upper())
        parts.append(str(event))
        parts.extend(f"{k}={v}" for k, v in event_dict.items())
        line = " ".join(parts)
        if exc:
            line = f"{line}\n{exc}"
        return line


def _renderer(fmt: str) -> structlog.types.Processor:
    if fmt == "json":
        return structlog.processors.JSONRenderer()
    if fmt == "console":
        return structlog.dev.ConsoleRenderer()
    return PlainRenderer()


def setup_logging(
    config: LoggingConfig | None = None,
    level: str | None = None,
    fmt: str | None = None,
) -> None:
    """Configure structlog with a plain, JSON or console renderer.

    Args:
        config: Logging section of the settings. Defaults are used if None.
        level: Log level override (e.g. "DEBUG").
        fmt: Renderer override ("plain", "json" or "console").
    """
    config = config or LoggingConfig()
    log_level = getattr(logging, (level or config.level).upper(), logging.INFO)
    log_format = fmt or config.format

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            _renderer(log_format),
        ],
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(log_level)

    if config.syslog and Path(config.syslog_address).exists():
        syslog = logging.handlers.SysLogHandler(address=config.syslog_address)
        syslog.ident = "hostwatch: "
        syslog.setFormatter(
            structlog.stdlib.ProcessorFormatter(
                foreign_pre_chain=shared_processors,
                processors=[
                    structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                    PlainRenderer(),
                ],
            )
        )
        root_logger.addHandler(syslog)
