"""Tests for hostwatch/core/logging.py — renderer selection and plain format."""

from __future__ import annotations

import logging

import structlog

from hostwatch.core.config import LoggingConfig
from hostwatch.core.logging import PlainRenderer, setup_logging


class TestPlainRenderer:
    def test_timestamp_subject_message(self) -> None:
        line = PlainRenderer()(None, "info", {
            "timestamp": "2024-05-01 10:00:00",
            "subject": "thermal",
            "event": "check_complete",
            "level": "info",
            "value": 71.0,
        })
        assert line == "2024-05-01 10:00:00 [thermal] check_complete value=71.0"

    def test_falls_back_to_logger_name(self) -> None:
        line = PlainRenderer()(None, "info", {
            "timestamp": "t",
            "logger": "hostwatch.orchestrator",
            "event": "run_started",
        })
        assert line.startswith("t [hostwatch.orchestrator] run_started")

    def test_warning_level_is_shown(self) -> None:
        line = PlainRenderer()(None, "warning", {
            "timestamp": "t", "subject": "usb", "event": "x", "level": "warning",
        })
        assert "WARNING" in line


class TestSetupLogging:
    def test_sets_root_level_and_single_handler(self) -> None:
        setup_logging(LoggingConfig(syslog=False), level="DEBUG")
        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        structlog.reset_defaults()

    def test_json_format(self) -> None:
        setup_logging(LoggingConfig(syslog=False), fmt="json")
        handler = logging.getLogger().handlers[0]
        assert isinstance(handler.formatter, structlog.stdlib.ProcessorFormatter)
        structlog.reset_defaults()
