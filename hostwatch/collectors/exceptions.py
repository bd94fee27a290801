"""Collector exceptions."""

from __future__ import annotations


class CollectorError(Exception):
    """Base exception for metric collection errors."""


class CollectorUnavailableError(CollectorError):
    """The metric cannot be read right now (tool missing, timeout, no sensor).

    Callers must report "cannot evaluate" rather than a healthy reading.
    """
