"""Logging setup for the engine and its command-line interface."""

from __future__ import annotations

from drift_engine.telemetry.log_format import JSONFormatter, configure_logging

__all__ = [
    "JSONFormatter",
    "configure_logging",
]
