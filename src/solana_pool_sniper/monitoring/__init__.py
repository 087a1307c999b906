"""Monitoring package exports and helpers."""

from __future__ import annotations

from typing import Optional

from ..config.settings import AppConfig, get_app_config
from .logger import configure_logging, correlation_scope, get_logger
from .metrics import METRICS


def bootstrap_observability(config: Optional[AppConfig] = None) -> None:
    """Configure structured logging for the process."""

    app_config = config or get_app_config()
    configure_logging(app_config.monitoring, force=True)


__all__ = ["METRICS", "bootstrap_observability", "configure_logging", "correlation_scope", "get_logger"]
