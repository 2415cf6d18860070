"""Logging helpers for the PIN guard."""

from __future__ import annotations

from .logging import (
    ContextAdapter,
    JsonFormatter,
    bind,
    configure_root_logging,
    reset_logging_config,
)

__all__ = [
    "ContextAdapter",
    "JsonFormatter",
    "bind",
    "configure_root_logging",
    "reset_logging_config",
]
