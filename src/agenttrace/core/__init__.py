# src/agenttrace/core/__init__.py
"""Core infrastructure: configuration, logging and identifier helpers."""

from agenttrace.core.config import TracingSettings, load_settings
from agenttrace.core.logging import configure_logging, get_logger

__all__ = [
    "TracingSettings",
    "configure_logging",
    "get_logger",
    "load_settings",
]
