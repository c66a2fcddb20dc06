"""Configuration management for the PriceWatch delivery engine."""

from .logging import configure_logging, get_logger, setup_logging
from .settings import Settings, get_settings

__all__ = [
    "Settings",
    "configure_logging",
    "get_logger",
    "get_settings",
    "setup_logging",
]
