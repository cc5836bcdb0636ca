"""Utility module package."""
from harvester.utils.config import Settings, get_settings
from harvester.utils.logger import get_logger, setup_logging

__all__ = [
    "Settings",
    "get_settings",
    "get_logger",
    "setup_logging",
]
