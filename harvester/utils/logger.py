"""
Project-wide logging setup
- console + file output
- daily log file rotation
- per-module logger helper
"""
import logging
import sys
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path

from harvester.utils.config import get_settings

LOG_DIR = Path(__file__).resolve().parent.parent.parent / "logs"
LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)-30s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_NOISY_LOGGERS = ("aiohttp", "asyncio", "urllib3", "httpx", "httpcore", "playwright")

_initialized: bool = False


def _ensure_log_dir() -> None:
    LOG_DIR.mkdir(parents=True, exist_ok=True)


def setup_logging() -> None:
    """Attach console and file handlers to the root logger.

    Runs once; later calls are ignored. The file handler is skipped when
    ``LOG_TO_FILE`` is false (containers that only ship stdout).
    """
    global _initialized
    if _initialized:
        return
    _initialized = True

    settings = get_settings()
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if settings.log_to_file:
        _ensure_log_dir()
        # rotate at midnight, keep 30 days
        file_handler = TimedRotatingFileHandler(
            filename=LOG_DIR / "harvester.log",
            when="midnight",
            interval=1,
            backupCount=30,
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        file_handler.suffix = "%Y-%m-%d"
        root_logger.addHandler(file_handler)

    for noisy_logger in _NOISY_LOGGERS:
        logging.getLogger(noisy_logger).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Create a module logger.

    Args:
        name: Logger name, usually ``__name__``.

    Returns:
        A configured ``logging.Logger``.
    """
    setup_logging()
    return logging.getLogger(name)
