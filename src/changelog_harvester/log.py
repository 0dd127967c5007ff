"""Logging configuration with Rich formatting.

Provides setup_logging() for app initialization and get_logger() for module-level loggers.
Logs go to stderr so CLI output on stdout stays machine-readable.
"""

import logging
from typing import Optional
from rich.console import Console
from rich.logging import RichHandler

def setup_logging(level: Optional[str] = None):
    if level is None:
        from .config import get_settings
        level = get_settings().LOG_LEVEL
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, console=Console(stderr=True))]
    )

    # Quiet down some noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("openai").setLevel(logging.WARNING)
    logging.getLogger("slack_sdk").setLevel(logging.WARNING)
    logging.getLogger("slack_bolt").setLevel(logging.WARNING)

def get_logger(name: str):
    return logging.getLogger(name)
