"""
Logging configuration for the fleet coordinator.
"""

import logging
from typing import Union

from rich.logging import RichHandler


def configure_logging(level: Union[int, str] = logging.INFO, rich: bool = True) -> None:
    """Install a root handler: rich console output, or plain timestamped lines."""
    if rich:
        handler: logging.Handler = RichHandler(rich_tracebacks=True, show_path=False)
        fmt = "%(name)s: %(message)s"
    else:
        handler = logging.StreamHandler()
        fmt = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(level=level, format=fmt, handlers=[handler], force=True)


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance with the specified name."""
    return logging.getLogger(name)
