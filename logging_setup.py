"""
Shared logging configuration for the API process.
"""

import logging
import sys
from typing import Optional, Union


def init_logging(level: Union[int, str] = logging.INFO, format_str: Optional[str] = None) -> None:
    """
    Initialize basic logging configuration to stderr.
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)
    if format_str is None:
        format_str = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

    logging.basicConfig(
        level=level,
        format=format_str,
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
    )


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
