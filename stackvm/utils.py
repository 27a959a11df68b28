"""Shared utility functions."""

import logging
import sys

from rich.console import Console
from rich.logging import RichHandler

logger = logging.getLogger("stackvm")


def setup_logging(level: int | str = logging.INFO) -> None:
    """Set up logging with Rich handler to stderr."""
    if isinstance(level, str):
        level = getattr(logging, level.upper())
    rich_handler = RichHandler(
        console=Console(stderr=True),
        log_time_format="[%X]",
        show_path=False,
        markup=False,
    )
    rich_handler.setLevel(level)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    for handler in root_logger.handlers[:]:
        handler.close()
        root_logger.removeHandler(handler)
    root_logger.addHandler(rich_handler)

    for name, lvl in [
        ("boto3", logging.INFO),
        ("botocore", logging.WARNING),
        ("urllib3", logging.WARNING),
    ]:
        lg = logging.getLogger(name)
        for h in lg.handlers[:]:
            lg.removeHandler(h)
        lg.setLevel(lvl)
        lg.propagate = True


def log(msg: str) -> None:
    """Log info message."""
    logger.info(msg)


def warn(msg: str) -> None:
    """Log warning message."""
    logger.warning(msg)


def debug(msg: str) -> None:
    logger.debug(msg)


def error(msg: str) -> None:
    """Log error message and exit."""
    logger.error(msg)
    sys.exit(1)


def get_ssh_user(os_name: str) -> str:
    """Get default SSH user for an operating system image.

    :param os_name: Abstract OS identifier (e.g. ubuntu-24.04, debian-12)
    :return: SSH username baked into the image
    """
    if os_name.startswith("amazon-linux"):
        return "ec2-user"
    if os_name.startswith("debian"):
        return "admin"
    return "ubuntu"
