"""Logging setup for the azmp CLI.

Module loggers use ``logging.getLogger(__name__)``; this wires them to a
RichHandler writing to stderr, once per process.
"""

import logging

from rich.console import Console
from rich.logging import RichHandler

LOG_FORMAT = "%(message)s"
_HANDLER_NAME = "azmp-rich"


def setup_logging(level: str | int = "INFO", console: Console | None = None) -> logging.Handler:
    """Attach a RichHandler to the root logger.

    Calling it again replaces the level instead of stacking handlers.

    Args:
        level: Level name or number
        console: Console to render to (default: stderr)

    Returns:
        The installed handler
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    root = logging.getLogger()
    for handler in root.handlers:
        if handler.get_name() == _HANDLER_NAME:
            handler.setLevel(level)
            root.setLevel(level)
            return handler

    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
        markup=False,
    )
    handler.set_name(_HANDLER_NAME)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="[%X]"))

    root.addHandler(handler)
    root.setLevel(level)
    return handler
