"""Logging setup.

Log records go to stderr only.  With the stdio transport, stdout carries
protocol frames and nothing else.
"""

from __future__ import annotations

import logging
import sys

from rich.console import Console
from rich.logging import RichHandler

_FORMAT = "%(name)s: %(message)s"
_PLAIN_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


def configure_logging(level: str | int = "INFO", *, rich: bool = True) -> logging.Handler:
    """Install a single stderr handler on the ``fsmcp`` logger and return it.

    Calling it again replaces the previously installed handler.
    """
    logger = logging.getLogger("fsmcp")
    for existing in list(logger.handlers):
        if getattr(existing, "_fsmcp_handler", False):
            logger.removeHandler(existing)

    handler: logging.Handler
    if rich:
        handler = RichHandler(
            console=Console(stderr=True),
            show_path=False,
            rich_tracebacks=True,
        )
        handler.setFormatter(logging.Formatter(_FORMAT))
    else:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(_PLAIN_FORMAT))

    handler._fsmcp_handler = True  # type: ignore[attr-defined]
    logger.addHandler(handler)
    logger.setLevel(level.upper() if isinstance(level, str) else level)
    logger.propagate = False
    return handler
