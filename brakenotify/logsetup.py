"""Access to the logger used for the package's own diagnostics."""

from __future__ import annotations

import logging


class _LoggerHolder:
    """Holds the logger currently used for diagnostics."""

    def __init__(self, logger: logging.Logger) -> None:
        self.logger = logger


_holder = _LoggerHolder(logging.getLogger("brakenotify"))


def set_logger(logger: logging.Logger) -> None:
    """Replace the logger that receives the package's diagnostics."""
    _holder.logger = logger


def get_logger() -> logging.Logger:
    """Return the logger that receives the package's diagnostics."""
    return _holder.logger