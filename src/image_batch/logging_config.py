"""Console logging setup for the CLI."""

from __future__ import annotations

import logging

_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(*, verbose: bool) -> logging.Logger:
    """Attach a single stderr handler to the package logger."""

    level = logging.DEBUG if verbose else logging.WARNING
    logger = logging.getLogger("image_batch")
    logger.setLevel(level)
    if logger.handlers:
        logger.handlers.clear()

    handler = logging.StreamHandler()
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(_FORMAT))
    logger.addHandler(handler)
    return logger
