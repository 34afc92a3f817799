"""Logging setup shared by the HTTP API and the function handler."""

from __future__ import annotations

import logging

logger = logging.getLogger("coderunner")


def setup_logging(level: str = "INFO") -> logging.Logger:
    """Attach the ``[coderunner]`` stream handler once and set ``level``."""
    if not logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter("[coderunner] %(levelname)s - %(message)s")
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    logger.setLevel(level)
    return logger
