"""
Structured logging setup.

Every module logs under the ``dataroom_rag`` namespace so one handler
covers the orchestrator, the collaborators and the HTTP layer.

Usage:
    from dataroom_rag.utils.logging import get_logger
    logger = get_logger("dataroom_rag.pipeline.retrieval")
    logger.info("Searching %d variants", len(queries))
"""

from __future__ import annotations

import logging
import sys

ROOT_LOGGER_NAME = "dataroom_rag"

_configured = False


def setup_logging(level: int = logging.INFO) -> None:
    """Configure structured logging for the entire application."""
    global _configured
    if _configured:
        return

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)

    formatter = logging.Formatter(
        fmt="%(asctime)s | %(levelname)-7s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    handler.setFormatter(formatter)

    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel(level)
    root.addHandler(handler)
    root.propagate = False

    _configured = True


def get_logger(name: str) -> logging.Logger:
    """
    Return a logger under the ``dataroom_rag`` namespace.

    Automatically calls ``setup_logging()`` on first use to ensure
    the root handler is attached.
    """
    setup_logging()
    return logging.getLogger(name)
