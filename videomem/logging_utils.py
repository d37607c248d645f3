"""
Component-scoped logging.

Every component receives its logger at construction. When none is given, a
logger named ``videomem.<component>`` is used so output can still be filtered
per component.
"""

from __future__ import annotations

import logging

ROOT_LOGGER_NAME = "videomem"

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def get_component_logger(
    component: str,
    logger: logging.Logger | None = None,
) -> logging.Logger:
    """
    Resolve the logger a component should write to.

    Args:
        component: Component name (e.g. "index", "retriever")
        logger: Explicitly injected logger, returned unchanged if given

    Returns:
        Logger instance
    """
    if logger is not None:
        return logger
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{component}")


def configure_logging(verbose: bool = False) -> None:
    """Configure root logging for command-line use."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
    )
