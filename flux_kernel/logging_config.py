"""Logging setup for processes embedding flux."""

import logging

from flux_kernel.models.config import FluxConfig

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def configure_logging(config: FluxConfig) -> logging.Logger:
    """
    Set the level of the ``flux_kernel`` logger tree.

    Debug mode forces DEBUG so per-delivery lines show up. A handler is
    only installed when the root logger has none, so host applications
    keep control of formatting.
    """
    level = logging.DEBUG if config.debug else logging.getLevelName(config.log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    if not logging.getLogger().handlers:
        logging.basicConfig(format=LOG_FORMAT)

    logger = logging.getLogger("flux_kernel")
    logger.setLevel(level)
    return logger
