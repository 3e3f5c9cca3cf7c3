"""Tests for logging setup."""

import logging

from flux_kernel.logging_config import configure_logging
from flux_kernel.models.config import FluxConfig


class TestConfigureLogging:
    def test_level_from_config(self):
        logger = configure_logging(FluxConfig(log_level="warning"))
        assert logger.name == "flux_kernel"
        assert logger.level == logging.WARNING

    def test_debug_forces_debug_level(self):
        logger = configure_logging(FluxConfig(debug=True, log_level="ERROR"))
        assert logger.level == logging.DEBUG

    def test_unknown_level_falls_back_to_info(self):
        logger = configure_logging(FluxConfig(log_level="chatty"))
        assert logger.level == logging.INFO
