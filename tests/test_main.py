"""Tests for the command-line entry point."""

import argparse
import logging

import pytest

from dmrelay.main import NOISY_LOGGERS, async_main, setup_logging


class TestSetupLogging:
    """Test logging configuration."""

    def setup_method(self):
        self.saved = {name: logging.getLogger(name).level for name in NOISY_LOGGERS}

    def teardown_method(self):
        for name, level in self.saved.items():
            logging.getLogger(name).setLevel(level)

    def test_library_loggers_quieted(self):
        setup_logging(verbose=True)

        for name in NOISY_LOGGERS:
            assert logging.getLogger(name).level == logging.WARNING


class TestAsyncMain:
    """Test startup exit codes."""

    @pytest.mark.asyncio
    async def test_missing_config_exits_1(self, tmp_path, caplog):
        args = argparse.Namespace(config=str(tmp_path / "missing.yaml"), once=True, verbose=False)
        logger = logging.getLogger("dmrelay.test")

        with caplog.at_level(logging.ERROR):
            assert await async_main(args, logger) == 1

        assert "Config file not found" in caplog.text
