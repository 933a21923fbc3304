"""Tests for the process-wide log setup."""

import logging

from order_service.logging_config import QUIET_LIBRARIES, get_logger, setup_logging


class TestSetupLogging:
    def test_client_libraries_are_held_at_warning(self, tmp_path):
        for name in QUIET_LIBRARIES:
            logging.getLogger(name).setLevel(logging.DEBUG)

        setup_logging("debug", str(tmp_path / "order_service.log"))

        assert [logging.getLogger(name).level for name in QUIET_LIBRARIES] == [logging.WARNING] * 3

    def test_get_logger_returns_named_logger(self):
        assert get_logger("order_service.workflow") is logging.getLogger("order_service.workflow")
