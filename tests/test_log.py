"""Tests for structlog configuration."""

import json
import logging

import pytest
import structlog

from cloudrpc.log import configure_logging


@pytest.fixture(autouse=True)
def _restore_logging():
    """Restore root logger state after each test."""
    root = logging.getLogger()
    original_handlers = root.handlers[:]
    original_level = root.level
    cloudrpc_logger = logging.getLogger("cloudrpc")
    cloudrpc_level = cloudrpc_logger.level
    yield
    root.handlers = original_handlers
    root.setLevel(original_level)
    cloudrpc_logger.setLevel(cloudrpc_level)
    structlog.reset_defaults()


class TestConfigureLogging:
    def test_verbose_enables_debug(self):
        configure_logging(verbose=True)
        assert logging.getLogger("cloudrpc").level == logging.DEBUG
        assert logging.getLogger().level == logging.WARNING

    def test_non_verbose_sets_warning(self):
        configure_logging(verbose=False)
        assert logging.getLogger("cloudrpc").level == logging.WARNING

    def test_json_mode_output(self, capfd):
        configure_logging(verbose=True, log_json=True)
        log = structlog.get_logger("cloudrpc.retry_policy")
        log.warning("rpc_retry", attempt=2, code=503)

        parsed = json.loads(capfd.readouterr().err.strip())
        assert parsed["event"] == "rpc_retry"
        assert parsed["attempt"] == 2
        assert parsed["code"] == 503
        assert parsed["level"] == "warning"
        assert parsed["logger"] == "cloudrpc.retry_policy"
        assert "timestamp" in parsed

    def test_debug_hidden_unless_verbose(self, capfd):
        configure_logging(verbose=False, log_json=True)
        structlog.get_logger("cloudrpc.paging").debug("empty_page", page=3)

        assert capfd.readouterr().err == ""

    def test_urllib3_debug_is_suppressed(self, capfd):
        configure_logging(verbose=True, log_json=True)
        logging.getLogger("urllib3.connectionpool").debug("Starting new HTTPS connection")

        assert capfd.readouterr().err == ""

    def test_repeated_calls_do_not_stack_handlers(self):
        configure_logging(verbose=True)
        configure_logging(verbose=True, log_json=True)
        assert len(logging.getLogger().handlers) == 1
