"""Tests for logging setup and the redacting filter."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from dailydigest.utils.logging import LogContext, RedactingFilter, get_logger, setup_logging


def _record(msg: str, args: tuple | dict | None = None) -> logging.LogRecord:
    return logging.LogRecord("dailydigest.test", logging.INFO, __file__, 1, msg, args, None)


class TestRedactingFilter:
    """Tests for RedactingFilter."""

    def test_message_scrubbed(self) -> None:
        record = _record("export API_TOKEN=abc123 && run")
        assert RedactingFilter().filter(record) is True
        assert record.getMessage() == "API_TOKEN=[REDACTED] && run"

    def test_args_scrubbed(self) -> None:
        record = _record("calling %s with %d", ("export API_TOKEN=abc123 && run", 3))
        RedactingFilter().filter(record)
        assert "abc123" not in record.getMessage()
        assert record.getMessage().endswith("with 3")


class TestSetupLogging:
    """Tests for setup_logging, get_logger and LogContext."""

    def test_file_handler_redacts(self, tmp_path: Path) -> None:
        log_file = tmp_path / "logs" / "digest.log"
        setup_logging(level="info", log_file=log_file)

        logging.getLogger("dailydigest.pipeline").info("token export API_TOKEN=abc123 && run")
        for handler in logging.getLogger("dailydigest").handlers:
            handler.flush()

        content = log_file.read_text(encoding="utf-8")
        assert "API_TOKEN=[REDACTED]" in content
        assert "abc123" not in content
        assert logging.getLogger("dailydigest").level == logging.INFO

    def test_get_logger_namespaced(self) -> None:
        assert get_logger("analysis").name == "dailydigest.analysis"
        assert get_logger("dailydigest.config").name == "dailydigest.config"

    def test_log_context(self, caplog: pytest.LogCaptureFixture) -> None:
        logger = logging.getLogger("dailydigest.test")
        with caplog.at_level(logging.DEBUG, logger="dailydigest.test"):
            with LogContext("Extracting patterns", logger=logger) as ctx:
                pass
        assert "Extracting patterns completed in" in caplog.text
        assert ctx.elapsed >= 0

    def test_log_context_failure(self, caplog: pytest.LogCaptureFixture) -> None:
        logger = logging.getLogger("dailydigest.test")
        with caplog.at_level(logging.DEBUG, logger="dailydigest.test"):
            with pytest.raises(RuntimeError):
                with LogContext("Classifying events", logger=logger):
                    raise RuntimeError("boom")
        assert "Classifying events failed after" in caplog.text
