"""Logging configuration for the daily digest pipeline.

Log records are routed through one package logger (``dailydigest``) with a
Rich console handler on stderr and an optional plain-text file handler.
Every handler carries ``RedactingFilter``, so a secret that slips into a log
message is scrubbed the same way activity text is.

Example:
    >>> from dailydigest.utils.logging import setup_logging, LogContext
    >>> setup_logging(level="DEBUG")
    >>> with LogContext("Extracting patterns"):
    ...     pass
    # Logs: "Extracting patterns completed in 0.01s"
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.logging import RichHandler

from dailydigest.core.scrubber import scrub_secrets

PACKAGE_NAME = "dailydigest"

# HTTP libraries used by the local model client.
NOISY_LOGGERS = ("urllib3", "requests", "charset_normalizer")

LOG_FILE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_stderr = Console(stderr=True)


# =============================================================================
# Redaction
# =============================================================================


def _scrub_value(value: Any) -> Any:
    return scrub_secrets(value) if isinstance(value, str) else value


class RedactingFilter(logging.Filter):
    """Scrub secrets from a record's message and its format arguments.

    Example:
        >>> client_logger = logging.getLogger("dailydigest.ai.client")
        >>> client_logger.addFilter(RedactingFilter())
        >>> client_logger.info("export API_TOKEN=abc123")
        # Output: "API_TOKEN=[REDACTED]"
    """

    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = _scrub_value(record.msg)
        if isinstance(record.args, dict):
            record.args = {key: _scrub_value(value) for key, value in record.args.items()}
        elif record.args:
            record.args = tuple(_scrub_value(arg) for arg in record.args)
        return True


# =============================================================================
# Setup
# =============================================================================


def _console_handler() -> logging.Handler:
    return RichHandler(
        console=_stderr,
        show_time=False,
        show_path=False,
        markup=False,
        rich_tracebacks=True,
        tracebacks_show_locals=False,
    )


def _file_handler(log_file: Path) -> logging.Handler:
    log_file.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(log_file, encoding="utf-8")
    handler.setFormatter(logging.Formatter(LOG_FILE_FORMAT, datefmt=LOG_DATE_FORMAT))
    return handler


def setup_logging(
    level: str = "INFO",
    log_file: Path | None = None,
    quiet_third_party: bool = True,
) -> None:
    """Configure the ``dailydigest`` logger.

    Replaces any handlers from an earlier call, so the CLI can reconfigure
    after loading the config file. The package logger stops propagating to
    the root logger.

    Args:
        level: Level name; unknown names fall back to INFO.
        log_file: Also append plain-text records to this file.
        quiet_third_party: Raise the HTTP libraries' loggers to WARNING.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    handlers = [_console_handler()]
    if log_file:
        handlers.append(_file_handler(log_file))

    package_logger = logging.getLogger(PACKAGE_NAME)
    package_logger.setLevel(numeric_level)
    package_logger.handlers = []
    for handler in handlers:
        handler.setLevel(numeric_level)
        handler.addFilter(RedactingFilter())
        package_logger.addHandler(handler)
    package_logger.propagate = False

    if quiet_third_party:
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    package_logger.debug(f"Logging at {logging.getLevelName(numeric_level)}, file={log_file}")


def get_logger(name: str) -> logging.Logger:
    """Logger under the package namespace; ``analysis`` -> ``dailydigest.analysis``."""
    if name != PACKAGE_NAME and not name.startswith(f"{PACKAGE_NAME}."):
        name = f"{PACKAGE_NAME}.{name}"
    return logging.getLogger(name)


# =============================================================================
# Stage Timing
# =============================================================================


class LogContext:
    """Log the start and duration of one pipeline stage.

    A stage that raises is logged at ERROR with its elapsed time; the
    exception still propagates.

    Attributes:
        message: Stage description, e.g. ``"Classifying events"``.
        level: Level for the start and completion records.
        logger: Logger to write to; the package logger by default.
        elapsed: Seconds spent in the stage, set on exit.
    """

    def __init__(
        self,
        message: str,
        level: int = logging.DEBUG,
        logger: logging.Logger | None = None,
    ) -> None:
        self.message = message
        self.level = level
        self.logger = logger or logging.getLogger(PACKAGE_NAME)
        self.elapsed = 0.0
        self._started = 0.0

    def __enter__(self) -> LogContext:
        self._started = time.perf_counter()
        self.logger.log(self.level, f"{self.message}...")
        return self

    def __exit__(self, exc_type: type[BaseException] | None, exc_val: BaseException | None, exc_tb: Any) -> None:
        self.elapsed = time.perf_counter() - self._started
        if exc_type is None:
            self.logger.log(self.level, f"{self.message} completed in {self.elapsed:.2f}s")
        else:
            self.logger.error(f"{self.message} failed after {self.elapsed:.2f}s: {exc_val}")

    @property
    def elapsed_ms(self) -> float:
        return self.elapsed * 1000.0
