"""
Tests for the logger module.
"""

import logging
import time
from unittest.mock import patch

import pytest

from utils.logger import (
    ColoredFormatter,
    PerformanceLogger,
    configure_third_party_loggers,
    get_logger,
    set_level,
    setup_logger,
)


def console_handlers(logger):
    return [
        h
        for h in logger.handlers
        if isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler)
    ]


def file_handlers(logger):
    return [h for h in logger.handlers if isinstance(h, logging.FileHandler)]


class TestSetupLogger:
    """Test suite for setup_logger."""

    def test_levels(self, tmp_path):
        """Test that the requested level is applied to the logger and console."""
        debug = setup_logger("faq.test_levels_debug", level="debug", log_dir=tmp_path)
        warning = setup_logger("faq.test_levels_warning", level="WARNING", log_dir=tmp_path)

        assert debug.level == logging.DEBUG
        assert warning.level == logging.WARNING
        assert console_handlers(warning)[0].level == logging.WARNING
        assert debug.propagate is False

    def test_unknown_level(self):
        """Test that an unknown level name is rejected."""
        with pytest.raises(ValueError, match="Unknown log level"):
            setup_logger("faq.test_unknown_level", level="VERBOSE", file_output=False)

    def test_file_handlers(self, tmp_path):
        """Test that the main and error files are created under log_dir."""
        log_dir = tmp_path / "logs"

        logger = setup_logger("faq.store", log_dir=log_dir, console_output=False)

        assert log_dir.is_dir()
        assert console_handlers(logger) == []
        levels = sorted(h.level for h in file_handlers(logger))
        assert levels == [logging.DEBUG, logging.ERROR]

    def test_console_only(self):
        """Test that file_output=False attaches no file handler."""
        logger = setup_logger("faq.test_console_only", file_output=False)

        assert file_handlers(logger) == []
        assert len(console_handlers(logger)) == 1

    def test_configured_once(self, tmp_path):
        """Test that a second call returns the same logger untouched."""
        first = setup_logger("faq.test_once", level="INFO", log_dir=tmp_path)
        count = len(first.handlers)

        second = setup_logger("faq.test_once", level="DEBUG", log_dir=tmp_path)

        assert second is first
        assert len(second.handlers) == count
        assert second.level == logging.INFO

    def test_errors_go_to_both_files(self, tmp_path):
        """Test that errors also land in the dedicated error file."""
        logger = setup_logger(
            "faq.test_split", level="DEBUG", log_dir=tmp_path, console_output=False
        )

        logger.info("cache warmed")
        logger.error("store unreachable")
        for handler in logger.handlers:
            handler.flush()

        main_log = (tmp_path / "faq_test_split.log").read_text(encoding="utf-8")
        error_log = (tmp_path / "faq_test_split_errors.log").read_text(encoding="utf-8")
        assert "cache warmed" in main_log
        assert "store unreachable" in main_log
        assert "store unreachable" in error_log
        assert "cache warmed" not in error_log


class TestGetLogger:
    """Test suite for the settings-driven get_logger."""

    def test_defaults_from_settings(self):
        """Test LOG_LEVEL (INFO) and LOG_TO_FILE=false from the test environment."""
        logger = get_logger("faq.test_get_logger")

        assert logger.level == logging.INFO
        assert file_handlers(logger) == []

    def test_level_override(self):
        """Test that an explicit level wins over LOG_LEVEL."""
        assert get_logger("faq.test_get_logger_debug", level="DEBUG").level == logging.DEBUG


class TestSetLevel:
    """Test suite for changing levels after creation."""

    def test_applies_to_existing_loggers(self, tmp_path):
        """Test that loggers and their console handlers follow set_level."""
        logger = setup_logger("faq.test_set_level", level="INFO", log_dir=tmp_path)
        file_levels = sorted(h.level for h in file_handlers(logger))

        try:
            set_level("DEBUG")

            assert logger.level == logging.DEBUG
            assert console_handlers(logger)[0].level == logging.DEBUG
            assert sorted(h.level for h in file_handlers(logger)) == file_levels
        finally:
            set_level("INFO")

    def test_rejects_unknown_level(self):
        with pytest.raises(ValueError):
            set_level("LOUD")


class TestColoredFormatter:
    """Test suite for the console formatter."""

    def test_plain_output_when_not_a_terminal(self):
        formatter = ColoredFormatter(fmt="%(levelname)s %(message)s")
        record = logging.LogRecord("faq", logging.WARNING, __file__, 1, "slow query", None, None)

        with patch("utils.logger.sys.stdout") as stdout:
            stdout.isatty.return_value = False
            assert formatter.format(record) == "WARNING slow query"

    def test_colours_a_copy_of_the_record(self):
        formatter = ColoredFormatter(fmt="%(levelname)s %(message)s")
        record = logging.LogRecord("faq", logging.ERROR, __file__, 1, "boom", None, None)

        with patch("utils.logger.sys.stdout") as stdout:
            stdout.isatty.return_value = True
            output = formatter.format(record)

        assert output.startswith("\033[31mERROR\033[0m")
        assert record.levelname == "ERROR"


class TestPerformanceLogger:
    """Test suite for PerformanceLogger context manager."""

    def test_logs_start_and_completion(self):
        """Test that start and completion are logged at the chosen level."""
        logger = get_logger("faq.test_performance")

        with patch.object(logger, "log") as mock_log:
            with PerformanceLogger(logger, "search_faqs 'horaires'", level=logging.INFO):
                time.sleep(0.01)

        first, last = mock_log.call_args_list[0], mock_log.call_args_list[-1]
        assert first.args[0] == logging.INFO
        assert "Starting: search_faqs 'horaires'" in first.args[1]
        assert "Completed: search_faqs 'horaires'" in last.args[1]

    def test_logs_failure(self):
        """Test that an exception is logged as an error and re-raised."""
        logger = get_logger("faq.test_performance_error")

        with patch.object(logger, "log"), patch.object(logger, "error") as mock_error:
            with pytest.raises(ConnectionError):
                with PerformanceLogger(logger, "get_faqs"):
                    raise ConnectionError("database down")

        message = mock_error.call_args.args[0]
        assert message.startswith("Failed: get_faqs")
        assert "database down" in message

    def test_records_elapsed(self):
        """Test that the elapsed time is kept after the block exits."""
        logger = get_logger("faq.test_performance_elapsed")

        with PerformanceLogger(logger, "retrieve") as perf:
            assert perf.elapsed is None
            time.sleep(0.01)

        assert perf.elapsed > 0


class TestThirdPartyLoggers:
    """Test suite for third-party logger levels."""

    def test_driver_loggers_are_quietened(self):
        logging.getLogger("psycopg.pool").setLevel(logging.DEBUG)

        configure_third_party_loggers()

        assert logging.getLogger("psycopg").level == logging.WARNING
        assert logging.getLogger("psycopg.pool").level == logging.WARNING
        assert logging.getLogger("asyncio").level == logging.WARNING
