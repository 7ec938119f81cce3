"""Unit tests for logging functionality."""

import logging
import logging.handlers
from unittest.mock import MagicMock

from schemaforge import QueryLogger, get_logger, setup_logging, setup_test_logging


def test_setup_logging_defaults() -> None:
    """Test setup_logging with default parameters."""
    setup_logging()
    root_logger = logging.getLogger()
    assert root_logger.level == logging.INFO
    setup_test_logging()


def test_setup_logging_custom_level() -> None:
    """Test setup_logging with custom level."""
    setup_logging(level=logging.DEBUG, use_colors=False)
    root_logger = logging.getLogger()
    assert root_logger.level == logging.DEBUG
    assert isinstance(root_logger.handlers[0].formatter, logging.Formatter)
    setup_test_logging()


def test_setup_logging_rotating_file(tmp_path) -> None:
    """Test setup_logging outside tests writes to a rotating file."""
    setup_logging(enable_file_logging=True, log_dir=tmp_path)
    root_logger = logging.getLogger()
    file_handler = root_logger.handlers[1]
    assert isinstance(file_handler, logging.handlers.RotatingFileHandler)
    assert file_handler.baseFilename == str(tmp_path / "schemaforge.log")
    setup_test_logging()


def test_get_logger() -> None:
    """Test get_logger returns a logger instance."""
    logger = get_logger("test_logger")
    assert isinstance(logger, logging.Logger)
    assert logger.name == "test_logger"


class TestQueryLogger:
    """Test query event logging."""

    def test_log_query_with_parameters(self, caplog) -> None:
        query_logger = QueryLogger()

        with caplog.at_level(logging.DEBUG, logger="schemaforge.query"):
            query_logger.log_query("SELECT ?", [1])

        assert "query: SELECT ? -- PARAMETERS: [1]" in caplog.text

    def test_disabled_logger_skips_queries(self, caplog) -> None:
        """Ordinary queries are silent when disabled; slow ones are not."""
        query_logger = QueryLogger(enabled=False)

        with caplog.at_level(logging.DEBUG, logger="schemaforge.query"):
            query_logger.log_query("SELECT 1")
            query_logger.log_query_slow(1500.0, "SELECT 2")

        assert "SELECT 1" not in caplog.text
        assert "query is slow (1500.0 ms): SELECT 2" in caplog.text

    def test_log_query_error(self, caplog) -> None:
        query_logger = QueryLogger()

        with caplog.at_level(logging.ERROR, logger="schemaforge.query"):
            query_logger.log_query_error(RuntimeError("boom"), "DROP TABLE x")

        messages = [record.getMessage() for record in caplog.records]
        assert messages == ["query failed: DROP TABLE x", "error: boom"]

    def test_migration_and_schema_messages(self) -> None:
        query_logger = QueryLogger(name="custom.query")
        query_logger.logger = MagicMock()

        query_logger.log_migration("Creating table users")
        query_logger.log_schema_build("Schema synced")

        assert query_logger.logger.info.call_count == 2
        query_logger.logger.info.assert_any_call("Creating table users")
