"""Tests for configuration management."""

import os
from unittest.mock import patch

from schemaforge.config import Settings, load_settings
from schemaforge.types import Environment


def test_environment_values() -> None:
    """Test environment enum values."""
    assert Environment.DEVELOPMENT == "development"
    assert Environment.PRODUCTION == "production"
    assert Environment.TESTING == "testing"


def test_default_settings() -> None:
    """Test default settings values."""
    with patch.dict(os.environ, {}, clear=True):
        settings = Settings()

        assert settings.environment == Environment.DEVELOPMENT
        assert settings.dialect == "sqlite"
        assert settings.database_url == "sqlite:///:memory:"
        assert settings.schema_name is None
        assert settings.max_query_execution_time_ms == 0
        assert settings.metadata_table == "schemaforge_metadata"
        assert settings.log_queries is False
        assert settings.log_level == "INFO"


def test_production_mode_properties() -> None:
    """Test production mode properties."""
    with patch.dict(os.environ, {"SCHEMAFORGE_ENV": "production"}, clear=True):
        settings = load_settings()

        assert settings.is_development is False
        assert settings.is_production is True
        assert settings.is_testing is False
        assert settings.log_queries is False


def test_testing_mode_logs_queries() -> None:
    """Test that testing mode always enables statement logging."""
    env_vars = {"SCHEMAFORGE_ENV": "testing", "SCHEMAFORGE_LOG_QUERIES": "false"}

    with patch.dict(os.environ, env_vars, clear=True):
        settings = load_settings()

        assert settings.is_testing is True
        assert settings.log_queries is True


def test_custom_settings() -> None:
    """Test custom settings via environment variables."""
    env_vars = {
        "SCHEMAFORGE_ENV": "production",
        "SCHEMAFORGE_LOG_LEVEL": "debug",
        "SCHEMAFORGE_LOG_QUERIES": "yes",
        "SCHEMAFORGE_DIALECT": "Postgres",
        "SCHEMAFORGE_DATABASE_URL": "postgresql://localhost/app",
        "SCHEMAFORGE_DATABASE": "app",
        "SCHEMAFORGE_SCHEMA": "public",
        "SCHEMAFORGE_MAX_QUERY_EXECUTION_TIME_MS": "250",
        "SCHEMAFORGE_BUSY_RETRY_MS": "10",
        "SCHEMAFORGE_BUSY_RETRY_ATTEMPTS": "3",
        "SCHEMAFORGE_METADATA_TABLE": "app_metadata",
    }

    with patch.dict(os.environ, env_vars, clear=True):
        settings = load_settings()

        assert settings.environment == Environment.PRODUCTION
        assert settings.log_level == "DEBUG"
        assert settings.log_queries is True
        assert settings.dialect == "postgres"
        assert settings.database_url == "postgresql://localhost/app"
        assert settings.database == "app"
        assert settings.schema_name == "public"
        assert settings.max_query_execution_time_ms == 250
        assert settings.busy_retry_ms == 10
        assert settings.busy_retry_attempts == 3
        assert settings.metadata_table == "app_metadata"


def test_empty_database_is_none() -> None:
    """Test that empty database and schema variables mean unset."""
    env_vars = {"SCHEMAFORGE_DATABASE": "", "SCHEMAFORGE_SCHEMA": ""}

    with patch.dict(os.environ, env_vars, clear=True):
        settings = load_settings()

        assert settings.database is None
        assert settings.schema_name is None
