"""Configuration management for the schemaforge system."""

import os
from typing import Any

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from .types import Environment


class Settings(BaseModel):
    """Application settings."""

    # Environment
    version: str = Field(default="0.1.0", description="Package version")
    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Application environment (development/production/testing)",
    )

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_queries: bool = Field(
        default=False, description="Whether every executed statement is logged"
    )

    # Connection
    dialect: str = Field(default="sqlite", description="Target database dialect")
    database_url: str = Field(
        default="sqlite:///:memory:", description="Database URL or SQLite file path"
    )
    database: str | None = Field(
        default=None, description="Default database for unqualified table names"
    )
    schema_name: str | None = Field(
        default=None, description="Default schema for unqualified table names"
    )

    # Session behaviour
    max_query_execution_time_ms: int = Field(
        default=0,
        description="Slow query threshold in milliseconds (0 disables reporting)",
    )
    busy_retry_ms: int = Field(
        default=0, description="Delay before retrying a busy SQLite statement"
    )
    busy_retry_attempts: int = Field(
        default=5, description="Maximum retries for a busy SQLite statement"
    )

    # Schema metadata
    metadata_table: str = Field(
        default="schemaforge_metadata",
        description="Table that records view definitions",
    )

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        # Statement logging is always on under test
        if self.environment == Environment.TESTING:
            self.log_queries = True

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment == Environment.DEVELOPMENT

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == Environment.PRODUCTION

    @property
    def is_testing(self) -> bool:
        """Check if running in testing mode."""
        return self.environment == Environment.TESTING


def load_settings() -> Settings:
    """Load settings from environment variables."""

    # Load .env file if it exists
    load_dotenv()

    log_queries = os.getenv("SCHEMAFORGE_LOG_QUERIES", "false").lower() in [
        "true",
        "1",
        "yes",
        "on",
    ]

    return Settings(
        environment=Environment(os.getenv("SCHEMAFORGE_ENV", "development")),
        log_level=os.getenv("SCHEMAFORGE_LOG_LEVEL", "INFO").upper(),
        log_queries=log_queries,
        dialect=os.getenv("SCHEMAFORGE_DIALECT", "sqlite").lower(),
        database_url=os.getenv("SCHEMAFORGE_DATABASE_URL", "sqlite:///:memory:"),
        database=os.getenv("SCHEMAFORGE_DATABASE") or None,
        schema_name=os.getenv("SCHEMAFORGE_SCHEMA") or None,
        max_query_execution_time_ms=int(
            os.getenv("SCHEMAFORGE_MAX_QUERY_EXECUTION_TIME_MS", "0")
        ),
        busy_retry_ms=int(os.getenv("SCHEMAFORGE_BUSY_RETRY_MS", "0")),
        busy_retry_attempts=int(os.getenv("SCHEMAFORGE_BUSY_RETRY_ATTEMPTS", "5")),
        metadata_table=os.getenv("SCHEMAFORGE_METADATA_TABLE", "schemaforge_metadata"),
    )


# Global settings instance
settings = load_settings()
