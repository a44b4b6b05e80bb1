"""
CurrentReader Configuration System
==================================

Configuration management with environment variables and Pydantic models.
Environment variables override Field defaults with clear precedence.
"""

import os
from pathlib import Path
from typing import Optional
from enum import Enum

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings

from ..utils.exceptions import ConfigurationError, ErrorCode


class LogLevel(str, Enum):
    """Available log levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class FetchSettings(BaseModel):
    """Outbound HTTP configuration for feed and page retrieval."""
    timeout_seconds: float = Field(default=15.0, gt=0, le=300, description="Per-request timeout in seconds")
    user_agent: str = Field(default="CurrentReader/1.0 (+https://example.com)", description="Outbound User-Agent header")
    accept: str = Field(
        default=(
            "application/rss+xml, application/xml, text/xml, application/atom+xml, "
            "text/html;q=0.9,*/*;q=0.8"
        ),
        description="Outbound Accept header for feed requests",
    )
    max_concurrent_refreshes: int = Field(default=4, ge=1, le=32, description="Feeds refreshed in parallel by refresh-all")
    limit_per_host: int = Field(default=4, ge=1, le=32, description="Open connections per upstream host")

    @field_validator("user_agent", "accept")
    @classmethod
    def validate_header(cls, v):
        """Header values must be non-empty single-line strings."""
        v = v.strip()
        if not v or "\n" in v or "\r" in v:
            raise ValueError("header value must be a non-empty single line")
        return v


class NormalizerSettings(BaseModel):
    """Feed normalization configuration."""
    snippet_length: int = Field(default=280, ge=1, le=5000, description="Maximum snippet length in characters")
    id_length: int = Field(default=16, ge=8, le=64, description="Hex characters kept from the SHA-256 identity digest")


class ReaderSettings(BaseModel):
    """Reader view extraction configuration."""
    min_content_length: int = Field(
        default=200, ge=0, description="Skip extraction when stored text is already longer than this"
    )
    fallback_text_length: int = Field(
        default=2000, ge=100, description="Characters of page text kept when readability finds nothing"
    )


class DatabaseSettings(BaseModel):
    """Catalog database configuration."""
    path: str = Field(default="data/currentreader.db", description="SQLite database file path")
    pool_size: int = Field(default=5, ge=1, le=20, description="Connection pool size")


class LoggingSettings(BaseModel):
    """Logging configuration."""
    level: LogLevel = Field(default=LogLevel.INFO, description="Global log level")
    file_path: Optional[str] = Field(default="logs/currentreader.log", description="Log file path")
    max_file_size_mb: int = Field(default=10, ge=1, le=100, description="Max log file size in MB")
    backup_count: int = Field(default=5, ge=1, le=20, description="Number of log backup files")
    structured_logging: bool = Field(default=False, description="Use structured JSON logging")
    console_logging: bool = Field(default=True, description="Enable console logging")


class CurrentReaderSettings(BaseSettings):
    """Main application settings."""

    fetch: FetchSettings = Field(default_factory=FetchSettings)
    normalizer: NormalizerSettings = Field(default_factory=NormalizerSettings)
    reader: ReaderSettings = Field(default_factory=ReaderSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    app_name: str = Field(default="CurrentReader", description="Application name")
    version: str = Field(default="1.0.0", description="Application version")
    debug: bool = Field(default=False, description="Enable debug mode")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "env_nested_delimiter": "__",
        "env_prefix": "CURRENTREADER_",
        "extra": "ignore",
    }

    def validate_configuration(self) -> None:
        """Validate complete configuration."""
        errors = []

        try:
            db_path = Path(self.database.path)
            db_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            errors.append(f"Invalid database path: {e}")

        if self.logging.file_path:
            try:
                log_path = Path(self.logging.file_path)
                log_path.parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                errors.append(f"Invalid log file path: {e}")

        if errors:
            raise ConfigurationError(
                f"Configuration validation failed: {'; '.join(errors)}",
                error_code=ErrorCode.CONFIG_INVALID
            )

    def is_production_mode(self) -> bool:
        """Check if running in production mode."""
        return not self.debug and os.getenv("ENV", "development").lower() == "production"

    def get_effective_log_level(self) -> str:
        """Get effective log level considering debug mode."""
        if self.debug:
            return "DEBUG"
        return self.logging.level.value


def load_settings() -> CurrentReaderSettings:
    """Load settings from environment variables and defaults.

    Returns:
        Loaded and validated settings

    Raises:
        ConfigurationError: If configuration is invalid
    """
    from dotenv import load_dotenv
    load_dotenv()

    try:
        # Precedence: environment, then .env, then Field defaults
        settings = CurrentReaderSettings()
        settings.validate_configuration()
        return settings

    except ConfigurationError:
        raise
    except Exception as e:
        raise ConfigurationError(
            f"Failed to initialize settings: {e}",
            error_code=ErrorCode.CONFIG_INVALID
        ) from e


# Global settings instance
_settings: Optional[CurrentReaderSettings] = None


def get_settings(reload: bool = False) -> CurrentReaderSettings:
    """Get global settings instance (singleton pattern).

    Args:
        reload: Force reload of settings

    Returns:
        Global settings instance
    """
    global _settings

    if _settings is None or reload:
        _settings = load_settings()

    return _settings
