"""Configuration loading for the Planner backend.

This module provides centralized configuration management:
- Load settings from environment variables (PLANNER_ prefix) and .env files
- Validate configuration using pydantic
- Provide typed access to all settings
- Resolve the per-user data directory for the default SQLite file
"""

import os
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def default_data_dir() -> Path:
    """Per-user data directory for the embedded database.

    $XDG_DATA_HOME/planner when set, ~/Library/Application Support/planner
    on macOS, ~/.planner otherwise.
    """
    xdg = os.environ.get("XDG_DATA_HOME")
    if xdg:
        return Path(xdg) / "planner"
    home = Path.home()
    if (home / "Library").exists():
        return home / "Library" / "Application Support" / "planner"
    return home / ".planner"


class Settings(BaseSettings):
    """Application configuration loaded from environment.

    Uses pydantic-settings for environment variable handling with
    .env file support via python-dotenv.
    """

    model_config = SettingsConfigDict(
        env_prefix="PLANNER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Entity store configuration
    db_type: Literal["sqlite", "postgres"] = Field(
        default="sqlite",
        description="Database kind: embedded single-file or networked",
    )
    db_path: str = Field(
        default_factory=lambda: str(default_data_dir() / "planner.db"),
        description="SQLite database file path",
    )
    database_url: str = Field(
        default="",
        description="PostgreSQL connection string",
    )
    sqlite_pool_size: int = Field(
        default=5,
        description="Idle SQLite connections kept open",
    )
    postgres_pool_size: int = Field(
        default=10,
        description="Maximum PostgreSQL pool size",
    )

    # Domain behavior
    delete_policy: Literal["orphan", "cascade"] = Field(
        default="orphan",
        description="What deleting an area or project does to its children",
    )

    # RPC server configuration
    host: str = Field(
        default="localhost",
        description="Host to listen on",
    )
    port: int = Field(
        default=50051,
        description="Port to listen on (0 for an ephemeral port)",
    )
    request_timeout_seconds: float = Field(
        default=30.0,
        description="Per-call deadline when the caller sends none",
    )

    # Logging configuration
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Log level",
    )
    log_format: Literal["json", "text"] = Field(
        default="text",
        description="Log format",
    )

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        """Ensure port is in valid range."""
        if v < 0 or v > 65535:
            raise ValueError("port must be between 0 and 65535")
        return v

    @field_validator("request_timeout_seconds")
    @classmethod
    def validate_request_timeout(cls, v: float) -> float:
        """Ensure the default deadline is positive."""
        if v <= 0:
            raise ValueError("request_timeout_seconds must be positive")
        return v

    @field_validator("sqlite_pool_size", "postgres_pool_size")
    @classmethod
    def validate_pool_size(cls, v: int) -> int:
        """Ensure pool sizes are positive."""
        if v <= 0:
            raise ValueError("pool size must be positive")
        return v

    @property
    def listen_address(self) -> str:
        return f"{self.host}:{self.port}"


def load_settings(env_file: str | None = None, **overrides: object) -> Settings:
    """Load application settings from environment.

    Args:
        env_file: Optional path to .env file. If not provided,
                 uses the default .env in the current directory.
        **overrides: Values taking precedence over the environment,
                 e.g. from command-line flags.

    Returns:
        Validated Settings instance.

    Raises:
        ValidationError: If settings validation fails.
    """
    if env_file:
        return Settings(_env_file=env_file, **overrides)  # type: ignore[call-arg]
    return Settings(**overrides)  # type: ignore[arg-type]


__all__ = ["Settings", "default_data_dir", "load_settings"]
