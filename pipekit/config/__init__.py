"""Configuration management for pipekit.

Usage:
    from pipekit.config import settings

    settings.exec_failure_status
    settings.default_timeout
"""

import signal
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Process orchestration settings with environment variable support.

    Every field can be overridden with a ``PIPEKIT_``-prefixed environment
    variable or a ``.env`` file in the working directory.
    """

    model_config = SettingsConfigDict(
        env_prefix="PIPEKIT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Child processes
    exec_failure_status: int = Field(
        default=127,
        ge=1,
        le=255,
        description="Exit status of a child whose stream rebinding or exec failed",
    )
    kill_signal: int = Field(
        default=int(signal.SIGKILL),
        ge=1,
        description="Signal sent to a supervised child that overran its timeout",
    )

    # Sandbox
    default_timeout: float = Field(
        default=10.0,
        ge=0,
        le=86400,
        description="Default sandbox timeout in seconds (0 disables the timer)",
    )

    # Logging
    log_level: str = Field(default="INFO")
    log_format: Literal["console", "json"] = Field(default="console")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels}")
        return v.upper()


settings = Settings()

__all__ = ["Settings", "settings"]
