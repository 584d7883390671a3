"""Library configuration using pydantic-settings."""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="PHOTOSTREAM_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Logging
    debug: bool = False
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # Request gate. Drive allows 10 qps per IP, the console default is lower.
    rate_limit_qps: float = Field(
        default=10.0,
        gt=0,
        description="Initial permitted requests per second",
    )
    rate_limit_burst: int = Field(
        default=1,
        ge=1,
        description="Token bucket size",
    )
    rate_limit_decay: float = Field(
        default=0.9,
        gt=0,
        lt=1,
        description="Factor applied to the permitted rate on every overload signal",
    )
    rate_limit_max_attempts: int | None = Field(
        default=None,
        ge=1,
        description="Give up after this many overloaded attempts (None retries forever)",
    )
    rate_limit_min_qps: float | None = Field(
        default=None,
        gt=0,
        description="Lower bound for the decayed rate (None means no floor)",
    )
    overload_markers: list[str] = Field(
        default=["ratelimitexceeded", "userratelimitexceeded", "rate limit exceeded"],
        description="Lower-case substrings identifying a rate limit error",
    )

    # Paging
    page_size: int = Field(
        default=1000,
        ge=1,
        le=1000,
        description="Items requested per listing or change page",
    )
    spaces: str = Field(
        default="photos",
        description="Drive space queried by list and change calls",
    )

    # Conversion
    strict_timestamps: bool = Field(
        default=False,
        description="Report unparsable createdTime/modifiedTime values as errors",
    )

    # Script only
    token_file: Path | None = Field(
        default=None,
        description="Authorized-user token JSON used by scripts/dump_photos.py",
    )


# Global settings instance
settings = Settings()
