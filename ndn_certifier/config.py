"""Configuration utilities for the certification agent."""

from __future__ import annotations

import tempfile
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()


def default_state_path() -> Path:
    return Path(tempfile.gettempdir()) / "ndn-certifier" / "logs.json"


class Settings(BaseSettings):
    """Environment-backed settings, read from ``NDN_CERTIFIER_*`` variables."""

    model_config = SettingsConfigDict(
        env_prefix="NDN_CERTIFIER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    timeout_ms: int = Field(default=1000, description="Deadline for each awaited external call")
    poll_interval: float = Field(default=1.0, description="Seconds slept between cycles")
    rule_window: float = Field(default=120.0, description="Trailing window of windowed rules, in seconds")
    history_limit: int = Field(default=3600, description="Entries kept per key; 0 keeps everything")
    state_path: Path = Field(default_factory=default_state_path, description="Where the log table is persisted")
    log_level: str = Field(default="INFO")
    nfdc_binary: str = Field(default="nfdc")
    ndnsec_binary: str = Field(default="ndnsec")

    @field_validator("timeout_ms", "poll_interval", "rule_window")
    @classmethod
    def _positive(cls, value):
        if value <= 0:
            raise ValueError("must be positive")
        return value

    @field_validator("history_limit")
    @classmethod
    def _non_negative(cls, value: int) -> int:
        if value < 0:
            raise ValueError("history_limit must be zero or positive")
        return value

    @field_validator("state_path", mode="before")
    @classmethod
    def _expand_path(cls, value):
        if isinstance(value, str):
            return Path(value).expanduser()
        if isinstance(value, Path):
            return value.expanduser()
        raise ValueError("state_path must be a filesystem path")

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalise_level(cls, value):
        return str(value).strip().upper()


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance."""

    return Settings()


__all__ = ["Settings", "default_state_path", "get_settings"]
