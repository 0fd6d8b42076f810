"""Library configuration."""

from pydantic import field_validator
from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Literal


class Settings(BaseSettings):
    """Library settings loaded from environment variables."""

    # Seconds of leeway applied to exp/nbf/iat checks
    clock_skew_seconds: int = 0

    # Header defaults
    default_typ: str = "JWT"

    # Sort JSON keys when encoding headers and payloads
    canonicalize: bool = False

    # Used by the CLI when configuring logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "WARNING"

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper_log_level(cls, value):
        return value.upper() if isinstance(value, str) else value

    class Config:
        env_prefix = "DIDJOSE_"
        env_file = ".env"
        case_sensitive = False


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
