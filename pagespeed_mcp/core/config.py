# pagespeed_mcp/core/config.py
from functools import lru_cache
from typing import Literal

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from pagespeed_mcp.errors import ConfigurationError

SERVER_NAME = "pagespeed-insights-mcp"
SERVER_VERSION = "1.1.0"

LogLevel = Literal["trace", "debug", "info", "warn", "error", "fatal"]
DeploymentMode = Literal["development", "production", "test"]


class Settings(BaseSettings):
    """Loads and validates environment variables (and an optional .env file)."""
    GOOGLE_API_KEY: str = Field(min_length=1, description="Google API key for PageSpeed and CrUX")
    LOG_LEVEL: LogLevel = "info"
    MAX_CONCURRENCY: int = Field(default=3, ge=1, le=10)
    REQUEST_TIMEOUT: int = Field(default=30000, ge=1000, le=60000, description="Per-attempt timeout in ms")
    RETRY_ATTEMPTS: int = Field(default=3, ge=0, le=5)
    CACHE_TTL: int = Field(default=3600, ge=60, le=86400, description="Cache TTL in seconds")
    NODE_ENV: DeploymentMode = "development"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    @property
    def timeout_seconds(self) -> float:
        return self.REQUEST_TIMEOUT / 1000

    @property
    def is_development(self) -> bool:
        return self.NODE_ENV == "development"


def load_settings(**overrides) -> Settings:
    """
    Validates the environment into a Settings object.

    Every failing field is reported, not just the first one.

    Raises:
        ConfigurationError: If any value is missing or invalid.
    """
    try:
        return Settings(**overrides)
    except ValidationError as e:
        problems = []
        for error in e.errors():
            field = ".".join(str(part) for part in error["loc"]) or "environment"
            problems.append(f"{field}: {error['msg']}")
        raise ConfigurationError(problems) from e


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Returns the process-wide settings, validating the environment on first use."""
    return load_settings()
