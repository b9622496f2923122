from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings can be configured via environment variables or .env file.
    """

    # Server settings
    host: str = "0.0.0.0"
    port: int = 3000

    # Redis / Valkey connection (any server speaking the Redis protocol)
    redis_url: str = "redis://localhost:6379/0"

    # Header carrying the client identity
    client_id_header: str = "X-Client-Id"

    # Rate limiting settings for the demo routes
    rate_limit_limit: int = 5
    rate_limit_window_size_ms: int = 10_000
    rate_limit_refill_interval_ms: int = 2_000
    rate_limit_variant: Literal["script", "transaction"] = "script"
    rate_limit_fail_closed: bool = (
        False  # If True, deny requests when Redis is unavailable
    )

    # Logging settings
    log_level: str = "INFO"
    log_format: str = "text"  # text | structured | json

    @field_validator(
        "rate_limit_limit",
        "rate_limit_window_size_ms",
        "rate_limit_refill_interval_ms",
    )
    @classmethod
    def validate_rate_limit_positive(cls, v: int) -> int:
        """Validate rate limit values are positive."""
        if v < 1:
            raise ValueError("Rate limit values must be at least 1")
        return v

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        if not 0 < v < 65536:
            raise ValueError("port must be between 1 and 65535")
        return v

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


# Global settings instance
settings = Settings()
