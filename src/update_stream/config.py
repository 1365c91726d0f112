"""
Configuration management for update-stream.

This module handles environment variables, settings validation, and
configuration management using Pydantic Settings.
"""

from pydantic import BaseModel, Field, SecretStr, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigurationError
from .methods import DEFAULT_API_URL, Receiver, parse_receiver


class PollingConfig(BaseModel):
    """Polling configuration settings."""

    timeout_seconds: int = Field(
        default=10, description="Long-poll timeout sent with getUpdates"
    )
    read_timeout_seconds: float = Field(
        default=10.0,
        description="Transport read budget for one getUpdates call",
    )
    error_backoff_seconds: float = Field(
        default=1.0, description="Delay before retrying after a failed cycle"
    )
    initial_offset: int | None = Field(
        default=None, description="Update id to start polling from"
    )


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Bot API configuration
    bot_token: SecretStr = Field(..., description="Bot API token")
    api_url: str = Field(default=DEFAULT_API_URL, description="Bot API base URL")
    connect_timeout_seconds: float = Field(
        default=10.0, description="HTTP connect timeout in seconds"
    )

    # Polling configuration
    polling_timeout_seconds: int = Field(
        default=10, gt=0, description="Long-poll timeout in seconds"
    )
    error_backoff_seconds: float = Field(
        default=1.0, ge=0, description="Retry delay after a failed poll cycle"
    )
    initial_offset: int | None = Field(
        default=None, description="Update id to start polling from"
    )

    # CLI configuration
    owner_chat: str | None = Field(
        default=None, description="Default receiver for `update-stream send`"
    )

    # Logging configuration
    log_level: str = Field(default="INFO", description="Log level")
    log_format: str = Field(default="console", description="Log format")

    @field_validator("bot_token")
    @classmethod
    def validate_bot_token(cls, v: SecretStr) -> SecretStr:
        """Validate bot token."""
        token = v.get_secret_value().strip()
        if not token:
            raise ValueError("bot_token must not be empty")
        return SecretStr(token)

    @field_validator("owner_chat")
    @classmethod
    def validate_owner_chat(cls, v: str | None) -> str | None:
        """Validate the owner chat reference."""
        if v is None or not v.strip():
            return None
        parse_receiver(v)
        return v.strip()

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        allowed_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in allowed_levels:
            raise ValueError(f"Invalid log level: {v}")
        return v.upper()

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        """Validate log format."""
        if v.lower() not in {"json", "console"}:
            raise ValueError(f"Invalid log format: {v}")
        return v.lower()

    @property
    def polling_config(self) -> PollingConfig:
        """Get polling configuration."""
        return PollingConfig(
            timeout_seconds=self.polling_timeout_seconds,
            read_timeout_seconds=self.polling_timeout_seconds,
            error_backoff_seconds=self.error_backoff_seconds,
            initial_offset=self.initial_offset,
        )

    @property
    def owner_receiver(self) -> Receiver | None:
        """Get the owner chat as a receiver, if configured."""
        if self.owner_chat is None:
            return None
        return parse_receiver(self.owner_chat)


# Global settings instance - initialized lazily to avoid import-time errors
_settings_instance: Settings | None = None


def get_settings() -> Settings:
    """Get the global settings instance, creating it if necessary."""
    global _settings_instance
    if _settings_instance is None:
        try:
            _settings_instance = Settings()  # type: ignore[call-arg]
        except ValidationError as e:
            if any(error["loc"] == ("bot_token",) for error in e.errors()):
                raise ConfigurationError(
                    "BOT_TOKEN environment variable is required. "
                    "Please set it to the token issued for your bot."
                ) from e
            raise ConfigurationError(f"Invalid configuration: {e}") from e
    return _settings_instance


def reset_settings() -> None:
    """Drop the cached settings instance."""
    global _settings_instance
    _settings_instance = None
