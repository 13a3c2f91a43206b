"""Library settings with Pydantic Settings validation.

Values are read, highest precedence first, from constructor arguments,
``CELERYPORT_*`` environment variables, an optional .env file and an
optional config/main.yaml file.
"""

from pathlib import Path
from typing import Final

from pydantic import Field, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

DEFAULT_REDIS_URL: Final[str] = "redis://localhost:6379/0"
DEFAULT_QUEUE_NAME: Final[str] = "celery"
DEFAULT_RESULT_TTL_SECONDS: Final[int] = 60 * 60 * 24
DEFAULT_CONFIG_PATH: Final[str] = "config/main.yaml"


class Settings(BaseSettings):
    """Broker, result store and worker pool settings."""

    model_config = SettingsConfigDict(
        env_prefix="CELERYPORT_",
        env_file=".env" if Path(".env").exists() else None,
        env_file_encoding="utf-8",
        yaml_file=DEFAULT_CONFIG_PATH,
        yaml_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    broker_url: str = Field(
        default=DEFAULT_REDIS_URL,
        description="Broker URL (redis://, rediss://, unix:// or memory://)",
    )
    result_backend_url: str = Field(
        default=DEFAULT_REDIS_URL,
        description="Result store URL (redis://, rediss://, unix:// or memory://)",
    )
    queue_name: str = Field(
        default=DEFAULT_QUEUE_NAME, description="Queue the tasks are published to"
    )
    num_workers: int = Field(default=4, description="Concurrent executors per pool")
    result_ttl_seconds: int = Field(
        default=DEFAULT_RESULT_TTL_SECONDS,
        description="Expiry applied to result records in Redis",
    )
    receive_timeout_seconds: float = Field(
        default=1.0,
        description="How long an executor blocks on the broker before re-checking stop",
    )
    shutdown_grace_seconds: float = Field(
        default=10.0, description="Time stop_worker waits for in-flight tasks"
    )
    result_poll_interval_seconds: float = Field(
        default=0.05, description="First sleep between result polls"
    )
    result_poll_max_interval_seconds: float = Field(
        default=0.5, description="Upper bound of the result poll backoff"
    )
    log_level: str = Field(default="INFO", description="Logging level")
    metrics_port: int = Field(default=9000, description="Prometheus exporter port")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlConfigSettingsSource(settings_cls),
            file_secret_settings,
        )

    @field_validator("num_workers", "result_ttl_seconds")
    @classmethod
    def _validate_positive_int(cls, value: int) -> int:
        if value <= 0:
            msg = "value must be positive"
            raise ValueError(msg)
        return value

    @field_validator(
        "receive_timeout_seconds",
        "shutdown_grace_seconds",
        "result_poll_interval_seconds",
        "result_poll_max_interval_seconds",
    )
    @classmethod
    def _validate_positive_float(cls, value: float) -> float:
        if value <= 0:
            msg = "value must be positive"
            raise ValueError(msg)
        return value


# Global settings instance
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get or create the process-wide settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


__all__ = ["DEFAULT_CONFIG_PATH", "Settings", "get_settings"]
