"""Application settings loaded from environment variables.

Server Configuration:
    PORT: Listen port (default 8080)
    HOST: Listen address (default 0.0.0.0)
    READ_TIMEOUT: Max wait for request body data (default 5s)
    WRITE_TIMEOUT: Per-request handling deadline (default 10s)
    IDLE_TIMEOUT: Keep-alive timeout for idle connections (default 120s)
    SHUTDOWN_TIMEOUT: Max time to drain in-flight requests (default 15s)

Logging Configuration:
    LOG_LEVEL: debug | info | warn | error (default info)
    ENVIRONMENT: Deployment tag; "production" switches logs to JSON (default development)

OpenTelemetry Configuration:
    OTEL_ENABLED: Enable trace and metric export (default true)
    OTEL_EXPORTER_OTLP_ENDPOINT: OTLP/HTTP collector base URL
    OTEL_SERVICE_NAME / OTEL_SERVICE_VERSION: Resource identity

Durations accept Go-style strings ("500ms", "5s", "1m30s") or plain seconds.
A duration, LOG_LEVEL or OTEL_ENABLED value that cannot be parsed is logged
and replaced by the field default. PORT must be a valid port number.
"""

import re
from datetime import timedelta
from functools import lru_cache

from pydantic import Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings

from stencil.logging import get_logger

logger = get_logger(__name__)

PRODUCTION_ENVIRONMENT = "production"

VALID_LOG_LEVELS = ("debug", "info", "warn", "warning", "error")

_TRUE_VALUES = ("1", "t", "true", "yes", "on")
_FALSE_VALUES = ("0", "f", "false", "no", "off")

_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ns|us|µs|ms|s|m|h)")


def parse_duration(value: object) -> timedelta:
    """Parse a duration value into a timedelta.

    Accepts timedeltas, ints/floats (seconds), numeric strings (seconds) and
    Go-style duration strings made of number+unit parts, e.g. "1m30s".

    Raises:
        ValueError: If the value cannot be parsed or is negative.
    """
    if isinstance(value, timedelta):
        seconds = value.total_seconds()
    elif isinstance(value, bool):
        raise ValueError(f"invalid duration: {value!r}")
    elif isinstance(value, (int, float)):
        seconds = float(value)
    elif isinstance(value, str):
        text = value.strip()
        try:
            seconds = float(text)
        except ValueError:
            seconds = _parse_duration_string(text)
    else:
        raise ValueError(f"invalid duration: {value!r}")

    if seconds < 0:
        raise ValueError(f"duration must not be negative: {value!r}")
    return timedelta(seconds=seconds)


def _parse_duration_string(text: str) -> float:
    if not text:
        raise ValueError("invalid duration: empty string")

    total = 0.0
    position = 0
    for match in _DURATION_PART.finditer(text):
        if match.start() != position:
            break
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        position = match.end()

    if position != len(text):
        raise ValueError(f"invalid duration: {text!r}")
    return total


def _fall_back(cls, info: ValidationInfo, value: object, reason: str):
    field = cls.model_fields[info.field_name]
    logger.warning(
        "invalid_setting_ignored",
        setting=field.alias or info.field_name,
        value=str(value),
        reason=reason,
        default=str(field.default),
    )
    return field.default


class Settings(BaseSettings):
    """Service configuration.

    Every field has a default, so an empty environment still yields a valid
    Settings. Instances are frozen: built once at startup and read-only after.
    """

    port: int = Field(default=8080, alias="PORT", ge=0, le=65535)
    host: str = Field(default="0.0.0.0", alias="HOST")

    read_timeout: timedelta = Field(default=timedelta(seconds=5), alias="READ_TIMEOUT")
    write_timeout: timedelta = Field(default=timedelta(seconds=10), alias="WRITE_TIMEOUT")
    idle_timeout: timedelta = Field(default=timedelta(seconds=120), alias="IDLE_TIMEOUT")
    shutdown_timeout: timedelta = Field(default=timedelta(seconds=15), alias="SHUTDOWN_TIMEOUT")

    log_level: str = Field(default="info", alias="LOG_LEVEL")
    environment: str = Field(default="development", alias="ENVIRONMENT")

    # OpenTelemetry
    otel_enabled: bool = Field(default=True, alias="OTEL_ENABLED")
    otel_exporter_otlp_endpoint: str = Field(
        default="http://localhost:4318", alias="OTEL_EXPORTER_OTLP_ENDPOINT"
    )
    otel_service_name: str = Field(default="stencil", alias="OTEL_SERVICE_NAME")
    otel_service_version: str = Field(default="1.0.0", alias="OTEL_SERVICE_VERSION")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
        "frozen": True,
        "populate_by_name": True,
    }

    @field_validator(
        "read_timeout", "write_timeout", "idle_timeout", "shutdown_timeout", mode="before"
    )
    @classmethod
    def validate_duration(cls, value: object, info: ValidationInfo) -> timedelta:
        try:
            return parse_duration(value)
        except ValueError as e:
            return _fall_back(cls, info, value, str(e))

    @field_validator("log_level", mode="before")
    @classmethod
    def validate_log_level(cls, value: object, info: ValidationInfo) -> str:
        level = str(value).strip().lower()
        if level not in VALID_LOG_LEVELS:
            return _fall_back(
                cls, info, value, f"expected one of {', '.join(VALID_LOG_LEVELS)}"
            )
        return level

    @field_validator("otel_enabled", mode="before")
    @classmethod
    def validate_flag(cls, value: object, info: ValidationInfo) -> bool:
        if isinstance(value, bool):
            return value
        text = str(value).strip().lower()
        if text in _TRUE_VALUES:
            return True
        if text in _FALSE_VALUES:
            return False
        return _fall_back(cls, info, value, "expected a boolean")

    @property
    def is_production(self) -> bool:
        """Whether logs should be rendered as JSON."""
        return self.environment == PRODUCTION_ENVIRONMENT

    @property
    def address(self) -> str:
        """host:port the server binds to."""
        return f"{self.host}:{self.port}"


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    Returns:
        Settings instance loaded from environment.

    Raises:
        ValidationError: If PORT is present but not a valid port.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache. Useful for testing."""
    get_settings.cache_clear()
