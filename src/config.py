# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Environment-driven settings for the MDC logging demo service."""

import logging
import os
from dataclasses import dataclass
from functools import lru_cache

LOG_FORMATS = ("json", "console")
REJECTION_POLICIES = ("caller_runs", "abort")


class ConfigurationError(ValueError):
    """Raised when an environment variable holds an invalid value."""


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int, minimum: int = 0) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be an integer, got '{raw}'") from exc
    if value < minimum:
        raise ConfigurationError(f"{name} must be >= {minimum}, got {value}")
    return value


def _env_choice(name: str, default: str, choices: tuple) -> str:
    value = os.getenv(name, default).strip().lower()
    if value not in choices:
        raise ConfigurationError(f"{name} must be one of {', '.join(choices)}, got '{value}'")
    return value


@dataclass(frozen=True)
class Settings:
    """Service settings.

    Logging, async worker pool and HTTP server configuration, read once from
    the environment.
    """

    service_name: str = "mdc-logging-demo"
    log_level: int = logging.INFO
    log_format: str = "json"
    log_dir: str = "data/logs"
    log_to_file: bool = True
    async_core_pool_size: int = 5
    async_max_pool_size: int = 10
    async_queue_capacity: int = 100
    async_thread_name_prefix: str = "mdc-async-"
    async_rejection_policy: str = "caller_runs"
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    @classmethod
    def from_env(cls) -> "Settings":
        """Load settings from environment variables.

        :returns: Settings instance
        :rtype: Settings
        :raises ConfigurationError: If a variable holds an invalid value
        """
        level_name = os.getenv("LOG_LEVEL", "INFO").strip().upper()
        level = logging.getLevelName(level_name)
        if not isinstance(level, int):
            raise ConfigurationError(f"LOG_LEVEL is not a valid level: '{level_name}'")

        core = _env_int("ASYNC_CORE_POOL_SIZE", cls.async_core_pool_size, minimum=1)
        maximum = _env_int("ASYNC_MAX_POOL_SIZE", cls.async_max_pool_size, minimum=1)
        if core > maximum:
            raise ConfigurationError(
                f"ASYNC_CORE_POOL_SIZE ({core}) cannot exceed ASYNC_MAX_POOL_SIZE ({maximum})"
            )

        return cls(
            service_name=os.getenv("SERVICE_NAME", cls.service_name),
            log_level=level,
            log_format=_env_choice("LOG_FORMAT", cls.log_format, LOG_FORMATS),
            log_dir=os.getenv("LOG_DIR", cls.log_dir),
            log_to_file=_env_bool("LOG_TO_FILE", cls.log_to_file),
            async_core_pool_size=core,
            async_max_pool_size=maximum,
            async_queue_capacity=_env_int("ASYNC_QUEUE_CAPACITY", cls.async_queue_capacity),
            async_thread_name_prefix=os.getenv(
                "ASYNC_THREAD_NAME_PREFIX", cls.async_thread_name_prefix
            ),
            async_rejection_policy=_env_choice(
                "ASYNC_REJECTION_POLICY", cls.async_rejection_policy, REJECTION_POLICIES
            ),
            api_host=os.getenv("API_HOST", cls.api_host),
            api_port=_env_int("API_PORT", cls.api_port, minimum=1),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get the process-wide settings (loaded once)."""
    return Settings.from_env()
