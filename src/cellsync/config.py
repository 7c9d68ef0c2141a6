"""Environment-based configuration."""

from __future__ import annotations

import logging

from pydantic import field_validator
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)

_MAX_PORT = 65535


class Settings(BaseSettings):
    """Reads from .env file and CELLSYNC_* environment variables."""

    # Region Extractor (outbound)
    extractor_host: str = "127.0.0.1"
    extractor_port: int = 9870

    # Notification server (inbound); incremented per concurrent session
    notify_host: str = "127.0.0.1"
    notify_port: int = 9880

    # Transport
    rpc_call_timeout_seconds: float | None = 60.0

    # Runtime notifier
    notify_min_interval_ms: float = 10.0
    notify_generation: int | None = None

    # Orchestration
    serialize_executions: bool = False

    # Logging
    log_level: str = "INFO"

    # Observability
    trace_enabled: bool = True

    @field_validator("extractor_port", "notify_port")
    @classmethod
    def _validate_port(cls, v: int) -> int:
        if not 0 <= v <= _MAX_PORT:
            raise ValueError(f"port must be within 0..{_MAX_PORT}, got {v}")
        return v

    @field_validator("notify_min_interval_ms")
    @classmethod
    def _validate_interval(cls, v: float) -> float:
        if v < 0:
            raise ValueError("notify_min_interval_ms must not be negative")
        return v

    @field_validator("rpc_call_timeout_seconds")
    @classmethod
    def _validate_timeout(cls, v: float | None) -> float | None:
        if v is not None and v <= 0:
            logger.warning(
                "Non-positive CELLSYNC_RPC_CALL_TIMEOUT_SECONDS=%s; "
                "calls will wait without a deadline",
                v,
            )
            return None
        return v

    @field_validator("log_level")
    @classmethod
    def _validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"unknown log level: {v}")
        return level

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_prefix": "CELLSYNC_",
        "extra": "ignore",
    }
