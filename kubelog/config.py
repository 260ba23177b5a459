"""Configuration loading from environment variables."""

from __future__ import annotations

import os

from kubelog.models.config import KubeConfig, KubeLogConfig, LogConfig, StreamConfig


def _env(key: str, default: str = "") -> str:
    return os.environ.get(f"KUBELOG_{key}", default)


def _env_int(key: str, default: int, min_val: int | None = None, max_val: int | None = None) -> int:
    val = int(_env(key, str(default)))
    if min_val is not None:
        val = max(val, min_val)
    if max_val is not None:
        val = min(val, max_val)
    return val


def _env_float(key: str, default: float, min_val: float | None = None, max_val: float | None = None) -> float:
    val = float(_env(key, str(default)))
    if min_val is not None:
        val = max(val, min_val)
    if max_val is not None:
        val = min(val, max_val)
    return val


def _validate_log_level(value: str) -> str:
    valid = {"debug", "info", "warning", "error"}
    if value.lower() not in valid:
        raise ValueError(f"Invalid log level: {value}. Must be one of {valid}")
    return value.lower()


def _validate_log_format(value: str) -> str:
    valid = {"auto", "json", "console"}
    if value.lower() not in valid:
        raise ValueError(f"Invalid log format: {value}. Must be one of {valid}")
    return value.lower()


def load_config() -> KubeLogConfig:
    """Load configuration from KUBELOG_* environment variables."""
    return KubeLogConfig(
        stream=StreamConfig(
            reconnect_backoff=_env_float("RECONNECT_BACKOFF", 0.5, min_val=0.05, max_val=30.0),
            channel_buffer=_env_int("CHANNEL_BUFFER", 1, min_val=1, max_val=64),
            since_slack_seconds=_env_int("SINCE_SLACK", 5, min_val=1, max_val=60),
        ),
        kube=KubeConfig(
            kubeconfig=_env("KUBECONFIG", ""),
        ),
        log=LogConfig(
            level=_validate_log_level(_env("LOG_LEVEL", "warning")),
            format=_validate_log_format(_env("LOG_FORMAT", "auto")),
        ),
    )
