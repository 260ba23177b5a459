"""Configuration data structures."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class WatchOptions:
    """Per-invocation options handed to the log engine.

    Immutable: built once by the command surface and never mutated while
    readers and followers are running.
    """

    namespace: str
    selector: str
    follow: bool = False
    ignore_errors: bool = False
    timestamps: bool = False
    prefix: bool = False


@dataclass(frozen=True)
class AppLogRequest:
    """What the user asked for on the command line."""

    app_name: str
    process_name: str = ""
    deployment_version: int = 0
    follow: bool = False
    ignore_errors: bool = False
    timestamps: bool = False
    prefix: bool = False


@dataclass
class StreamConfig:
    """Reader / follower tuning."""

    reconnect_backoff: float = 0.5
    channel_buffer: int = 1
    since_slack_seconds: int = 5


@dataclass
class KubeConfig:
    """Kubernetes client configuration."""

    kubeconfig: str = ""


@dataclass
class LogConfig:
    """Logging configuration."""

    level: str = "warning"
    format: str = "auto"


@dataclass
class KubeLogConfig:
    """Top-level kubelog configuration."""

    stream: StreamConfig = field(default_factory=StreamConfig)
    kube: KubeConfig = field(default_factory=KubeConfig)
    log: LogConfig = field(default_factory=LogConfig)
