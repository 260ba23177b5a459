"""Core data structures for kubelog."""

from kubelog.models.config import (
    AppLogRequest,
    KubeConfig,
    KubeLogConfig,
    LogConfig,
    StreamConfig,
    WatchOptions,
)
from kubelog.models.messages import (
    LogMessage,
    LogTimestamp,
    PodEvent,
    PodEventType,
    PodInfo,
    PodState,
)

__all__ = [
    "AppLogRequest",
    "KubeConfig",
    "KubeLogConfig",
    "LogConfig",
    "LogMessage",
    "LogTimestamp",
    "PodEvent",
    "PodEventType",
    "PodInfo",
    "PodState",
    "StreamConfig",
    "WatchOptions",
]
