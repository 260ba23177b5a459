"""Core log message and pod membership data structures."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum


@dataclass(frozen=True, order=True)
class LogTimestamp:
    """Instant of a log line with nanosecond precision.

    ``moment`` holds everything down to the microsecond (always UTC);
    ``nanos`` keeps the remaining 0-999 nanoseconds the kubelet emits in
    RFC3339Nano timestamps so that ordering and de-duplication never
    collapse two distinct lines onto the same instant.
    """

    moment: datetime
    nanos: int = 0

    def isoformat(self) -> str:
        """Render as RFC3339Nano in UTC, trimming trailing fraction zeros."""
        utc = self.moment.astimezone(UTC)
        fraction = f"{utc.microsecond:06d}{self.nanos:03d}".rstrip("0")
        base = utc.strftime("%Y-%m-%dT%H:%M:%S")
        if fraction:
            return f"{base}.{fraction}Z"
        return f"{base}Z"

    def __str__(self) -> str:
        return self.isoformat()


@dataclass(frozen=True)
class LogMessage:
    """One log line from one (pod, container) source.

    ``text`` never contains the leading timestamp or the line terminator.
    Immutable: readers, followers and the multiplexer hand the same object
    through to the formatter.
    """

    timestamp: LogTimestamp
    text: str
    pod_name: str
    pod_uid: str
    container_name: str


class PodEventType(StrEnum):
    """Pod watch event type."""

    ADDED = "ADDED"
    MODIFIED = "MODIFIED"
    DELETED = "DELETED"


class PodState(StrEnum):
    """Lifecycle of a pod tracked by the membership coordinator."""

    DISCOVERED = "discovered"
    CONTAINER_PENDING = "container_pending"
    FOLLOWING = "following"
    RETIRED = "retired"


@dataclass(frozen=True)
class PodInfo:
    """Snapshot of the pod fields the log engine cares about."""

    name: str
    namespace: str
    uid: str
    containers: tuple[str, ...] = ()
    running: frozenset[str] = field(default_factory=frozenset)

    def is_running(self, container: str) -> bool:
        return container in self.running


@dataclass(frozen=True)
class PodEvent:
    """A pod watch notification. ``pod`` is None once the watch has closed."""

    type: PodEventType
    pod: PodInfo | None
