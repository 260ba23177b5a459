"""Log streaming pipeline.

Submodules
----------
base        -- LogBackend: the pod lister / watcher / log opener boundary.
reader      -- Line parser and SourceReader for the historical phase.
follower    -- LiveFollower: reconnect-with-backoff tailing with de-dup.
multiplexer -- Chronological k-way merge and live fan-in.
coordinator -- PodMembershipCoordinator: pod watch events -> followers.
formatter   -- format_message and OutputSink.
"""

from kubelog.stream.base import LogBackend, LogStreamRequest
from kubelog.stream.coordinator import ContainerResolver, PodMembershipCoordinator, prefix_container_resolver
from kubelog.stream.follower import LiveFollower
from kubelog.stream.formatter import OutputSink, format_message
from kubelog.stream.multiplexer import ErrorReporter, fan_in, merge_chronologically
from kubelog.stream.reader import SourceReader, parse_line, parse_timestamp, read_messages

__all__ = [
    "ContainerResolver",
    "LiveFollower",
    "LogBackend",
    "LogStreamRequest",
    "OutputSink",
    "PodMembershipCoordinator",
    "SourceReader",
    "ErrorReporter",
    "fan_in",
    "format_message",
    "merge_chronologically",
    "parse_line",
    "parse_timestamp",
    "prefix_container_resolver",
    "read_messages",
]
