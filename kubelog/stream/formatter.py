"""Output formatting and the text sink."""

from __future__ import annotations

import sys
from typing import TextIO

from kubelog.models.messages import LogMessage


def format_message(message: LogMessage, include_timestamp: bool = False, include_prefix: bool = False) -> str:
    """Render *message* as ``[timestamp] [[pod/container]] text``.

    Pure: the same message and flags always give the same string.
    """
    parts: list[str] = []
    if include_timestamp:
        parts.append(message.timestamp.isoformat())
    if include_prefix:
        parts.append(f"[{message.pod_name}/{message.container_name}]")
    parts.append(message.text)
    return " ".join(parts)


class OutputSink:
    """Append-only text destination for log lines and status lines.

    Log lines and error/status lines share the same stream so that a
    reconnect notice shows up where it happened in the tail.
    """

    def __init__(
        self,
        stream: TextIO | None = None,
        include_timestamp: bool = False,
        include_prefix: bool = False,
    ) -> None:
        self._stream = stream if stream is not None else sys.stdout
        self._include_timestamp = include_timestamp
        self._include_prefix = include_prefix

    def write_message(self, message: LogMessage) -> None:
        self._write(format_message(message, self._include_timestamp, self._include_prefix))

    def write_status(self, line: str) -> None:
        self._write(line)

    def _write(self, line: str) -> None:
        self._stream.write(line + "\n")
        self._stream.flush()
