"""Line parser and historical source reader.

A source is one (pod, container) pair.  The kubelet returns its log as
newline-delimited ``"<RFC3339Nano timestamp> <text>"`` records when
timestamps are requested; ``read_messages`` turns that byte stream into
``LogMessage`` objects and ``SourceReader`` runs one such read as an
independent task feeding a small queue, so a stalled pod never blocks
its siblings.
"""

from __future__ import annotations

import asyncio
import re
from collections.abc import AsyncIterator
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta, timezone

import structlog

from kubelog.errors import KubeLogError, ParseError
from kubelog.models.messages import LogMessage, LogTimestamp, PodInfo
from kubelog.stream.base import LogBackend, LogStreamRequest

_log = structlog.get_logger(component="stream.reader")

_TIMESTAMP_RE = re.compile(
    r"^(\d{4})-(\d{2})-(\d{2})[Tt](\d{2}):(\d{2}):(\d{2})"
    r"(?:\.(\d{1,9}))?"
    r"([Zz]|[+-]\d{2}:\d{2})$"
)


def parse_timestamp(token: str) -> LogTimestamp:
    """Parse an RFC3339 timestamp with up to nanosecond precision.

    Raises ValueError for anything that is not timezone-qualified RFC3339.
    """
    match = _TIMESTAMP_RE.match(token)
    if match is None:
        raise ValueError(f"not an RFC3339 timestamp: {token!r}")
    year, month, day, hour, minute, second, fraction, offset = match.groups()
    digits = (fraction or "").ljust(9, "0")
    if offset in ("Z", "z"):
        tz = UTC
    else:
        sign = 1 if offset[0] == "+" else -1
        hours, minutes = int(offset[1:3]), int(offset[4:6])
        tz = timezone(sign * timedelta(hours=hours, minutes=minutes))
    moment = datetime(
        int(year),
        int(month),
        int(day),
        int(hour),
        int(minute),
        int(second),
        int(digits[:6]),
        tzinfo=tz,
    )
    return LogTimestamp(moment=moment.astimezone(UTC), nanos=int(digits[6:]))


def parse_line(raw: bytes | str, pod: PodInfo, container: str) -> LogMessage:
    """Split one ``"<timestamp> <text>"`` record into a LogMessage.

    Raises ParseError when the leading token is not a valid timestamp.
    """
    line = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
    line = line.rstrip("\n").removesuffix("\r")
    token, _, text = line.partition(" ")
    try:
        timestamp = parse_timestamp(token)
    except ValueError as exc:
        raise ParseError(line, pod_name=pod.name) from exc
    return LogMessage(
        timestamp=timestamp,
        text=text,
        pod_name=pod.name,
        pod_uid=pod.uid,
        container_name=container,
    )


async def read_messages(lines: AsyncIterator[bytes], pod: PodInfo, container: str) -> AsyncIterator[LogMessage]:
    """Lazily parse a raw line stream. Stops at the first unparseable line."""
    async for raw in lines:
        if not raw:
            continue
        yield parse_line(raw, pod, container)


@dataclass(frozen=True)
class _Closed:
    """End-of-source marker; carries the error that ended the read, if any."""

    error: BaseException | None = None


class SourceReader:
    """Reads the existing log of one source in a background task.

    Messages are handed over through a queue of ``buffer_size`` slots; the
    reader blocks on a full queue, so the consumer paces it.  The queue
    always ends with a close marker, so ``next()`` never hangs on a reader
    that has finished.
    """

    def __init__(
        self,
        backend: LogBackend,
        pod: PodInfo,
        container: str,
        buffer_size: int = 1,
    ) -> None:
        self.pod = pod
        self.container = container
        self._backend = backend
        self._queue: asyncio.Queue[LogMessage | _Closed] = asyncio.Queue(maxsize=buffer_size)
        self._task: asyncio.Task[None] | None = None
        self._exhausted = False

    @property
    def uid(self) -> str:
        return self.pod.uid

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._run(), name=f"reader:{self.pod.name}/{self.container}")

    async def next(self) -> LogMessage | None:
        """Return the next message, or None once the source is exhausted.

        Re-raises the error that ended the read, if there was one.
        """
        if self._exhausted:
            return None
        item = await self._queue.get()
        if isinstance(item, _Closed):
            self._exhausted = True
            if item.error is not None:
                raise item.error
            return None
        return item

    async def stop(self) -> None:
        """Cancel the read task and wait for it to release its stream."""
        task = self._task
        if task is None or task.done():
            return
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

    async def _run(self) -> None:
        request = LogStreamRequest(container=self.container, follow=False)
        count = 0
        try:
            async with self._backend.open_log_stream(self.pod, request) as lines:
                async for message in read_messages(lines, self.pod, self.container):
                    await self._queue.put(message)
                    count += 1
        except KubeLogError as exc:
            _log.warning("source_read_failed", pod=self.pod.name, container=self.container, error=str(exc))
            await self._queue.put(_Closed(exc))
            return
        except Exception as exc:
            _log.error("source_read_crashed", pod=self.pod.name, container=self.container, error=str(exc))
            await self._queue.put(_Closed(exc))
            return
        _log.debug("source_read_done", pod=self.pod.name, container=self.container, messages=count)
        await self._queue.put(_Closed())
