"""Live follower: tails one source across stream failures.

The follower reopens its stream after any failure, seeded from the last
timestamp it forwarded.  The transport's time filter is coarser than the
ordering of log lines, so a reopened stream may replay lines already
forwarded; anything not strictly newer than the last forwarded timestamp
is dropped.  A malformed line is reported once and ends that attempt;
when the reopened stream replays it, it is skipped.
"""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import Callable

import structlog

from kubelog.errors import KubeLogError, ParseError
from kubelog.models.messages import LogMessage, LogTimestamp, PodInfo
from kubelog.stream.base import LogBackend, LogStreamRequest
from kubelog.stream.reader import parse_line

_log = structlog.get_logger(component="stream.follower")

_DEFAULT_BACKOFF_SECONDS = 0.5
_REJECTED_LINES_KEPT = 64

StatusReporter = Callable[[str], None]


class LiveFollower:
    """Follows one (pod, container) source until stopped.

    Messages go into the shared fan-in queue owned by the caller.  Errors
    are reported through *report* and retried after *backoff* seconds;
    none of them ever ends the follower.  Only ``stop()`` does, and after
    it returns the follower neither emits nor reconnects.
    """

    def __init__(
        self,
        backend: LogBackend,
        pod: PodInfo,
        container: str,
        out: asyncio.Queue[LogMessage],
        since: LogTimestamp | None = None,
        backoff: float = _DEFAULT_BACKOFF_SECONDS,
        report: StatusReporter | None = None,
    ) -> None:
        self.pod = pod
        self.container = container
        self.last_forwarded = since
        self.reconnects = 0
        self._backend = backend
        self._out = out
        self._backoff = backoff
        self._report = report
        self._rejected: deque[str] = deque(maxlen=_REJECTED_LINES_KEPT)
        self._stopped = asyncio.Event()
        self._task: asyncio.Task[None] | None = None

    @property
    def uid(self) -> str:
        return self.pod.uid

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._run(), name=f"follower:{self.pod.name}/{self.container}")

    async def stop(self) -> None:
        """Signal cancellation and wait until the stream is released."""
        self._stopped.set()
        task = self._task
        if task is None or task.done():
            return
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

    async def _run(self) -> None:
        log = _log.bind(pod=self.pod.name, container=self.container)
        log.debug("follower_started", since=str(self.last_forwarded) if self.last_forwarded else None)
        while not self._stopped.is_set():
            try:
                await self._follow_once()
            except KubeLogError as exc:
                log.warning("follow_stream_failed", error=str(exc), reconnects=self.reconnects)
                self._emit_status(str(exc))
            except (OSError, TimeoutError) as exc:
                log.warning("follow_stream_io_error", error=str(exc), reconnects=self.reconnects)
                self._emit_status(f"failed to read logs from pod {self.pod.name}: {exc}")
            except Exception as exc:
                log.error("follow_stream_crashed", error=repr(exc), reconnects=self.reconnects)
                self._emit_status(f"failed to read logs from pod {self.pod.name}: {exc}")
            else:
                log.debug("follow_stream_ended", reconnects=self.reconnects)
            if self._stopped.is_set():
                break
            await asyncio.sleep(self._backoff)
            self.reconnects += 1
        log.debug("follower_stopped", reconnects=self.reconnects)

    async def _follow_once(self) -> None:
        request = LogStreamRequest(container=self.container, follow=True, since=self.last_forwarded)
        async with self._backend.open_log_stream(self.pod, request) as lines:
            async for raw in lines:
                if not raw:
                    continue
                try:
                    message = parse_line(raw, self.pod, self.container)
                except ParseError as exc:
                    if exc.line in self._rejected:
                        continue
                    self._rejected.append(exc.line)
                    raise
                if self.last_forwarded is not None and message.timestamp <= self.last_forwarded:
                    continue
                if self._stopped.is_set():
                    return
                await self._out.put(message)
                self.last_forwarded = message.timestamp

    def _emit_status(self, line: str) -> None:
        if self._report is not None and not self._stopped.is_set():
            self._report(line)
