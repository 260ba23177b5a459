"""Fakes and factories shared by kubelog tests.

``FakeBackend`` stands in for the Kubernetes pod lister, pod watcher and
log stream opener so the whole pipeline can run without a cluster.
"""

from __future__ import annotations

import asyncio
import io
from collections.abc import AsyncIterator, Callable, Sequence
from contextlib import asynccontextmanager
from datetime import UTC, datetime, timedelta


from kubelog.models.messages import LogMessage, LogTimestamp, PodEvent, PodEventType, PodInfo
from kubelog.stream.base import LogBackend, LogStreamRequest
from kubelog.stream.formatter import OutputSink

# ---------------------------------------------------------------------------
# Timestamp helpers
# ---------------------------------------------------------------------------

START = datetime(2021, 1, 13, 16, 49, 0, tzinfo=UTC)


def ts(seconds: float = 0.0) -> str:
    """RFC3339Nano wire timestamp *seconds* after START."""
    moment = START + timedelta(seconds=seconds)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.%f") + "000Z"


def stamp(seconds: float = 0.0) -> LogTimestamp:
    return LogTimestamp(moment=START + timedelta(seconds=seconds))


def line(seconds: float, text: str) -> str:
    return f"{ts(seconds)} {text}\n"


# ---------------------------------------------------------------------------
# Pod / message factories
# ---------------------------------------------------------------------------


def make_pod(
    name: str = "hello-web-1-random",
    containers: Sequence[str] | None = None,
    running: bool | Sequence[str] = True,
    namespace: str = "default",
    uid: str = "",
) -> PodInfo:
    """Create a PodInfo; the default container is the pod name minus its hash."""
    names = tuple(containers) if containers is not None else (name.rsplit("-", 1)[0],)
    if running is True:
        running_set = frozenset(names)
    elif running is False:
        running_set = frozenset()
    else:
        running_set = frozenset(running)
    return PodInfo(name=name, namespace=namespace, uid=uid or f"uid-{name}", containers=names, running=running_set)


def make_message(seconds: float, text: str = "msg", pod: str = "hello-web-1-random", container: str = "") -> LogMessage:
    return LogMessage(
        timestamp=stamp(seconds),
        text=text,
        pod_name=pod,
        pod_uid=f"uid-{pod}",
        container_name=container or pod.rsplit("-", 1)[0],
    )


# ---------------------------------------------------------------------------
# Fake cluster
# ---------------------------------------------------------------------------

LogLine = str | BaseException
FollowAttempt = Sequence[LogLine] | BaseException


class FakeBackend(LogBackend):
    """In-memory LogBackend.

    historical: pod name -> lines served by non-follow streams (or an
        exception raised when the stream is opened).
    follow: pod name -> list of attempts for follow streams.  Each attempt
        is either an exception raised on open, or lines served before EOF.
        Once the attempts are used up, follow streams stay open and silent.
    timeline: pod name -> the pod's whole log.  Every follow stream for such
        a pod replays all of it and then stays open, the way a padded
        since_seconds window replays lines on a real reconnect.
    Any line may be an exception, raised mid-stream.
    """

    def __init__(
        self,
        pods: Sequence[PodInfo] = (),
        historical: dict[str, Sequence[LogLine] | BaseException] | None = None,
        follow: dict[str, Sequence[FollowAttempt]] | None = None,
        timeline: dict[str, Sequence[LogLine]] | None = None,
    ) -> None:
        self.pods = list(pods)
        self.historical = historical or {}
        self.follow = follow or {}
        self.timeline = timeline or {}
        self.requests: list[tuple[str, LogStreamRequest]] = []
        self.events: asyncio.Queue[PodEvent | None] = asyncio.Queue()
        self.open_streams = 0
        self.watch_closed = False

    def follow_requests(self, pod_name: str) -> list[LogStreamRequest]:
        return [req for name, req in self.requests if name == pod_name and req.follow]

    def emit(self, event_type: PodEventType, pod: PodInfo) -> None:
        self.events.put_nowait(PodEvent(type=event_type, pod=pod))

    def close_watch(self) -> None:
        self.events.put_nowait(None)

    async def list_pods(self, namespace: str, selector: str) -> list[PodInfo]:
        return list(self.pods)

    async def watch_pods(self, namespace: str, selector: str) -> AsyncIterator[PodEvent]:
        try:
            while True:
                event = await self.events.get()
                if event is None:
                    return
                yield event
        finally:
            self.watch_closed = True

    @asynccontextmanager
    async def open_log_stream(self, pod: PodInfo, request: LogStreamRequest) -> AsyncIterator[AsyncIterator[bytes]]:
        self.requests.append((pod.name, request))
        hold = False
        lines: Sequence[LogLine]
        if request.follow and pod.name in self.timeline:
            lines, hold = self.timeline[pod.name], True
        elif request.follow:
            attempts = self.follow.get(pod.name, [])
            index = len(self.follow_requests(pod.name)) - 1
            if index < len(attempts):
                attempt = attempts[index]
                if isinstance(attempt, BaseException):
                    raise attempt
                lines = attempt
            else:
                lines, hold = [], True
        else:
            source = self.historical.get(pod.name, [])
            if isinstance(source, BaseException):
                raise source
            lines = source

        self.open_streams += 1
        try:
            yield _serve(lines, hold)
        finally:
            self.open_streams -= 1


async def _serve(lines: Sequence[LogLine], hold: bool) -> AsyncIterator[bytes]:
    for item in lines:
        if isinstance(item, BaseException):
            raise item
        yield item.encode()
        await asyncio.sleep(0)
    if hold:
        await asyncio.Event().wait()


# ---------------------------------------------------------------------------
# Sink helpers
# ---------------------------------------------------------------------------


class CapturedSink(OutputSink):
    """OutputSink writing into memory."""

    def __init__(self, include_timestamp: bool = False, include_prefix: bool = False) -> None:
        self.buffer = io.StringIO()
        super().__init__(self.buffer, include_timestamp=include_timestamp, include_prefix=include_prefix)

    @property
    def lines(self) -> list[str]:
        return self.buffer.getvalue().splitlines()


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Poll *predicate* until it holds or *timeout* seconds pass."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.005)
