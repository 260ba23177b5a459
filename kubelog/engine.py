"""Log aggregation entry point.

``watch_logs`` runs the historical phase (ordered dump of every running
app container matching the selector) and, when following, the live phase
(best-effort tail of every matching pod, including pods that appear
later).  Every task it starts is cancelled and awaited before it returns,
whether it returns normally, raises, or is itself cancelled.
"""

from __future__ import annotations

import asyncio

import structlog

from kubelog.errors import ContainerResolutionError, KubeLogError, WatchClosedError
from kubelog.models.config import StreamConfig, WatchOptions
from kubelog.models.messages import LogMessage, LogTimestamp
from kubelog.stream.base import LogBackend
from kubelog.stream.coordinator import ContainerResolver, PodMembershipCoordinator, prefix_container_resolver
from kubelog.stream.formatter import OutputSink
from kubelog.stream.multiplexer import ErrorReporter, fan_in, merge_chronologically
from kubelog.stream.reader import SourceReader

_log = structlog.get_logger(component="engine")


async def watch_logs(
    backend: LogBackend,
    options: WatchOptions,
    sink: OutputSink,
    stream_config: StreamConfig | None = None,
    resolver: ContainerResolver = prefix_container_resolver,
) -> None:
    """Aggregate the logs of every pod matching ``options.selector``.

    Raises the first historical-phase error, and ContainerResolutionError
    for pods without an app container.  With ``options.ignore_errors`` a
    failing source is reported to the sink and dropped, and pods without
    an app container are skipped.
    Returns normally when the historical dump is done (no follow) or when
    the pod watch closes (follow).
    """
    cfg = stream_config or StreamConfig()
    last_seen = await _historical_phase(backend, options, sink, cfg, resolver)
    if not options.follow:
        return
    await _live_phase(backend, options, sink, cfg, resolver, last_seen)


async def _historical_phase(
    backend: LogBackend,
    options: WatchOptions,
    sink: OutputSink,
    cfg: StreamConfig,
    resolver: ContainerResolver,
) -> dict[str, LogTimestamp]:
    pods = await backend.list_pods(options.namespace, options.selector)
    _log.debug("pods_listed", namespace=options.namespace, selector=options.selector, count=len(pods))

    readers: dict[str, SourceReader] = {}
    try:
        for pod in pods:
            try:
                container = resolver(pod)
            except ContainerResolutionError as exc:
                if not options.ignore_errors:
                    raise
                _log.info("pod_skipped", pod=pod.name, error=str(exc))
                continue
            if not pod.is_running(container):
                _log.debug("container_not_running", pod=pod.name, container=container)
                continue
            reader = SourceReader(backend, pod, container, buffer_size=cfg.channel_buffer)
            readers[pod.uid] = reader
            reader.start()

        on_error = _status_reporter(sink) if options.ignore_errors else None
        return await merge_chronologically(readers, sink.write_message, on_error)
    finally:
        if readers:
            await asyncio.gather(*(r.stop() for r in readers.values()), return_exceptions=True)


async def _live_phase(
    backend: LogBackend,
    options: WatchOptions,
    sink: OutputSink,
    cfg: StreamConfig,
    resolver: ContainerResolver,
    last_seen: dict[str, LogTimestamp],
) -> None:
    queue: asyncio.Queue[LogMessage] = asyncio.Queue(maxsize=cfg.channel_buffer)
    coordinator = PodMembershipCoordinator(
        backend,
        queue,
        seeds=last_seen,
        resolver=resolver,
        ignore_errors=options.ignore_errors,
        backoff=cfg.reconnect_backoff,
        report=sink.write_status,
    )
    events = backend.watch_pods(options.namespace, options.selector)
    coordinator_task = asyncio.create_task(coordinator.run(events, options.namespace), name="pod-coordinator")
    try:
        await fan_in(queue, coordinator_task, sink.write_message)
    except WatchClosedError as exc:
        _log.info("pod_watch_closed", namespace=options.namespace, cause=exc.cause)
        if exc.cause is not None:
            sink.write_status(str(exc))
    finally:
        if not coordinator_task.done():
            coordinator_task.cancel()
        await asyncio.gather(coordinator_task, return_exceptions=True)
        await coordinator.shutdown()
        aclose = getattr(events, "aclose", None)
        if aclose is not None:
            await aclose()


def _status_reporter(sink: OutputSink) -> ErrorReporter:
    def report(exc: KubeLogError) -> None:
        sink.write_status(str(exc))

    return report
