"""Chronological multiplexer.

Historical phase: a lazy k-way merge.  Each open source keeps exactly one
buffered message; the buffered message with the smallest timestamp is
emitted and only its source is refilled.  A linear scan picks the minimum;
pod counts per application are small.  Equal timestamps go to the source
that was registered first.

Live phase: no reordering.  Whatever the followers put on the shared queue
is emitted in arrival order until the coordinator finishes.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping

import structlog

from kubelog.errors import KubeLogError
from kubelog.models.messages import LogMessage, LogTimestamp
from kubelog.stream.reader import SourceReader

_log = structlog.get_logger(component="stream.multiplexer")

Emit = Callable[[LogMessage], None]
ErrorReporter = Callable[[KubeLogError], None]


async def merge_chronologically(
    sources: Mapping[str, SourceReader],
    emit: Emit,
    on_error: ErrorReporter | None = None,
) -> dict[str, LogTimestamp]:
    """Emit every message of every source in timestamp order.

    Returns the timestamp of the last message emitted per source id, used
    to seed the live followers.  Without *on_error* the first source error
    aborts the merge.  With it, the failing source is reported, dropped,
    and the remaining sources keep merging.
    """

    async def pull(source_id: str) -> LogMessage | None:
        try:
            return await sources[source_id].next()
        except KubeLogError as exc:
            if on_error is None:
                raise
            _log.info("historical_source_dropped", source=source_id, error=str(exc))
            on_error(exc)
            return None

    buffered: dict[str, LogMessage] = {}
    for source_id in sources:
        message = await pull(source_id)
        if message is not None:
            buffered[source_id] = message

    last_seen: dict[str, LogTimestamp] = {}
    emitted = 0
    while buffered:
        target = min(buffered, key=lambda source_id: buffered[source_id].timestamp)
        message = buffered[target]
        last_seen[target] = message.timestamp
        emit(message)
        emitted += 1

        refill = await pull(target)
        if refill is None:
            del buffered[target]
        else:
            buffered[target] = refill

    _log.debug("historical_merge_done", sources=len(sources), messages=emitted)
    return last_seen


async def fan_in(queue: asyncio.Queue[LogMessage], until: asyncio.Task[None], emit: Emit) -> None:
    """Forward messages from the shared live queue until *until* completes.

    Re-raises the exception *until* finished with, if any.
    """
    while True:
        getter = asyncio.ensure_future(queue.get())
        try:
            done, _ = await asyncio.wait({getter, until}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            getter.cancel()
            raise
        if getter in done:
            emit(getter.result())
            continue
        getter.cancel()
        await asyncio.gather(getter, return_exceptions=True)
        if getter.done() and not getter.cancelled():
            emit(getter.result())
        # drain whatever the followers already handed over
        while not queue.empty():
            emit(queue.get_nowait())
        until.result()
        return
