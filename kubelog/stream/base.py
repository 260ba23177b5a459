"""Boundary the log engine needs from a cluster.

The engine never talks to Kubernetes directly; it goes through a
``LogBackend``.  ``kubelog.kube.client.KubeClient`` is the production
implementation, tests plug in in-memory fakes.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass

from kubelog.models.messages import LogTimestamp, PodEvent, PodInfo


@dataclass(frozen=True)
class LogStreamRequest:
    """Options for one log stream.

    ``since`` is None to read from the beginning of the container's log.
    Timestamps are always requested; the engine cannot order lines without
    them.
    """

    container: str
    follow: bool = False
    since: LogTimestamp | None = None


class LogBackend(ABC):
    """Pod lister, pod watcher and log stream opener."""

    @abstractmethod
    async def list_pods(self, namespace: str, selector: str) -> list[PodInfo]:
        """Return the pods currently matching *selector*."""

    @abstractmethod
    def watch_pods(self, namespace: str, selector: str) -> AsyncIterator[PodEvent]:
        """Yield pod lifecycle events until the watch closes."""

    @abstractmethod
    def open_log_stream(
        self,
        pod: PodInfo,
        request: LogStreamRequest,
    ) -> AbstractAsyncContextManager[AsyncIterator[bytes]]:
        """Open a stream of raw ``"<timestamp> <text>\\n"`` lines.

        Entering the context raises ``TransportError`` if the stream cannot
        be opened; iterating raises ``TransportError`` on I/O failure.
        Leaving the context releases the underlying connection.
        """
