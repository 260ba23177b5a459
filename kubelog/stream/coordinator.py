"""Pod membership coordinator.

Consumes pod watch events and keeps exactly one live follower per pod
whose app container is running.  Per-pod lifecycle::

    DISCOVERED -> CONTAINER_PENDING -> FOLLOWING -> RETIRED

The tracking map is owned by the coordinator task; nothing else mutates
it.  Which container is "the app container" is decided by a pluggable
resolver so the naming convention can change without touching the state
machine.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable, Mapping
from dataclasses import dataclass

import structlog

from kubelog.errors import ContainerResolutionError, WatchClosedError
from kubelog.models.messages import LogMessage, LogTimestamp, PodEvent, PodEventType, PodInfo, PodState
from kubelog.stream.base import LogBackend
from kubelog.stream.follower import LiveFollower, StatusReporter

_log = structlog.get_logger(component="stream.coordinator")

ContainerResolver = Callable[[PodInfo], str]


def prefix_container_resolver(pod: PodInfo) -> str:
    """Pick the container whose name is a prefix of the pod's name.

    Application pods are named ``<app>-<process>-<version>-<hash>`` and
    carry one container named ``<app>-<process>-<version>``; sidecars are
    ignored.
    """
    for container in pod.containers:
        if pod.name.startswith(container):
            return container
    raise ContainerResolutionError(pod.name)


@dataclass
class _TrackedPod:
    pod: PodInfo
    container: str
    state: PodState
    follower: LiveFollower | None = None


class PodMembershipCoordinator:
    """Starts and stops live followers as pods come and go.

    Args:
        backend:       Log stream opener handed to every follower.
        out:           Shared fan-in queue all followers write to.
        seeds:         Last historical timestamp per pod UID.
        resolver:      App-container resolver.
        ignore_errors: Skip pods without an app container instead of failing.
        backoff:       Follower reconnect backoff in seconds.
        report:        Status line callback (reconnect notices).
    """

    def __init__(
        self,
        backend: LogBackend,
        out: asyncio.Queue[LogMessage],
        seeds: Mapping[str, LogTimestamp] | None = None,
        resolver: ContainerResolver = prefix_container_resolver,
        ignore_errors: bool = False,
        backoff: float = 0.5,
        report: StatusReporter | None = None,
    ) -> None:
        self._backend = backend
        self._out = out
        self._seeds = dict(seeds or {})
        self._resolver = resolver
        self._ignore_errors = ignore_errors
        self._backoff = backoff
        self._report = report
        self._tracked: dict[str, _TrackedPod] = {}

    def state_of(self, uid: str) -> PodState:
        """Current state of a pod; untracked pods count as RETIRED."""
        tracked = self._tracked.get(uid)
        return tracked.state if tracked is not None else PodState.RETIRED

    def follower_of(self, uid: str) -> LiveFollower | None:
        tracked = self._tracked.get(uid)
        return tracked.follower if tracked is not None else None

    @property
    def tracked_count(self) -> int:
        return len(self._tracked)

    async def run(self, events: AsyncIterator[PodEvent], namespace: str = "") -> None:
        """Consume *events* until the watch closes.

        Always ends by raising: WatchClosedError on a clean close, or the
        ContainerResolutionError that made discovery fail.
        """
        async for event in events:
            if event.pod is None:
                break
            await self.handle(event)
        raise WatchClosedError(namespace)

    async def handle(self, event: PodEvent) -> None:
        pod = event.pod
        if pod is None:
            return
        if event.type is PodEventType.DELETED:
            await self._retire(pod.uid)
            return

        tracked = self._tracked.get(pod.uid)
        if tracked is None:
            tracked = self._discover(pod)
            if tracked is None:
                return
        elif tracked.state is PodState.FOLLOWING:
            return
        else:
            tracked.pod = pod

        if tracked.state is PodState.CONTAINER_PENDING and pod.is_running(tracked.container):
            self._start_following(tracked)

    async def shutdown(self) -> None:
        """Stop every follower regardless of state."""
        tracked, self._tracked = list(self._tracked.values()), {}
        followers = [t.follower for t in tracked if t.follower is not None]
        if followers:
            await asyncio.gather(*(f.stop() for f in followers), return_exceptions=True)
        _log.debug("coordinator_shutdown", followers=len(followers))

    def _discover(self, pod: PodInfo) -> _TrackedPod | None:
        tracked = _TrackedPod(pod=pod, container="", state=PodState.DISCOVERED)
        self._tracked[pod.uid] = tracked
        try:
            tracked.container = self._resolver(pod)
        except ContainerResolutionError as exc:
            del self._tracked[pod.uid]
            if not self._ignore_errors:
                raise
            _log.info("pod_skipped", pod=pod.name, error=str(exc))
            return None
        tracked.state = PodState.CONTAINER_PENDING
        _log.debug("pod_discovered", pod=pod.name, container=tracked.container)
        return tracked

    def _start_following(self, tracked: _TrackedPod) -> None:
        follower = LiveFollower(
            self._backend,
            tracked.pod,
            tracked.container,
            self._out,
            since=self._seeds.get(tracked.pod.uid),
            backoff=self._backoff,
            report=self._report,
        )
        tracked.follower = follower
        tracked.state = PodState.FOLLOWING
        follower.start()
        _log.info("pod_following", pod=tracked.pod.name, container=tracked.container)

    async def _retire(self, uid: str) -> None:
        tracked = self._tracked.pop(uid, None)
        if tracked is None:
            return
        tracked.state = PodState.RETIRED
        if tracked.follower is not None:
            await tracked.follower.stop()
        _log.info("pod_retired", pod=tracked.pod.name)
