"""kubernetes-asyncio implementation of the log engine's cluster boundary.

Every Kubernetes client exception is translated here into the kubelog
error taxonomy; nothing from kubernetes_asyncio or aiohttp leaks into
the stream package.
"""

from __future__ import annotations

import json
import math
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any

import aiohttp
import structlog
from kubernetes_asyncio import client as k8s_client  # type: ignore[import-untyped]
from kubernetes_asyncio import watch as k8s_watch  # type: ignore[import-untyped]
from kubernetes_asyncio.client.exceptions import ApiException  # type: ignore[import-untyped]

from kubelog.errors import ApiRequestError, ResourceLookupError, TransportError, WatchClosedError
from kubelog.kube.selectors import LABEL_GROUP
from kubelog.models.messages import LogTimestamp, PodEvent, PodEventType, PodInfo
from kubelog.stream.base import LogBackend, LogStreamRequest

_log = structlog.get_logger(component="kube")

_CRD_VERSION = "v1beta1"

# Errors that mean "the connection or the request failed", as opposed to bugs.
_TRANSPORT_ERRORS = (ApiException, aiohttp.ClientError, TimeoutError, ValueError)


def describe_api_error(exc: BaseException) -> str:
    """Best human-readable message for a Kubernetes client failure.

    For ApiException the API server's Status message is preferred, e.g.
    ``apps.theketch.io "dashboard" not found``.
    """
    if isinstance(exc, ApiException):
        body = getattr(exc, "body", None)
        if body:
            try:
                message = json.loads(body).get("message")
            except (TypeError, ValueError, AttributeError):
                message = None
            if message:
                return str(message)
        return f"{exc.status} {exc.reason}".strip()
    return str(exc) or type(exc).__name__


def since_seconds(since: LogTimestamp, now: datetime, slack: int = 5) -> int:
    """Express a "since" instant as the API's relative ``sinceSeconds``.

    The pod log endpoint only filters at whole-second granularity, so the
    window is rounded up and widened by *slack* seconds; replayed lines are
    dropped by the follower.
    """
    delta = (now - since.moment).total_seconds()
    return max(1, math.ceil(delta) + slack)


def pod_info_from_k8s(pod: Any) -> PodInfo:
    """Convert a V1Pod (or an equivalent object) to a PodInfo snapshot."""
    meta = pod.metadata
    spec = pod.spec
    status = pod.status
    containers = tuple(c.name for c in (spec.containers or [])) if spec is not None else ()
    running: frozenset[str] = frozenset()
    if status is not None:
        running = frozenset(
            cs.name
            for cs in (status.container_statuses or [])
            if cs.state is not None and cs.state.running is not None
        )
    return PodInfo(
        name=meta.name,
        namespace=meta.namespace or "",
        uid=meta.uid or meta.name,
        containers=containers,
        running=running,
    )


class KubeClient(LogBackend):
    """Pod lister, pod watcher and log stream opener over kubernetes-asyncio.

    Args:
        api_client:          Shared ApiClient; one is created when omitted.
        since_slack_seconds: Extra seconds requested when reopening a stream.
        clock:               Returns "now" (UTC); injectable for tests.
    """

    def __init__(
        self,
        api_client: Any | None = None,
        since_slack_seconds: int = 5,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._api_client = api_client if api_client is not None else k8s_client.ApiClient()
        self._core = k8s_client.CoreV1Api(self._api_client)
        self._custom = k8s_client.CustomObjectsApi(self._api_client)
        self._since_slack = since_slack_seconds
        self._clock = clock or (lambda: datetime.now(tz=UTC))

    async def close(self) -> None:
        await self._api_client.close()

    # ------------------------------------------------------------------
    # Custom resources
    # ------------------------------------------------------------------

    async def get_app_namespace(self, app_name: str) -> str:
        """Namespace an application's pods run in: app -> framework -> namespace."""
        app = await self._get_cluster_object("apps", "app", app_name)
        framework_name = str((app.get("spec") or {}).get("framework", ""))
        framework = await self._get_cluster_object("frameworks", "framework", framework_name)
        namespace = str((framework.get("spec") or {}).get("namespace", ""))
        _log.debug("app_namespace_resolved", app=app_name, framework=framework_name, namespace=namespace)
        return namespace

    async def _get_cluster_object(self, plural: str, kind: str, name: str) -> dict[str, Any]:
        try:
            obj = await self._custom.get_cluster_custom_object(
                group=LABEL_GROUP,
                version=_CRD_VERSION,
                plural=plural,
                name=name,
            )
        except _TRANSPORT_ERRORS as exc:
            raise ResourceLookupError(kind, name, describe_api_error(exc)) from exc
        return obj if isinstance(obj, dict) else {}

    # ------------------------------------------------------------------
    # LogBackend
    # ------------------------------------------------------------------

    async def list_pods(self, namespace: str, selector: str) -> list[PodInfo]:
        try:
            result = await self._core.list_namespaced_pod(namespace=namespace, label_selector=selector)
        except _TRANSPORT_ERRORS as exc:
            raise ApiRequestError(f"list pods in namespace {namespace}", describe_api_error(exc)) from exc
        return [pod_info_from_k8s(pod) for pod in result.items or []]

    async def watch_pods(self, namespace: str, selector: str) -> AsyncIterator[PodEvent]:
        try:
            async with k8s_watch.Watch() as watcher:
                async for event in watcher.stream(
                    self._core.list_namespaced_pod,
                    namespace=namespace,
                    label_selector=selector,
                ):
                    event_type = event.get("type")
                    obj = event.get("object")
                    if event_type not in PodEventType.__members__ or obj is None:
                        _log.debug("watch_event_ignored", type=event_type)
                        continue
                    yield PodEvent(type=PodEventType(event_type), pod=pod_info_from_k8s(obj))
        except _TRANSPORT_ERRORS as exc:
            _log.warning("pod_watch_failed", namespace=namespace, error=describe_api_error(exc))
            raise WatchClosedError(namespace, describe_api_error(exc)) from exc

    @asynccontextmanager
    async def open_log_stream(self, pod: PodInfo, request: LogStreamRequest) -> AsyncIterator[AsyncIterator[bytes]]:
        kwargs: dict[str, Any] = {
            "container": request.container,
            "follow": request.follow,
            "timestamps": True,
            "_preload_content": False,
        }
        if request.since is not None:
            kwargs["since_seconds"] = since_seconds(request.since, self._clock(), self._since_slack)
        try:
            response = await self._core.read_namespaced_pod_log(name=pod.name, namespace=pod.namespace, **kwargs)
        except _TRANSPORT_ERRORS as exc:
            raise TransportError(pod.name, describe_api_error(exc)) from exc

        lines = _iter_lines(pod, response)
        try:
            yield lines
        finally:
            await lines.aclose()
            response.release()


async def _iter_lines(pod: PodInfo, response: aiohttp.ClientResponse) -> AsyncIterator[bytes]:
    try:
        async for line in response.content:
            yield line
    except _TRANSPORT_ERRORS as exc:
        raise TransportError(pod.name, describe_api_error(exc)) from exc
