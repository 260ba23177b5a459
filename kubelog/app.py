"""Application bootstrap for kubelog.

Wires the components in dependency order and manages the asyncio lifecycle
of one ``kubelog log`` invocation.
Startup order: config -> logging -> K8s client -> namespace lookup -> engine

SIGINT / SIGTERM cancel the root task.  Cancellation reaches every reader,
follower and the pod coordinator through the engine's cleanup, and the
Kubernetes connection pool is closed last.
"""

from __future__ import annotations

import asyncio
import signal
from contextlib import suppress
from typing import TYPE_CHECKING, TextIO

from kubelog.config import load_config
from kubelog.engine import watch_logs
from kubelog.errors import KubeLogError
from kubelog.kube.selectors import build_selector, validate_app_name
from kubelog.models.config import AppLogRequest, KubeLogConfig, WatchOptions
from kubelog.observability.logging import get_logger, setup_logging
from kubelog.stream.formatter import OutputSink

if TYPE_CHECKING:
    import structlog

    from kubelog.kube.client import KubeClient

EXIT_FAILURE = 1
EXIT_INTERRUPTED = 130


class _ComponentError(KubeLogError):
    """Raised when a mandatory component fails to start."""

    def __init__(self, component: str, cause: Exception) -> None:
        super().__init__(f"Component '{component}' failed to start: {cause}")
        self.component = component
        self.cause = cause


class KubeLogApp:
    """Application root.  Owns the Kubernetes client and the output sink.

    ``stop()`` is safe to call on an app that was never started or that is
    already stopped.
    """

    def __init__(self, out: TextIO | None = None, client: KubeClient | None = None) -> None:
        self.config: KubeLogConfig | None = None
        self._out = out
        self._client: KubeClient | None = client
        self._owns_client = client is None
        self._log: structlog.stdlib.BoundLogger | None = None

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Load configuration, configure logging, connect to the cluster."""
        # --- 1. Configuration -------------------------------------------
        self.config = load_config()

        # --- 2. Logging -------------------------------------------------
        setup_logging(self.config.log.level, self.config.log.format)
        self._log = get_logger("app")
        self._log.debug("kubelog starting", version=_kubelog_version())

        # --- 3. Kubernetes client ----------------------------------------
        if self._client is None:
            await self._start_k8s_client()

    async def _start_k8s_client(self) -> None:
        """Initialise kubernetes-asyncio from in-cluster config or kubeconfig."""
        assert self._log is not None
        assert self.config is not None
        try:
            import kubernetes_asyncio.config as k8s_config  # type: ignore[import-untyped]

            from kubelog.kube.client import KubeClient

            kubeconfig = self.config.kube.kubeconfig
            if kubeconfig:
                await k8s_config.load_kube_config(config_file=kubeconfig)
                self._log.debug("k8s client configured from kubeconfig", path=kubeconfig)
            else:
                try:
                    k8s_config.load_incluster_config()
                    self._log.debug("k8s client configured from in-cluster service account")
                except k8s_config.ConfigException:
                    await k8s_config.load_kube_config()
                    self._log.debug("k8s client configured from kubeconfig")

            self._client = KubeClient(since_slack_seconds=self.config.stream.since_slack_seconds)
        except Exception as exc:
            raise _ComponentError("k8s_client", exc) from exc

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    async def run(self, request: AppLogRequest) -> None:
        """Resolve the request to a namespace + selector and aggregate logs."""
        assert self._client is not None
        config = self.config or KubeLogConfig()
        log = self._log or get_logger("app")

        validate_app_name(request.app_name)
        namespace = await self._client.get_app_namespace(request.app_name)
        options = WatchOptions(
            namespace=namespace,
            selector=build_selector(request.app_name, request.process_name, request.deployment_version),
            follow=request.follow,
            ignore_errors=request.ignore_errors,
            timestamps=request.timestamps,
            prefix=request.prefix,
        )
        log.info("aggregating logs", namespace=options.namespace, selector=options.selector, follow=options.follow)

        sink = OutputSink(self._out, include_timestamp=options.timestamps, include_prefix=options.prefix)
        await watch_logs(self._client, options, sink, stream_config=config.stream)

    def report_error(self, exc: KubeLogError) -> None:
        """Write the error that ended the call to the output, after any log lines."""
        (self._log or get_logger("app")).debug("log request failed", error=str(exc))
        OutputSink(self._out).write_status(str(exc))

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    async def stop(self) -> None:
        """Close the kubernetes-asyncio connection pool if we opened it."""
        client, self._client = self._client, None
        if client is None or not self._owns_client:
            return
        log = self._log or get_logger("app")
        try:
            await client.close()
        except Exception as exc:
            log.debug("k8s client close raised (non-fatal)", error=str(exc))


def _kubelog_version() -> str:
    from kubelog import __version__

    return __version__


# ---------------------------------------------------------------------------
# Async entrypoint
# ---------------------------------------------------------------------------


async def main(request: AppLogRequest, out: TextIO | None = None, app: KubeLogApp | None = None) -> int:
    """Run one log request until done or interrupted; return the exit code.

    A KubeLogError ends the call: its message is written to the same output
    as the log lines and the exit code is EXIT_FAILURE.
    """
    app = app or KubeLogApp(out=out)
    loop = asyncio.get_running_loop()
    root = asyncio.current_task()

    interrupted = False

    def _request_shutdown() -> None:
        nonlocal interrupted
        if interrupted or root is None:
            return
        interrupted = True
        root.cancel()

    signals = (signal.SIGTERM, signal.SIGINT)
    for sig in signals:
        with suppress(NotImplementedError):
            loop.add_signal_handler(sig, _request_shutdown)

    try:
        await app.start()
        await app.run(request)
    except KubeLogError as exc:
        app.report_error(exc)
        return EXIT_FAILURE
    except asyncio.CancelledError:
        if not interrupted:
            raise
        get_logger("app").debug("interrupted, shut down cleanly")
        return EXIT_INTERRUPTED
    finally:
        for sig in signals:
            with suppress(NotImplementedError):
                loop.remove_signal_handler(sig)
        await app.stop()
    return 0
