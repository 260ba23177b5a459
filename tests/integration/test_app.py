"""Tests for KubeLogApp wiring and the async main entry point."""

from __future__ import annotations

import asyncio
import io
import os
import signal

import pytest

from kubelog.app import EXIT_FAILURE, EXIT_INTERRUPTED, KubeLogApp, main
from kubelog.errors import InvalidAppNameError, ResourceLookupError
from kubelog.models.config import AppLogRequest
from kubelog.models.messages import PodEventType, PodInfo
from tests.helpers import FakeBackend, line, make_pod, wait_until


class FakeKubeClient(FakeBackend):
    """FakeBackend plus the custom-resource lookup KubeClient offers."""

    def __init__(self, *args, namespaces: dict[str, str] | None = None, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.namespaces = namespaces if namespaces is not None else {"dashboard": "theketch-gke"}
        self.listed: list[tuple[str, str]] = []
        self.closed = False

    async def get_app_namespace(self, app_name: str) -> str:
        if app_name not in self.namespaces:
            raise ResourceLookupError("app", app_name, f'apps.theketch.io "{app_name}" not found')
        return self.namespaces[app_name]

    async def list_pods(self, namespace: str, selector: str) -> list[PodInfo]:
        self.listed.append((namespace, selector))
        return await super().list_pods(namespace, selector)

    async def close(self) -> None:
        self.closed = True


@pytest.fixture(autouse=True)
def quiet_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for var in ("KUBELOG_LOG_LEVEL", "KUBELOG_LOG_FORMAT", "KUBELOG_RECONNECT_BACKOFF"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("KUBELOG_RECONNECT_BACKOFF", "0.05")


def _app(client: FakeKubeClient) -> tuple[KubeLogApp, io.StringIO]:
    out = io.StringIO()
    return KubeLogApp(out=out, client=client), out


class TestKubeLogApp:
    async def test_resolves_namespace_and_selector(self) -> None:
        """The app resolves to its framework namespace and label selector."""
        pod = make_pod("dashboard-web-1-random")
        client = FakeKubeClient(pods=[pod], historical={pod.name: [line(0, "hello")]})
        app, out = _app(client)
        await app.start()
        await app.run(AppLogRequest(app_name="dashboard", process_name="web", prefix=True))

        assert client.listed == [("theketch-gke", "theketch.io/app-name=dashboard,theketch.io/app-process=web")]
        assert out.getvalue() == "[dashboard-web-1-random/dashboard-web-1] hello\n"

    async def test_config_reaches_the_engine(self) -> None:
        app, _ = _app(FakeKubeClient())
        await app.start()
        assert app.config is not None
        assert app.config.stream.reconnect_backoff == 0.05

    async def test_unknown_app(self) -> None:
        app, _ = _app(FakeKubeClient(namespaces={}))
        await app.start()
        with pytest.raises(ResourceLookupError, match='failed to get app instance: apps.theketch.io "dashboard" not found'):
            await app.run(AppLogRequest(app_name="dashboard"))

    async def test_invalid_name_rejected_before_any_request(self) -> None:
        client = FakeKubeClient()
        app, _ = _app(client)
        await app.start()
        with pytest.raises(InvalidAppNameError):
            await app.run(AppLogRequest(app_name="Not_Valid"))
        assert client.listed == []

    async def test_stop_leaves_injected_client_open(self) -> None:
        client = FakeKubeClient()
        app, _ = _app(client)
        await app.start()
        await app.stop()
        await app.stop()
        assert not client.closed


class TestMain:
    async def test_returns_zero(self) -> None:
        pod = make_pod("dashboard-web-1-random")
        client = FakeKubeClient(pods=[pod], historical={pod.name: [line(0, "a"), line(1, "b")]})
        app, out = _app(client)
        assert await main(AppLogRequest(app_name="dashboard"), app=app) == 0
        assert out.getvalue().splitlines() == ["a", "b"]

    async def test_error_is_written_to_the_output_and_exits_1(self) -> None:
        app, out = _app(FakeKubeClient(namespaces={}))
        assert await main(AppLogRequest(app_name="dashboard"), app=app) == EXIT_FAILURE
        assert out.getvalue().splitlines() == ['failed to get app instance: apps.theketch.io "dashboard" not found']

    async def test_error_line_follows_the_lines_already_written(self) -> None:
        """The error that ends the call lands in the same output, after the log lines."""
        pod = make_pod("dashboard-web-1-random")
        client = FakeKubeClient(pods=[pod], historical={pod.name: [line(0, "a"), "garbage\n"]})
        app, out = _app(client)
        assert await main(AppLogRequest(app_name="dashboard"), app=app) == EXIT_FAILURE
        assert out.getvalue().splitlines() == [
            "a",
            "failed to read logs from pod dashboard-web-1-random: unknown time format",
        ]
        assert client.open_streams == 0

    async def test_sigint_while_following_exits_130(self) -> None:
        """SIGINT shuts the follow down cleanly with exit status 130."""
        pod = make_pod("dashboard-web-1-random")
        client = FakeKubeClient(pods=[pod], follow={pod.name: [[line(0, "live")]]})
        app, out = _app(client)
        task = asyncio.create_task(main(AppLogRequest(app_name="dashboard", follow=True), app=app))
        client.emit(PodEventType.ADDED, pod)
        await wait_until(lambda: "live" in out.getvalue())

        os.kill(os.getpid(), signal.SIGINT)
        assert await asyncio.wait_for(task, timeout=2.0) == EXIT_INTERRUPTED
        assert client.open_streams == 0
        assert client.watch_closed

    async def test_external_cancel_is_not_an_interrupt(self) -> None:
        """Cancellation from outside propagates instead of mapping to 130."""
        client = FakeKubeClient()
        app, _ = _app(client)
        task = asyncio.create_task(main(AppLogRequest(app_name="dashboard", follow=True), app=app))
        await asyncio.sleep(0.02)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
