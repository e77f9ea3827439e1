"""Application bootstrap for k0watch.

Wires all components in dependency order and manages the asyncio lifecycle.
Startup order: config -> logging -> K8s client -> managers -> router -> REST

Each manager is constructed with its own root WatchContext and handed to the
router and the status API explicitly; nothing is reached through module
globals. Shutdown stops components in reverse startup order, and each
component's stop error is caught and logged independently.
"""

from __future__ import annotations

import asyncio
import signal
from typing import TYPE_CHECKING

from k0watch.config import load_config
from k0watch.models.config import K0WatchConfig
from k0watch.observability.logging import get_logger, setup_logging

if TYPE_CHECKING:
    import structlog

    from k0watch.events.manager import EventManager
    from k0watch.graph.manager import GraphManager
    from k0watch.kube.adapter import KubernetesResourceClient
    from k0watch.podlogs.manager import PodLogManager
    from k0watch.router import SubscriptionRouter

_SHUTDOWN_GRACE_SECONDS = 15


class _ComponentError(Exception):
    """Raised when a mandatory component fails to start."""

    def __init__(self, component: str, cause: Exception) -> None:
        super().__init__(f"Component '{component}' failed to start: {cause}")
        self.component = component
        self.cause = cause


class K0WatchApp:
    """Application root. Owns every component and coordinates their lifecycle.

    Calling ``stop()`` on an app that was never started (or already stopped)
    is safe.
    """

    def __init__(self, config: K0WatchConfig | None = None) -> None:
        self.config = config
        self.client: KubernetesResourceClient | None = None
        self.graph: GraphManager | None = None
        self.events: EventManager | None = None
        self.podlogs: PodLogManager | None = None
        self.router: SubscriptionRouter | None = None
        self._rest_server: object | None = None
        self._background_tasks: list[asyncio.Task[None]] = []
        self._running = False
        self._log: structlog.stdlib.BoundLogger | None = None

    @property
    def running(self) -> bool:
        return self._running

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start all components in dependency order.

        Raises _ComponentError if a mandatory component cannot start.
        """
        # --- 1. Configuration -------------------------------------------
        if self.config is None:
            self.config = load_config()

        # --- 2. Logging -------------------------------------------------
        setup_logging(self.config.log.level)
        self._log = get_logger("app")
        self._log.info("k0watch_starting", version=_k0watch_version())

        # --- 3. Kubernetes client ----------------------------------------
        await self._start_k8s_client()

        # --- 4. Watch managers and router --------------------------------
        self._start_managers()

        # --- 5. REST API ------------------------------------------------
        await self._start_rest()

        self._running = True
        self._log.info("k0watch_started", port=self.config.api.port)

    async def _start_k8s_client(self) -> None:
        assert self._log is not None
        self._log.debug("starting k8s client")
        try:
            from k0watch.kube.adapter import KubernetesResourceClient, load_kube_config

            await load_kube_config()
            self.client = KubernetesResourceClient()
        except Exception as exc:
            raise _ComponentError("k8s_client", exc) from exc

    def _start_managers(self) -> None:
        assert self.config is not None
        assert self.client is not None
        from k0watch.events.manager import EventManager
        from k0watch.graph.manager import GraphManager
        from k0watch.models.subscriptions import EVENTS_HOST, GRAPH_HOST, PODLOGS_HOST
        from k0watch.podlogs.manager import PodLogManager
        from k0watch.router import SubscriptionRouter

        watch_config = self.config.watch
        self.graph = GraphManager(self.client, config=watch_config)
        self.events = EventManager(self.client, config=watch_config)
        self.podlogs = PodLogManager(self.client, config=watch_config)

        self.router = SubscriptionRouter()
        self.router.register(GRAPH_HOST, self.graph)
        self.router.register(EVENTS_HOST, self.events)
        self.router.register(PODLOGS_HOST, self.podlogs)

    async def _start_rest(self) -> None:
        """Start the uvicorn REST server."""
        assert self._log is not None
        assert self.config is not None
        self._log.debug("starting rest api")
        try:
            import uvicorn  # type: ignore[import-untyped]

            from k0watch.api.app import create_app

            fastapi_app = create_app(graph=self.graph, events=self.events, podlogs=self.podlogs)
            uv_config = uvicorn.Config(
                app=fastapi_app,
                host="0.0.0.0",
                port=self.config.api.port,
                log_config=None,  # structlog handles all logging
                access_log=False,
            )
            server = uvicorn.Server(uv_config)
            task = asyncio.create_task(server.serve(), name="rest-server")
            self._background_tasks.append(task)
            self._rest_server = server
            self._log.info("rest_api_started", port=self.config.api.port)
        except Exception as exc:
            raise _ComponentError("rest", exc) from exc

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    async def stop(self) -> None:
        """Gracefully stop all components in reverse startup order."""
        if not self._running and self._log is None:
            return

        log = self._log or get_logger("app")
        log.info("k0watch_shutting_down")
        self._running = False

        if self._rest_server is not None:
            self._rest_server.should_exit = True  # type: ignore[attr-defined]
        if self._background_tasks:
            await asyncio.wait(self._background_tasks, timeout=_SHUTDOWN_GRACE_SECONDS)
            for task in self._background_tasks:
                if not task.done():
                    task.cancel()
        self._background_tasks.clear()
        self._rest_server = None

        stop_timeout = self.config.watch.stop_timeout if self.config else 5.0
        await self._stop_manager("podlogs", self.podlogs, stop_timeout)
        await self._stop_manager("events", self.events, stop_timeout)
        await self._stop_manager("graph", self.graph, stop_timeout)
        await self._stop_k8s_client()

        log.info("k0watch_stopped")

    async def _stop_manager(self, name: str, manager: object | None, timeout: float) -> None:
        if manager is None:
            return
        log = self._log or get_logger("app")
        try:
            stragglers = await manager.stop(timeout)  # type: ignore[attr-defined]
            if stragglers:
                log.warning("manager_stop_incomplete", component=name, stragglers=stragglers)
        except Exception as exc:
            log.error("component_stop_failed", component=name, error=str(exc))

    async def _stop_k8s_client(self) -> None:
        if self.client is None:
            return
        log = self._log or get_logger("app")
        try:
            await self.client.close()
        except Exception as exc:
            log.debug("k8s_client_close_failed", error=str(exc))
        self.client = None


def _k0watch_version() -> str:
    from k0watch import __version__

    return __version__


# ---------------------------------------------------------------------------
# Async entrypoint
# ---------------------------------------------------------------------------


async def main() -> None:
    """Create the app, register OS signals, run until shutdown is requested."""
    app = K0WatchApp()
    loop = asyncio.get_running_loop()
    shutdown = asyncio.Event()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, shutdown.set)

    try:
        await app.start()
        await shutdown.wait()
    except _ComponentError as exc:
        log = get_logger("app")
        log.critical(
            "fatal_startup_error",
            component=exc.component,
            error=str(exc.cause),
        )
        await app.stop()
        raise SystemExit(1) from exc
    finally:
        if app.running:
            await app.stop()
