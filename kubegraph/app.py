"""Application bootstrap for kubegraph.

Wires all components in dependency order and manages the asyncio lifecycle.
Startup order: config → logging → metrics → K8s client → graph store
              → schema → sync engine → watchers

Shutdown closes components in reverse startup order, each under its own
deadline.
"""

from __future__ import annotations

import asyncio
import signal
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

from kubegraph.config import load_config
from kubegraph.models.config import KubeGraphConfig
from kubegraph.observability.logging import get_logger, setup_logging

if TYPE_CHECKING:
    import structlog

    from kubegraph.collector.watcher import ResourceWatcher
    from kubegraph.graph.store import GraphStore
    from kubegraph.sync.engine import GraphSyncEngine

_SHUTDOWN_GRACE_SECONDS = 15


class StartupError(Exception):
    """A mandatory component could not be brought up.  The cause is chained."""

    def __init__(self, component: str, cause: Exception) -> None:
        super().__init__(f"{component}: {cause}")
        self.component = component


class GraphSyncApp:
    """Application root.  Owns every component and coordinates their lifecycle.

    ``stop()`` only closes what was actually started, so it is safe on a
    partially started or already stopped app.
    """

    def __init__(self) -> None:
        self.config: KubeGraphConfig | None = None

        self._api_client: Any | None = None
        self._store: GraphStore | None = None
        self._engine: GraphSyncEngine | None = None
        self._watcher: ResourceWatcher | None = None

        self._shutdown = asyncio.Event()
        self._log: structlog.stdlib.BoundLogger | None = None

    # ------------------------------------------------------------------
    # Startup
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start all components in dependency order.

        Raises StartupError if a mandatory component cannot start.
        """
        # --- 1. Configuration -------------------------------------------
        self.config = load_config()

        # --- 2. Logging -------------------------------------------------
        setup_logging(self.config.log.level, self.config.log.format)
        self._log = get_logger("app")
        self._log.info("kubegraph starting", version=_kubegraph_version(), cluster=self.config.cluster_name)

        # --- 3. Metrics exporter ----------------------------------------
        self._start_metrics()

        # --- 4. Kubernetes client ----------------------------------------
        await self._start_k8s_client()

        # --- 5. Graph store ----------------------------------------------
        await self._start_graph_store()

        # --- 6. Schema ---------------------------------------------------
        await self._apply_schema()

        # --- 7. Sync engine ----------------------------------------------
        self._start_engine()

        # --- 8. Watchers -------------------------------------------------
        await self._start_watcher()

        self._log.info("kubegraph started")

    # ------------------------------------------------------------------
    # Component startup helpers
    # ------------------------------------------------------------------

    def _start_metrics(self) -> None:
        assert self._log is not None
        assert self.config is not None
        from kubegraph.observability.metrics import start_metrics_server

        try:
            enabled = start_metrics_server(self.config.metrics.port)
        except OSError as exc:
            # Metrics are non-fatal: the sync pipeline works without an exporter
            self._log.warning("metrics exporter failed to start", port=self.config.metrics.port, error=str(exc))
            return
        if enabled:
            self._log.info("metrics exporter started", port=self.config.metrics.port)
        else:
            self._log.info("metrics exporter disabled")

    async def _start_k8s_client(self) -> None:
        """Initialise the kubernetes-asyncio client from in-cluster config or kubeconfig."""
        assert self._log is not None
        self._log.debug("starting k8s client")
        try:
            import kubernetes_asyncio.config as k8s_config  # type: ignore[import-untyped]
            from kubernetes_asyncio import client as k8s_client  # type: ignore[import-untyped]

            try:
                # load_incluster_config() is synchronous in kubernetes-asyncio
                k8s_config.load_incluster_config()
                self._log.info("k8s client configured from in-cluster service account")
            except k8s_config.ConfigException:
                await k8s_config.load_kube_config()
                self._log.info("k8s client configured from kubeconfig")

            self._api_client = k8s_client.ApiClient()
        except Exception as exc:
            raise StartupError("k8s_client", exc) from exc

    async def _start_graph_store(self) -> None:
        """Open the Bolt driver and check the server answers."""
        assert self._log is not None
        assert self.config is not None
        self._log.debug("starting graph store", uri=self.config.graph_store.uri)
        try:
            from kubegraph.graph.store import GraphStore

            store = GraphStore.from_config(self.config.graph_store)
            self._store = store
            await store.verify_connectivity()
            self._log.info(
                "graph store connected",
                uri=self.config.graph_store.uri,
                database=self.config.graph_store.database,
            )
        except Exception as exc:
            raise StartupError("graph_store", exc) from exc

    async def _apply_schema(self) -> None:
        assert self._log is not None
        assert self._store is not None
        try:
            from kubegraph.graph.schema import SchemaProvisioner

            await SchemaProvisioner(self._store).apply()
        except Exception as exc:
            raise StartupError("schema", exc) from exc

    def _start_engine(self) -> None:
        """Build the rule table, projector and repositories."""
        assert self._log is not None
        assert self.config is not None
        assert self._store is not None
        try:
            from kubegraph.graph.nodes import NodeRepository
            from kubegraph.graph.relationships import RelationshipRepository
            from kubegraph.rules.engine import RelationshipRuleEngine
            from kubegraph.sync.engine import GraphSyncEngine
            from kubegraph.sync.projector import ResourceProjector

            self._engine = GraphSyncEngine(
                nodes=NodeRepository(self._store),
                relationships=RelationshipRepository(self._store),
                projector=ResourceProjector(cluster_name=self.config.cluster_name),
                rules=RelationshipRuleEngine(),
            )
            self._log.info("sync engine started")
        except Exception as exc:
            raise StartupError("sync_engine", exc) from exc

    async def _start_watcher(self) -> None:
        assert self._log is not None
        assert self.config is not None
        assert self._engine is not None
        try:
            from kubegraph.collector.watcher import ResourceWatcher, select_targets

            watcher = ResourceWatcher(
                handler=self._engine.sync,
                api_client=self._api_client,
                targets=select_targets(self.config.watch.kinds),
                timeout_seconds=self.config.watch.timeout_seconds,
                sync_timeout=float(self.config.sync.timeout_seconds),
            )
            await watcher.start()
            self._watcher = watcher
        except Exception as exc:
            raise StartupError("watcher", exc) from exc

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    def request_shutdown(self) -> None:
        """Ask ``serve()`` to return.  Safe to call repeatedly and from signal handlers."""
        self._shutdown.set()

    async def serve(self) -> None:
        """Start every component, block until shutdown is requested, then stop."""
        try:
            await self.start()
            await self._shutdown.wait()
        finally:
            await self.stop()

    async def stop(self) -> None:
        """Close whatever was started, newest first.  A no-op once nothing is left."""
        steps: list[tuple[str, Callable[[], Awaitable[object]]]] = []
        if self._watcher is not None:
            steps.append(("watcher", self._watcher.stop))
        if self._store is not None:
            steps.append(("graph_store", self._store.close))
        if self._api_client is not None:
            steps.append(("k8s_client", self._api_client.close))
        self._watcher = None
        self._engine = None
        self._store = None
        self._api_client = None
        if not steps:
            return

        log = self._log or get_logger("app")
        log.info("kubegraph shutting down", components=[name for name, _ in steps])
        for name, close in steps:
            await _close_step(log, name, close)
        log.info("kubegraph stopped")


async def _close_step(log: structlog.stdlib.BoundLogger, name: str, close: Callable[[], Awaitable[object]]) -> None:
    # One stuck or failing close must not keep the others from running.
    try:
        await asyncio.wait_for(close(), timeout=_SHUTDOWN_GRACE_SECONDS)
    except TimeoutError:
        log.warning("shutdown step timed out", component=name, timeout=_SHUTDOWN_GRACE_SECONDS)
    except Exception as exc:
        log.error("shutdown step failed", component=name, error=str(exc))


def _kubegraph_version() -> str:
    from kubegraph import __version__

    return __version__


async def main() -> None:
    """Run the app until SIGTERM/SIGINT.  Exits with status 1 if startup fails."""
    app = GraphSyncApp()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, app.request_shutdown)

    try:
        await app.serve()
    except StartupError as exc:
        get_logger("app").critical("fatal startup error", component=exc.component, error=str(exc.__cause__))
        raise SystemExit(1) from exc


def run() -> None:
    """Console-script entrypoint."""
    asyncio.run(main())
