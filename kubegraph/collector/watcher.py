"""Kubernetes watch adapter feeding raw objects into the sync engine.

One asyncio task per WatchTarget streams watch events through
kubernetes-asyncio.  The first watch of a kind is opened without a resource
version, so the server replays every existing object as ADDED.  Later
streams resume from the last resourceVersion seen (bookmarks included) and
replay nothing; only an expired version (410 Gone) forces a fresh relist.
Objects are handed to the handler one at a time, sequentially per target.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Any

import structlog

from kubegraph.graph.errors import GraphSyncError
from kubegraph.observability.logging import get_logger
from kubegraph.observability.metrics import watch_restarts_total

_logger = get_logger("collector.watcher")

_INITIAL_BACKOFF = 1.0
_MAX_BACKOFF = 60.0

Handler = Callable[[Mapping[str, Any]], Awaitable[object]]


class WatchExpiredError(Exception):
    """The API server ended the stream with an ERROR event (e.g. 410 Gone)."""


@dataclass(frozen=True)
class WatchTarget:
    """A cluster-wide list endpoint of kubernetes-asyncio."""

    kind: str
    api_version: str
    api_class: str
    list_method: str


DEFAULT_WATCH_TARGETS: tuple[WatchTarget, ...] = (
    WatchTarget("Namespace", "v1", "CoreV1Api", "list_namespace"),
    WatchTarget("Node", "v1", "CoreV1Api", "list_node"),
    WatchTarget("PersistentVolume", "v1", "CoreV1Api", "list_persistent_volume"),
    WatchTarget("ConfigMap", "v1", "CoreV1Api", "list_config_map_for_all_namespaces"),
    WatchTarget("Secret", "v1", "CoreV1Api", "list_secret_for_all_namespaces"),
    WatchTarget("ServiceAccount", "v1", "CoreV1Api", "list_service_account_for_all_namespaces"),
    WatchTarget("PersistentVolumeClaim", "v1", "CoreV1Api", "list_persistent_volume_claim_for_all_namespaces"),
    WatchTarget("Service", "v1", "CoreV1Api", "list_service_for_all_namespaces"),
    WatchTarget("Deployment", "apps/v1", "AppsV1Api", "list_deployment_for_all_namespaces"),
    WatchTarget("ReplicaSet", "apps/v1", "AppsV1Api", "list_replica_set_for_all_namespaces"),
    WatchTarget("StatefulSet", "apps/v1", "AppsV1Api", "list_stateful_set_for_all_namespaces"),
    WatchTarget("DaemonSet", "apps/v1", "AppsV1Api", "list_daemon_set_for_all_namespaces"),
    WatchTarget("Job", "batch/v1", "BatchV1Api", "list_job_for_all_namespaces"),
    WatchTarget("Pod", "v1", "CoreV1Api", "list_pod_for_all_namespaces"),
    WatchTarget("Ingress", "networking.k8s.io/v1", "NetworkingV1Api", "list_ingress_for_all_namespaces"),
    WatchTarget("Role", "rbac.authorization.k8s.io/v1", "RbacAuthorizationV1Api", "list_role_for_all_namespaces"),
    WatchTarget(
        "RoleBinding", "rbac.authorization.k8s.io/v1", "RbacAuthorizationV1Api", "list_role_binding_for_all_namespaces"
    ),
    WatchTarget("ClusterRole", "rbac.authorization.k8s.io/v1", "RbacAuthorizationV1Api", "list_cluster_role"),
    WatchTarget(
        "ClusterRoleBinding", "rbac.authorization.k8s.io/v1", "RbacAuthorizationV1Api", "list_cluster_role_binding"
    ),
)


def select_targets(kinds: list[str], targets: tuple[WatchTarget, ...] = DEFAULT_WATCH_TARGETS) -> tuple[WatchTarget, ...]:
    """Filter *targets* down to *kinds*; an empty list keeps them all.

    Raises:
        ValueError: a requested kind has no watch target.
    """
    if not kinds:
        return targets
    by_kind = {target.kind: target for target in targets}
    unknown = [kind for kind in kinds if kind not in by_kind]
    if unknown:
        raise ValueError(f"Unsupported watch kinds: {', '.join(unknown)}")
    return tuple(by_kind[kind] for kind in kinds)


def _is_expired(exc: Exception) -> bool:
    # kubernetes-asyncio may surface 410 Gone as an ApiException instead of an ERROR event.
    return isinstance(exc, WatchExpiredError) or getattr(exc, "status", None) == 410


class ResourceWatcher:
    """Streams watch events for every target and forwards them to *handler*.

    Args:
        handler:         Coroutine called with each ADDED/MODIFIED raw object.
        api_client:      kubernetes-asyncio ``ApiClient``.
        targets:         Endpoints to watch.
        timeout_seconds: Server-side timeout of one watch stream.
        sync_timeout:    Deadline for one handler call, in seconds.
    """

    def __init__(
        self,
        handler: Handler,
        api_client: Any,
        targets: tuple[WatchTarget, ...] = DEFAULT_WATCH_TARGETS,
        timeout_seconds: int = 300,
        sync_timeout: float = 30.0,
    ) -> None:
        self._handler = handler
        self._api_client = api_client
        self._targets = targets
        self._timeout_seconds = timeout_seconds
        self._sync_timeout = sync_timeout
        self._tasks: list[asyncio.Task[None]] = []
        self._resource_versions: dict[str, str] = {}

    @property
    def targets(self) -> tuple[WatchTarget, ...]:
        return self._targets

    async def start(self) -> None:
        for target in self._targets:
            task = asyncio.create_task(self._watch_loop(target), name=f"watch-{target.kind}")
            self._tasks.append(task)
        _logger.info("watchers_started", kinds=[target.kind for target in self._targets])

    async def stop(self) -> None:
        for task in self._tasks:
            if not task.done():
                task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()
        _logger.info("watchers_stopped")

    async def _watch_loop(self, target: WatchTarget) -> None:
        backoff = _INITIAL_BACKOFF
        while True:
            try:
                await self._stream(target)
                backoff = _INITIAL_BACKOFF
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                if _is_expired(exc) and self._resource_versions.pop(target.kind, None) is not None:
                    _logger.info("watch_relist", kind=target.kind, reason=str(exc))
                    watch_restarts_total.labels(kind=target.kind).inc()
                    continue
                _logger.warning(
                    "watch_stream_failed",
                    kind=target.kind,
                    error=str(exc),
                    retry_in_seconds=backoff,
                )
                await asyncio.sleep(backoff)
                backoff = min(backoff * 2, _MAX_BACKOFF)
            watch_restarts_total.labels(kind=target.kind).inc()

    async def _stream(self, target: WatchTarget) -> None:
        from kubernetes_asyncio import client as k8s_client  # type: ignore[import-untyped]
        from kubernetes_asyncio import watch as k8s_watch  # type: ignore[import-untyped]

        api = getattr(k8s_client, target.api_class)(self._api_client)
        list_fn = getattr(api, target.list_method)
        kwargs: dict[str, Any] = {"timeout_seconds": self._timeout_seconds, "allow_watch_bookmarks": True}
        resource_version = self._resource_versions.get(target.kind)
        if resource_version:
            kwargs["resource_version"] = resource_version
        async with k8s_watch.Watch() as stream:
            async for event in stream.stream(list_fn, **kwargs):
                raw = event.get("raw_object")
                if not isinstance(raw, Mapping):
                    raw = {}
                await self.handle_event(target, str(event.get("type", "")), raw)
                metadata = raw.get("metadata")
                if isinstance(metadata, Mapping) and metadata.get("resourceVersion"):
                    self._resource_versions[target.kind] = str(metadata["resourceVersion"])

    async def handle_event(self, target: WatchTarget, event_type: str, raw: Mapping[str, Any]) -> None:
        """Route one watch event.  Sync failures are logged and the event dropped."""
        if event_type == "ERROR":
            raise WatchExpiredError(f"{target.kind} watch ended: {raw.get('message', raw)}")
        metadata = raw.get("metadata") if isinstance(raw.get("metadata"), Mapping) else {}
        if event_type == "DELETED":
            # Nodes of deleted objects are kept; there is no tombstone path.
            _logger.debug("delete_event_ignored", kind=target.kind, name=metadata.get("name", ""))
            return
        if event_type not in ("ADDED", "MODIFIED"):
            return

        obj = dict(raw)
        if not obj.get("apiVersion"):
            obj["apiVersion"] = target.api_version
        if not obj.get("kind"):
            obj["kind"] = target.kind

        with structlog.contextvars.bound_contextvars(
            event_type=event_type,
            watch_kind=target.kind,
            object_namespace=metadata.get("namespace", ""),
            object_name=metadata.get("name", ""),
        ):
            try:
                await asyncio.wait_for(self._handler(obj), timeout=self._sync_timeout)
            except TimeoutError:
                _logger.error("sync_timed_out", timeout_seconds=self._sync_timeout)
            except GraphSyncError as exc:
                _logger.error("sync_event_dropped", error_type=type(exc).__name__, error=str(exc))
