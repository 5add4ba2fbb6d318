"""End-to-end sync pipeline tests.

Runs raw objects through projector -> node upsert -> rule engine ->
relationship replace against the in-memory graph store, exercising the
real statement builders and repositories together.
"""

from __future__ import annotations

import pytest

from kubegraph.collector.watcher import ResourceWatcher, WatchTarget
from kubegraph.graph.errors import IntegrityViolationError
from kubegraph.graph.nodes import NodeRepository
from kubegraph.graph.relationships import RelationshipRepository
from kubegraph.graph.schema import SchemaProvisioner
from kubegraph.sync.engine import GraphSyncEngine
from kubegraph.sync.projector import ResourceProjector
from tests.fakes import FakeGraphStore, make_object, make_pod


@pytest.fixture()
def engine(
    node_repository: NodeRepository,
    relationship_repository: RelationshipRepository,
    projector: ResourceProjector,
) -> GraphSyncEngine:
    return GraphSyncEngine(node_repository, relationship_repository, projector=projector)


def _namespace(name: str = "default", uid: str = "ns-default") -> dict:
    return make_object("Namespace", name, uid)


def _replicaset(uid: str = "67890") -> dict:
    return make_object("ReplicaSet", "web-7f9c", uid, api_version="apps/v1", namespace="default")


def _configmap(name: str = "test-config", uid: str = "cm-1") -> dict:
    return make_object("ConfigMap", name, uid, namespace="default", data={"key": "value"})


def _edge_summary(store: FakeGraphStore, uid: str) -> list[tuple[str, str]]:
    graph_id, _ = store.node_by_uid(uid)
    return sorted((props["relationshipType"], store.graph.nodes[dst]["uid"]) for _, dst, props in store.edges_of(graph_id))


class TestPipeline:
    async def test_pod_links_to_previously_ingested_targets(
        self, graph_store: FakeGraphStore, engine: GraphSyncEngine
    ) -> None:
        for obj in (_namespace(), _replicaset(), _configmap(), make_object("Node", "node1", "node-1")):
            await engine.sync(obj)

        result = await engine.sync(make_pod(owner_uids=["67890"], config_maps=["test-config"]))

        assert result.unresolved == 0
        assert _edge_summary(graph_store, "12345") == [
            ("belongs-to", "ns-default"),
            ("mount-volume", "cm-1"),
            ("owned-by", "67890"),
            ("scheduled-on", "node-1"),
        ]

    async def test_target_ingested_later_is_linked_on_resync(
        self, graph_store: FakeGraphStore, engine: GraphSyncEngine
    ) -> None:
        await engine.sync(_namespace())
        pod = make_pod(config_maps=["test-config"], node_name="")

        first = await engine.sync(pod)
        assert first.unresolved == 1
        assert _edge_summary(graph_store, "12345") == [("belongs-to", "ns-default")]

        await engine.sync(_configmap())
        await engine.sync(pod)
        assert _edge_summary(graph_store, "12345") == [("belongs-to", "ns-default"), ("mount-volume", "cm-1")]

    async def test_removed_volume_drops_its_edge(self, graph_store: FakeGraphStore, engine: GraphSyncEngine) -> None:
        for obj in (_namespace(), _configmap()):
            await engine.sync(obj)
        await engine.sync(make_pod(config_maps=["test-config"], node_name=""))
        await engine.sync(make_pod(config_maps=[], node_name=""))
        assert _edge_summary(graph_store, "12345") == [("belongs-to", "ns-default")]

    async def test_resync_is_idempotent(self, graph_store: FakeGraphStore, engine: GraphSyncEngine) -> None:
        for obj in (_namespace(), _replicaset(), _configmap()):
            await engine.sync(obj)
        pod = make_pod(labels={"app": "web"}, owner_uids=["67890"], config_maps=["test-config"], node_name="")

        await engine.sync(pod)
        nodes_before = len(graph_store.graph.nodes)
        labels_before = dict(graph_store.graph.labels)
        edges_before = _edge_summary(graph_store, "12345")

        await engine.sync(pod)

        assert len(graph_store.graph.nodes) == nodes_before
        assert graph_store.graph.labels == labels_before
        assert _edge_summary(graph_store, "12345") == edges_before

    async def test_label_updates_are_diffed(self, graph_store: FakeGraphStore, engine: GraphSyncEngine) -> None:
        await engine.sync(make_pod(labels={"app": "web", "team": "core"}))
        await engine.sync(make_pod(labels={"app": "web", "env": "prod"}))
        graph_id, _ = graph_store.node_by_uid("12345")
        assert graph_store.labels_of(graph_id) == [("app", "web"), ("env", "prod")]

    async def test_pod_fields_survive_round_trip(
        self, node_repository: NodeRepository, engine: GraphSyncEngine
    ) -> None:
        await engine.sync(make_pod(phase="Running", node_name="node1"))
        stored = await node_repository.find_by_uid("12345")
        assert stored.status_phase == "Running"
        assert stored.spec_node_name == "node1"
        assert stored.cluster == "test-cluster"
        assert stored.additional_fields["spec_nodeName"] == "node1"

    async def test_rbac_chain(self, graph_store: FakeGraphStore, engine: GraphSyncEngine) -> None:
        rbac = "rbac.authorization.k8s.io/v1"
        await engine.sync(make_object("Namespace", "shop", "ns-shop"))
        await engine.sync(make_object("ServiceAccount", "runner", "sa-1", namespace="shop"))
        await engine.sync(make_object("Role", "reader", "role-1", api_version=rbac, namespace="shop"))
        await engine.sync(
            make_object(
                "RoleBinding",
                "readers",
                "rb-1",
                api_version=rbac,
                namespace="shop",
                roleRef={"apiGroup": "rbac.authorization.k8s.io", "kind": "Role", "name": "reader"},
                subjects=[{"kind": "ServiceAccount", "name": "runner", "namespace": "shop"}],
            )
        )
        assert _edge_summary(graph_store, "rb-1") == [
            ("assign-to", "sa-1"),
            ("belongs-to", "ns-shop"),
            ("bind-role", "role-1"),
        ]

    async def test_cluster_binding_subject_links_to_its_service_account(
        self, graph_store: FakeGraphStore, engine: GraphSyncEngine
    ) -> None:
        rbac = "rbac.authorization.k8s.io/v1"
        await engine.sync(_namespace())
        await engine.sync(make_object("Namespace", "kube-system", "ns-kube-system"))
        await engine.sync(make_object("ServiceAccount", "default", "sa-default", namespace="kube-system"))
        await engine.sync(
            make_object(
                "ClusterRoleBinding",
                "system-default",
                "crb-1",
                api_version=rbac,
                roleRef={"apiGroup": "rbac.authorization.k8s.io", "kind": "ClusterRole", "name": "view"},
                subjects=[{"kind": "ServiceAccount", "name": "default", "namespace": "kube-system"}],
            )
        )
        assert _edge_summary(graph_store, "crb-1") == [("assign-to", "sa-default")]

    async def test_role_resource_names_do_not_guess_a_kind(
        self, graph_store: FakeGraphStore, engine: GraphSyncEngine
    ) -> None:
        await engine.sync(make_object("Namespace", "shop", "ns-shop"))
        await engine.sync(make_object("Secret", "db", "secret-db", namespace="shop"))
        await engine.sync(make_object("ConfigMap", "db", "cm-db", namespace="shop"))
        role = make_object(
            "Role",
            "db-reader",
            "role-db",
            api_version="rbac.authorization.k8s.io/v1",
            namespace="shop",
            rules=[{"apiGroups": [""], "resources": ["secrets"], "resourceNames": ["db"], "verbs": ["get"]}],
        )
        result = await engine.sync(role)
        assert result.unresolved == 1
        assert _edge_summary(graph_store, "role-db") == [("belongs-to", "ns-shop")]

    async def test_integrity_violation_surfaces(self, graph_store: FakeGraphStore, engine: GraphSyncEngine) -> None:
        graph_store.add_node(uid="12345", kind="Pod")
        graph_store.add_node(uid="12345", kind="Pod")
        with pytest.raises(IntegrityViolationError):
            await engine.sync(make_pod())


class TestBootstrapPath:
    async def test_schema_then_watch_events(self, graph_store: FakeGraphStore, engine: GraphSyncEngine) -> None:
        await SchemaProvisioner(graph_store).apply()  # type: ignore[arg-type]
        watcher = ResourceWatcher(
            handler=engine.sync,
            api_client=None,
            targets=(WatchTarget("Pod", "v1", "CoreV1Api", "list_pod_for_all_namespaces"),),
        )
        target = watcher.targets[0]
        raw = make_pod()
        del raw["apiVersion"]

        await watcher.handle_event(target, "ADDED", _namespace())
        await watcher.handle_event(target, "ADDED", raw)
        await watcher.handle_event(target, "DELETED", raw)

        _, props = graph_store.node_by_uid("12345")
        assert props["apiVersion"] == "v1"
        assert props["isCurrent"] is True
        assert _edge_summary(graph_store, "12345") == [("belongs-to", "ns-default")]
