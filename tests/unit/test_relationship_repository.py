"""Tests for RelationshipRepository full-replace semantics."""

from __future__ import annotations

import pytest

from kubegraph.graph import statements as q
from kubegraph.graph.errors import IntegrityViolationError, ResourceNotFoundError, TransactionError
from kubegraph.graph.relationships import RelationshipRepository
from kubegraph.models.resources import RelationshipDescriptor
from tests.fakes import FakeGraphStore

_OWNED_BY = RelationshipDescriptor("owned-by", "", target_uid="rs-1", target_namespace="default")
_NAMESPACE = RelationshipDescriptor("belongs-to", "v1/Namespace", target_name="default")
_CONFIG = RelationshipDescriptor("mount-volume", "v1/ConfigMap", target_name="test-config", target_namespace="default")


def _seed(store: FakeGraphStore) -> dict[str, str]:
    return {
        "pod": store.add_node(uid="pod-1", group="", kind="Pod", name="web-0", namespace="default"),
        "rs": store.add_node(uid="rs-1", group="apps", kind="ReplicaSet", name="web", namespace="default"),
        "ns": store.add_node(uid="ns-1", group="", kind="Namespace", name="default", namespace=""),
        "cm": store.add_node(uid="cm-1", group="", kind="ConfigMap", name="test-config", namespace="default"),
        "cm_other": store.add_node(uid="cm-2", group="", kind="ConfigMap", name="test-config", namespace="other"),
    }


class TestSave:
    async def test_writes_one_edge_per_resolved_descriptor(
        self, graph_store: FakeGraphStore, relationship_repository: RelationshipRepository
    ) -> None:
        ids = _seed(graph_store)
        edges = await relationship_repository.save("pod-1", [_OWNED_BY, _NAMESPACE, _CONFIG])

        assert [(e.relationship_type, e.target_graph_id) for e in edges] == [
            ("owned-by", ids["rs"]),
            ("belongs-to", ids["ns"]),
            ("mount-volume", ids["cm"]),
        ]
        stored = graph_store.edges_of(ids["pod"])
        assert len(stored) == 3
        assert stored[0][2] == {"targetResource": "", "relationshipType": "owned-by", "targetUID": "rs-1"}
        assert all(edge.graph_id for edge in edges)

    async def test_delete_runs_before_creates(
        self, graph_store: FakeGraphStore, relationship_repository: RelationshipRepository
    ) -> None:
        _seed(graph_store)
        await relationship_repository.save("pod-1", [_NAMESPACE])
        queries = graph_store.queries()
        assert queries.index(q.DELETE_RELATIONSHIPS_QUERY) < queries.index(q.CREATE_RELATIONSHIP_QUERY)
        assert queries.count(q.DELETE_RELATIONSHIPS_QUERY) == 1

    async def test_resync_replaces_the_whole_edge_set(
        self, graph_store: FakeGraphStore, relationship_repository: RelationshipRepository
    ) -> None:
        ids = _seed(graph_store)
        await relationship_repository.save("pod-1", [_OWNED_BY, _NAMESPACE, _CONFIG])
        await relationship_repository.save("pod-1", [_NAMESPACE])

        stored = graph_store.edges_of(ids["pod"])
        assert [(props["relationshipType"], dst) for _, dst, props in stored] == [("belongs-to", ids["ns"])]

    async def test_zero_resolvable_targets_still_clears_edges(
        self, graph_store: FakeGraphStore, relationship_repository: RelationshipRepository
    ) -> None:
        ids = _seed(graph_store)
        await relationship_repository.save("pod-1", [_CONFIG])
        graph_store.statements.clear()

        missing = RelationshipDescriptor("mount-volume", "v1/Secret", target_name="absent", target_namespace="default")
        edges = await relationship_repository.save("pod-1", [missing])

        assert edges == []
        assert q.DELETE_RELATIONSHIPS_QUERY in graph_store.queries()
        assert q.CREATE_RELATIONSHIP_QUERY not in graph_store.queries()
        assert graph_store.edges_of(ids["pod"]) == []

    async def test_empty_descriptor_list_still_clears_edges(
        self, graph_store: FakeGraphStore, relationship_repository: RelationshipRepository
    ) -> None:
        ids = _seed(graph_store)
        await relationship_repository.save("pod-1", [_NAMESPACE])
        assert await relationship_repository.save("pod-1", []) == []
        assert graph_store.edges_of(ids["pod"]) == []

    async def test_unresolved_targets_are_skipped(
        self, graph_store: FakeGraphStore, relationship_repository: RelationshipRepository
    ) -> None:
        _seed(graph_store)
        dangling = RelationshipDescriptor("owned-by", "", target_uid="not-ingested-yet")
        edges = await relationship_repository.save("pod-1", [dangling, _NAMESPACE])
        assert [e.relationship_type for e in edges] == ["belongs-to"]

    async def test_name_resolution_is_namespace_qualified(
        self, graph_store: FakeGraphStore, relationship_repository: RelationshipRepository
    ) -> None:
        ids = _seed(graph_store)
        other = RelationshipDescriptor("mount-volume", "v1/ConfigMap", target_name="test-config", target_namespace="other")
        edges = await relationship_repository.save("pod-1", [other])
        assert edges[0].target_graph_id == ids["cm_other"]

    async def test_name_resolution_filters_group(
        self, graph_store: FakeGraphStore, relationship_repository: RelationshipRepository
    ) -> None:
        _seed(graph_store)
        wrong_group = RelationshipDescriptor("owned-by", "batch/v1/ReplicaSet", target_name="web", target_namespace="default")
        assert await relationship_repository.save("pod-1", [wrong_group]) == []

    async def test_kind_only_target_ignores_group(
        self, graph_store: FakeGraphStore, relationship_repository: RelationshipRepository
    ) -> None:
        ids = _seed(graph_store)
        owner = RelationshipDescriptor("owned-by", "ReplicaSet", target_name="web", target_namespace="default")
        edges = await relationship_repository.save("pod-1", [owner])
        assert edges[0].target_graph_id == ids["rs"]

    async def test_name_resolution_never_crosses_kinds(
        self, graph_store: FakeGraphStore, relationship_repository: RelationshipRepository
    ) -> None:
        ids = _seed(graph_store)
        graph_store.add_node(uid="a-secret", group="", kind="Secret", name="test-config", namespace="default")
        wanted = RelationshipDescriptor("mount-volume", "v1/ConfigMap", target_name="test-config", target_namespace="default")
        edges = await relationship_repository.save("pod-1", [wanted])
        assert [e.target_graph_id for e in edges] == [ids["cm"]]

    async def test_reference_without_kind_stays_unresolved(
        self, graph_store: FakeGraphStore, relationship_repository: RelationshipRepository
    ) -> None:
        _seed(graph_store)
        bare = RelationshipDescriptor("grant-access", "", target_name="default")
        edges = await relationship_repository.save("pod-1", [bare, _NAMESPACE])
        assert [e.relationship_type for e in edges] == ["belongs-to"]
        resolves = [s for s in graph_store.statements if s.query == q.RESOLVE_NAME_QUERY]
        assert [s.parameters["kind"] for s in resolves] == ["Namespace"]


class TestFailures:
    async def test_missing_source_is_fatal(
        self, graph_store: FakeGraphStore, relationship_repository: RelationshipRepository
    ) -> None:
        _seed(graph_store)
        with pytest.raises(ResourceNotFoundError):
            await relationship_repository.save("never-upserted", [_NAMESPACE])
        assert q.DELETE_RELATIONSHIPS_QUERY not in graph_store.queries()

    async def test_duplicate_target_uid_is_integrity_violation(
        self, graph_store: FakeGraphStore, relationship_repository: RelationshipRepository
    ) -> None:
        _seed(graph_store)
        graph_store.add_node(uid="rs-1", kind="ReplicaSet", name="web-dup")
        with pytest.raises(IntegrityViolationError):
            await relationship_repository.save("pod-1", [_OWNED_BY])

    async def test_failed_create_keeps_previous_edges(self) -> None:
        store = FakeGraphStore()
        ids = _seed(store)
        repository = RelationshipRepository(store)  # type: ignore[arg-type]
        await repository.save("pod-1", [_NAMESPACE, _CONFIG])

        store.fail_when = lambda statement: statement.query == q.CREATE_RELATIONSHIP_QUERY
        with pytest.raises(TransactionError):
            await repository.save("pod-1", [_OWNED_BY])

        assert sorted(props["relationshipType"] for _, _, props in store.edges_of(ids["pod"])) == [
            "belongs-to",
            "mount-volume",
        ]


class TestFindBySource:
    async def test_lists_persisted_edges(
        self, graph_store: FakeGraphStore, relationship_repository: RelationshipRepository
    ) -> None:
        ids = _seed(graph_store)
        await relationship_repository.save("pod-1", [_CONFIG, _NAMESPACE])
        edges = await relationship_repository.find_by_source("pod-1")
        assert [(e.relationship_type, e.target_name) for e in edges] == [
            ("belongs-to", "default"),
            ("mount-volume", "test-config"),
        ]
        assert edges[1].target_graph_id == ids["cm"]

    async def test_unknown_source_raises(self, relationship_repository: RelationshipRepository) -> None:
        with pytest.raises(ResourceNotFoundError):
            await relationship_repository.find_by_source("nope")
