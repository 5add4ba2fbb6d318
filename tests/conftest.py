"""Shared fixtures for kubegraph tests."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from kubegraph.graph.nodes import NodeRepository
from kubegraph.graph.relationships import RelationshipRepository
from kubegraph.sync.projector import ResourceProjector
from tests.fakes import FakeGraphStore

FIXED_NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=UTC)


@pytest.fixture()
def graph_store() -> FakeGraphStore:
    return FakeGraphStore()


@pytest.fixture()
def node_repository(graph_store: FakeGraphStore) -> NodeRepository:
    return NodeRepository(graph_store)  # type: ignore[arg-type]


@pytest.fixture()
def relationship_repository(graph_store: FakeGraphStore) -> RelationshipRepository:
    return RelationshipRepository(graph_store)  # type: ignore[arg-type]


@pytest.fixture()
def projector() -> ResourceProjector:
    return ResourceProjector(cluster_name="test-cluster", clock=lambda: FIXED_NOW)
