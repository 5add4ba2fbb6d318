"""Graph store persistence for resource nodes and their relationships.

Submodules
----------
errors        -- GraphSyncError and its subclasses.
statements    -- Cypher text, parameter builders and record codecs.
store         -- GraphStore: Neo4j driver ownership and transactions.
schema        -- SchemaProvisioner: constraint and index provisioning.
nodes         -- NodeRepository: create-or-update keyed by external UID.
relationships -- RelationshipRepository: full-replace of outgoing edges.
"""

from kubegraph.graph.errors import (
    GraphSyncError,
    IntegrityViolationError,
    MarshalError,
    PathQueryError,
    ResourceNotFoundError,
    SchemaError,
    TransactionError,
)
from kubegraph.graph.nodes import NodeRepository, resolve_graph_id
from kubegraph.graph.relationships import RelationshipRepository
from kubegraph.graph.schema import SchemaProvisioner
from kubegraph.graph.store import GraphStore, GraphTransaction

__all__ = [
    "GraphStore",
    "GraphSyncError",
    "GraphTransaction",
    "IntegrityViolationError",
    "MarshalError",
    "NodeRepository",
    "PathQueryError",
    "RelationshipRepository",
    "ResourceNotFoundError",
    "SchemaError",
    "SchemaProvisioner",
    "TransactionError",
    "resolve_graph_id",
]
