"""Relationship repository.

``RelationshipRepository.save`` replaces a node's whole outgoing
relationship set in one transaction: delete every existing Relationship
entity hanging off the source, then create one per descriptor whose target
resolves.  There is no incremental diff, so an edge survives a resync only
if it is derived again.

Targets that cannot be resolved (typically not ingested yet) are logged
and dropped.  They are not retried or queued; the next sync of the source
object picks them up once the target exists.  Name references always
match on kind, so one whose target type carries no kind never resolves.
"""

from __future__ import annotations

from collections.abc import Sequence

from kubegraph.graph.errors import ResourceNotFoundError
from kubegraph.graph.nodes import resolve_graph_id
from kubegraph.graph.statements import (
    create_relationship_statement,
    delete_relationships_statement,
    edge_from_record,
    find_relationships_statement,
    resolve_name_statement,
)
from kubegraph.graph.store import GraphStore, GraphTransaction
from kubegraph.models.resources import RelationshipDescriptor, RelationshipEdge
from kubegraph.observability.logging import get_logger
from kubegraph.observability.metrics import relationships_unresolved_total, relationships_written_total

_logger = get_logger("graph.relationships")


class RelationshipRepository:
    """Full-replace persistence of a node's outgoing relationships."""

    def __init__(self, store: GraphStore) -> None:
        self._store = store

    async def save(self, source_uid: str, descriptors: Sequence[RelationshipDescriptor]) -> list[RelationshipEdge]:
        """Replace the outgoing relationships of *source_uid* with *descriptors*.

        The edge delete always runs, even when nothing resolves, so stale
        edges are cleared on every resync.  Returns the edges written.

        Raises:
            ResourceNotFoundError:   the source node does not exist yet.  Node
                                     upsert must run before relationship sync.
            IntegrityViolationError: a UID lookup matched several nodes.
            TransactionError:        the store rejected a statement or the commit;
                                     the previous edge set is left untouched.
        """
        async with self._store.transaction() as tx:
            source_id = await resolve_graph_id(tx, source_uid)

            resolved: list[tuple[RelationshipDescriptor, str]] = []
            for descriptor in descriptors:
                target_id = await self._resolve_target(tx, descriptor)
                if target_id is None:
                    relationships_unresolved_total.labels(relationship_type=descriptor.relationship_type).inc()
                    _logger.info(
                        "relationship_target_unresolved",
                        source_uid=source_uid,
                        relationship_type=descriptor.relationship_type,
                        target_resource=descriptor.target_resource,
                        target_uid=descriptor.target_uid,
                        target_name=descriptor.target_name,
                        target_namespace=descriptor.target_namespace,
                    )
                    continue
                resolved.append((descriptor, target_id))

            await tx.run(delete_relationships_statement(source_id))

            edges: list[RelationshipEdge] = []
            for descriptor, target_id in resolved:
                rows = await tx.run(create_relationship_statement(source_id, target_id, descriptor))
                edges.append(
                    RelationshipEdge(
                        relationship_type=descriptor.relationship_type,
                        target_resource=descriptor.target_resource,
                        target_graph_id=target_id,
                        target_uid=descriptor.target_uid,
                        graph_id=str(rows[0]["graph_id"]) if rows else "",
                        target_name=descriptor.target_name,
                        target_namespace=descriptor.target_namespace,
                    )
                )

        for edge in edges:
            relationships_written_total.labels(relationship_type=edge.relationship_type).inc()
        _logger.debug(
            "relationships_replaced",
            source_uid=source_uid,
            derived=len(descriptors),
            written=len(edges),
            skipped=len(descriptors) - len(edges),
        )
        return edges

    async def _resolve_target(self, tx: GraphTransaction, descriptor: RelationshipDescriptor) -> str | None:
        if descriptor.by_uid:
            try:
                return await resolve_graph_id(tx, descriptor.target_uid)
            except ResourceNotFoundError:
                return None
        if not descriptor.target_type.kind:
            # A bare name could match any kind of object.
            return None
        rows = await tx.run(resolve_name_statement(descriptor))
        if not rows:
            return None
        return str(rows[0]["graph_id"])

    async def find_by_source(self, source_uid: str) -> list[RelationshipEdge]:
        """Return the persisted outgoing edges of *source_uid*.

        Raises:
            ResourceNotFoundError: the source node does not exist.
        """
        async with self._store.transaction() as tx:
            source_id = await resolve_graph_id(tx, source_uid)
            rows = await tx.run(find_relationships_statement(source_id))
        return [edge_from_record(row) for row in rows]
