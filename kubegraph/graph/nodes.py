"""Node upsert repository.

``NodeRepository.save`` is create-or-update keyed by external UID, all in
one transaction:

1. look the node up on the unique UID index (zero rows: create path, more
   than one row: IntegrityViolationError);
2. on update, diff the stored labels against the projection and delete
   removed keys, add new keys (and new values of changed keys);
3. merge the node's scalar properties by internal id.

Labels never go through the merge, so label entities whose key and value
are unchanged keep their identity across saves.
"""

from __future__ import annotations

from kubegraph.graph.errors import IntegrityViolationError, ResourceNotFoundError, TransactionError
from kubegraph.graph.statements import (
    LabelDiff,
    Statement,
    create_node_statement,
    diff_labels,
    edge_from_record,
    find_by_graph_id_statement,
    find_by_uid_statement,
    find_relationships_statement,
    label_add_statements,
    label_delete_statements,
    merge_node_statement,
    node_from_record,
    node_properties,
    resolve_uid_statement,
)
from kubegraph.graph.store import GraphStore, GraphTransaction
from kubegraph.models.resources import ResourceNode
from kubegraph.observability.logging import get_logger
from kubegraph.observability.metrics import label_mutations_total, nodes_upserted_total

_logger = get_logger("graph.nodes")


async def resolve_graph_id(tx: GraphTransaction, uid: str) -> str:
    """Return the internal graph id of the node with external UID *uid*.

    Raises:
        ResourceNotFoundError:   no node carries *uid*.
        IntegrityViolationError: more than one node carries *uid*.
    """
    rows = await tx.run(resolve_uid_statement(uid))
    if not rows:
        raise ResourceNotFoundError(uid, "by uid")
    if len(rows) > 1:
        raise IntegrityViolationError(uid, len(rows))
    return str(rows[0]["graph_id"])


async def _find_one(tx: GraphTransaction, statement: Statement, identifier: str) -> ResourceNode:
    rows = await tx.run(statement)
    if not rows:
        raise ResourceNotFoundError(identifier)
    if len(rows) > 1:
        raise IntegrityViolationError(identifier, len(rows))
    return node_from_record(rows[0])


class NodeRepository:
    """Create-or-update of ResourceNode records keyed by external UID."""

    def __init__(self, store: GraphStore) -> None:
        self._store = store

    async def save(self, node: ResourceNode) -> str:
        """Upsert *node* and return its internal graph id.

        The whole upsert commits atomically; on any error nothing is written.

        Raises:
            MarshalError:            *node* cannot be serialised.
            IntegrityViolationError: the UID index holds duplicates.
            TransactionError:        the store rejected a statement or the commit.
        """
        props = node_properties(node)

        async with self._store.transaction() as tx:
            try:
                existing: ResourceNode | None = await _find_one(tx, find_by_uid_statement(node.uid), node.uid)
            except ResourceNotFoundError:
                existing = None

            if existing is None:
                graph_id = await self._create(tx, node, props)
                diff = LabelDiff(added=sorted(node.labels, key=lambda label: label.key), removed=[], changed=[])
                operation = "create"
            else:
                graph_id = existing.graph_id
                diff = diff_labels(existing.labels, node.labels)
                await tx.run_all(label_delete_statements(graph_id, diff.removed))
                await tx.run_all(label_add_statements(graph_id, [*diff.added, *diff.changed]))
                # Labels are excluded from props so retained label entities survive the merge.
                await tx.run(merge_node_statement(graph_id, props))
                operation = "update"

        node.graph_id = graph_id
        nodes_upserted_total.labels(operation=operation).inc()
        label_mutations_total.labels(operation="add").inc(len(diff.added) + len(diff.changed))
        label_mutations_total.labels(operation="remove").inc(len(diff.removed))
        _logger.debug(
            "node_saved",
            operation=operation,
            uid=node.uid,
            kind=node.kind,
            namespace=node.namespace,
            name=node.name,
            graph_id=graph_id,
            labels_added=len(diff.added),
            labels_removed=len(diff.removed),
            labels_changed=len(diff.changed),
        )
        return graph_id

    async def _create(self, tx: GraphTransaction, node: ResourceNode, props: dict[str, object]) -> str:
        rows = await tx.run(create_node_statement(props))
        if not rows:
            raise TransactionError(f"create returned no id for uid {node.uid!r}")
        graph_id = str(rows[0]["graph_id"])
        await tx.run_all(label_add_statements(graph_id, sorted(node.labels, key=lambda label: label.key)))
        return graph_id

    async def find_by_uid(self, uid: str) -> ResourceNode:
        """Return the stored node for external UID *uid*, labels and edges included.

        Raises:
            ResourceNotFoundError: no node carries *uid*.
        """
        return await self._find_hydrated(find_by_uid_statement(uid), uid)

    async def find_by_graph_id(self, graph_id: str) -> ResourceNode:
        """Return the stored node with internal id *graph_id*.

        Raises:
            ResourceNotFoundError: no such node.
        """
        return await self._find_hydrated(find_by_graph_id_statement(graph_id), graph_id)

    async def _find_hydrated(self, statement: Statement, identifier: str) -> ResourceNode:
        async with self._store.transaction() as tx:
            node = await _find_one(tx, statement, identifier)
            rows = await tx.run(find_relationships_statement(node.graph_id))
        node.relationships = [edge_from_record(row) for row in rows]
        return node
