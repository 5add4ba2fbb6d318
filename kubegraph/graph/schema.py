"""Graph schema provisioning.

Declares the constraint and indexes the repositories rely on:

* a unique constraint on ``KubernetesResource.uid`` (the upsert path);
* a non-unique compound index on ``(kind, group, name, namespace)`` for
  name-based relationship resolution;
* exact-match indexes on the fields the read side filters on;
* indexes on the Label and Relationship child entities.

Every statement is ``IF NOT EXISTS``, so applying the schema again is a
no-op.  Schema operations cannot share a transaction with data writes,
hence one auto-commit call per statement.
"""

from __future__ import annotations

from kubegraph.graph.errors import SchemaError, TransactionError
from kubegraph.graph.statements import Statement
from kubegraph.graph.store import GraphStore
from kubegraph.observability.logging import get_logger

_logger = get_logger("graph.schema")

_RESOURCE_INDEXED_FIELDS = ("kind", "namespace", "name", "status_phase", "spec_nodeName", "isCurrent", "cluster")

SCHEMA_STATEMENTS: tuple[Statement, ...] = (
    Statement(
        "CREATE CONSTRAINT resource_uid_unique IF NOT EXISTS "
        "FOR (n:KubernetesResource) REQUIRE n.uid IS UNIQUE"
    ),
    Statement(
        "CREATE INDEX resource_name_lookup IF NOT EXISTS "
        "FOR (n:KubernetesResource) ON (n.kind, n.group, n.name, n.namespace)"
    ),
    *(
        Statement(f"CREATE INDEX resource_{field.lower()} IF NOT EXISTS FOR (n:KubernetesResource) ON (n.{field})")
        for field in _RESOURCE_INDEXED_FIELDS
    ),
    Statement("CREATE INDEX label_key IF NOT EXISTS FOR (l:Label) ON (l.key)"),
    Statement("CREATE INDEX relationship_type IF NOT EXISTS FOR (r:Relationship) ON (r.relationshipType)"),
    Statement("CREATE INDEX relationship_target_resource IF NOT EXISTS FOR (r:Relationship) ON (r.targetResource)"),
    Statement("CREATE INDEX relationship_target_uid IF NOT EXISTS FOR (r:Relationship) ON (r.targetUID)"),
)


class SchemaProvisioner:
    """Applies SCHEMA_STATEMENTS once at process start."""

    def __init__(self, store: GraphStore, statements: tuple[Statement, ...] = SCHEMA_STATEMENTS) -> None:
        self._store = store
        self._statements = statements

    async def apply(self) -> int:
        """Apply every schema statement in order.  Returns the number applied.

        Raises:
            SchemaError: the store rejected a statement.
        """
        for statement in self._statements:
            try:
                await self._store.execute(statement)
            except TransactionError as exc:
                _logger.error("schema_statement_failed", query=statement.query, error=str(exc))
                raise SchemaError(f"schema provisioning failed: {exc}") from exc
            _logger.debug("schema_statement_applied", query=statement.query)
        _logger.info("schema_applied", statements=len(self._statements))
        return len(self._statements)
