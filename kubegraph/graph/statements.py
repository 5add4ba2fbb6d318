"""Cypher statements and record codecs for the resource graph.

Every builder here is a pure function returning Statement values; nothing
in this module talks to the store.  Storage layout::

    (:KubernetesResource {uid, group, apiVersion, kind, name, namespace, ...})
        -[:HAS_LABEL]->(:Label {key, value})
        -[:HAS_RELATIONSHIP]->(:Relationship {relationshipType, targetResource, targetUID})
                                  -[:TARGETS]->(:KubernetesResource)

Internal graph ids are Neo4j element ids.
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from kubegraph.graph.errors import MarshalError
from kubegraph.models.resources import Label, RelationshipDescriptor, RelationshipEdge, ResourceNode


@dataclass(frozen=True)
class Statement:
    """One parameterised Cypher statement."""

    query: str
    parameters: dict[str, Any] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

FIND_BY_UID_QUERY = """
MATCH (n:KubernetesResource {uid: $uid})
OPTIONAL MATCH (n)-[:HAS_LABEL]->(l:Label)
WITH n, collect(l {.key, .value}) AS labels
RETURN elementId(n) AS graph_id, properties(n) AS props, labels
"""

FIND_BY_GRAPH_ID_QUERY = """
MATCH (n:KubernetesResource)
WHERE elementId(n) = $graph_id
OPTIONAL MATCH (n)-[:HAS_LABEL]->(l:Label)
WITH n, collect(l {.key, .value}) AS labels
RETURN elementId(n) AS graph_id, properties(n) AS props, labels
"""

FIND_RELATIONSHIPS_QUERY = """
MATCH (n:KubernetesResource)-[:HAS_RELATIONSHIP]->(r:Relationship)-[:TARGETS]->(t:KubernetesResource)
WHERE elementId(n) = $graph_id
RETURN elementId(r) AS graph_id,
       r.relationshipType AS relationship_type,
       r.targetResource AS target_resource,
       coalesce(r.targetUID, '') AS target_uid,
       elementId(t) AS target_graph_id,
       coalesce(t.name, '') AS target_name,
       coalesce(t.namespace, '') AS target_namespace
ORDER BY relationship_type, target_graph_id
"""

RESOLVE_UID_QUERY = """
MATCH (n:KubernetesResource {uid: $uid})
RETURN elementId(n) AS graph_id
"""

RESOLVE_NAME_QUERY = """
MATCH (n:KubernetesResource {name: $name})
WHERE n.kind = $kind
  AND ($group IS NULL OR coalesce(n.group, '') = $group)
  AND ($namespace = '' OR n.namespace = $namespace)
RETURN elementId(n) AS graph_id
ORDER BY n.uid
LIMIT 1
"""

CREATE_NODE_QUERY = """
CREATE (n:KubernetesResource)
SET n = $props
RETURN elementId(n) AS graph_id
"""

MERGE_NODE_QUERY = """
MATCH (n:KubernetesResource)
WHERE elementId(n) = $graph_id
SET n += $props
"""

DELETE_LABEL_QUERY = """
MATCH (n)-[:HAS_LABEL]->(l:Label {key: $key})
WHERE elementId(n) = $graph_id
DETACH DELETE l
"""

ADD_LABEL_QUERY = """
MATCH (n)
WHERE elementId(n) = $graph_id
CREATE (n)-[:HAS_LABEL]->(:Label {key: $key, value: $value})
"""

DELETE_RELATIONSHIPS_QUERY = """
MATCH (s)-[:HAS_RELATIONSHIP]->(r:Relationship)
WHERE elementId(s) = $graph_id
DETACH DELETE r
"""

CREATE_RELATIONSHIP_QUERY = """
MATCH (s)
WHERE elementId(s) = $source_id
MATCH (t)
WHERE elementId(t) = $target_id
CREATE (s)-[:HAS_RELATIONSHIP]->(r:Relationship $props)-[:TARGETS]->(t)
RETURN elementId(r) AS graph_id
"""


# ---------------------------------------------------------------------------
# Label reconciliation
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LabelDiff:
    """Label changes between a stored node and a fresh projection.

    ``changed`` holds the *new* value for keys present on both sides with a
    different value.  Changed labels are written as fresh entities and the
    stale entity for the same key is left in place.
    """

    added: list[Label]
    removed: list[Label]
    changed: list[Label]

    @property
    def empty(self) -> bool:
        return not (self.added or self.removed or self.changed)


def _sort_key(label: Label) -> tuple[str, str]:
    return (label.key, label.value)


def diff_labels(old: Iterable[Label], new: Iterable[Label]) -> LabelDiff:
    """Compute the key-level difference between two label sets.

    Every list in the result is sorted by key so the statements generated
    from it are deterministic.  ``removed`` has one entry per key even when
    the stored side carries duplicates of that key.
    """
    old_values: dict[str, set[str]] = {}
    first_old: dict[str, Label] = {}
    for label in sorted(old, key=_sort_key):
        old_values.setdefault(label.key, set()).add(label.value)
        first_old.setdefault(label.key, label)

    new_sorted = sorted(set(new), key=_sort_key)
    new_keys = {label.key for label in new_sorted}

    added = [label for label in new_sorted if label.key not in old_values]
    changed = [
        label for label in new_sorted if label.key in old_values and label.value not in old_values[label.key]
    ]
    removed = [first_old[key] for key in sorted(first_old) if key not in new_keys]
    return LabelDiff(added=added, removed=removed, changed=changed)


def label_delete_statements(graph_id: str, labels: Iterable[Label]) -> list[Statement]:
    """One delete block per label, matched by owning node id and label key."""
    return [Statement(DELETE_LABEL_QUERY, {"graph_id": graph_id, "key": label.key}) for label in labels]


def label_add_statements(graph_id: str, labels: Iterable[Label]) -> list[Statement]:
    """One block per label creating a fresh Label entity plus its ownership edge."""
    return [
        Statement(ADD_LABEL_QUERY, {"graph_id": graph_id, "key": label.key, "value": label.value})
        for label in labels
    ]


# ---------------------------------------------------------------------------
# Nodes
# ---------------------------------------------------------------------------


def node_properties(node: ResourceNode) -> dict[str, Any]:
    """Serialise the scalar fields of *node* into store properties.

    Labels and relationships are child entities and never appear here.

    Raises:
        MarshalError: the additional fields map is not JSON-serialisable.
    """
    try:
        additional = json.dumps(node.additional_fields, sort_keys=True)
        last_updated = node.last_updated.astimezone(UTC).isoformat()
    except (TypeError, ValueError, AttributeError) as exc:
        raise MarshalError(f"cannot serialise resource {node.uid!r}: {exc}") from exc
    return {
        "uid": node.uid,
        "group": node.group,
        "apiVersion": node.version,
        "kind": node.kind,
        "name": node.name,
        "namespace": node.namespace,
        "cluster": node.cluster,
        "status_phase": node.status_phase,
        "spec_nodeName": node.spec_node_name,
        "isCurrent": node.is_current,
        "lastUpdated": last_updated,
        "additionalFields": additional,
    }


def find_by_uid_statement(uid: str) -> Statement:
    return Statement(FIND_BY_UID_QUERY, {"uid": uid})


def find_by_graph_id_statement(graph_id: str) -> Statement:
    return Statement(FIND_BY_GRAPH_ID_QUERY, {"graph_id": graph_id})


def find_relationships_statement(graph_id: str) -> Statement:
    return Statement(FIND_RELATIONSHIPS_QUERY, {"graph_id": graph_id})


def create_node_statement(props: dict[str, Any]) -> Statement:
    return Statement(CREATE_NODE_QUERY, {"props": props})


def merge_node_statement(graph_id: str, props: dict[str, Any]) -> Statement:
    return Statement(MERGE_NODE_QUERY, {"graph_id": graph_id, "props": props})


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and value:
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            pass
    return datetime.fromtimestamp(0, tz=UTC)


def _parse_fields(value: Any) -> dict[str, str]:
    if not isinstance(value, str) or not value:
        return {}
    try:
        decoded = json.loads(value)
    except ValueError:
        return {}
    if not isinstance(decoded, dict):
        return {}
    return {str(key): str(item) for key, item in decoded.items()}


def node_from_record(record: Mapping[str, Any]) -> ResourceNode:
    """Rebuild a ResourceNode from a FIND_BY_* row."""
    props: Mapping[str, Any] = record.get("props") or {}
    labels = frozenset(
        Label(key=str(item["key"]), value=str(item.get("value") or ""))
        for item in record.get("labels") or []
        if item and item.get("key") is not None
    )
    return ResourceNode(
        uid=str(props.get("uid", "")),
        group=str(props.get("group") or ""),
        version=str(props.get("apiVersion") or ""),
        kind=str(props.get("kind") or ""),
        name=str(props.get("name") or ""),
        namespace=str(props.get("namespace") or ""),
        cluster=str(props.get("cluster") or ""),
        labels=labels,
        status_phase=str(props.get("status_phase") or ""),
        spec_node_name=str(props.get("spec_nodeName") or ""),
        additional_fields=_parse_fields(props.get("additionalFields")),
        is_current=bool(props.get("isCurrent", False)),
        last_updated=_parse_timestamp(props.get("lastUpdated")),
        graph_id=str(record.get("graph_id") or ""),
    )


def edge_from_record(record: Mapping[str, Any]) -> RelationshipEdge:
    return RelationshipEdge(
        relationship_type=str(record.get("relationship_type") or ""),
        target_resource=str(record.get("target_resource") or ""),
        target_graph_id=str(record.get("target_graph_id") or ""),
        target_uid=str(record.get("target_uid") or ""),
        graph_id=str(record.get("graph_id") or ""),
        target_name=str(record.get("target_name") or ""),
        target_namespace=str(record.get("target_namespace") or ""),
    )


# ---------------------------------------------------------------------------
# Relationships
# ---------------------------------------------------------------------------


def resolve_uid_statement(uid: str) -> Statement:
    return Statement(RESOLVE_UID_QUERY, {"uid": uid})


def resolve_name_statement(descriptor: RelationshipDescriptor) -> Statement:
    """Compound name lookup: kind + name (+ group when known, + namespace when set)."""
    target = descriptor.target_type
    return Statement(
        RESOLVE_NAME_QUERY,
        {
            "name": descriptor.target_name,
            "kind": target.kind,
            "group": target.group,
            "namespace": descriptor.target_namespace,
        },
    )


def delete_relationships_statement(source_id: str) -> Statement:
    return Statement(DELETE_RELATIONSHIPS_QUERY, {"graph_id": source_id})


def create_relationship_statement(
    source_id: str,
    target_id: str,
    descriptor: RelationshipDescriptor,
) -> Statement:
    props: dict[str, Any] = {
        "targetResource": descriptor.target_resource,
        "relationshipType": descriptor.relationship_type,
    }
    if descriptor.target_uid:
        props["targetUID"] = descriptor.target_uid
    return Statement(
        CREATE_RELATIONSHIP_QUERY,
        {"source_id": source_id, "target_id": target_id, "props": props},
    )
