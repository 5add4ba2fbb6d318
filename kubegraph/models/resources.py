"""Resource graph data structures.

ResourceNode is the canonical record the projector builds from one raw
Kubernetes object.  RelationshipDescriptor is the unresolved reference the
rule engine derives from the same object; once the relationship repository
finds the target node it becomes a persisted RelationshipEdge.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

NAMESPACE_TYPE = "v1/Namespace"


class RelationshipType(StrEnum):
    """Relationship tags produced by the built-in rule table."""

    OWNED_BY = "owned-by"
    BELONGS_TO = "belongs-to"
    MOUNT_VOLUME = "mount-volume"
    ENV_CONFIG = "env-config"
    USE_ACCOUNT = "use-account"
    SCHEDULED_ON = "scheduled-on"
    BIND_VOLUME = "bind-volume"
    PULL_SECRET = "pull-secret"
    ROUTE_TRAFFIC = "route-traffic"
    TLS_SECRET = "tls-secret"
    GRANT_ACCESS = "grant-access"
    BIND_ROLE = "bind-role"
    ASSIGN_TO = "assign-to"


@dataclass(frozen=True)
class GroupVersionKind:
    """Type descriptor of a Kubernetes object.  The core group is ``""``."""

    group: str = ""
    version: str = ""
    kind: str = ""

    @classmethod
    def from_object(cls, obj: Mapping[str, Any]) -> GroupVersionKind:
        """Read ``apiVersion`` and ``kind`` from a raw object, tolerating garbage."""
        api_version = obj.get("apiVersion")
        kind = obj.get("kind")
        if not isinstance(api_version, str):
            api_version = ""
        group, _, version = api_version.rpartition("/")
        return cls(group=group, version=version, kind=kind if isinstance(kind, str) else "")


@dataclass(frozen=True)
class Label:
    """A metadata label.  Stored as a child entity owned by one node."""

    key: str
    value: str


@dataclass(frozen=True)
class TargetType:
    """Parsed form of a rule's target-resource-type string.

    ``"ConfigMap"`` is kind only (group unknown, ``group`` is None),
    ``"v1/ConfigMap"`` is version/kind in the core group and
    ``"rbac.authorization.k8s.io/v1/Role"`` is group/version/kind.
    """

    group: str | None
    version: str
    kind: str

    @classmethod
    def parse(cls, target_resource: str) -> TargetType:
        parts = target_resource.split("/", 2)
        if len(parts) == 1:
            return cls(group=None, version="", kind=parts[0])
        if len(parts) == 2:
            return cls(group="", version=parts[0], kind=parts[1])
        return cls(group=parts[0], version=parts[1], kind=parts[2])


@dataclass(frozen=True)
class RelationshipDescriptor:
    """A relationship before its target has been resolved to a graph node.

    Exactly one of ``target_uid`` (UID reference) or ``target_name``
    (name reference, qualified by ``target_resource`` and
    ``target_namespace``) is set.
    """

    relationship_type: str
    target_resource: str = ""
    target_uid: str = ""
    target_name: str = ""
    target_namespace: str = ""

    @property
    def by_uid(self) -> bool:
        return bool(self.target_uid)

    @property
    def target_type(self) -> TargetType:
        return TargetType.parse(self.target_resource)


@dataclass(frozen=True)
class RelationshipEdge:
    """A persisted, resolved relationship from a source node to a target node."""

    relationship_type: str
    target_resource: str
    target_graph_id: str
    target_uid: str = ""
    graph_id: str = ""
    target_name: str = ""
    target_namespace: str = ""


@dataclass
class ResourceNode:
    """Graph record for one Kubernetes object, keyed by its external UID.

    ``graph_id`` is assigned by the graph store and is empty until the node
    has been looked up or created.
    """

    uid: str
    group: str = ""
    version: str = ""
    kind: str = ""
    name: str = ""
    namespace: str = ""
    cluster: str = ""
    labels: frozenset[Label] = frozenset()
    status_phase: str = ""  # Pod only
    spec_node_name: str = ""  # Pod only
    additional_fields: dict[str, str] = field(default_factory=dict)
    is_current: bool = True
    last_updated: datetime = field(default_factory=lambda: datetime.now(tz=UTC))
    graph_id: str = ""
    relationships: list[RelationshipEdge] = field(default_factory=list)

    def label_map(self) -> dict[str, str]:
        return {label.key: label.value for label in self.labels}
