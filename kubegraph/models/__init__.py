"""Core data structures for kubegraph."""

from kubegraph.models.config import KubeGraphConfig
from kubegraph.models.resources import (
    GroupVersionKind,
    Label,
    RelationshipDescriptor,
    RelationshipEdge,
    RelationshipType,
    ResourceNode,
    TargetType,
)

__all__ = [
    "GroupVersionKind",
    "KubeGraphConfig",
    "Label",
    "RelationshipDescriptor",
    "RelationshipEdge",
    "RelationshipType",
    "ResourceNode",
    "TargetType",
]
