"""Projection of raw Kubernetes objects into ResourceNode records.

The projector is deterministic apart from the ``last_updated`` stamp and
never raises: missing or malformed fields become empty defaults.
"""

from __future__ import annotations

import json
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from typing import Any

from kubegraph.models.resources import GroupVersionKind, Label, ResourceNode

_POD_KIND = "Pod"


def nested_string(obj: Any, *fields: str) -> str:
    """Return the string at ``obj[f0][f1]...`` or ``""`` if absent or not a string."""
    current = obj
    for name in fields:
        if not isinstance(current, Mapping) or name not in current:
            return ""
        current = current[name]
    return current if isinstance(current, str) else ""


def _stringify(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return ""
    if isinstance(value, (int, float)):
        return str(value)
    try:
        return json.dumps(value, sort_keys=True, separators=(",", ":"), default=str)
    except (TypeError, ValueError):
        return str(value)


def _labels(metadata: Mapping[str, Any]) -> frozenset[Label]:
    raw = metadata.get("labels")
    if not isinstance(raw, Mapping):
        return frozenset()
    return frozenset(Label(key=str(key), value=_stringify(value)) for key, value in raw.items())


class ResourceProjector:
    """Builds ResourceNode records for one cluster.

    Args:
        cluster_name: Tag stored on every node this projector produces.
        clock:        Source of ``last_updated``.  Defaults to UTC now.
    """

    def __init__(
        self,
        cluster_name: str = "",
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._cluster_name = cluster_name
        self._clock = clock or (lambda: datetime.now(tz=UTC))

    @property
    def cluster_name(self) -> str:
        return self._cluster_name

    def project(self, obj: Mapping[str, Any]) -> ResourceNode:
        gvk = GroupVersionKind.from_object(obj)
        raw_metadata = obj.get("metadata")
        metadata: Mapping[str, Any] = raw_metadata if isinstance(raw_metadata, Mapping) else {}

        node = ResourceNode(
            uid=nested_string(metadata, "uid"),
            group=gvk.group,
            version=gvk.version,
            kind=gvk.kind,
            name=nested_string(metadata, "name"),
            namespace=nested_string(metadata, "namespace"),
            cluster=self._cluster_name,
            labels=_labels(metadata),
            is_current=True,
            last_updated=self._clock(),
        )

        if gvk.kind == _POD_KIND:
            node.status_phase = nested_string(obj, "status", "phase")
            node.spec_node_name = nested_string(obj, "spec", "nodeName")

        spec = obj.get("spec")
        if isinstance(spec, Mapping):
            node.additional_fields = {f"spec_{key}": _stringify(value) for key, value in spec.items()}

        return node
