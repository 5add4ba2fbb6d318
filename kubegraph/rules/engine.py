"""Relationship rule engine.

Evaluates the rule table against one raw object and returns the ordered
RelationshipDescriptors it implies.  The engine is pure: it never touches
the graph store, and unresolvable references are the relationship
repository's problem, not the engine's.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from kubegraph.models.resources import GroupVersionKind, RelationshipDescriptor
from kubegraph.observability.logging import get_logger
from kubegraph.rules.path import CompiledPath, compile_path
from kubegraph.rules.table import (
    CLUSTER_SCOPED_TYPES,
    DEFAULT_RULES,
    KIND_RULES,
    RelationshipRule,
    RuleKey,
)

_logger = get_logger("rules.engine")

_SCALARS = (str, int, float, bool)


@dataclass(frozen=True)
class _CompiledRule:
    rule: RelationshipRule
    path: CompiledPath


class RelationshipRuleEngine:
    """Derives relationship descriptors from a compiled rule table.

    Every path expression is compiled once, here.  A malformed entry raises
    PathQueryError from the constructor, so a bad table stops the process at
    startup instead of failing on each object.
    """

    def __init__(
        self,
        default_rules: tuple[RelationshipRule, ...] = DEFAULT_RULES,
        kind_rules: Mapping[RuleKey, tuple[RelationshipRule, ...]] | None = None,
        cluster_scoped_types: frozenset[str] = CLUSTER_SCOPED_TYPES,
    ) -> None:
        self._defaults = tuple(_CompiledRule(rule, compile_path(rule.path)) for rule in default_rules)
        table = KIND_RULES if kind_rules is None else kind_rules
        self._by_kind: dict[RuleKey, tuple[_CompiledRule, ...]] = {
            key: tuple(_CompiledRule(rule, compile_path(rule.path)) for rule in rules) for key, rules in table.items()
        }
        self._cluster_scoped = cluster_scoped_types
        _logger.debug(
            "rule_table_compiled",
            default_rules=len(self._defaults),
            kinds=len(self._by_kind),
        )

    def rules_for(self, gvk: GroupVersionKind) -> tuple[RelationshipRule, ...]:
        """Return the rules applied to objects of *gvk*, defaults first."""
        return tuple(compiled.rule for compiled in self._compiled_for(gvk))

    def build(self, obj: Mapping[str, Any]) -> list[RelationshipDescriptor]:
        """Derive the ordered relationship descriptors for *obj*."""
        gvk = GroupVersionKind.from_object(obj)
        namespace = _metadata(obj).get("namespace")
        source_namespace = namespace if isinstance(namespace, str) else ""

        descriptors: list[RelationshipDescriptor] = []
        for compiled in self._compiled_for(gvk):
            descriptors.extend(self._from_rule(obj, compiled, source_namespace))
        return descriptors

    def _compiled_for(self, gvk: GroupVersionKind) -> tuple[_CompiledRule, ...]:
        return self._defaults + self._by_kind.get((gvk.group, gvk.version, gvk.kind), ())

    def _from_rule(
        self,
        obj: Mapping[str, Any],
        compiled: _CompiledRule,
        source_namespace: str,
    ) -> list[RelationshipDescriptor]:
        rule = compiled.rule
        if rule.object_reference:
            return _from_references(compiled, obj, source_namespace)
        by_uid = compiled.path.last_key == "uid"
        target_namespace = "" if rule.target_resource in self._cluster_scoped else source_namespace

        descriptors: list[RelationshipDescriptor] = []
        for value in compiled.path.find(obj):
            if not isinstance(value, _SCALARS) or value == "":
                continue
            text = str(value)
            if by_uid:
                descriptors.append(
                    RelationshipDescriptor(
                        relationship_type=str(rule.relationship_type),
                        target_resource=rule.target_resource,
                        target_uid=text,
                        target_namespace=target_namespace,
                    )
                )
            else:
                descriptors.append(
                    RelationshipDescriptor(
                        relationship_type=str(rule.relationship_type),
                        target_resource=rule.target_resource,
                        target_name=text,
                        target_namespace=target_namespace,
                    )
                )
        return descriptors


def _from_references(
    compiled: _CompiledRule,
    obj: Mapping[str, Any],
    source_namespace: str,
) -> list[RelationshipDescriptor]:
    # A reference without its own namespace points into the source namespace.
    descriptors: list[RelationshipDescriptor] = []
    for ref in compiled.path.find(obj):
        if not isinstance(ref, Mapping):
            continue
        kind, name, namespace = ref.get("kind"), ref.get("name"), ref.get("namespace")
        if not (isinstance(kind, str) and kind and isinstance(name, str) and name):
            continue
        descriptors.append(
            RelationshipDescriptor(
                relationship_type=str(compiled.rule.relationship_type),
                target_resource=kind,
                target_name=name,
                target_namespace=namespace if isinstance(namespace, str) and namespace else source_namespace,
            )
        )
    return descriptors


def _metadata(obj: Mapping[str, Any]) -> Mapping[str, Any]:
    metadata = obj.get("metadata")
    return metadata if isinstance(metadata, Mapping) else {}
