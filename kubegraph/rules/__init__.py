"""Relationship derivation.

Submodules
----------
path   -- tolerant path expressions evaluated against raw objects.
table  -- the static relationship rule table, keyed by group/version/kind.
engine -- RelationshipRuleEngine: evaluates the table into descriptors.
"""

from kubegraph.rules.engine import RelationshipRuleEngine
from kubegraph.rules.path import CompiledPath, compile_path, query_path
from kubegraph.rules.table import CLUSTER_SCOPED_TYPES, DEFAULT_RULES, KIND_RULES, RelationshipRule

__all__ = [
    "CLUSTER_SCOPED_TYPES",
    "CompiledPath",
    "DEFAULT_RULES",
    "KIND_RULES",
    "RelationshipRule",
    "RelationshipRuleEngine",
    "compile_path",
    "query_path",
]
