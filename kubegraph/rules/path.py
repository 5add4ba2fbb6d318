"""Tolerant path queries over raw Kubernetes object trees.

Supports the subset of kubectl JSONPath the rule table needs::

    .metadata.ownerReferences[*].uid
    {.spec.template.spec.containers[*].envFrom[*].configMapRef.name}
    .metadata.annotations['kubernetes.io/change-cause']
    .spec.containers[0].image

Missing keys, out-of-range indexes and type mismatches along the way
yield no match instead of an error.  Only a malformed expression raises.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from kubegraph.graph.errors import PathQueryError

_TOKEN = re.compile(
    r"""\.(?P<key>[A-Za-z0-9_\-]+)"""
    r"""|\[(?:(?P<wildcard>\*)|(?P<index>-?\d+)|'(?P<single>[^']*)'|"(?P<double>[^"]*)")\]"""
)


class SegmentKind(StrEnum):
    KEY = "key"
    WILDCARD = "wildcard"
    INDEX = "index"


@dataclass(frozen=True)
class Segment:
    kind: SegmentKind
    value: str | int | None = None


@dataclass(frozen=True)
class CompiledPath:
    """A parsed path expression, reusable across objects."""

    expression: str
    segments: tuple[Segment, ...]

    @property
    def last_key(self) -> str:
        """Name of the final segment when it is a key lookup, else ``""``."""
        last = self.segments[-1]
        return str(last.value) if last.kind is SegmentKind.KEY else ""

    def find(self, obj: Any) -> list[Any]:
        """Return every value the path reaches in *obj*, in document order."""
        current: list[Any] = [obj]
        for segment in self.segments:
            matched: list[Any] = []
            for value in current:
                matched.extend(_step(value, segment))
            if not matched:
                return []
            current = matched
        return [value for value in current if value is not None]


def _step(value: Any, segment: Segment) -> list[Any]:
    if segment.kind is SegmentKind.KEY:
        if isinstance(value, Mapping) and segment.value in value:
            return [value[segment.value]]
        return []
    if segment.kind is SegmentKind.WILDCARD:
        if isinstance(value, list):
            return list(value)
        if isinstance(value, Mapping):
            return list(value.values())
        return []
    if isinstance(value, list):
        index = int(segment.value)  # type: ignore[arg-type]
        if -len(value) <= index < len(value):
            return [value[index]]
    return []


def compile_path(expression: str) -> CompiledPath:
    """Parse *expression* into a CompiledPath.

    Raises:
        PathQueryError: the expression is empty or not valid path syntax.
    """
    body = expression.strip()
    if body.startswith("{") or body.endswith("}"):
        if not (body.startswith("{") and body.endswith("}")):
            raise PathQueryError(expression, "unbalanced braces")
        body = body[1:-1].strip()
    if not body:
        raise PathQueryError(expression, "empty expression")
    if body[0] not in ".[":
        body = "." + body

    segments: list[Segment] = []
    pos = 0
    while pos < len(body):
        match = _TOKEN.match(body, pos)
        if match is None:
            raise PathQueryError(expression, f"unexpected {body[pos]!r} at offset {pos}")
        if match.group("key") is not None:
            segments.append(Segment(SegmentKind.KEY, match.group("key")))
        elif match.group("wildcard") is not None:
            segments.append(Segment(SegmentKind.WILDCARD))
        elif match.group("index") is not None:
            segments.append(Segment(SegmentKind.INDEX, int(match.group("index"))))
        else:
            quoted = match.group("single")
            if quoted is None:
                quoted = match.group("double")
            segments.append(Segment(SegmentKind.KEY, quoted))
        pos = match.end()

    return CompiledPath(expression=expression, segments=tuple(segments))


def query_path(obj: Any, expression: str) -> list[Any]:
    """Compile *expression* and evaluate it against *obj* in one step."""
    return compile_path(expression).find(obj)
