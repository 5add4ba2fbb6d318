"""Error taxonomy for the graph synchronization engine.

Only ResourceNotFoundError is ever recovered locally (it drives the create
path of a node upsert and the skip path of relationship resolution).  Every
other error surfaces to the caller, which decides whether to drop the
triggering event or stop ingesting.
"""

from __future__ import annotations


class GraphSyncError(Exception):
    """Base class for every error raised by kubegraph."""


class ResourceNotFoundError(GraphSyncError):
    """A lookup by UID or graph id returned zero rows."""

    def __init__(self, identifier: str, detail: str = "") -> None:
        message = f"resource not found: {identifier}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)
        self.identifier = identifier


class IntegrityViolationError(GraphSyncError):
    """A lookup on the unique UID index returned more than one row."""

    def __init__(self, uid: str, matches: int) -> None:
        super().__init__(f"external uid {uid!r} matched {matches} nodes; expected at most one")
        self.uid = uid
        self.matches = matches


class TransactionError(GraphSyncError):
    """The graph store rejected a query, mutation or commit."""


class SchemaError(TransactionError):
    """Applying the schema document failed."""


class MarshalError(GraphSyncError):
    """A node record could not be serialised into store properties."""


class PathQueryError(GraphSyncError):
    """A rule-table path expression is malformed.  Always a configuration bug."""

    def __init__(self, expression: str, reason: str) -> None:
        super().__init__(f"invalid path expression {expression!r}: {reason}")
        self.expression = expression
        self.reason = reason
