"""Prometheus collectors for the graph synchronization pipeline.

All collectors are module-level so every component shares one registry.
Label values are kept low-cardinality: resource kinds, relationship types
and fixed operation names only, never names or UIDs.
"""

from __future__ import annotations

from prometheus_client import Counter, Histogram, start_http_server

sync_total = Counter(
    "kubegraph_sync_total",
    "Resource objects processed by the sync engine.",
    ["kind", "outcome"],
)

sync_duration_seconds = Histogram(
    "kubegraph_sync_duration_seconds",
    "Wall time of one node + relationship sync.",
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

nodes_upserted_total = Counter(
    "kubegraph_nodes_upserted_total",
    "Resource nodes written to the graph store.",
    ["operation"],
)

label_mutations_total = Counter(
    "kubegraph_label_mutations_total",
    "Label child entities added or removed.",
    ["operation"],
)

relationships_written_total = Counter(
    "kubegraph_relationships_written_total",
    "Relationship entities created during relationship syncs.",
    ["relationship_type"],
)

relationships_unresolved_total = Counter(
    "kubegraph_relationships_unresolved_total",
    "Relationship descriptors dropped because the target was not found.",
    ["relationship_type"],
)

watch_restarts_total = Counter(
    "kubegraph_watch_restarts_total",
    "Watch streams restarted after an error or server-side timeout.",
    ["kind"],
)


def start_metrics_server(port: int) -> bool:
    """Expose the default registry on *port*.  Returns False when disabled."""
    if port <= 0:
        return False
    start_http_server(port)
    return True
