"""Configuration data structures."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class GraphStoreConfig:
    """Neo4j / Bolt graph store configuration."""

    uri: str = "bolt://localhost:7687"
    user: str = "neo4j"
    password: str = ""
    database: str = "neo4j"
    connection_timeout: int = 30


@dataclass
class WatchConfig:
    """Kubernetes watch source configuration."""

    kinds: list[str] = field(default_factory=list)  # empty means every default target
    timeout_seconds: int = 300


@dataclass
class SyncConfig:
    """Per-object sync configuration."""

    timeout_seconds: int = 30


@dataclass
class MetricsConfig:
    """Prometheus exporter configuration."""

    port: int = 9090


@dataclass
class LogConfig:
    """Logging configuration."""

    level: str = "info"
    format: str = "json"  # json | console


@dataclass
class KubeGraphConfig:
    """Top-level kubegraph configuration."""

    cluster_name: str = ""
    graph_store: GraphStoreConfig = field(default_factory=GraphStoreConfig)
    watch: WatchConfig = field(default_factory=WatchConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)
    metrics: MetricsConfig = field(default_factory=MetricsConfig)
    log: LogConfig = field(default_factory=LogConfig)
