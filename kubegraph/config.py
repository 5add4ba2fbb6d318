"""Configuration loading from environment variables."""

from __future__ import annotations

import os

from kubegraph.models.config import (
    GraphStoreConfig,
    KubeGraphConfig,
    LogConfig,
    MetricsConfig,
    SyncConfig,
    WatchConfig,
)
from kubegraph.observability.logging import LOG_FORMATS


def _env(key: str, default: str = "") -> str:
    return os.environ.get(f"KUBEGRAPH_{key}", default)


def _env_int(key: str, default: int, min_val: int | None = None, max_val: int | None = None) -> int:
    val = int(_env(key, str(default)))
    if min_val is not None:
        val = max(val, min_val)
    if max_val is not None:
        val = min(val, max_val)
    return val


def _env_list(key: str) -> list[str]:
    return [item.strip() for item in _env(key, "").split(",") if item.strip()]


def _validate_log_level(value: str) -> str:
    valid = {"debug", "info", "warning", "error"}
    if value.lower() not in valid:
        raise ValueError(f"Invalid log level: {value}. Must be one of {valid}")
    return value.lower()


def _validate_log_format(value: str) -> str:
    if value.lower() not in LOG_FORMATS:
        raise ValueError(f"Invalid log format: {value}. Must be one of {LOG_FORMATS}")
    return value.lower()


def _validate_uri(value: str) -> str:
    schemes = ("bolt://", "bolt+s://", "bolt+ssc://", "neo4j://", "neo4j+s://", "neo4j+ssc://")
    if not value.startswith(schemes):
        raise ValueError(f"Invalid graph store URI: {value}")
    return value


def _validate_metrics_port(value: int) -> int:
    if value != 0 and not 1024 <= value <= 65535:
        raise ValueError(f"Invalid metrics port: {value}. Use 0 to disable or 1024-65535")
    return value


def load_config() -> KubeGraphConfig:
    """Load configuration from KUBEGRAPH_* environment variables."""
    return KubeGraphConfig(
        cluster_name=_env("CLUSTER_NAME", ""),
        graph_store=GraphStoreConfig(
            uri=_validate_uri(_env("NEO4J_URI", "bolt://localhost:7687")),
            user=_env("NEO4J_USER", "neo4j"),
            password=_env("NEO4J_PASSWORD", ""),
            database=_env("NEO4J_DATABASE", "neo4j"),
            connection_timeout=_env_int("NEO4J_CONNECTION_TIMEOUT", 30, min_val=1, max_val=300),
        ),
        watch=WatchConfig(
            kinds=_env_list("WATCH_KINDS"),
            timeout_seconds=_env_int("WATCH_TIMEOUT", 300, min_val=30, max_val=3600),
        ),
        sync=SyncConfig(
            timeout_seconds=_env_int("SYNC_TIMEOUT", 30, min_val=1, max_val=300),
        ),
        metrics=MetricsConfig(
            port=_validate_metrics_port(_env_int("METRICS_PORT", 9090)),
        ),
        log=LogConfig(
            level=_validate_log_level(_env("LOG_LEVEL", "info")),
            format=_validate_log_format(_env("LOG_FORMAT", "json")),
        ),
    )
