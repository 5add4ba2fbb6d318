"""Collector package for kubegraph.

Provides the Kubernetes watch streams that feed raw objects into the sync
engine.

Submodules
----------
watcher -- ResourceWatcher: one watch task per resource kind, restart with back-off.
"""

from kubegraph.collector.watcher import DEFAULT_WATCH_TARGETS, ResourceWatcher, WatchTarget, select_targets

__all__ = ["DEFAULT_WATCH_TARGETS", "ResourceWatcher", "WatchTarget", "select_targets"]
