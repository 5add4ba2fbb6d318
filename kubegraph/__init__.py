"""kubegraph: mirrors live Kubernetes objects into a property graph."""

__version__ = "0.1.0"
