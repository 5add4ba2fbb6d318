"""Logging and Prometheus metrics for kubegraph."""
