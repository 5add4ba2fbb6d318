"""Entry point for `python -m kubegraph`.

Usage:
    python -m kubegraph
    kubegraph
"""

from __future__ import annotations

from kubegraph.app import run

run()
