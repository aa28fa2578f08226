"""Base node type."""

from stepgraph.core.graph.nodes.base.node import Node, normalize_update

__all__ = ["Node", "normalize_update"]
