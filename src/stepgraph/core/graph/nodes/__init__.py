"""Node package initialization.

Exposes node types and helpers for building workflows.
"""

from stepgraph.core.graph.nodes.base.node import Node, normalize_update
from stepgraph.core.graph.nodes.tools import ToolNode, tools_condition

__all__ = [
    # Base node types
    "Node",
    "ToolNode",

    # Helpers
    "normalize_update",
    "tools_condition",
]
