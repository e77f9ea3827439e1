"""Dependency graph of k0rdent resources and its diff engine."""

from k0watch.graph.manager import GraphManager
from k0watch.graph.models import (
    ChangeType,
    EdgeChange,
    GraphDelta,
    GraphEdge,
    GraphNode,
    GraphSnapshot,
    NodeChange,
    Relation,
)
from k0watch.graph.state import GraphState

__all__ = [
    "ChangeType",
    "EdgeChange",
    "GraphDelta",
    "GraphEdge",
    "GraphManager",
    "GraphNode",
    "GraphSnapshot",
    "GraphState",
    "NodeChange",
    "Relation",
]
