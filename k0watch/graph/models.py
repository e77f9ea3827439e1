"""Data structures for the resource dependency graph."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any


class Relation(StrEnum):
    """Types of relationships between graph nodes."""

    OWNED_BY = "owned-by"
    USES_TEMPLATE = "uses-template"
    TARGETS_CLUSTER = "targets-cluster"


class ChangeType(StrEnum):
    ADD = "add"
    UPDATE = "update"
    DELETE = "delete"


NodeKey = tuple[str, str, str]


@dataclass(frozen=True)
class GraphNode:
    """A node in the dependency graph representing one custom resource."""

    kind: str
    namespace: str
    name: str
    uid: str
    resource_version: str = ""
    attributes: dict[str, Any] = field(default_factory=dict, hash=False)
    labels: dict[str, str] = field(default_factory=dict, hash=False)
    owner_uids: tuple[str, ...] = ()

    @property
    def key(self) -> NodeKey:
        """Return the unique key for this node."""
        return (self.kind, self.namespace, self.name)

    @property
    def id(self) -> str:
        return node_id(self.kind, self.namespace, self.name)


def node_id(kind: str, namespace: str, name: str) -> str:
    return f"{kind}:{namespace}/{name}"


@dataclass(frozen=True, order=True)
class GraphEdge:
    """A derived, typed edge between two nodes identified by uid."""

    from_uid: str
    to_uid: str
    relation: Relation


@dataclass(frozen=True)
class NodeChange:
    type: ChangeType
    node: GraphNode


@dataclass(frozen=True)
class EdgeChange:
    type: ChangeType
    edge: GraphEdge


@dataclass(frozen=True)
class GraphDelta:
    """Every node and edge change produced by one input event.

    Delivered as one message so subscribers never observe a node without
    the edge changes it caused.
    """

    nodes: tuple[NodeChange, ...] = ()
    edges: tuple[EdgeChange, ...] = ()
    sequence: int = 0
    overflowed: bool = False

    def __bool__(self) -> bool:
        return bool(self.nodes or self.edges)


@dataclass
class GraphSnapshot:
    """Point-in-time view of a subscription's graph."""

    nodes: list[GraphNode] = field(default_factory=list)
    edges: list[GraphEdge] = field(default_factory=list)
