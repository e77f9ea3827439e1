"""In-memory graph with incremental edge diffing.

GraphState is not thread-safe; its owning manager serialises access.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from k0watch.graph.models import (
    ChangeType,
    EdgeChange,
    GraphDelta,
    GraphEdge,
    GraphNode,
    GraphSnapshot,
    NodeChange,
    NodeKey,
)
from k0watch.graph.relations import node_from_object, outgoing_edges
from k0watch.kube.client import WatchEventType


class GraphState:
    """Node table keyed by ``(kind, namespace, name)`` plus published edges.

    Every mutation returns the GraphDelta it caused, or None when the input
    changed nothing (for example the same resourceVersion delivered twice).
    """

    def __init__(self) -> None:
        self._nodes: dict[NodeKey, GraphNode] = {}
        self._by_uid: dict[str, NodeKey] = {}
        self._edges_out: dict[str, set[GraphEdge]] = {}
        self._edges_in: dict[str, set[GraphEdge]] = {}

    def __len__(self) -> int:
        return len(self._nodes)

    def get(self, key: NodeKey) -> GraphNode | None:
        return self._nodes.get(key)

    def by_uid(self, uid: str) -> GraphNode | None:
        key = self._by_uid.get(uid)
        return self._nodes.get(key) if key is not None else None

    def nodes(self) -> list[GraphNode]:
        return sorted(self._nodes.values(), key=lambda n: n.key)

    def edges(self) -> list[GraphEdge]:
        return sorted(e for edges in self._edges_out.values() for e in edges)

    def snapshot(self) -> GraphSnapshot:
        return GraphSnapshot(nodes=self.nodes(), edges=self.edges())

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def apply(self, kind: str, event_type: WatchEventType, obj: Mapping[str, Any]) -> GraphDelta | None:
        node = node_from_object(kind, obj)
        if event_type is WatchEventType.DELETED:
            return self.remove(node.key)
        return self.upsert(node)

    def upsert(self, node: GraphNode) -> GraphDelta | None:
        existing = self._nodes.get(node.key)
        if existing is not None and existing.uid == node.uid:
            if node.resource_version and existing.resource_version == node.resource_version:
                return None

        node_changes: list[NodeChange] = []
        edge_changes: list[EdgeChange] = []

        if existing is not None and existing.uid != node.uid:
            # Same name, new object: the old one was deleted while we weren't looking.
            removed = self.remove(node.key)
            if removed is not None:
                node_changes.extend(removed.nodes)
                edge_changes.extend(removed.edges)
            existing = None

        change = ChangeType.UPDATE if existing is not None else ChangeType.ADD
        renamed_from = self._by_uid.get(node.uid)
        if renamed_from is not None and renamed_from != node.key:
            del self._nodes[renamed_from]
            change = ChangeType.UPDATE

        self._nodes[node.key] = node
        self._by_uid[node.uid] = node.key
        node_changes.append(NodeChange(change, node))
        edge_changes.extend(self._recompute_edges(node))
        return GraphDelta(nodes=tuple(node_changes), edges=tuple(edge_changes))

    def remove(self, key: NodeKey) -> GraphDelta | None:
        node = self._nodes.pop(key, None)
        if node is None:
            return None
        if self._by_uid.get(node.uid) == key:
            del self._by_uid[node.uid]

        touching = self._edges_out.pop(node.uid, set()) | self._edges_in.pop(node.uid, set())
        for edge in touching:
            self._edges_in.get(edge.to_uid, set()).discard(edge)
            self._edges_out.get(edge.from_uid, set()).discard(edge)
        return GraphDelta(
            nodes=(NodeChange(ChangeType.DELETE, node),),
            edges=tuple(EdgeChange(ChangeType.DELETE, e) for e in sorted(touching)),
        )

    def reconcile(self, kind: str, objects: Iterable[Mapping[str, Any]]) -> list[GraphDelta]:
        """Bring the nodes of ``kind`` in line with a fresh List result.

        Unchanged objects produce nothing; objects missing from the list are
        deleted.
        """
        deltas: list[GraphDelta] = []
        seen: set[NodeKey] = set()
        for obj in objects:
            node = node_from_object(kind, obj)
            seen.add(node.key)
            delta = self.upsert(node)
            if delta is not None:
                deltas.append(delta)
        stale = [key for key in self._nodes if key[0] == kind and key not in seen]
        for key in sorted(stale):
            delta = self.remove(key)
            if delta is not None:
                deltas.append(delta)
        return deltas

    # ------------------------------------------------------------------
    # Edge diffing
    # ------------------------------------------------------------------

    def _recompute_edges(self, node: GraphNode) -> list[EdgeChange]:
        """Diff the edges touching ``node`` against the published ones."""
        desired = outgoing_edges(node, self._nodes, self._by_uid)
        for other in self._nodes.values():
            if other.uid == node.uid:
                continue
            desired.update(
                e for e in outgoing_edges(other, self._nodes, self._by_uid) if e.to_uid == node.uid
            )

        current = self._edges_out.get(node.uid, set()) | self._edges_in.get(node.uid, set())
        added = desired - current
        deleted = current - desired

        for edge in deleted:
            self._edges_out.get(edge.from_uid, set()).discard(edge)
            self._edges_in.get(edge.to_uid, set()).discard(edge)
        for edge in added:
            self._edges_out.setdefault(edge.from_uid, set()).add(edge)
            self._edges_in.setdefault(edge.to_uid, set()).add(edge)

        changes = [EdgeChange(ChangeType.DELETE, e) for e in sorted(deleted)]
        changes.extend(EdgeChange(ChangeType.ADD, e) for e in sorted(added))
        return changes
