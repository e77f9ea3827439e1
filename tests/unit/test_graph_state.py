"""Tests for GraphState node upserts and incremental edge diffing."""

from __future__ import annotations

from typing import Any

from k0watch.graph.models import ChangeType, EdgeChange, GraphDelta, GraphEdge, Relation
from k0watch.graph.relations import (
    CLUSTER_DEPLOYMENT_KIND,
    MULTI_CLUSTER_SERVICE_KIND,
    SERVICE_TEMPLATE_KIND,
    node_from_object,
    selector_matches,
)
from k0watch.graph.state import GraphState
from k0watch.kube.client import CLUSTER_DEPLOYMENT, MULTI_CLUSTER_SERVICE, SERVICE_TEMPLATE, WatchEventType

ST = "ServiceTemplate"
CD = "ClusterDeployment"
MCS = "MultiClusterService"


def _meta(
    name: str,
    namespace: str = "team-a",
    uid: str | None = None,
    rv: str = "1",
    labels: dict[str, str] | None = None,
    owners: list[str] | None = None,
) -> dict[str, Any]:
    meta: dict[str, Any] = {
        "name": name,
        "namespace": namespace,
        "uid": uid if uid is not None else f"uid-{name}",
        "resourceVersion": rv,
    }
    if labels:
        meta["labels"] = labels
    if owners:
        meta["ownerReferences"] = [{"uid": o, "kind": "Owner", "name": o} for o in owners]
    return meta


def _st(name: str, **kw: Any) -> dict[str, Any]:
    return {"metadata": _meta(name, **kw), "spec": {"version": "1.0.0", "helm": {"chartRef": {"name": name}}}}


def _cd(name: str, templates: tuple[str, ...] = (), **kw: Any) -> dict[str, Any]:
    return {
        "metadata": _meta(name, **kw),
        "spec": {
            "template": "aws-standalone",
            "credential": "aws-cred",
            "serviceSpec": {"services": [{"name": t, "template": t} for t in templates]},
        },
        "status": {"conditions": [{"type": "Ready", "status": "True"}]},
    }


def _mcs(name: str, match_labels: dict[str, str] | None = None, **kw: Any) -> dict[str, Any]:
    return {
        "metadata": _meta(name, **kw),
        "spec": {"clusterSelector": {"matchLabels": match_labels or {}}, "serviceSpec": {"services": []}},
    }


def _edge_changes(delta: GraphDelta | None, change: ChangeType) -> list[GraphEdge]:
    assert delta is not None
    return [c.edge for c in delta.edges if c.type is change]


def _add(state: GraphState, kind: str, obj: dict[str, Any]) -> GraphDelta | None:
    return state.apply(kind, WatchEventType.ADDED, obj)


# ---------------------------------------------------------------------------
# Node summaries
# ---------------------------------------------------------------------------


class TestNodeFromObject:
    def test_cluster_deployment_summary(self) -> None:
        node = node_from_object(CD, _cd("c1", templates=("ingress", "ingress", "dns")))
        assert node.key == (CD, "team-a", "c1")
        assert node.uid == "uid-c1"
        assert node.attributes["serviceTemplates"] == ["ingress", "dns"]
        assert node.attributes["ready"] is True
        assert node.attributes["template"] == "aws-standalone"

    def test_missing_uid_is_synthesised_from_key(self) -> None:
        node = node_from_object(ST, _st("ingress", uid=""))
        assert node.uid == "ServiceTemplate:team-a/ingress"
        assert node.id == node.uid

    def test_owner_uids_collected(self) -> None:
        node = node_from_object(CD, _cd("c1", owners=["uid-parent"]))
        assert node.owner_uids == ("uid-parent",)

    def test_kind_names_follow_watched_resources(self) -> None:
        assert (SERVICE_TEMPLATE_KIND, CLUSTER_DEPLOYMENT_KIND, MULTI_CLUSTER_SERVICE_KIND) == (ST, CD, MCS)
        assert SERVICE_TEMPLATE_KIND == SERVICE_TEMPLATE.kind
        assert CLUSTER_DEPLOYMENT_KIND == CLUSTER_DEPLOYMENT.kind
        assert MULTI_CLUSTER_SERVICE_KIND == MULTI_CLUSTER_SERVICE.kind

    def test_empty_selector_matches_everything(self) -> None:
        assert selector_matches({}, {})
        assert selector_matches({}, {"env": "prod"})
        assert selector_matches({"env": "prod"}, {"env": "prod", "team": "a"})
        assert not selector_matches({"env": "prod"}, {"env": "dev"})


# ---------------------------------------------------------------------------
# Upserts
# ---------------------------------------------------------------------------


class TestUpsert:
    def test_first_sighting_is_add(self) -> None:
        state = GraphState()
        delta = _add(state, ST, _st("ingress"))
        assert delta is not None
        assert [c.type for c in delta.nodes] == [ChangeType.ADD]
        assert delta.edges == ()
        assert len(state) == 1

    def test_same_resource_version_twice_is_silent(self) -> None:
        state = GraphState()
        _add(state, ST, _st("ingress", rv="7"))
        assert _add(state, ST, _st("ingress", rv="7")) is None

    def test_new_resource_version_is_update(self) -> None:
        state = GraphState()
        _add(state, ST, _st("ingress", rv="7"))
        delta = state.apply(ST, WatchEventType.MODIFIED, _st("ingress", rv="8"))
        assert delta is not None
        assert [c.type for c in delta.nodes] == [ChangeType.UPDATE]

    def test_uid_change_under_same_name_is_delete_then_add(self) -> None:
        state = GraphState()
        _add(state, ST, _st("ingress", uid="old"))
        delta = _add(state, ST, _st("ingress", uid="new", rv="2"))
        assert delta is not None
        assert [(c.type, c.node.uid) for c in delta.nodes] == [
            (ChangeType.DELETE, "old"),
            (ChangeType.ADD, "new"),
        ]
        assert state.by_uid("old") is None
        assert state.by_uid("new") is not None

    def test_rename_keeps_identity_as_update(self) -> None:
        state = GraphState()
        _add(state, ST, _st("ingress", uid="u1"))
        delta = _add(state, ST, _st("ingress-v2", uid="u1", rv="2"))
        assert delta is not None
        assert [c.type for c in delta.nodes] == [ChangeType.UPDATE]
        assert state.get((ST, "team-a", "ingress")) is None
        assert state.get((ST, "team-a", "ingress-v2")) is not None
        assert len(state) == 1

    def test_delete_of_unknown_node_is_silent(self) -> None:
        state = GraphState()
        assert state.apply(ST, WatchEventType.DELETED, _st("ghost")) is None


# ---------------------------------------------------------------------------
# Edges
# ---------------------------------------------------------------------------


class TestEdges:
    def test_uses_template_edge_added_with_later_node(self) -> None:
        state = GraphState()
        _add(state, ST, _st("ingress"))
        delta = _add(state, CD, _cd("c1", templates=("ingress",)))
        assert _edge_changes(delta, ChangeType.ADD) == [GraphEdge("uid-c1", "uid-ingress", Relation.USES_TEMPLATE)]

    def test_edge_appears_when_target_arrives_second(self) -> None:
        state = GraphState()
        first = _add(state, CD, _cd("c1", templates=("ingress",)))
        assert first is not None and first.edges == ()
        delta = _add(state, ST, _st("ingress"))
        assert _edge_changes(delta, ChangeType.ADD) == [GraphEdge("uid-c1", "uid-ingress", Relation.USES_TEMPLATE)]

    def test_template_in_other_namespace_is_not_linked(self) -> None:
        state = GraphState()
        _add(state, ST, _st("ingress", namespace="team-b"))
        delta = _add(state, CD, _cd("c1", templates=("ingress",)))
        assert delta is not None and delta.edges == ()

    def test_owned_by_edge_and_its_removal_with_the_owner(self) -> None:
        state = GraphState()
        _add(state, CD, _cd("parent"))
        delta = _add(state, ST, _st("child", owners=["uid-parent"]))
        edge = GraphEdge("uid-child", "uid-parent", Relation.OWNED_BY)
        assert _edge_changes(delta, ChangeType.ADD) == [edge]

        removed = state.apply(CD, WatchEventType.DELETED, _cd("parent"))
        assert removed is not None
        assert [c.type for c in removed.nodes] == [ChangeType.DELETE]
        assert _edge_changes(removed, ChangeType.DELETE) == [edge]
        assert state.edges() == []

    def test_owner_reference_added_by_update_then_child_deleted(self) -> None:
        state = GraphState()
        _add(state, ST, _st("b"))
        _add(state, ST, _st("a"))
        edge = GraphEdge("uid-a", "uid-b", Relation.OWNED_BY)

        updated = state.apply(ST, WatchEventType.MODIFIED, _st("a", rv="2", owners=["uid-b"]))
        assert updated is not None
        assert [c.type for c in updated.nodes] == [ChangeType.UPDATE]
        assert updated.edges == (EdgeChange(ChangeType.ADD, edge),)

        deleted = state.apply(ST, WatchEventType.DELETED, _st("a", rv="3", owners=["uid-b"]))
        assert deleted is not None
        assert [(c.type, c.node.name) for c in deleted.nodes] == [(ChangeType.DELETE, "a")]
        assert deleted.edges == (EdgeChange(ChangeType.DELETE, edge),)

    def test_selector_targets_matching_clusters_only(self) -> None:
        state = GraphState()
        _add(state, CD, _cd("prod", labels={"env": "prod"}))
        _add(state, CD, _cd("dev", labels={"env": "dev"}))
        delta = _add(state, MCS, _mcs("svc", match_labels={"env": "prod"}))
        assert _edge_changes(delta, ChangeType.ADD) == [GraphEdge("uid-svc", "uid-prod", Relation.TARGETS_CLUSTER)]

    def test_empty_selector_targets_every_cluster(self) -> None:
        state = GraphState()
        _add(state, CD, _cd("a"))
        _add(state, CD, _cd("b", labels={"env": "dev"}))
        delta = _add(state, MCS, _mcs("svc"))
        assert sorted(e.to_uid for e in _edge_changes(delta, ChangeType.ADD)) == ["uid-a", "uid-b"]

    def test_label_change_moves_selector_edge(self) -> None:
        state = GraphState()
        _add(state, MCS, _mcs("svc", match_labels={"env": "prod"}))
        first = _add(state, CD, _cd("c1", labels={"env": "prod"}))
        edge = GraphEdge("uid-svc", "uid-c1", Relation.TARGETS_CLUSTER)
        assert _edge_changes(first, ChangeType.ADD) == [edge]

        delta = state.apply(CD, WatchEventType.MODIFIED, _cd("c1", labels={"env": "dev"}, rv="2"))
        assert delta is not None
        assert [c.type for c in delta.nodes] == [ChangeType.UPDATE]
        assert delta.edges == (EdgeChange(ChangeType.DELETE, edge),)

    def test_delete_removes_every_touching_edge_in_one_delta(self) -> None:
        state = GraphState()
        _add(state, ST, _st("ingress"))
        _add(state, CD, _cd("c1", templates=("ingress",)))
        _add(state, MCS, _mcs("svc"))
        assert len(state.edges()) == 2

        delta = state.apply(CD, WatchEventType.DELETED, _cd("c1"))
        assert delta is not None
        assert len(delta.nodes) == 1
        assert {e.relation for e in _edge_changes(delta, ChangeType.DELETE)} == {
            Relation.USES_TEMPLATE,
            Relation.TARGETS_CLUSTER,
        }
        assert state.edges() == []


# ---------------------------------------------------------------------------
# Reconcile
# ---------------------------------------------------------------------------


class TestReconcile:
    def test_identical_relist_produces_nothing(self) -> None:
        state = GraphState()
        objects = [_st("a", rv="3"), _st("b", rv="4")]
        assert len(state.reconcile(ST, objects)) == 2
        assert state.reconcile(ST, objects) == []

    def test_missing_objects_are_deleted(self) -> None:
        state = GraphState()
        state.reconcile(ST, [_st("a"), _st("b")])
        deltas = state.reconcile(ST, [_st("a")])
        assert len(deltas) == 1
        assert deltas[0].nodes[0].type is ChangeType.DELETE
        assert deltas[0].nodes[0].node.name == "b"

    def test_other_kinds_untouched(self) -> None:
        state = GraphState()
        _add(state, CD, _cd("c1"))
        state.reconcile(ST, [])
        assert state.get((CD, "team-a", "c1")) is not None

    def test_snapshot_is_sorted(self) -> None:
        state = GraphState()
        state.reconcile(ST, [_st("b"), _st("a")])
        snap = state.snapshot()
        assert [n.name for n in snap.nodes] == ["a", "b"]
        assert snap.edges == []
