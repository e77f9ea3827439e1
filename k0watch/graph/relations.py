"""Node summaries and relation rules for the k0rdent custom resources.

Edges are always derived from node content:

owned-by          -- metadata.ownerReferences[].uid of a node present in the graph
uses-template     -- ClusterDeployment -> ServiceTemplate named in
                     spec.serviceSpec.services[].template (same namespace)
targets-cluster   -- MultiClusterService -> every ClusterDeployment whose labels
                     satisfy spec.clusterSelector.matchLabels (empty matches all)
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from typing import Any

from k0watch.graph.models import GraphEdge, GraphNode, NodeKey, Relation, node_id
from k0watch.kube.client import CLUSTER_DEPLOYMENT, MULTI_CLUSTER_SERVICE, SERVICE_TEMPLATE, object_metadata

SERVICE_TEMPLATE_KIND = SERVICE_TEMPLATE.kind
CLUSTER_DEPLOYMENT_KIND = CLUSTER_DEPLOYMENT.kind
MULTI_CLUSTER_SERVICE_KIND = MULTI_CLUSTER_SERVICE.kind


def _get(obj: Mapping[str, Any], *path: str) -> Any:
    cur: Any = obj
    for part in path:
        if not isinstance(cur, Mapping):
            return None
        cur = cur.get(part)
    return cur


def _str_map(value: Any) -> dict[str, str]:
    if not isinstance(value, Mapping):
        return {}
    return {str(k): str(v) for k, v in value.items()}


def _service_templates(obj: Mapping[str, Any]) -> list[str]:
    services = _get(obj, "spec", "serviceSpec", "services")
    if not isinstance(services, list):
        return []
    names: list[str] = []
    for svc in services:
        template = svc.get("template") if isinstance(svc, Mapping) else None
        if template and template not in names:
            names.append(str(template))
    return names


def _ready_condition(obj: Mapping[str, Any]) -> bool | None:
    conditions = _get(obj, "status", "conditions")
    if not isinstance(conditions, list):
        return None
    for cond in conditions:
        if isinstance(cond, Mapping) and cond.get("type") == "Ready":
            return str(cond.get("status")) == "True"
    return None


def summarize_service_template(obj: Mapping[str, Any]) -> dict[str, Any]:
    summary: dict[str, Any] = {}
    version = _get(obj, "spec", "version")
    if version:
        summary["version"] = version
    chart = _get(obj, "spec", "helm", "chartRef")
    if isinstance(chart, Mapping) and chart.get("name"):
        summary["chart"] = {"name": chart.get("name", ""), "kind": chart.get("kind", "")}
    description = _get(obj, "spec", "description") or _get(obj, "status", "description")
    if description:
        summary["description"] = description
    return summary


def summarize_cluster_deployment(obj: Mapping[str, Any]) -> dict[str, Any]:
    summary: dict[str, Any] = {}
    template = _get(obj, "spec", "template")
    if template:
        summary["template"] = template
    credential = _get(obj, "spec", "credential")
    if credential:
        summary["credential"] = credential
    templates = _service_templates(obj)
    if templates:
        summary["serviceTemplates"] = templates
    ready = _ready_condition(obj)
    if ready is not None:
        summary["ready"] = ready
    phase = _get(obj, "status", "phase")
    if phase:
        summary["phase"] = phase
    return summary


def summarize_multi_cluster_service(obj: Mapping[str, Any]) -> dict[str, Any]:
    summary: dict[str, Any] = {}
    match_labels = _str_map(_get(obj, "spec", "clusterSelector", "matchLabels"))
    if match_labels:
        summary["matchLabels"] = match_labels
    services = _get(obj, "spec", "serviceSpec", "services")
    summary["serviceCount"] = len(services) if isinstance(services, list) else 0
    return summary


_SUMMARIZERS: dict[str, Callable[[Mapping[str, Any]], dict[str, Any]]] = {
    SERVICE_TEMPLATE_KIND: summarize_service_template,
    CLUSTER_DEPLOYMENT_KIND: summarize_cluster_deployment,
    MULTI_CLUSTER_SERVICE_KIND: summarize_multi_cluster_service,
}


def node_from_object(kind: str, obj: Mapping[str, Any]) -> GraphNode:
    """Build a GraphNode from a raw object of ``kind``.

    A missing uid is replaced by the node id so the node stays addressable.
    """
    meta = object_metadata(dict(obj))
    namespace = str(meta.get("namespace") or "")
    name = str(meta.get("name") or "")
    owners = meta.get("ownerReferences") or []
    owner_uids = tuple(
        str(ref["uid"]) for ref in owners if isinstance(ref, Mapping) and ref.get("uid")
    )
    summarizer = _SUMMARIZERS.get(kind)
    return GraphNode(
        kind=kind,
        namespace=namespace,
        name=name,
        uid=str(meta.get("uid") or node_id(kind, namespace, name)),
        resource_version=str(meta.get("resourceVersion") or ""),
        attributes=summarizer(obj) if summarizer else {},
        labels=_str_map(meta.get("labels")),
        owner_uids=owner_uids,
    )


def selector_matches(match_labels: Mapping[str, str], labels: Mapping[str, str]) -> bool:
    return all(labels.get(k) == v for k, v in match_labels.items())


def outgoing_edges(
    node: GraphNode,
    nodes: Mapping[NodeKey, GraphNode],
    by_uid: Mapping[str, NodeKey],
) -> set[GraphEdge]:
    """Edges ``node`` currently has to other nodes present in the graph."""
    edges: set[GraphEdge] = set()

    for owner_uid in node.owner_uids:
        if owner_uid != node.uid and owner_uid in by_uid:
            edges.add(GraphEdge(node.uid, owner_uid, Relation.OWNED_BY))

    if node.kind == CLUSTER_DEPLOYMENT_KIND:
        for template in node.attributes.get("serviceTemplates", ()):
            target = nodes.get((SERVICE_TEMPLATE_KIND, node.namespace, template))
            if target is not None:
                edges.add(GraphEdge(node.uid, target.uid, Relation.USES_TEMPLATE))

    elif node.kind == MULTI_CLUSTER_SERVICE_KIND:
        match_labels = node.attributes.get("matchLabels", {})
        for target in _of_kind(nodes.values(), CLUSTER_DEPLOYMENT_KIND):
            if selector_matches(match_labels, target.labels):
                edges.add(GraphEdge(node.uid, target.uid, Relation.TARGETS_CLUSTER))

    return edges


def _of_kind(nodes: Iterable[GraphNode], kind: str) -> Iterable[GraphNode]:
    return (n for n in nodes if n.kind == kind)
