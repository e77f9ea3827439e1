"""Remote-API collaborator: the consumed contract and its kubernetes-asyncio implementation."""

from k0watch.kube.client import (
    CLUSTER_DEPLOYMENT,
    CORE_EVENTS,
    EVENTS_V1,
    MULTI_CLUSTER_SERVICE,
    SERVICE_TEMPLATE,
    ListResult,
    ResourceClient,
    ResourceKind,
    WatchEvent,
    WatchEventType,
)

__all__ = [
    "CLUSTER_DEPLOYMENT",
    "CORE_EVENTS",
    "EVENTS_V1",
    "MULTI_CLUSTER_SERVICE",
    "SERVICE_TEMPLATE",
    "ListResult",
    "ResourceClient",
    "ResourceKind",
    "WatchEvent",
    "WatchEventType",
]
