"""Contract consumed from the remote-API client.

The watch layer only needs List, Watch and a log tail. Concrete clients
(``k0watch.kube.adapter.KubernetesResourceClient`` in production, a stub in
tests) satisfy ``ResourceClient`` structurally.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any, Protocol


@dataclass(frozen=True)
class ResourceKind:
    """A watchable collection in the remote API."""

    kind: str
    plural: str
    group: str = ""
    version: str = "v1"

    @property
    def api_version(self) -> str:
        return f"{self.group}/{self.version}" if self.group else self.version

    def __str__(self) -> str:
        return f"{self.plural}.{self.api_version}"


K0RDENT_GROUP = "k0rdent.mirantis.com"

SERVICE_TEMPLATE = ResourceKind("ServiceTemplate", "servicetemplates", K0RDENT_GROUP, "v1beta1")
CLUSTER_DEPLOYMENT = ResourceKind("ClusterDeployment", "clusterdeployments", K0RDENT_GROUP, "v1beta1")
MULTI_CLUSTER_SERVICE = ResourceKind("MultiClusterService", "multiclusterservices", K0RDENT_GROUP, "v1beta1")

EVENTS_V1 = ResourceKind("Event", "events", "events.k8s.io", "v1")
CORE_EVENTS = ResourceKind("Event", "events")


class WatchEventType(StrEnum):
    ADDED = "ADDED"
    MODIFIED = "MODIFIED"
    DELETED = "DELETED"


@dataclass(frozen=True)
class WatchEvent:
    """One normalised watch notification. ``object`` is the raw JSON dict."""

    type: WatchEventType
    object: dict[str, Any]


@dataclass
class ListResult:
    objects: list[dict[str, Any]] = field(default_factory=list)
    resource_version: str = ""


class ResourceClient(Protocol):
    async def list(self, kind: ResourceKind, namespace: str) -> ListResult:
        """List ``kind`` in ``namespace`` ("" means all namespaces)."""
        ...

    async def watch(
        self,
        kind: ResourceKind,
        namespace: str,
        resource_version: str,
    ) -> AsyncIterator[WatchEvent]:
        """Open a watch from ``resource_version``.

        Errors opening the watch are raised from the await; errors after that
        are raised from the iterator. Exhaustion means the server closed it.
        """
        ...

    async def stream_logs(
        self,
        namespace: str,
        pod: str,
        container: str,
        since_seconds: int | None = None,
        tail_lines: int | None = None,
        previous: bool = False,
    ) -> AsyncIterator[str]:
        """Follow a container log. Lines carry an RFC 3339 timestamp prefix.

        With ``previous`` the terminated instance's log is read once and the
        stream ends cleanly at its end.
        """
        ...


def object_metadata(obj: dict[str, Any]) -> dict[str, Any]:
    meta = obj.get("metadata") if isinstance(obj, dict) else None
    return meta if isinstance(meta, dict) else {}


def object_resource_version(obj: dict[str, Any]) -> str:
    return str(object_metadata(obj).get("resourceVersion") or "")


def parse_timestamp(raw: Any) -> datetime | None:
    """Parse an RFC 3339 timestamp as sent by the API server.

    Fractions beyond microseconds are truncated; unparseable input gives None.
    """
    if not raw or not isinstance(raw, str):
        return None
    value = raw.strip()
    if value.endswith(("Z", "z")):
        value = value[:-1] + "+00:00"
    if "." in value:
        head, _, rest = value.partition(".")
        digits = len(rest) - len(rest.lstrip("0123456789"))
        fraction, offset = rest[:digits], rest[digits:]
        value = f"{head}.{fraction[:6].ljust(6, '0')}{offset}" if fraction else f"{head}{offset}"
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed
