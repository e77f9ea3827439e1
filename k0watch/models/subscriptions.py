"""Subscription specs accepted by the three managers.

Each spec validates itself on construction and raises
InvalidSubscriptionError for anything malformed. Specs can also be parsed
from subscription URIs:

    k0rdent://graph?namespace=team-a,team-b&kinds=ClusterDeployment
    k0://events/<namespace>?types=Warning&forKind=Pod&forName=web-0
    k0rdent://podlogs/<namespace>/<pod>/<container>?tailLines=100&sinceSeconds=60&previous=true
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from urllib.parse import parse_qs, quote, urlencode, urlsplit

from k0watch.exceptions import InvalidSubscriptionError

SCHEMES = frozenset({"k0", "k0rdent"})

GRAPH_HOST = "graph"
EVENTS_HOST = "events"
PODLOGS_HOST = "podlogs"

GRAPH_KINDS = frozenset({"ServiceTemplate", "ClusterDeployment", "MultiClusterService"})
EVENT_TYPES = frozenset({"normal", "warning"})

_DNS_LABEL = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?$")
_DNS_SUBDOMAIN = re.compile(r"^[a-z0-9]([-a-z0-9.]*[a-z0-9])?$")


def _check_label(value: str, what: str) -> None:
    if not value or len(value) > 63 or not _DNS_LABEL.match(value):
        raise InvalidSubscriptionError(f"invalid {what} {value!r}")


def _check_subdomain(value: str, what: str) -> None:
    if not value or len(value) > 253 or not _DNS_SUBDOMAIN.match(value):
        raise InvalidSubscriptionError(f"invalid {what} {value!r}")


def _split_csv(raw: str) -> list[str]:
    return [part.strip() for part in raw.split(",") if part.strip()]


def _parse_uri(raw: str, host: str) -> tuple[list[str], dict[str, str]]:
    """Return the path segments and last value of each query parameter."""
    if not raw:
        raise InvalidSubscriptionError("subscription URI is required")
    try:
        parsed = urlsplit(raw)
    except ValueError as exc:
        raise InvalidSubscriptionError(f"invalid subscription URI: {exc}") from exc
    if parsed.scheme not in SCHEMES:
        raise InvalidSubscriptionError(f"unexpected scheme {parsed.scheme!r}")
    if (parsed.hostname or "") != host:
        raise InvalidSubscriptionError(f"unexpected host {parsed.netloc!r}, expected {host!r}")
    segments = [seg for seg in parsed.path.strip("/").split("/") if seg]
    query = {key: values[-1] for key, values in parse_qs(parsed.query).items()}
    return segments, query


def _parse_int(query: dict[str, str], key: str) -> int | None:
    raw = query.get(key)
    if raw is None or raw == "":
        return None
    try:
        return int(raw)
    except ValueError as exc:
        raise InvalidSubscriptionError(f"invalid {key} value {raw!r}") from exc


_TRUE = frozenset({"1", "t", "true"})
_FALSE = frozenset({"0", "f", "false"})


def _parse_bool(query: dict[str, str], key: str) -> bool:
    raw = query.get(key)
    if raw is None or raw == "":
        return False
    value = raw.lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise InvalidSubscriptionError(f"invalid {key} value {raw!r}")


@dataclass(frozen=True)
class GraphSubscriptionSpec:
    """Graph scope. Empty sets mean every namespace / every graph kind."""

    namespaces: frozenset[str] = field(default_factory=frozenset)
    kinds: frozenset[str] = field(default_factory=frozenset)

    def __post_init__(self) -> None:
        object.__setattr__(self, "namespaces", frozenset(self.namespaces))
        object.__setattr__(self, "kinds", frozenset(self.kinds))
        for ns in self.namespaces:
            _check_label(ns, "namespace")
        unknown = self.kinds - GRAPH_KINDS
        if unknown:
            raise InvalidSubscriptionError(
                f"unsupported graph kinds {sorted(unknown)}; expected a subset of {sorted(GRAPH_KINDS)}"
            )

    @property
    def effective_kinds(self) -> frozenset[str]:
        return self.kinds or GRAPH_KINDS

    def includes(self, kind: str, namespace: str) -> bool:
        if kind not in self.effective_kinds:
            return False
        return not self.namespaces or namespace in self.namespaces

    @classmethod
    def from_uri(cls, raw: str) -> GraphSubscriptionSpec:
        _, query = _parse_uri(raw, GRAPH_HOST)
        return cls(
            namespaces=frozenset(_split_csv(query.get("namespace", ""))),
            kinds=frozenset(_split_csv(query.get("kinds", ""))),
        )

    @property
    def uri(self) -> str:
        params: dict[str, str] = {}
        if self.namespaces:
            params["namespace"] = ",".join(sorted(self.namespaces))
        if self.kinds:
            params["kinds"] = ",".join(sorted(self.kinds))
        suffix = f"?{urlencode(params, safe=',')}" if params else ""
        return f"k0rdent://{GRAPH_HOST}{suffix}"


@dataclass(frozen=True)
class EventSubscriptionSpec:
    """Events of one namespace, optionally filtered by type and subject."""

    namespace: str
    types: frozenset[str] = field(default_factory=frozenset)
    for_kind: str = ""
    for_name: str = ""

    def __post_init__(self) -> None:
        _check_label(self.namespace, "namespace")
        types = frozenset(t.strip().lower() for t in self.types if t.strip())
        unknown = types - EVENT_TYPES
        if unknown:
            raise InvalidSubscriptionError(f"unsupported event types {sorted(unknown)}")
        object.__setattr__(self, "types", types)

    @classmethod
    def from_uri(cls, raw: str) -> EventSubscriptionSpec:
        segments, query = _parse_uri(raw, EVENTS_HOST)
        if len(segments) != 1:
            raise InvalidSubscriptionError("events URI must be k0://events/<namespace>")
        return cls(
            namespace=segments[0],
            types=frozenset(_split_csv(query.get("types", ""))),
            for_kind=query.get("forKind", ""),
            for_name=query.get("forName", ""),
        )

    @property
    def uri(self) -> str:
        return f"k0://{EVENTS_HOST}/{quote(self.namespace)}"


@dataclass(frozen=True)
class PodLogSubscriptionSpec:
    """Tail of one container. The container must already be resolved.

    ``previous`` reads the log of the container's last terminated instance.
    That log is finite, so such a subscription ends once it has been read.
    """

    namespace: str
    pod: str
    container: str
    tail_lines: int | None = None
    since_seconds: int | None = None
    previous: bool = False

    def __post_init__(self) -> None:
        _check_label(self.namespace, "namespace")
        _check_subdomain(self.pod, "pod name")
        if not self.container:
            raise InvalidSubscriptionError("container is required")
        _check_label(self.container, "container name")
        if self.tail_lines is not None and self.tail_lines < 0:
            raise InvalidSubscriptionError("tailLines must be >= 0")
        if self.since_seconds is not None and self.since_seconds < 1:
            raise InvalidSubscriptionError("sinceSeconds must be >= 1")

    @classmethod
    def from_uri(cls, raw: str) -> PodLogSubscriptionSpec:
        segments, query = _parse_uri(raw, PODLOGS_HOST)
        if len(segments) < 2:
            raise InvalidSubscriptionError("pod log URI must include namespace and pod")
        if len(segments) < 3:
            raise InvalidSubscriptionError("pod log URI must include the container")
        return cls(
            namespace=segments[0],
            pod=segments[1],
            container=segments[2],
            tail_lines=_parse_int(query, "tailLines"),
            since_seconds=_parse_int(query, "sinceSeconds"),
            previous=_parse_bool(query, "previous"),
        )

    @property
    def uri(self) -> str:
        base = f"k0rdent://{PODLOGS_HOST}/{self.namespace}/{self.pod}/{self.container}"
        params: dict[str, str | int] = {}
        if self.previous:
            params["previous"] = "true"
        if self.tail_lines is not None:
            params["tailLines"] = self.tail_lines
        if self.since_seconds is not None:
            params["sinceSeconds"] = self.since_seconds
        return f"{base}?{urlencode(params)}" if params else base
