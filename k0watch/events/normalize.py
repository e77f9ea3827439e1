"""Conversion of raw event objects into EventRecord, plus watch filters.

Both API shapes are accepted:

events.k8s.io/v1 -- ``note``, ``regarding``, ``deprecatedCount``,
                    ``deprecatedFirstTimestamp``/``deprecatedLastTimestamp``
core/v1          -- ``message``, ``involvedObject``, ``count``,
                    ``firstTimestamp``/``lastTimestamp``

``series.lastObservedTime`` overrides the last-seen time in both shapes.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import replace
from typing import Any

from k0watch.kube.client import object_metadata, parse_timestamp
from k0watch.models.events import EventRecord, InvolvedObject
from k0watch.models.subscriptions import EventSubscriptionSpec


def _int(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


def _ref(raw: Any, default_namespace: str) -> InvolvedObject:
    if not isinstance(raw, Mapping):
        return InvolvedObject(namespace=default_namespace)
    return InvolvedObject(
        kind=str(raw.get("kind") or ""),
        name=str(raw.get("name") or ""),
        namespace=str(raw.get("namespace") or default_namespace),
        uid=str(raw.get("uid") or ""),
    )


def normalize_event(obj: Mapping[str, Any]) -> EventRecord:
    """Build an EventRecord from either event API shape."""
    meta = object_metadata(dict(obj))
    namespace = str(meta.get("namespace") or "")
    is_v1 = "regarding" in obj or "note" in obj or str(obj.get("apiVersion", "")).startswith("events.k8s.io")

    if is_v1:
        message = obj.get("note")
        # The subject is reported in the event's own namespace.
        involved = replace(_ref(obj.get("regarding"), namespace), namespace=namespace)
        count = _int(obj.get("deprecatedCount"))
        first_seen = parse_timestamp(obj.get("deprecatedFirstTimestamp"))
        last_seen = parse_timestamp(obj.get("deprecatedLastTimestamp"))
    else:
        message = obj.get("message")
        involved = _ref(obj.get("involvedObject"), namespace)
        count = _int(obj.get("count"))
        first_seen = parse_timestamp(obj.get("firstTimestamp"))
        last_seen = parse_timestamp(obj.get("lastTimestamp"))

    series = obj.get("series")
    series_count = 0
    if isinstance(series, Mapping):
        series_count = _int(series.get("count"))
        observed = parse_timestamp(series.get("lastObservedTime"))
        if observed is not None:
            last_seen = observed

    return EventRecord(
        name=str(meta.get("name") or ""),
        namespace=namespace,
        reason=str(obj.get("reason") or ""),
        message=str(message or ""),
        type=str(obj.get("type") or ""),
        involved_object=involved,
        first_seen=first_seen,
        last_seen=last_seen,
        event_time=parse_timestamp(obj.get("eventTime")),
        count=max(count, series_count, 1),
        series_count=series_count,
        reporting_controller=str(obj.get("reportingController") or obj.get("reportingComponent") or ""),
        reporting_instance=str(obj.get("reportingInstance") or ""),
        resource_version=str(meta.get("resourceVersion") or ""),
    )


def matches_filters(event: EventRecord, spec: EventSubscriptionSpec) -> bool:
    """Apply the subscription's type / subject filters (case-insensitive)."""
    if spec.types and event.type.lower() not in spec.types:
        return False
    if spec.for_kind and event.involved_object.kind.lower() != spec.for_kind.lower():
        return False
    return not (spec.for_name and event.involved_object.name.lower() != spec.for_name.lower())
