"""Event data structures delivered by the EventManager."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum


class EventAction(StrEnum):
    """What happened to an event object."""

    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"


@dataclass(frozen=True)
class InvolvedObject:
    """The object an event is about (``regarding`` / ``involvedObject``)."""

    kind: str = ""
    name: str = ""
    namespace: str = ""
    uid: str = ""


@dataclass(frozen=True)
class EventRecord:
    """Normalised event, independent of the API version it was read from.

    Immutable: only held for as long as a subscriber's buffer holds it.
    """

    name: str
    namespace: str
    reason: str
    message: str
    type: str
    involved_object: InvolvedObject
    first_seen: datetime | None = None
    last_seen: datetime | None = None
    event_time: datetime | None = None
    count: int = 1
    series_count: int = 0
    reporting_controller: str = ""
    reporting_instance: str = ""
    resource_version: str = ""
    kind: str = "Event"


@dataclass(frozen=True)
class EventDelta:
    """One event change handed to a subscriber."""

    action: EventAction
    event: EventRecord
    sequence: int = 0
    overflowed: bool = False
