"""Log line deltas delivered by the PodLogManager."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class LogLine:
    """One container log line.

    ``timestamp`` is the server-side timestamp prefix, or None when the line
    carried none.
    """

    line: str
    timestamp: datetime | None = None
    sequence: int = 0
    overflowed: bool = False
