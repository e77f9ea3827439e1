"""Routes subscription URIs to the manager registered for their host."""

from __future__ import annotations

import threading
from typing import Any
from urllib.parse import urlsplit

import structlog

from k0watch.exceptions import InvalidSubscriptionError, SubscriptionNotFoundError
from k0watch.models.subscriptions import SCHEMES
from k0watch.watch.manager import WatchManager
from k0watch.watch.stream import DeltaStream

_log = structlog.get_logger(component="router")


class SubscriptionRouter:
    """Dispatches ``subscribe(uri)`` by URI host and remembers the owner of each id."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._managers: dict[str, WatchManager] = {}
        self._owners: dict[str, WatchManager] = {}

    def register(self, host: str, manager: WatchManager) -> None:
        key = host.lower()
        with self._lock:
            if key in self._managers:
                raise ValueError(f"a manager is already registered for host {host!r}")
            self._managers[key] = manager

    def hosts(self) -> list[str]:
        with self._lock:
            return sorted(self._managers)

    def manager_for(self, uri: str) -> WatchManager:
        try:
            parsed = urlsplit(uri)
        except ValueError as exc:
            raise InvalidSubscriptionError(f"invalid subscription URI: {exc}") from exc
        if parsed.scheme not in SCHEMES:
            raise InvalidSubscriptionError(f"unsupported subscription scheme {parsed.scheme!r}")
        host = (parsed.hostname or "").lower()
        with self._lock:
            manager = self._managers.get(host)
        if manager is None:
            raise InvalidSubscriptionError(f"no manager registered for {host!r}")
        return manager

    def owned(self) -> dict[str, str]:
        """Live subscription ids mapped to the name of their manager."""
        with self._lock:
            self._prune()
            return {sub_id: manager.name for sub_id, manager in self._owners.items()}

    def _prune(self) -> None:
        # Caller holds the lock. Managers end subscriptions on their own when
        # the consumer closes its stream, a finite stream completes or they stop.
        live: dict[int, set[str]] = {}
        for sub_id, manager in list(self._owners.items()):
            ids = live.get(id(manager))
            if ids is None:
                ids = live[id(manager)] = set(manager.subscription_ids())
            if sub_id not in ids:
                del self._owners[sub_id]

    async def subscribe(self, uri: str) -> tuple[str, DeltaStream[Any]]:
        manager = self.manager_for(uri)
        subscription_id, stream = await manager.subscribe(uri)
        with self._lock:
            self._prune()
            self._owners[subscription_id] = manager
        _log.info("subscription_routed", uri=uri, manager=manager.name, subscription_id=subscription_id)
        return subscription_id, stream

    async def unsubscribe(self, subscription_id: str) -> None:
        with self._lock:
            manager = self._owners.pop(subscription_id, None)
        if manager is None:
            raise SubscriptionNotFoundError(f"unknown subscription {subscription_id!r}")
        await manager.unsubscribe(subscription_id)
