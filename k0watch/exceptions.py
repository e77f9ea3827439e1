"""Exception hierarchy for k0watch.

Remote errors are split by how the watch layer reacts to them:

RemoteAPIError          -- anything the remote API client raised; reconnect-worthy.
    NotFoundError       -- 404; drives the one-time event API fallback.
    ForbiddenError      -- 403; same as NotFound for fallback purposes.
    WatchTimeoutError   -- 408/504 or a client-side timeout.
    ConnectionClosedError -- the connection or stream dropped.
    ResourceExpiredError  -- 410 Gone; the resource version is too old.

SubscriptionError       -- caller errors surfaced synchronously.
    InvalidSubscriptionError
    SubscriptionNotFoundError
    ManagerStoppedError
"""

from __future__ import annotations


class K0WatchError(Exception):
    """Base class for every error raised by k0watch."""


class RemoteAPIError(K0WatchError):
    """Error reported by the remote orchestration API."""

    def __init__(self, message: str = "", status: int | None = None) -> None:
        super().__init__(message or self.__class__.__name__)
        self.status = status


class NotFoundError(RemoteAPIError):
    pass


class ForbiddenError(RemoteAPIError):
    pass


class WatchTimeoutError(RemoteAPIError):
    pass


class ConnectionClosedError(RemoteAPIError):
    pass


class ResourceExpiredError(RemoteAPIError):
    pass


# Errors the watch loop expects during normal operation; anything else is
# still retried but logged at a higher severity.
RECONNECT_WORTHY = (
    WatchTimeoutError,
    ConnectionClosedError,
    ResourceExpiredError,
    NotFoundError,
    ForbiddenError,
)


class SubscriptionError(K0WatchError):
    """Base class for errors returned to the subscription layer."""


class InvalidSubscriptionError(SubscriptionError, ValueError):
    """The subscription spec is malformed. Never retried."""


class SubscriptionNotFoundError(SubscriptionError, KeyError):
    """No active subscription has the given id."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else "subscription not found"


class ManagerStoppedError(SubscriptionError):
    """The manager has been stopped and accepts no new subscriptions."""
