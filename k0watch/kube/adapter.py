"""ResourceClient implementation on kubernetes-asyncio.

Custom resources go through CustomObjectsApi, events through EventsV1Api or
CoreV1Api, and logs through ``read_namespaced_pod_log(follow=True)``.
Every ApiException is translated into the k0watch error taxonomy so the
watch layer never has to know about HTTP status codes.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable
from typing import Any

import aiohttp
import structlog
from kubernetes_asyncio import client as k8s_client  # type: ignore[import-untyped]
from kubernetes_asyncio import watch  # type: ignore[import-untyped]
from kubernetes_asyncio.client.exceptions import ApiException  # type: ignore[import-untyped]

from k0watch.exceptions import (
    ConnectionClosedError,
    ForbiddenError,
    NotFoundError,
    RemoteAPIError,
    ResourceExpiredError,
    WatchTimeoutError,
)
from k0watch.kube.client import ListResult, ResourceKind, WatchEvent, WatchEventType

_log = structlog.get_logger(component="kube.adapter")

_DEFAULT_WATCH_TIMEOUT_S = 300


def translate_api_exception(exc: ApiException) -> RemoteAPIError:
    """Map a kubernetes-asyncio ApiException onto the k0watch taxonomy."""
    status = getattr(exc, "status", None)
    message = f"{status} {getattr(exc, 'reason', '') or ''}".strip()
    if status == 403:
        return ForbiddenError(message, status=status)
    if status == 404:
        return NotFoundError(message, status=status)
    if status in (408, 504):
        return WatchTimeoutError(message, status=status)
    if status == 410:
        return ResourceExpiredError(message, status=status)
    return RemoteAPIError(message, status=status)


def _error_from_status(raw: Any) -> RemoteAPIError:
    """Build an error from the Status object carried by an ERROR watch event."""
    if not isinstance(raw, dict):
        return RemoteAPIError("watch error event")
    code = raw.get("code")
    reason = f"{raw.get('reason', '')}: {raw.get('message', '')}"
    exc = ApiException(status=code, reason=reason)
    return translate_api_exception(exc)


class KubernetesResourceClient:
    """List/Watch/log-tail capability backed by a kubernetes-asyncio ApiClient."""

    def __init__(
        self,
        api_client: k8s_client.ApiClient | None = None,
        watch_timeout_seconds: int = _DEFAULT_WATCH_TIMEOUT_S,
    ) -> None:
        self._api_client = api_client or k8s_client.ApiClient()
        self._custom = k8s_client.CustomObjectsApi(self._api_client)
        self._core = k8s_client.CoreV1Api(self._api_client)
        self._events = k8s_client.EventsV1Api(self._api_client)
        self._watch_timeout = watch_timeout_seconds

    async def close(self) -> None:
        await self._api_client.close()

    # ------------------------------------------------------------------
    # List / Watch
    # ------------------------------------------------------------------

    def _list_call(self, kind: ResourceKind, namespace: str) -> tuple[Callable[..., Any], tuple[Any, ...]]:
        if kind.group == "" and kind.plural == "events":
            if namespace:
                return self._core.list_namespaced_event, (namespace,)
            return self._core.list_event_for_all_namespaces, ()
        if kind.group == "events.k8s.io" and kind.plural == "events":
            if namespace:
                return self._events.list_namespaced_event, (namespace,)
            return self._events.list_event_for_all_namespaces, ()
        if namespace:
            return self._custom.list_namespaced_custom_object, (kind.group, kind.version, namespace, kind.plural)
        return self._custom.list_cluster_custom_object, (kind.group, kind.version, kind.plural)

    async def list(self, kind: ResourceKind, namespace: str) -> ListResult:
        func, args = self._list_call(kind, namespace)
        try:
            result = await func(*args)
        except ApiException as exc:
            raise translate_api_exception(exc) from exc
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise ConnectionClosedError(str(exc)) from exc

        if not isinstance(result, dict):
            result = self._api_client.sanitize_for_serialization(result)
        items = result.get("items") or []
        metadata = result.get("metadata") or {}
        return ListResult(
            objects=[item for item in items if isinstance(item, dict)],
            resource_version=str(metadata.get("resourceVersion") or ""),
        )

    async def watch(
        self,
        kind: ResourceKind,
        namespace: str,
        resource_version: str,
    ) -> AsyncIterator[WatchEvent]:
        func, args = self._list_call(kind, namespace)
        return self._stream(kind, func, args, resource_version)

    async def _stream(
        self,
        kind: ResourceKind,
        func: Callable[..., Any],
        args: tuple[Any, ...],
        resource_version: str,
    ) -> AsyncIterator[WatchEvent]:
        w = watch.Watch()
        kwargs: dict[str, Any] = {
            "allow_watch_bookmarks": True,
            "timeout_seconds": self._watch_timeout,
        }
        if resource_version:
            kwargs["resource_version"] = resource_version
        try:
            async for event in w.stream(func, *args, **kwargs):
                event_type = event.get("type", "")
                raw = event.get("raw_object")
                if event_type == "BOOKMARK":
                    continue
                if event_type == "ERROR":
                    raise _error_from_status(raw)
                try:
                    parsed_type = WatchEventType(event_type)
                except ValueError:
                    _log.debug("watch_event_unknown_type", kind=str(kind), type=event_type)
                    continue
                yield WatchEvent(type=parsed_type, object=raw if isinstance(raw, dict) else {})
        except ApiException as exc:
            raise translate_api_exception(exc) from exc
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise ConnectionClosedError(str(exc)) from exc
        finally:
            await w.close()

    # ------------------------------------------------------------------
    # Logs
    # ------------------------------------------------------------------

    async def stream_logs(
        self,
        namespace: str,
        pod: str,
        container: str,
        since_seconds: int | None = None,
        tail_lines: int | None = None,
        previous: bool = False,
    ) -> AsyncIterator[str]:
        kwargs: dict[str, Any] = {
            "container": container,
            "follow": not previous,
            "timestamps": True,
            "_preload_content": False,
        }
        if previous:
            kwargs["previous"] = True
        if since_seconds is not None:
            kwargs["since_seconds"] = since_seconds
        if tail_lines is not None:
            kwargs["tail_lines"] = tail_lines
        try:
            response = await self._core.read_namespaced_pod_log(pod, namespace, **kwargs)
        except ApiException as exc:
            raise translate_api_exception(exc) from exc
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise ConnectionClosedError(str(exc)) from exc
        return self._iter_lines(response)

    async def _iter_lines(self, response: Any) -> AsyncIterator[str]:
        try:
            async for raw in response.content:
                yield raw.decode("utf-8", errors="replace").rstrip("\r\n")
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise ConnectionClosedError(str(exc)) from exc
        except ValueError as exc:
            # aiohttp refuses lines longer than its read limit.
            raise RemoteAPIError(f"log line rejected: {exc}") from exc
        finally:
            response.release()


async def load_kube_config() -> None:
    """Configure kubernetes-asyncio from in-cluster config or kubeconfig."""
    import kubernetes_asyncio.config as k8s_config  # type: ignore[import-untyped]

    try:
        # load_incluster_config() is synchronous in kubernetes-asyncio
        k8s_config.load_incluster_config()
        _log.info("k8s client configured from in-cluster service account")
    except k8s_config.ConfigException:
        await k8s_config.load_kube_config()
        _log.info("k8s client configured from kubeconfig")
