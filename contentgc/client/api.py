# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
contentgc Remote API - Adapter for the content graph management API.

``ContentGraphAPI`` is the contract the engine depends on. The HTTP
implementation speaks a Contentful-style management API; tests provide an
in-memory implementation of the same protocol.
"""

from typing import Any, Dict, Protocol

import httpx
import structlog

from contentgc.config import ContentGCConfig
from contentgc.exceptions import (
    AuthenticationError,
    BackendUnavailableError,
    ConfigurationError,
    NotFoundError,
    RateLimitedError,
    RemoteAPIError,
    RequestTimeoutError,
    ValidationError,
    VersionConflictError,
)
from contentgc.models import Node, NodeKind

logger = structlog.get_logger()

CONTENT_TYPE_HEADER = "application/vnd.contentful.management.v1+json"


class ContentGraphAPI(Protocol):
    """Operations the engine needs from the remote graph."""

    async def fetch_node(self, node_id: str, kind: NodeKind = NodeKind.ENTRY) -> Node: ...

    async def fetch_page(
        self, query: Dict[str, Any], kind: NodeKind = NodeKind.ENTRY
    ) -> Dict[str, Any]: ...

    async def update_node(self, node: Node) -> Node: ...

    async def publish(self, node: Node) -> Node: ...

    async def unpublish(self, node: Node) -> Node: ...

    async def archive(self, node: Node) -> Node: ...

    async def unarchive(self, node: Node) -> Node: ...

    async def delete_node(self, node: Node) -> None: ...


def _retry_after(response: httpx.Response) -> float | None:
    for header in ("Retry-After", "X-Contentful-RateLimit-Reset"):
        value = response.headers.get(header)
        if value is None:
            continue
        try:
            return float(value)
        except ValueError:
            continue
    return None


def raise_for_status(response: httpx.Response, operation: str) -> None:
    """Map an HTTP error response onto the error taxonomy."""
    status = response.status_code
    if status < 400:
        return

    try:
        body = response.json()
    except ValueError:
        body = {"raw": response.text[:500]}

    message = body.get("message") if isinstance(body, dict) else None
    details = {"operation": operation, "status": status}
    if isinstance(body, dict) and isinstance(body.get("sys"), dict) and body["sys"].get("id"):
        details["error_id"] = body["sys"]["id"]
    text = f"{operation} failed: {message or response.reason_phrase}"

    if status == 429:
        raise RateLimitedError(text, details=details, retry_after=_retry_after(response))
    if status == 404:
        raise NotFoundError(text, details=details, status_code=status)
    if status == 409:
        raise VersionConflictError(text, details=details, status_code=status)
    if status in (400, 422):
        raise ValidationError(text, details=details, status_code=status)
    if status in (401, 403):
        raise AuthenticationError(text, details=details, status_code=status)
    raise RemoteAPIError(text, details=details, status_code=status)


class HTTPContentGraphAPI:
    """ContentGraphAPI over httpx against the management REST API."""

    def __init__(
        self,
        config: ContentGCConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        if not config.access_token:
            raise ConfigurationError(
                "access_token is required to talk to the management API",
                details={"space_id": config.space_id},
            )
        self.config = config
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def environment_path(self) -> str:
        return f"/spaces/{self.config.space_id}/environments/{self.config.environment}"

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.config.base_url,
                timeout=httpx.Timeout(self.config.request_timeout),
                headers={
                    "Authorization": f"Bearer {self.config.access_token}",
                    "Content-Type": CONTENT_TYPE_HEADER,
                },
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    def _collection(self, kind: NodeKind) -> str:
        return "assets" if kind == NodeKind.ASSET else "entries"

    def _node_path(self, node_id: str, kind: NodeKind) -> str:
        return f"{self.environment_path}/{self._collection(kind)}/{node_id}"

    async def _request(
        self,
        method: str,
        path: str,
        operation: str,
        **kwargs: Any,
    ) -> httpx.Response:
        client = await self._get_client()
        try:
            response = await client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            raise RequestTimeoutError(
                f"{operation} timed out", details={"operation": operation}
            ) from e
        except httpx.TransportError as e:
            raise BackendUnavailableError(
                f"{operation} could not reach the backend: {e}",
                details={"operation": operation},
            ) from e
        raise_for_status(response, operation)
        return response

    async def _request_json(self, method: str, path: str, operation: str, **kwargs: Any) -> Any:
        response = await self._request(method, path, operation, **kwargs)
        try:
            return response.json()
        except ValueError as e:
            raise RemoteAPIError(
                f"{operation} returned a body that is not JSON",
                details={"operation": operation, "status": response.status_code},
                status_code=response.status_code,
            ) from e

    async def fetch_node(self, node_id: str, kind: NodeKind = NodeKind.ENTRY) -> Node:
        raw = await self._request_json(
            "GET", self._node_path(node_id, kind), f"fetch_{kind.value.lower()}"
        )
        return Node.from_raw(raw)

    async def fetch_page(
        self, query: Dict[str, Any], kind: NodeKind = NodeKind.ENTRY
    ) -> Dict[str, Any]:
        params = {k: _query_value(v) for k, v in query.items() if v is not None}
        return await self._request_json(
            "GET",
            f"{self.environment_path}/{self._collection(kind)}",
            f"fetch_{self._collection(kind)}_page",
            params=params,
        )

    async def update_node(self, node: Node) -> Node:
        raw = node.to_raw()
        updated = await self._request_json(
            "PUT",
            self._node_path(node.id, node.kind),
            "update_node",
            json={"fields": raw["fields"]},
            headers={"X-Contentful-Version": str(node.version)},
        )
        return Node.from_raw(updated)

    async def _state_change(self, method: str, node: Node, suffix: str, operation: str) -> Node:
        raw = await self._request_json(
            method,
            f"{self._node_path(node.id, node.kind)}/{suffix}",
            operation,
            headers={"X-Contentful-Version": str(node.version)},
        )
        return Node.from_raw(raw)

    async def publish(self, node: Node) -> Node:
        return await self._state_change("PUT", node, "published", "publish")

    async def unpublish(self, node: Node) -> Node:
        return await self._state_change("DELETE", node, "published", "unpublish")

    async def archive(self, node: Node) -> Node:
        return await self._state_change("PUT", node, "archived", "archive")

    async def unarchive(self, node: Node) -> Node:
        return await self._state_change("DELETE", node, "archived", "unarchive")

    async def delete_node(self, node: Node) -> None:
        await self._request(
            "DELETE",
            self._node_path(node.id, node.kind),
            "delete_node",
            headers={"X-Contentful-Version": str(node.version)},
        )
        logger.debug("node_deleted_remote", node_id=node.id, kind=node.kind.value)


def _query_value(value: Any) -> Any:
    if isinstance(value, bool):
        return "true" if value else "false"
    return value
