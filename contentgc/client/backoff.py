# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
contentgc Backoff Client - Retry and exhaustive pagination for remote calls.

Every remote call made by the package goes through ``BackoffClient.call``:
rate-limit responses and timeouts are retried with exponential backoff and
jitter, every other failure propagates to the caller unchanged.
"""

import asyncio
import random
from typing import Any, Awaitable, Callable, Dict, List, Tuple, TypeVar

import structlog

from contentgc.config import ContentGCConfig
from contentgc.exceptions import (
    MalformedPageError,
    RateLimitedError,
    RemoteAPIError,
    RequestTimeoutError,
    RetryExhaustedError,
    VersionConflictError,
)
from contentgc.models import Node

logger = structlog.get_logger()

T = TypeVar("T")

Operation = Callable[[], Awaitable[T]]
PageFetcher = Callable[[Dict[str, Any]], Awaitable[Any]]
SleepFunc = Callable[[float], Awaitable[None]]


def parse_page(raw: Any) -> Tuple[List[Node], int]:
    """
    Validate one page of a paginated response and parse its items.

    Raises:
        MalformedPageError: If ``total`` is not an integer or ``items`` is
            not a list.
    """
    if not isinstance(raw, dict):
        raise MalformedPageError(
            "Page is not an object", details={"type": type(raw).__name__}
        )

    total = raw.get("total")
    items = raw.get("items")

    # bool is an int subclass and is never a valid total
    if not isinstance(total, int) or isinstance(total, bool) or total < 0:
        raise MalformedPageError("Page total is not a count", details={"total": total})

    if not isinstance(items, list):
        raise MalformedPageError(
            "Page items is not a list", details={"items_type": type(items).__name__}
        )

    return [Node.from_raw(item) for item in items], total


class BackoffClient:
    """Wraps remote operations with retry-on-rate-limit and paging."""

    def __init__(
        self,
        config: ContentGCConfig,
        sleep: SleepFunc | None = None,
        jitter: Callable[[], float] | None = None,
    ):
        self.config = config
        self._sleep = sleep or asyncio.sleep
        self._jitter = jitter or random.random

    def compute_delay(self, attempt: int, retry_after: float | None = None) -> float:
        """
        Delay before retry number ``attempt`` (1-based).

        ``base * 2**(attempt-1)`` plus up to one second of jitter, raised to the
        backend's retry hint when one was given, capped at ``retry_max_delay``.
        """
        delay = self.config.retry_base_delay * (2 ** (attempt - 1)) + self._jitter()
        if retry_after is not None:
            delay = max(delay, retry_after)
        return min(delay, self.config.retry_max_delay)

    async def pause(self, seconds: float) -> None:
        """Pacing delay between writes, pages and batches."""
        if seconds > 0:
            await self._sleep(seconds)

    async def call(self, operation: Operation, name: str = "operation") -> T:
        """
        Run ``operation`` with a timeout, retrying rate limits and timeouts.

        Args:
            operation: Zero-argument coroutine factory; called once per attempt
            name: Operation name used in log events

        Returns:
            Whatever ``operation`` returns

        Raises:
            RetryExhaustedError: If the retry budget is spent
            RemoteAPIError: Any non-retryable failure, immediately
        """
        attempt = 0
        while True:
            try:
                return await asyncio.wait_for(
                    operation(), timeout=self.config.request_timeout
                )
            except asyncio.TimeoutError as e:
                error: RemoteAPIError = RequestTimeoutError(
                    f"{name} timed out after {self.config.request_timeout}s"
                )
                error.__cause__ = e
            except RateLimitedError as e:
                error = e
            except RequestTimeoutError as e:
                error = e

            if attempt >= self.config.max_retries:
                logger.error(
                    "retry_budget_exhausted",
                    operation=name,
                    retries=attempt,
                    error=str(error),
                )
                raise RetryExhaustedError(
                    f"{name} failed after {attempt} retries: {error.message}",
                    details={"operation": name, "retries": attempt},
                    status_code=error.status_code,
                ) from error

            attempt += 1
            delay = self.compute_delay(attempt, getattr(error, "retry_after", None))
            logger.warning(
                "remote_call_retrying",
                operation=name,
                attempt=attempt,
                max_retries=self.config.max_retries,
                delay=round(delay, 3),
                reason=type(error).__name__,
            )
            await self._sleep(delay)

    async def fetch_all(
        self,
        fetch_page: PageFetcher,
        query: Dict[str, Any] | None = None,
        name: str = "fetch_all",
        max_items: int | None = None,
    ) -> List[Node]:
        """
        Fetch every node matching ``query`` using limit/skip pagination.

        Args:
            fetch_page: Called with the query plus ``limit`` and ``skip``;
                returns the raw ``{"items": [...], "total": n}`` page
            query: Backend query parameters
            name: Operation name used in log events
            max_items: Optional cap on the number of nodes returned

        Returns:
            All nodes, in backend order

        Raises:
            MalformedPageError: If a page is malformed or the backend stops
                returning items before ``total`` is reached
        """
        base_query = dict(query or {})
        nodes: List[Node] = []
        skip = 0
        page_number = 0

        while True:
            limit = self.config.page_size
            if max_items is not None:
                limit = min(limit, max_items - len(nodes))
                if limit <= 0:
                    break

            page_query = {**base_query, "limit": limit, "skip": skip}
            page_number += 1
            raw = await self.call(
                lambda: fetch_page(page_query), f"{name}_page_{page_number}"
            )
            items, total = parse_page(raw)
            nodes.extend(items)
            skip += len(items)

            logger.debug(
                "page_fetched",
                operation=name,
                page=page_number,
                fetched=len(items),
                total=total,
            )

            if skip >= total:
                break
            if not items:
                raise MalformedPageError(
                    "Backend returned an empty page before the reported total",
                    details={"operation": name, "skip": skip, "total": total},
                )

            await self.pause(self.config.page_delay)

        return nodes

    async def call_with_fresh_version(
        self,
        fetch: Callable[[], Awaitable[Node]],
        mutate: Callable[[Node], Awaitable[T]],
        name: str = "mutation",
    ) -> T:
        """
        Apply ``mutate`` to the latest version of a node.

        The node is fetched immediately before each attempt. A version
        conflict discards the attempt and starts over from a fresh fetch.
        """
        conflicts = 0
        while True:
            node = await self.call(fetch, f"{name}_fetch")
            try:
                return await self.call(lambda: mutate(node), name)
            except VersionConflictError:
                conflicts += 1
                if conflicts > self.config.max_retries:
                    raise
                logger.warning(
                    "version_conflict_refetching",
                    operation=name,
                    node_id=node.id,
                    version=node.version,
                    attempt=conflicts,
                )
