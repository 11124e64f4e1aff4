# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
contentgc Link Resolver - Inbound reference discovery and removal.

The resolver answers two questions for the rest of the package:

1. Which nodes reference X? (``find_inbound_links``)
2. Does the target of this link still exist? (``link_exists``)

and performs one mutation: stripping every reference to X from the nodes
that hold it (``remove_all_inbound_links``). Each referencing node is
re-fetched immediately before it is written, and written at most once.
"""

from dataclasses import dataclass, field, replace
from typing import Dict, List, Tuple

import structlog

from contentgc.client.api import ContentGraphAPI
from contentgc.client.backoff import BackoffClient
from contentgc.config import ContentGCConfig
from contentgc.exceptions import SYSTEMIC_ERRORS, NotFoundError, RemoteAPIError, ValidationError
from contentgc.links.traversal import remove_links, targets
from contentgc.models import (
    Link,
    LinkedBy,
    LinkKind,
    Node,
    NodeKind,
    UnlinkRecord,
)

logger = structlog.get_logger()


@dataclass(frozen=True)
class UnlinkFailure:
    """A referencing node whose write ultimately failed."""

    referencing_id: str
    error: str

    def to_dict(self) -> dict:
        return {"id": self.referencing_id, "error": self.error}


@dataclass
class UnlinkResult:
    """Outcome of removing every inbound reference to one node."""

    target_id: str
    success: bool = True
    updated_count: int = 0
    errors: List[UnlinkFailure] = field(default_factory=list)
    unlinked_from: List[UnlinkRecord] = field(default_factory=list)
    skipped_archived: List[str] = field(default_factory=list)


@dataclass
class _WriteOutcome:
    record: UnlinkRecord | None = None
    archived: bool = False
    was_published: bool = False


def inbound_query(node_id: str, kind: NodeKind) -> Dict[str, str]:
    """Backend query selecting every entry that links to ``node_id``."""
    if kind == NodeKind.ASSET:
        return {"links_to_asset": node_id}
    return {"links_to_entry": node_id}


class LinkResolver:
    """
    Inbound-link discovery, removal and target existence checks.

    Args:
        api: Remote graph backend
        backoff: Retry/pagination wrapper used for every remote call
        config: Package configuration (write pacing, republish switch)
    """

    def __init__(self, api: ContentGraphAPI, backoff: BackoffClient, config: ContentGCConfig):
        self.api = api
        self.backoff = backoff
        self.config = config
        self._exists_cache: Dict[Tuple[LinkKind, str], bool] = {}

    async def find_referencing_nodes(self, node_id: str, kind: NodeKind = NodeKind.ENTRY) -> List[Node]:
        """Every node whose fields link to ``node_id``, across all pages."""
        return await self.backoff.fetch_all(
            lambda query: self.api.fetch_page(query, NodeKind.ENTRY),
            inbound_query(node_id, kind),
            name=f"find_inbound_links_{node_id}",
        )

    async def find_inbound_links(self, node_id: str, kind: NodeKind = NodeKind.ENTRY) -> List[LinkedBy]:
        """
        List the nodes referencing ``node_id``.

        Raises:
            RemoteAPIError: If the lookup fails; callers must not treat a
                failed lookup as "not referenced"
        """
        nodes = await self.find_referencing_nodes(node_id, kind)
        linked_by = [LinkedBy(id=node.id, content_type=node.content_type) for node in nodes]
        logger.debug("inbound_links_found", node_id=node_id, count=len(linked_by))
        return linked_by

    async def remove_all_inbound_links(
        self, node_id: str, kind: NodeKind = NodeKind.ENTRY
    ) -> UnlinkResult:
        """
        Strip every reference to ``node_id`` from the nodes that hold one.

        Failures are collected per referencing node; one failed write does
        not stop the others. ``success`` is False iff at least one write
        ultimately failed.

        Raises:
            RemoteAPIError: If the referencing nodes cannot be listed, or on
                an authentication or connectivity failure
        """
        result = UnlinkResult(target_id=node_id)
        referencing = await self.find_referencing_nodes(node_id, kind)

        logger.info("unlink_started", node_id=node_id, referencing_nodes=len(referencing))

        for ref in referencing:
            try:
                outcome = await self._unlink_from(ref, node_id, LinkKind(kind.value))
            except SYSTEMIC_ERRORS:
                raise
            except NotFoundError:
                logger.info("referencing_node_gone", node_id=node_id, referencing_id=ref.id)
                continue
            except Exception as e:
                result.errors.append(UnlinkFailure(referencing_id=ref.id, error=str(e)))
                logger.warning(
                    "unlink_write_failed",
                    node_id=node_id,
                    referencing_id=ref.id,
                    error=str(e),
                )
                continue

            if outcome.archived:
                result.skipped_archived.append(ref.id)
                logger.info("unlink_skipped_archived", node_id=node_id, referencing_id=ref.id)
                continue

            if outcome.record is None:
                continue

            if self.config.republish_after_unlink and outcome.was_published:
                outcome.record.republished = await self._republish(ref)

            result.unlinked_from.append(outcome.record)
            result.updated_count += 1
            logger.info(
                "links_removed",
                node_id=node_id,
                referencing_id=ref.id,
                removed=len(outcome.record.removed),
            )
            await self.backoff.pause(self.config.write_delay)

        result.success = not result.errors
        return result

    async def _unlink_from(self, ref: Node, target_id: str, kind: LinkKind) -> _WriteOutcome:
        async def fetch() -> Node:
            return await self.api.fetch_node(ref.id, ref.kind)

        async def mutate(latest: Node) -> _WriteOutcome:
            if latest.is_archived:
                return _WriteOutcome(archived=True)

            stripped = remove_links(latest.fields, targets(target_id, kind))
            for skipped in stripped.skipped:
                logger.warning(
                    "unlink_locale_skipped",
                    referencing_id=latest.id,
                    field=skipped.field,
                    locale=skipped.locale,
                    reason=skipped.reason,
                )
            if not stripped.changed:
                return _WriteOutcome()

            await self.api.update_node(replace(latest, fields=stripped.fields))
            return _WriteOutcome(
                record=UnlinkRecord(
                    referencing_id=latest.id,
                    content_type=latest.content_type,
                    target_id=target_id,
                    removed=stripped.removed,
                ),
                was_published=latest.is_published,
            )

        return await self.backoff.call_with_fresh_version(fetch, mutate, name=f"unlink_{ref.id}")

    async def _republish(self, ref: Node) -> bool:
        try:
            await self.backoff.call_with_fresh_version(
                lambda: self.api.fetch_node(ref.id, ref.kind),
                self.api.publish,
                name=f"republish_{ref.id}",
            )
        except SYSTEMIC_ERRORS:
            raise
        except RemoteAPIError as e:
            logger.warning("republish_failed", referencing_id=ref.id, error=str(e))
            return False
        return True

    async def link_exists(self, link: Link) -> bool | None:
        """
        Whether the target of ``link`` exists in the current environment.

        Returns:
            True or False when known; None when existence could not be
            determined (the caller must keep the link). Incomplete links
            have no resolvable target and are reported as absent.
        """
        if not link.is_complete:
            return False

        key = (link.kind, link.target_id)
        cached = self._exists_cache.get(key)
        if cached is not None:
            return cached

        kind = NodeKind.ASSET if link.kind == LinkKind.ASSET else NodeKind.ENTRY
        try:
            await self.backoff.call(
                lambda: self.api.fetch_node(link.target_id, kind),
                f"validate_{kind.value.lower()}_{link.target_id}",
            )
            exists = True
        except (NotFoundError, ValidationError):
            exists = False
        except SYSTEMIC_ERRORS:
            raise
        except RemoteAPIError as e:
            logger.warning(
                "link_existence_undetermined",
                target_id=link.target_id,
                link_kind=link.kind.value,
                error=str(e),
            )
            return None

        self._exists_cache[key] = exists
        return exists
