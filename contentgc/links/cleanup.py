# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
contentgc Broken-Link Cleanup - Remove links whose target no longer exists.

A link is removed only when its target is definitely absent. Links whose
existence could not be determined (rate limits, transport errors) are kept.
"""

import asyncio
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Set

import structlog

from contentgc.exceptions import SYSTEMIC_ERRORS, NotFoundError, RemoteAPIError
from contentgc.links.resolver import LinkResolver
from contentgc.links.traversal import iter_links, remove_links
from contentgc.models import FieldMap, Link, LinkKind, Node, NodeKind, RemovedLink

logger = structlog.get_logger()


@dataclass
class BrokenLinkResult:
    """Broken links found in, and optionally removed from, one node."""

    node_id: str
    total_links_found: int = 0
    broken: List[RemovedLink] = field(default_factory=list)
    undetermined: int = 0
    was_updated: bool = False
    republished: bool = False
    errors: List[str] = field(default_factory=list)
    cleaned_fields: FieldMap | None = None

    @property
    def has_broken_links(self) -> bool:
        return bool(self.broken)

    @property
    def broken_entry_links(self) -> int:
        return sum(1 for link in self.broken if link.link_kind == LinkKind.ENTRY.value)

    @property
    def broken_asset_links(self) -> int:
        return sum(1 for link in self.broken if link.link_kind == LinkKind.ASSET.value)


@dataclass
class BulkCleanupResult:
    total_processed: int = 0
    total_with_broken_links: int = 0
    total_links_found: int = 0
    total_broken_links_removed: int = 0
    total_nodes_updated: int = 0
    total_nodes_republished: int = 0
    broken_entry_links: int = 0
    broken_asset_links: int = 0
    skipped_archived: int = 0
    nodes_with_broken_links: List[str] = field(default_factory=list)
    errors: List[Dict[str, str]] = field(default_factory=list)
    dry_run: bool = True

    def add(self, result: BrokenLinkResult) -> None:
        self.total_processed += 1
        self.total_links_found += result.total_links_found
        if result.has_broken_links:
            self.total_with_broken_links += 1
            self.nodes_with_broken_links.append(result.node_id)
            self.broken_entry_links += result.broken_entry_links
            self.broken_asset_links += result.broken_asset_links
            if result.was_updated or self.dry_run:
                self.total_broken_links_removed += len(result.broken)
        if result.was_updated:
            self.total_nodes_updated += 1
        if result.republished:
            self.total_nodes_republished += 1
        for error in result.errors:
            self.errors.append({"id": result.node_id, "error": error})

    def to_dict(self) -> Dict[str, Any]:
        return {
            "dryRun": self.dry_run,
            "totalProcessed": self.total_processed,
            "totalWithBrokenLinks": self.total_with_broken_links,
            "totalLinksFound": self.total_links_found,
            "totalBrokenLinksRemoved": self.total_broken_links_removed,
            "totalEntriesUpdated": self.total_nodes_updated,
            "totalEntriesPublished": self.total_nodes_republished,
            "brokenEntryLinks": self.broken_entry_links,
            "brokenAssetLinks": self.broken_asset_links,
            "skippedArchived": self.skipped_archived,
            "entriesWithBrokenLinks": list(self.nodes_with_broken_links),
            "errors": list(self.errors),
        }


class BrokenLinkCleaner:
    """Finds and removes broken links using a shared LinkResolver."""

    def __init__(self, resolver: LinkResolver):
        self.resolver = resolver
        self.api = resolver.api
        self.backoff = resolver.backoff
        self.config = resolver.config

    async def find_broken_links(self, fields: FieldMap) -> tuple[Set[Link], int, int]:
        """Return ``(broken, links_found, undetermined)`` for a field map."""
        broken: Set[Link] = set()
        found = 0
        undetermined = 0
        for _field, _locale, link in iter_links(fields):
            found += 1
            exists = await self.resolver.link_exists(link)
            if exists is None:
                undetermined += 1
            elif not exists:
                broken.add(link)
        return broken, found, undetermined

    async def clean_node(
        self, node: Node, dry_run: bool = True, publish: bool | None = None
    ) -> BrokenLinkResult:
        """
        Validate every link of ``node`` and remove the broken ones.

        In dry-run mode nothing is written; ``cleaned_fields`` shows what
        the node would look like.
        """
        result = BrokenLinkResult(node_id=node.id)
        broken, result.total_links_found, result.undetermined = await self.find_broken_links(
            node.fields
        )
        if not broken:
            return result

        stripped = remove_links(node.fields, lambda link: link in broken)
        result.broken = stripped.removed
        result.cleaned_fields = stripped.fields
        for removed in stripped.removed:
            logger.info(
                "broken_link_found",
                node_id=node.id,
                field=removed.field,
                locale=removed.locale,
                target_id=removed.removed_id,
                link_kind=removed.link_kind,
                dry_run=dry_run,
            )

        if dry_run:
            return result

        try:
            was_published = await self._write(node, broken)
        except SYSTEMIC_ERRORS:
            raise
        except NotFoundError:
            logger.info("cleanup_node_gone", node_id=node.id)
            return result
        except RemoteAPIError as e:
            result.errors.append(f"Failed to update node {node.id}: {e.message}")
            logger.error("cleanup_update_failed", node_id=node.id, error=str(e))
            return result

        result.was_updated = True
        await self.backoff.pause(self.config.write_delay)

        should_publish = self.config.republish_after_unlink if publish is None else publish
        if should_publish and was_published:
            try:
                await self.backoff.call_with_fresh_version(
                    lambda: self.api.fetch_node(node.id, node.kind),
                    self.api.publish,
                    name=f"publish_{node.id}",
                )
                result.republished = True
            except SYSTEMIC_ERRORS:
                raise
            except RemoteAPIError as e:
                result.errors.append(f"Failed to publish node {node.id}: {e.message}")
                logger.error("cleanup_publish_failed", node_id=node.id, error=str(e))

        return result

    async def _write(self, node: Node, broken: Set[Link]) -> bool:
        async def mutate(latest: Node) -> bool:
            stripped = remove_links(latest.fields, lambda link: link in broken)
            if stripped.changed:
                await self.api.update_node(replace(latest, fields=stripped.fields))
            return latest.is_published

        return await self.backoff.call_with_fresh_version(
            lambda: self.api.fetch_node(node.id, node.kind),
            mutate,
            name=f"clean_links_{node.id}",
        )

    async def _clean_safely(self, node: Node, dry_run: bool, publish: bool | None) -> BrokenLinkResult:
        try:
            return await self.clean_node(node, dry_run=dry_run, publish=publish)
        except SYSTEMIC_ERRORS:
            raise
        except Exception as e:
            logger.error("cleanup_node_failed", node_id=node.id, error=str(e))
            return BrokenLinkResult(node_id=node.id, errors=[str(e)])

    async def bulk_clean(
        self,
        content_type: str | None = None,
        max_nodes: int | None = None,
        dry_run: bool = True,
        publish: bool | None = None,
    ) -> BulkCleanupResult:
        """
        Scan non-archived entries and clean their broken links.

        Nodes are processed in batches of ``max_concurrent_ops``. A failure
        on one node is recorded and the scan continues.

        Raises:
            RemoteAPIError: If the node listing itself fails, or on an
                authentication or connectivity failure
        """
        query: Dict[str, Any] = {"order": "sys.createdAt", "sys.archivedAt[exists]": False}
        if content_type:
            query["content_type"] = content_type

        nodes = await self.backoff.fetch_all(
            lambda q: self.api.fetch_page(q, NodeKind.ENTRY),
            query,
            name="bulk_link_cleanup",
            max_items=max_nodes,
        )

        summary = BulkCleanupResult(dry_run=dry_run)
        logger.info(
            "bulk_link_cleanup_started",
            content_type=content_type,
            nodes=len(nodes),
            dry_run=dry_run,
        )

        active = []
        for node in nodes:
            if node.is_archived:
                summary.skipped_archived += 1
            else:
                active.append(node)

        batch_size = self.config.max_concurrent_ops
        for start in range(0, len(active), batch_size):
            if start:
                await self.backoff.pause(self.config.batch_delay)
            batch = active[start:start + batch_size]
            results = await asyncio.gather(
                *(self._clean_safely(node, dry_run, publish) for node in batch)
            )
            for result in results:
                summary.add(result)

        logger.info(
            "bulk_link_cleanup_completed",
            processed=summary.total_processed,
            with_broken_links=summary.total_with_broken_links,
            removed=summary.total_broken_links_removed,
            updated=summary.total_nodes_updated,
            errors=len(summary.errors),
        )
        return summary
