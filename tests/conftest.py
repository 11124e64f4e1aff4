# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Test fixtures for contentgc tests.

Provides an in-memory content graph, configuration fixtures, and helpers
for building raw nodes and links.
"""

import copy
import os
import tempfile
from datetime import datetime, timedelta, UTC
from pathlib import Path
from typing import Any, Dict, Generator, List, Set, Tuple

import pytest
import pytest_asyncio

from contentgc.exceptions import NotFoundError, ValidationError, VersionConflictError
from contentgc.links.traversal import iter_links
from contentgc.models import LinkKind, Node, NodeKind, parse_fields

# Set test environment variables
os.environ["CONTENTGC_ADMIN_API_KEY"] = "test-api-key-12345"

AUTH_HEADERS = {"Authorization": "Bearer test-api-key-12345"}


class InMemoryGraph:
    """
    ContentGraphAPI backed by dictionaries.

    Mirrors the backend behaviors the engine relies on: limit/skip paging,
    version checks on every write, NotFound for missing nodes, and refusal
    to delete published or archived nodes.

    Failure injection:
        failures: ``{(operation, node_id): exception}`` raised on every call
        conflict_once: node ids whose next write hits a concurrent edit
        sticky: node ids whose field updates are acknowledged but not applied
    """

    def __init__(self, nodes: List[Dict[str, Any]] | None = None):
        self.entries: Dict[str, Dict[str, Any]] = {}
        self.assets: Dict[str, Dict[str, Any]] = {}
        self.failures: Dict[Tuple[str, str], Exception] = {}
        self.conflict_once: Set[str] = set()
        self.sticky: Set[str] = set()
        self.calls: List[Tuple[str, str]] = []
        self.deleted: List[str] = []
        for raw in nodes or []:
            self.add(raw)

    # -- setup helpers ------------------------------------------------------

    def add(self, raw: Dict[str, Any]) -> None:
        store = self.assets if raw["sys"].get("type") == "Asset" else self.entries
        store[raw["sys"]["id"]] = copy.deepcopy(raw)

    def raw(self, node_id: str) -> Dict[str, Any]:
        return self.entries.get(node_id) or self.assets[node_id]

    def exists(self, node_id: str) -> bool:
        return node_id in self.entries or node_id in self.assets

    def field(self, node_id: str, field_name: str, locale: str = "en-US") -> Any:
        return self.raw(node_id)["fields"].get(field_name, {}).get(locale)

    def writes(self, operation: str) -> List[str]:
        return [node_id for op, node_id in self.calls if op == operation]

    # -- internals ----------------------------------------------------------

    def _store(self, kind: NodeKind) -> Dict[str, Dict[str, Any]]:
        return self.assets if kind == NodeKind.ASSET else self.entries

    def _maybe_fail(self, operation: str, node_id: str) -> None:
        self.calls.append((operation, node_id))
        error = self.failures.get((operation, node_id))
        if error is not None:
            raise error

    def _stored(self, node: Node) -> Dict[str, Any]:
        raw = self._store(node.kind).get(node.id)
        if raw is None:
            raise NotFoundError(f"{node.id} not found", status_code=404)
        return raw

    def _check_version(self, node: Node, raw: Dict[str, Any]) -> None:
        if node.id in self.conflict_once:
            self.conflict_once.discard(node.id)
            raw["sys"]["version"] += 1
            raise VersionConflictError(f"{node.id} was edited concurrently", status_code=409)
        if raw["sys"]["version"] != node.version:
            raise VersionConflictError(
                f"{node.id} version {node.version} is stale", status_code=409
            )

    def _bump(self, raw: Dict[str, Any]) -> Node:
        raw["sys"]["version"] += 1
        raw["sys"]["updatedAt"] = datetime.now(UTC).isoformat()
        return Node.from_raw(copy.deepcopy(raw))

    # -- ContentGraphAPI ----------------------------------------------------

    async def fetch_node(self, node_id: str, kind: NodeKind = NodeKind.ENTRY) -> Node:
        self._maybe_fail("fetch", node_id)
        raw = self._store(kind).get(node_id)
        if raw is None:
            raise NotFoundError(f"{node_id} not found", status_code=404)
        return Node.from_raw(copy.deepcopy(raw))

    async def fetch_page(
        self, query: Dict[str, Any], kind: NodeKind = NodeKind.ENTRY
    ) -> Dict[str, Any]:
        target = query.get("links_to_entry") or query.get("links_to_asset")
        if target:
            self._maybe_fail("inbound", target)
        else:
            self._maybe_fail("page", query.get("content_type") or kind.value)

        link_kind = LinkKind.ASSET if "links_to_asset" in query else LinkKind.ENTRY
        matching = []
        for raw in self._store(kind).values():
            sys = raw["sys"]
            if "content_type" in query:
                if (sys.get("contentType") or {}).get("sys", {}).get("id") != query["content_type"]:
                    continue
            if query.get("sys.archivedAt[exists]") is False and sys.get("archivedAt"):
                continue
            if target and not any(
                link.target_id == target and link.kind == link_kind
                for _f, _l, link in iter_links(parse_fields(raw.get("fields")))
            ):
                continue
            matching.append(copy.deepcopy(raw))

        skip = int(query.get("skip", 0))
        limit = int(query.get("limit", 100))
        return {"items": matching[skip:skip + limit], "total": len(matching)}

    async def update_node(self, node: Node) -> Node:
        self._maybe_fail("update", node.id)
        raw = self._stored(node)
        self._check_version(node, raw)
        if node.id not in self.sticky:
            raw["fields"] = node.to_raw()["fields"]
        return self._bump(raw)

    async def publish(self, node: Node) -> Node:
        self._maybe_fail("publish", node.id)
        raw = self._stored(node)
        self._check_version(node, raw)
        raw["sys"]["publishedVersion"] = raw["sys"]["version"]
        raw["sys"]["publishedAt"] = datetime.now(UTC).isoformat()
        return self._bump(raw)

    async def unpublish(self, node: Node) -> Node:
        self._maybe_fail("unpublish", node.id)
        raw = self._stored(node)
        self._check_version(node, raw)
        raw["sys"].pop("publishedVersion", None)
        raw["sys"].pop("publishedAt", None)
        return self._bump(raw)

    async def archive(self, node: Node) -> Node:
        self._maybe_fail("archive", node.id)
        raw = self._stored(node)
        self._check_version(node, raw)
        raw["sys"]["archivedAt"] = datetime.now(UTC).isoformat()
        return self._bump(raw)

    async def unarchive(self, node: Node) -> Node:
        self._maybe_fail("unarchive", node.id)
        raw = self._stored(node)
        self._check_version(node, raw)
        raw["sys"].pop("archivedAt", None)
        return self._bump(raw)

    async def delete_node(self, node: Node) -> None:
        self._maybe_fail("delete", node.id)
        raw = self._stored(node)
        self._check_version(node, raw)
        if raw["sys"].get("publishedVersion") or raw["sys"].get("publishedAt"):
            raise ValidationError(f"{node.id} is published", status_code=422)
        if raw["sys"].get("archivedAt"):
            raise ValidationError(f"{node.id} is archived", status_code=422)
        del self._store(node.kind)[node.id]
        self.deleted.append(node.id)


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def rules_document() -> Dict[str, Any]:
    """Rules document with an SEO rule and an orphan-author rule."""
    return {
        "deletionRules": [
            {
                "id": "remove-empty-seo-entries",
                "name": "Remove empty SEO entries",
                "enabled": True,
                "contentTypes": ["seoHead"],
                "environments": None,
                "conditions": {
                    "operator": "AND",
                    "rules": [
                        {"field": "title", "operator": "isEmpty", "description": "No title provided"},
                        {"field": "description", "operator": "isEmpty", "description": "No meta description"},
                    ],
                },
                "safetyChecks": {"checkLinks": True, "skipIfReferenced": True},
            },
            {
                "id": "remove-nameless-authors",
                "name": "Remove nameless authors",
                "enabled": True,
                "contentTypes": ["author"],
                "conditions": {
                    "operator": "AND",
                    "rules": [{"field": "name", "operator": "isEmpty", "description": "No name"}],
                },
                "safetyChecks": {"checkLinks": True, "skipIfReferenced": True},
            },
        ],
        "globalSettings": {
            "defaultBehavior": {"checkLinksBeforeDeletion": True, "maxDeletionsPerRun": 100}
        },
        "environmentConfig": {"staging": {"safeMode": True, "maxDeletionsPerRun": 50}},
    }


@pytest.fixture
def rule_set(rules_document):
    """Parsed rule set of ``rules_document``."""
    from contentgc.policy import parse_rule_set

    return parse_rule_set(rules_document)


@pytest.fixture
def test_config(temp_dir: Path):
    """Create a dry-run test configuration without pacing delays."""
    return make_config(temp_dir)


@pytest.fixture
def audit_config(temp_dir: Path):
    """Create a test configuration in audit-only mode."""
    return make_config(temp_dir, mode="audit_only")


@pytest.fixture
def execute_config(temp_dir: Path):
    """Create a test configuration in execute mode."""
    return make_config(temp_dir, mode="execute")


@pytest.fixture
def graph() -> InMemoryGraph:
    """Small graph: an empty SEO head, a referenced author, and an article."""
    return InMemoryGraph(
        [
            entry("n1", "seoHead", {"title": "", "description": ""}),
            entry("n2", "author", {"name": ""}),
            entry(
                "n3",
                "article",
                {"title": "Hello", "related": [link("n2"), link("other")]},
                published=True,
            ),
            entry("other", "article", {"title": "Other"}),
        ]
    )


@pytest_asyncio.fixture
async def test_gc_state(test_config, graph, rule_set):
    """Create initialized run state over the in-memory graph."""
    from contentgc.core import initialize_gc_state, shutdown_gc_state

    state = await initialize_gc_state(test_config, api=graph, rule_set=rule_set)
    yield state
    await shutdown_gc_state(state)


# ============================================================================
# Helpers
# ============================================================================

def make_config(temp_dir: Path, mode: str = "dry_run", **overrides):
    """Configuration with every pacing delay and retry delay set to zero."""
    from contentgc.builder import create_config

    options = {
        "page_delay": 0.0,
        "write_delay": 0.0,
        "batch_delay": 0.0,
        "unlink_settle_delay": 0.0,
        "retry_base_delay": 0.0,
        "retry_max_delay": 0.0,
        "max_retries": 2,
    }
    options.update(overrides)
    return create_config(
        space_id="test-space",
        environment=options.pop("environment", "master"),
        mode=mode,
        vault_path=temp_dir / "vault",
        max_deletions_per_run=options.pop("max_deletions_per_run", None),
        **options,
    )


def link(target_id: str, kind: str = "Entry") -> Dict[str, Any]:
    """Raw link value."""
    return {"sys": {"type": "Link", "linkType": kind, "id": target_id}}


def entry(
    node_id: str,
    content_type: str,
    fields: Dict[str, Any] | None = None,
    locale: str = "en-US",
    created_days_ago: int = 0,
    published: bool = False,
    archived: bool = False,
    version: int = 1,
) -> Dict[str, Any]:
    """Raw entry with every field value stored under ``locale``."""
    created = datetime.now(UTC) - timedelta(days=created_days_ago)
    sys: Dict[str, Any] = {
        "id": node_id,
        "type": "Entry",
        "version": version,
        "contentType": {"sys": {"type": "Link", "linkType": "ContentType", "id": content_type}},
        "createdAt": created.isoformat(),
        "updatedAt": created.isoformat(),
    }
    if published:
        sys["publishedVersion"] = version
        sys["publishedAt"] = created.isoformat()
    if archived:
        sys["archivedAt"] = created.isoformat()
    return {
        "sys": sys,
        "fields": {name: {locale: value} for name, value in (fields or {}).items()},
    }


def asset(node_id: str, title: str = "image", published: bool = False) -> Dict[str, Any]:
    """Raw asset."""
    raw = entry(node_id, "", {"title": title}, published=published)
    raw["sys"]["type"] = "Asset"
    del raw["sys"]["contentType"]
    return raw


def node(raw: Dict[str, Any]) -> Node:
    return Node.from_raw(copy.deepcopy(raw))
