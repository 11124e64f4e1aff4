# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
contentgc Core - Run cycle functions for reference-safe deletion.

This module coordinates all the components: rules, remote API,
orchestrator, reporting and the audit vault.
"""

from dataclasses import dataclass, field
from datetime import datetime, UTC
from pathlib import Path
from typing import Any, Dict, Iterable, List, TypedDict

import structlog

from contentgc.config import ContentGCConfig, GCMode
from contentgc.models import ASSET_CONTENT_TYPE, CandidateState, Node, NodeKind

logger = structlog.get_logger()


@dataclass
class GCResult:
    """Result of a deletion run."""

    run_id: str  # ULID
    mode: str
    environment: str
    total_scanned: int
    candidates_found: int
    will_delete: int
    deleted_count: int
    delete_failed_count: int
    unlinked_nodes: int
    errors: List[str]
    duration_seconds: float
    report: Any = None  # DeletionReport
    report_path: Path | None = None
    deleted_ids: List[str] = field(default_factory=list)
    skipped_ids: List[str] = field(default_factory=list)


@dataclass
class GCMetrics:
    """Metrics for deletion runs."""

    total_runs: int
    last_run_at: datetime | None
    last_run_id: str | None
    total_deleted: int
    total_unlinked: int
    total_skipped: int
    total_link_cleanups: int
    vault_size_bytes: int
    report_count: int
    last_error: str | None


class GCState(TypedDict):
    """Runtime state for deletion runs."""

    vault_db_path: Path
    vault_path: Path
    api: Any  # ContentGraphAPI
    owns_api: bool
    backoff: Any  # BackoffClient
    rule_set: Any  # RuleSet
    rule_warnings: List[str]
    last_run_at: datetime | None
    last_run_id: str | None
    last_report: Dict[str, Any] | None
    total_runs: int
    total_deleted: int
    total_unlinked: int
    total_skipped: int
    total_link_cleanups: int
    last_error: str | None


async def initialize_gc_state(
    config: ContentGCConfig,
    api: Any = None,
    rule_set: Any = None,
) -> GCState:
    """
    Initialize runtime state for deletion runs.

    Creates the vault directory and database, loads and validates the
    deletion rules, and builds the remote API client.

    Args:
        config: contentgc configuration
        api: ContentGraphAPI implementation (HTTP client built from config if omitted)
        rule_set: Preloaded rules (loaded from ``config.rules_path`` if omitted)

    Returns:
        Initialized GCState dictionary

    Raises:
        ConfigurationError: If no rules are given and none can be loaded
    """
    from contentgc.client import BackoffClient, HTTPContentGraphAPI
    from contentgc.exceptions import ConfigurationError
    from contentgc.policy import load_rule_set, validate_rule_set
    from contentgc.vault import init_vault_db

    if rule_set is None:
        if config.rules_path is None:
            raise ConfigurationError(
                "rules_path is required when no rule set is supplied",
                details={"space_id": config.space_id},
            )
        rule_set = load_rule_set(config.rules_path)

    warnings = validate_rule_set(rule_set)
    for warning in warnings:
        logger.warning("rule_warning", warning=warning)

    config.vault_path.mkdir(parents=True, exist_ok=True)
    vault_db_path = config.vault_path / "vault.db"
    await init_vault_db(vault_db_path)

    owns_api = api is None
    if api is None:
        api = HTTPContentGraphAPI(config)

    return GCState(
        vault_db_path=vault_db_path,
        vault_path=config.vault_path,
        api=api,
        owns_api=owns_api,
        backoff=BackoffClient(config),
        rule_set=rule_set,
        rule_warnings=warnings,
        last_run_at=None,
        last_run_id=None,
        last_report=None,
        total_runs=0,
        total_deleted=0,
        total_unlinked=0,
        total_skipped=0,
        total_link_cleanups=0,
        last_error=None,
    )


async def fetch_candidate_nodes(config: ContentGCConfig, state: GCState) -> List[Node]:
    """
    Fetch every node of the content types covered by the enabled rules.

    Content types are fetched in name order; within a content type the
    backend's creation order is kept. This is the discovery order used
    by the deletion quota.
    """
    backoff = state["backoff"]
    api = state["api"]
    content_types = state["rule_set"].content_types_for_environment(config.environment)

    if content_types is None:
        logger.info("fetching_all_entries", environment=config.environment)
        return await backoff.fetch_all(
            lambda q: api.fetch_page(q, NodeKind.ENTRY),
            {"order": "sys.createdAt"},
            name="fetch_entries",
        )

    if not content_types:
        logger.info("no_enabled_rules", environment=config.environment)
        return []

    nodes: List[Node] = []
    for content_type in sorted(content_types):
        if content_type == ASSET_CONTENT_TYPE:
            batch = await backoff.fetch_all(
                lambda q: api.fetch_page(q, NodeKind.ASSET),
                {"order": "sys.createdAt"},
                name="fetch_assets",
            )
        else:
            batch = await backoff.fetch_all(
                lambda q: api.fetch_page(q, NodeKind.ENTRY),
                {"content_type": content_type, "order": "sys.createdAt"},
                name=f"fetch_{content_type}",
            )
        logger.info("nodes_fetched", content_type=content_type, count=len(batch))
        nodes.extend(batch)
    return nodes


async def run_gc_cycle(
    config: ContentGCConfig,
    state: GCState,
    nodes: Iterable[Node] | None = None,
) -> GCResult:
    """
    Run a complete deletion cycle.

    This is the main entry point for deletion runs. It:
    1. Fetches the candidate nodes (unless supplied)
    2. Evaluates them against the rules, checking inbound links
    3. Unlinks, verifies and deletes (in execute mode)
    4. Records the decision trail to the vault and the report file

    Args:
        config: contentgc configuration
        state: Runtime state
        nodes: Nodes to evaluate instead of fetching them

    Returns:
        GCResult with run details
    """
    import aiosqlite
    from ulid import ULID

    from contentgc.orchestrator import DeletionOrchestrator
    from contentgc.reporting import write_report_file
    from contentgc.vault import complete_run, record_decisions, record_run, record_unlinks

    run_id = str(ULID())
    start_time = datetime.now(UTC)
    logger.info(
        "gc_cycle_started",
        run_id=run_id,
        mode=config.mode.value,
        environment=config.environment,
    )

    try:
        if nodes is None:
            nodes = await fetch_candidate_nodes(config, state)
        nodes = list(nodes)

        orchestrator = DeletionOrchestrator(
            config,
            state["api"],
            state["rule_set"],
            backoff=state["backoff"],
            run_id=run_id,
        )
        candidates = await orchestrator.evaluate_candidates(nodes, config.environment)
        report = await orchestrator.execute_deletions(candidates)

        if config.mode != GCMode.DRY_RUN:
            async with aiosqlite.connect(state["vault_db_path"]) as vault_db:
                await record_run(
                    vault_db,
                    run_id,
                    config.environment,
                    config.mode.value,
                    {"scanned": len(nodes), "candidates": len(candidates)},
                )
                await record_decisions(vault_db, run_id, candidates)
                await record_unlinks(vault_db, run_id, candidates)
                await complete_run(
                    vault_db,
                    run_id,
                    {"scanned": len(nodes), **report.summary, **report.execution},
                )

        report_path = None
        if config.write_report:
            report_path = await write_report_file(config.vault_path, report)

        deleted_ids = [c.node_id for c in candidates if c.state == CandidateState.DELETED]
        skipped_ids = [c.node_id for c in candidates if not c.will_delete]
        errors = [f"{c.node_id}: {c.error}" for c in candidates if c.error]
        duration = (datetime.now(UTC) - start_time).total_seconds()

        state["last_run_at"] = datetime.now(UTC)
        state["last_run_id"] = run_id
        state["last_report"] = report.to_dict()
        state["total_runs"] += 1
        state["total_deleted"] += len(deleted_ids)
        state["total_unlinked"] += report.execution["unlinkedNodes"]
        state["total_skipped"] += len(skipped_ids)

        result = GCResult(
            run_id=run_id,
            mode=config.mode.value,
            environment=config.environment,
            total_scanned=len(nodes),
            candidates_found=len(candidates),
            will_delete=report.summary["willDelete"],
            deleted_count=len(deleted_ids),
            delete_failed_count=report.execution["deleteFailed"],
            unlinked_nodes=report.execution["unlinkedNodes"],
            errors=errors,
            duration_seconds=duration,
            report=report,
            report_path=report_path,
            deleted_ids=deleted_ids,
            skipped_ids=skipped_ids,
        )

        logger.info(
            "gc_cycle_completed",
            run_id=run_id,
            candidates=len(candidates),
            deleted=len(deleted_ids),
            skipped=len(skipped_ids),
            duration=duration,
        )
        return result

    except Exception as e:
        state["last_error"] = str(e)
        logger.error("gc_cycle_failed", run_id=run_id, error=str(e))
        if config.mode != GCMode.DRY_RUN:
            await _record_failed_run(config, state, run_id, str(e))
        raise


async def _record_failed_run(config: ContentGCConfig, state: GCState, run_id: str, error: str) -> None:
    import aiosqlite

    from contentgc.exceptions import VaultError
    from contentgc.vault import complete_run, get_run, record_run

    try:
        async with aiosqlite.connect(state["vault_db_path"]) as vault_db:
            if await get_run(vault_db, run_id) is None:
                await record_run(vault_db, run_id, config.environment, config.mode.value, {})
            await complete_run(vault_db, run_id, {}, error=error)
    except (aiosqlite.Error, VaultError) as e:
        logger.warning("failed_run_not_recorded", run_id=run_id, error=str(e))


async def plan_deletions(
    config: ContentGCConfig,
    state: GCState,
    node_ids: List[str] | None = None,
    content_type: str | None = None,
):
    """
    Dry-run plan for specific nodes or one content type.

    Nothing is mutated and nothing is recorded. Node ids that no longer
    exist are ignored.

    Returns:
        Tuple of (candidates, DeletionReport)
    """
    from contentgc.exceptions import NotFoundError
    from contentgc.orchestrator import DeletionOrchestrator

    backoff = state["backoff"]
    api = state["api"]
    nodes: List[Node] = []

    for node_id in node_ids or []:
        try:
            nodes.append(await backoff.call(lambda: api.fetch_node(node_id), f"fetch_{node_id}"))
        except NotFoundError:
            logger.info("plan_node_missing", node_id=node_id)

    if content_type:
        kind = NodeKind.ASSET if content_type == ASSET_CONTENT_TYPE else NodeKind.ENTRY
        query = {"order": "sys.createdAt"}
        if kind == NodeKind.ENTRY:
            query["content_type"] = content_type
        nodes.extend(
            await backoff.fetch_all(
                lambda q: api.fetch_page(q, kind), query, name=f"plan_{content_type}"
            )
        )

    orchestrator = DeletionOrchestrator(
        config.with_updates(mode=GCMode.DRY_RUN),
        api,
        state["rule_set"],
        backoff=backoff,
    )
    candidates = await orchestrator.evaluate_candidates(nodes, config.environment)
    return candidates, orchestrator.report(candidates)


async def run_link_cleanup(
    config: ContentGCConfig,
    state: GCState,
    content_type: str | None = None,
    max_nodes: int | None = None,
):
    """
    Scan for and remove broken links.

    Links are only removed in execute mode; other modes report what
    would be removed.

    Returns:
        BulkCleanupResult
    """
    from contentgc.links import BrokenLinkCleaner, LinkResolver

    resolver = LinkResolver(state["api"], state["backoff"], config)
    cleaner = BrokenLinkCleaner(resolver)
    try:
        result = await cleaner.bulk_clean(
            content_type=content_type,
            max_nodes=max_nodes,
            dry_run=config.mode != GCMode.EXECUTE,
        )
    except Exception as e:
        state["last_error"] = str(e)
        logger.error("link_cleanup_failed", content_type=content_type, error=str(e))
        raise

    state["total_link_cleanups"] += 1
    return result


async def get_metrics(config: ContentGCConfig, state: GCState) -> GCMetrics:
    """Get current run metrics."""
    from contentgc.reporting import list_report_files

    vault_size = 0
    if config.vault_path.exists():
        vault_size = sum(
            f.stat().st_size for f in config.vault_path.rglob("*") if f.is_file()
        )

    return GCMetrics(
        total_runs=state["total_runs"],
        last_run_at=state["last_run_at"],
        last_run_id=state["last_run_id"],
        total_deleted=state["total_deleted"],
        total_unlinked=state["total_unlinked"],
        total_skipped=state["total_skipped"],
        total_link_cleanups=state["total_link_cleanups"],
        vault_size_bytes=vault_size,
        report_count=len(list_report_files(config.vault_path)),
        last_error=state["last_error"],
    )


async def shutdown_gc_state(state: GCState) -> None:
    """Cleanup resources."""
    api = state["api"]
    if state["owns_api"] and hasattr(api, "close"):
        try:
            await api.close()
        except Exception as e:
            logger.warning("api_client_close_failed", error=str(e))

    logger.info("gc_state_shutdown_complete")
