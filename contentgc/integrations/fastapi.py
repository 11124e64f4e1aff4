# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
contentgc FastAPI Integration - Admin routes for FastAPI applications.

This module provides a complete integration with FastAPI including:
- Lifespan management (startup/shutdown)
- Protected admin endpoints for runs, plans and broken-link cleanup
- Read access to the audit vault
- Health checks
"""

import os
from contextlib import asynccontextmanager
from dataclasses import asdict
from datetime import datetime, UTC
from typing import Any, Dict, List

import aiosqlite
import structlog
from fastapi import Depends, FastAPI, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, Field

from contentgc.config import ContentGCConfig, GCMode
from contentgc.core import (
    GCResult,
    GCState,
    get_metrics,
    initialize_gc_state,
    plan_deletions,
    run_gc_cycle,
    run_link_cleanup,
    shutdown_gc_state,
)
from contentgc.exceptions import ContentGCError, RemoteAPIError
from contentgc.models import NodeKind
from contentgc.vault import get_run, get_run_decisions, get_vault_stats, list_runs

logger = structlog.get_logger()

DEFAULT_PREFIX = "/admin/contentgc"

# Security
security = HTTPBearer(auto_error=False)


class EvaluateRequest(BaseModel):
    """Dry-run plan request: explicit node ids, a content type, or both."""

    node_ids: List[str] = Field(default_factory=list)
    content_type: str | None = None


class LinkCleanupRequest(BaseModel):
    content_type: str | None = None
    max_nodes: int | None = Field(default=None, ge=1)


async def verify_api_key(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> bool:
    """
    Verify API key from Authorization header.

    The API key is read from the CONTENTGC_ADMIN_API_KEY environment variable.
    Requests must include: Authorization: Bearer <api_key>

    Raises:
        HTTPException: If API key is missing or invalid
    """
    api_key = os.getenv("CONTENTGC_ADMIN_API_KEY")

    if not api_key:
        raise HTTPException(
            status_code=500,
            detail="CONTENTGC_ADMIN_API_KEY environment variable not set",
        )

    if not credentials:
        raise HTTPException(
            status_code=401,
            detail="Authorization header required",
        )

    if credentials.credentials != api_key:
        raise HTTPException(
            status_code=403,
            detail="Invalid API key",
        )

    return True


def _result_to_dict(result: GCResult) -> Dict[str, Any]:
    data = asdict(result)
    data["report"] = result.report.to_dict() if result.report else None
    data["report_path"] = str(result.report_path) if result.report_path else None
    return data


def _http_error(error: ContentGCError) -> HTTPException:
    status = 502 if isinstance(error, RemoteAPIError) else 500
    return HTTPException(status_code=status, detail=error.message)


def register_contentgc_routes(
    app: FastAPI,
    config: ContentGCConfig,
    state: GCState,
    prefix: str = DEFAULT_PREFIX,
) -> None:
    """
    Register contentgc admin endpoints on a FastAPI app.

    All endpoints require Bearer token authentication.

    Args:
        app: FastAPI application
        config: contentgc configuration
        state: Runtime state
        prefix: URL prefix for endpoints (default: /admin/contentgc)
    """

    @app.post(f"{prefix}/run", dependencies=[Depends(verify_api_key)])
    async def trigger_run(dry_run: bool = False) -> dict:
        """
        Manually trigger a deletion run.

        Args:
            dry_run: Force a dry run regardless of the configured mode
        """
        run_config = config.with_updates(mode=GCMode.DRY_RUN) if dry_run else config
        try:
            result = await run_gc_cycle(run_config, state)
        except ContentGCError as e:
            raise _http_error(e)
        return _result_to_dict(result)

    @app.post(f"{prefix}/evaluate", dependencies=[Depends(verify_api_key)])
    async def evaluate(request: EvaluateRequest) -> dict:
        """
        Plan deletions for specific nodes or a content type.

        Never mutates anything and never records to the vault.
        """
        if not request.node_ids and not request.content_type:
            raise HTTPException(
                status_code=422,
                detail="Provide node_ids or content_type",
            )
        try:
            _candidates, report = await plan_deletions(
                config, state, request.node_ids, request.content_type
            )
        except ContentGCError as e:
            raise _http_error(e)
        return report.to_dict()

    @app.post(f"{prefix}/link-cleanup", dependencies=[Depends(verify_api_key)])
    async def link_cleanup(request: LinkCleanupRequest, dry_run: bool = True) -> dict:
        """
        Scan for broken links and remove them.

        Links are only removed when ``dry_run`` is false and the configured
        mode is execute.
        """
        cleanup_config = config if not dry_run else config.with_updates(mode=GCMode.DRY_RUN)
        try:
            result = await run_link_cleanup(
                cleanup_config, state, request.content_type, request.max_nodes
            )
        except ContentGCError as e:
            raise _http_error(e)
        return result.to_dict()

    @app.get(f"{prefix}/status", dependencies=[Depends(verify_api_key)])
    async def get_status() -> dict:
        """
        Get current run status.

        Returns last run time, total runs, and current mode.
        """
        return {
            "last_run_at": (
                state["last_run_at"].isoformat() if state["last_run_at"] else None
            ),
            "last_run_id": state["last_run_id"],
            "last_summary": (state["last_report"] or {}).get("summary"),
            "total_runs": state["total_runs"],
            "total_deleted": state["total_deleted"],
            "total_unlinked": state["total_unlinked"],
            "mode": config.mode.value,
            "space_id": config.space_id,
            "environment": config.environment,
        }

    @app.get(f"{prefix}/metrics", dependencies=[Depends(verify_api_key)])
    async def get_gc_metrics() -> dict:
        """
        Get detailed run metrics.
        """
        metrics = await get_metrics(config, state)
        return {
            "total_runs": metrics.total_runs,
            "last_run_at": (
                metrics.last_run_at.isoformat() if metrics.last_run_at else None
            ),
            "last_run_id": metrics.last_run_id,
            "total_deleted": metrics.total_deleted,
            "total_unlinked": metrics.total_unlinked,
            "total_skipped": metrics.total_skipped,
            "total_link_cleanups": metrics.total_link_cleanups,
            "report_count": metrics.report_count,
            "vault_size_bytes": metrics.vault_size_bytes,
            "vault_size_mb": round(metrics.vault_size_bytes / (1024 * 1024), 2),
            "last_error": metrics.last_error,
        }

    @app.get(f"{prefix}/runs", dependencies=[Depends(verify_api_key)])
    async def list_deletion_runs(
        limit: int = 50,
        offset: int = 0,
        mode: str | None = None,
    ) -> list:
        """
        List recorded runs with pagination.

        Args:
            limit: Maximum number of runs to return
            offset: Number of runs to skip
            mode: Filter by mode (audit_only, execute)
        """
        async with aiosqlite.connect(state["vault_db_path"]) as vault_db:
            return await list_runs(vault_db, limit, offset, mode)

    @app.get(f"{prefix}/runs/{{run_id}}/decisions", dependencies=[Depends(verify_api_key)])
    async def list_run_decisions(run_id: str, state_filter: str | None = None) -> dict:
        """
        Decisions recorded for one run.

        Args:
            run_id: Run ID
            state_filter: Only decisions ending in this state (e.g. 'deleted')
        """
        async with aiosqlite.connect(state["vault_db_path"]) as vault_db:
            run = await get_run(vault_db, run_id)
            if run is None:
                raise HTTPException(status_code=404, detail=f"Run not found: {run_id}")
            decisions = await get_run_decisions(vault_db, run_id, state_filter)
        return {"run": run, "decisions": decisions}

    @app.get(f"{prefix}/rules", dependencies=[Depends(verify_api_key)])
    async def get_rules() -> dict:
        """
        Summary of the loaded deletion rules and their warnings.
        """
        rule_set = state["rule_set"]
        settings = rule_set.environment_settings(config.environment)
        return {
            **rule_set.summary(),
            "rules": [
                {
                    "id": rule.id,
                    "name": rule.name,
                    "enabled": rule.enabled,
                    "content_types": list(rule.content_types),
                    "environments": list(rule.environments) if rule.environments is not None else None,
                    "check_links": rule.safety_checks.check_links,
                    "skip_if_referenced": rule.safety_checks.skip_if_referenced,
                }
                for rule in rule_set.rules
            ],
            "environment_settings": asdict(settings),
            "warnings": list(state["rule_warnings"]),
        }

    @app.get(f"{prefix}/vault-stats", dependencies=[Depends(verify_api_key)])
    async def get_vault_statistics() -> dict:
        """
        Get vault statistics.
        """
        async with aiosqlite.connect(state["vault_db_path"]) as vault_db:
            return await get_vault_stats(vault_db)

    @app.get(f"{prefix}/health", dependencies=[Depends(verify_api_key)])
    async def health_check() -> dict:
        """
        Health check endpoint.

        Verifies vault and backend connectivity.
        """
        vault_ok = state["vault_db_path"].exists()

        backend_ok = False
        backend_error = None
        try:
            await state["api"].fetch_page({"limit": 1}, NodeKind.ENTRY)
            backend_ok = True
        except Exception as e:
            backend_error = str(e)

        status = "healthy"
        if not vault_ok or not backend_ok:
            status = "degraded"
        if not vault_ok and not backend_ok:
            status = "unhealthy"

        return {
            "status": status,
            "vault_accessible": vault_ok,
            "backend_reachable": backend_ok,
            "backend_error": backend_error,
            "timestamp": datetime.now(UTC).isoformat(),
        }

    @app.get(f"{prefix}/config", dependencies=[Depends(verify_api_key)])
    async def get_config() -> dict:
        """
        Get current configuration (sensitive values redacted).
        """
        return {
            "space_id": config.space_id,
            "environment": config.environment,
            "base_url": config.base_url,
            "access_token_set": bool(config.access_token),
            "mode": config.mode.value,
            "rules_path": str(config.rules_path) if config.rules_path else None,
            "vault_path": str(config.vault_path),
            "max_retries": config.max_retries,
            "request_timeout": config.request_timeout,
            "page_size": config.page_size,
            "max_concurrent_ops": config.max_concurrent_ops,
            "max_deletions_per_run": config.max_deletions_per_run,
            "safe_mode": config.safe_mode,
            "treat_incomplete_links_as_empty": config.treat_incomplete_links_as_empty,
            "republish_after_unlink": config.republish_after_unlink,
        }


@asynccontextmanager
async def contentgc_lifespan(
    app: FastAPI,
    config: ContentGCConfig,
    api: Any = None,
    prefix: str = DEFAULT_PREFIX,
):
    """
    Lifespan context manager for FastAPI.

        app = FastAPI(lifespan=lambda app: contentgc_lifespan(app, config))

    Args:
        app: FastAPI application
        config: contentgc configuration
        api: Optional ContentGraphAPI implementation (HTTP client by default)
        prefix: URL prefix for admin endpoints
    """
    logger.info(
        "contentgc_lifespan_starting",
        space_id=config.space_id,
        environment=config.environment,
        mode=config.mode.value,
    )

    state = await initialize_gc_state(config, api=api)
    app.state.contentgc_state = state
    app.state.contentgc_config = config

    register_contentgc_routes(app, config, state, prefix)

    logger.info("contentgc_lifespan_started")

    try:
        yield
    finally:
        logger.info("contentgc_lifespan_stopping")
        await shutdown_gc_state(state)
        logger.info("contentgc_lifespan_stopped")


def get_contentgc_state(app: FastAPI) -> GCState:
    """
    Get contentgc state from a FastAPI app.

    Useful for accessing state in custom endpoints.

    Raises:
        RuntimeError: If contentgc is not initialized
    """
    state = getattr(app.state, "contentgc_state", None)
    if not state:
        raise RuntimeError("contentgc not initialized. Use contentgc_lifespan first.")
    return state


def get_contentgc_config(app: FastAPI) -> ContentGCConfig:
    """
    Get contentgc config from a FastAPI app.

    Raises:
        RuntimeError: If contentgc is not initialized
    """
    config = getattr(app.state, "contentgc_config", None)
    if not config:
        raise RuntimeError("contentgc not initialized. Use contentgc_lifespan first.")
    return config
