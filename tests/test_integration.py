# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Integration Tests for contentgc.

These tests verify the integration between components:
- FastAPI endpoints
- Full run cycles against the in-memory graph
- Vault operations
- Report files
"""

import json
from datetime import datetime, UTC
from pathlib import Path

import aiosqlite
import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from contentgc.core import (
    get_metrics,
    initialize_gc_state,
    plan_deletions,
    run_gc_cycle,
    run_link_cleanup,
)
from contentgc.exceptions import AuthenticationError, ConfigurationError, ReportError
from contentgc.integrations.fastapi import (
    contentgc_lifespan,
    get_contentgc_state,
    register_contentgc_routes,
)
from contentgc.reporting import (
    generate_report,
    list_report_files,
    read_report_file,
    report_filename,
    write_report_file,
)
from contentgc.vault import (
    get_run,
    get_run_decisions,
    get_unlinks_for_target,
    get_vault_stats,
    init_vault_db,
    list_runs,
    record_run,
)

from conftest import AUTH_HEADERS, InMemoryGraph, entry, link, make_config

PREFIX = "/admin/contentgc"


def _client(app: FastAPI) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


async def _app(config, graph, rule_set):
    app = FastAPI()
    state = await initialize_gc_state(config, api=graph, rule_set=rule_set)
    register_contentgc_routes(app, config, state)
    return app, state


# ============================================================================
# FastAPI Integration Tests
# ============================================================================

@pytest.mark.asyncio
async def test_fastapi_health_endpoint(test_config, graph, rule_set):
    """Test the health check endpoint."""
    app, _state = await _app(test_config, graph, rule_set)

    async with _client(app) as client:
        response = await client.get(f"{PREFIX}/health", headers=AUTH_HEADERS)

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["vault_accessible"] is True
    assert data["backend_reachable"] is True


@pytest.mark.asyncio
async def test_fastapi_health_reports_degraded_backend(test_config, graph, rule_set):
    graph.failures[("page", "Entry")] = AuthenticationError("denied", status_code=401)
    app, _state = await _app(test_config, graph, rule_set)

    async with _client(app) as client:
        data = (await client.get(f"{PREFIX}/health", headers=AUTH_HEADERS)).json()

    assert data["status"] == "degraded"
    assert "denied" in data["backend_error"]


@pytest.mark.asyncio
async def test_fastapi_auth_required(test_config, graph, rule_set):
    """Test that endpoints require authentication."""
    app, _state = await _app(test_config, graph, rule_set)

    async with _client(app) as client:
        missing = await client.get(f"{PREFIX}/status")
        wrong = await client.get(
            f"{PREFIX}/status", headers={"Authorization": "Bearer wrong-key"}
        )

    assert missing.status_code == 401
    assert wrong.status_code == 403


@pytest.mark.asyncio
async def test_fastapi_missing_admin_key_is_server_error(test_config, graph, rule_set, monkeypatch):
    monkeypatch.delenv("CONTENTGC_ADMIN_API_KEY")
    app, _state = await _app(test_config, graph, rule_set)

    async with _client(app) as client:
        response = await client.get(f"{PREFIX}/status", headers=AUTH_HEADERS)

    assert response.status_code == 500


@pytest.mark.asyncio
async def test_fastapi_dry_run_then_status(execute_config, graph, rule_set):
    """A forced dry run through the API never deletes, whatever the mode."""
    app, state = await _app(execute_config, graph, rule_set)

    async with _client(app) as client:
        run = await client.post(f"{PREFIX}/run", params={"dry_run": True}, headers=AUTH_HEADERS)
        status = await client.get(f"{PREFIX}/status", headers=AUTH_HEADERS)

    assert run.status_code == 200
    data = run.json()
    assert data["mode"] == "dry_run"
    assert data["candidates_found"] == 2
    assert data["will_delete"] == 1
    assert data["deleted_count"] == 0
    assert data["report"]["summary"]["willSkipDueToLinks"] == 1
    assert graph.deleted == []

    status_data = status.json()
    assert status_data["total_runs"] == 1
    assert status_data["last_run_id"] == data["run_id"]
    assert status_data["mode"] == "execute"
    assert state["last_report"]["runId"] == data["run_id"]


@pytest.mark.asyncio
async def test_fastapi_run_maps_backend_errors(test_config, graph, rule_set):
    graph.failures[("page", "author")] = AuthenticationError("denied", status_code=401)
    app, state = await _app(test_config, graph, rule_set)

    async with _client(app) as client:
        response = await client.post(f"{PREFIX}/run", headers=AUTH_HEADERS)

    assert response.status_code == 502
    assert "denied" in state["last_error"]


@pytest.mark.asyncio
async def test_fastapi_evaluate_endpoint(test_config, graph, rule_set):
    app, _state = await _app(test_config, graph, rule_set)

    async with _client(app) as client:
        empty = await client.post(f"{PREFIX}/evaluate", json={}, headers=AUTH_HEADERS)
        plan = await client.post(
            f"{PREFIX}/evaluate",
            json={"node_ids": ["n1", "missing"], "content_type": "author"},
            headers=AUTH_HEADERS,
        )

    assert empty.status_code == 422
    assert plan.status_code == 200
    report = plan.json()
    assert report["mode"] == "dry_run"
    assert report["totalCandidates"] == 2
    assert report["contentTypeBreakdown"] == {"seoHead": 1, "author": 1}
    assert graph.writes("update") == []


@pytest.mark.asyncio
async def test_fastapi_link_cleanup_endpoint(execute_config, rule_set):
    graph = InMemoryGraph([entry("page", "page", {"ref": link("gone")})])
    app, _state = await _app(execute_config, graph, rule_set)

    async with _client(app) as client:
        preview = await client.post(f"{PREFIX}/link-cleanup", json={}, headers=AUTH_HEADERS)
        assert graph.writes("update") == []
        applied = await client.post(
            f"{PREFIX}/link-cleanup",
            params={"dry_run": False},
            json={"content_type": "page"},
            headers=AUTH_HEADERS,
        )

    assert preview.json()["dryRun"] is True
    assert preview.json()["totalBrokenLinksRemoved"] == 1
    assert applied.json()["dryRun"] is False
    assert applied.json()["totalEntriesUpdated"] == 1
    assert graph.field("page", "ref") is None


@pytest.mark.asyncio
async def test_fastapi_vault_endpoints(audit_config, graph, rule_set):
    app, _state = await _app(audit_config, graph, rule_set)

    async with _client(app) as client:
        run = (await client.post(f"{PREFIX}/run", headers=AUTH_HEADERS)).json()
        runs = await client.get(f"{PREFIX}/runs", headers=AUTH_HEADERS)
        decisions = await client.get(
            f"{PREFIX}/runs/{run['run_id']}/decisions",
            params={"state_filter": "linked"},
            headers=AUTH_HEADERS,
        )
        missing = await client.get(f"{PREFIX}/runs/nope/decisions", headers=AUTH_HEADERS)
        stats = await client.get(f"{PREFIX}/vault-stats", headers=AUTH_HEADERS)

    assert [r["id"] for r in runs.json()] == [run["run_id"]]
    data = decisions.json()
    assert data["run"]["mode"] == "audit_only"
    assert [d["node_id"] for d in data["decisions"]] == ["n2"]
    assert data["decisions"][0]["linked_by"] == [{"id": "n3", "contentType": "article"}]
    assert missing.status_code == 404
    assert stats.json()["total_decisions"] == 2


@pytest.mark.asyncio
async def test_fastapi_rules_and_config_endpoints(temp_dir, graph, rule_set):
    config = make_config(temp_dir, access_token="secret-token")
    app, _state = await _app(config, graph, rule_set)

    async with _client(app) as client:
        rules = (await client.get(f"{PREFIX}/rules", headers=AUTH_HEADERS)).json()
        config_data = (await client.get(f"{PREFIX}/config", headers=AUTH_HEADERS)).json()

    assert rules["total_rules"] == 2
    assert [r["id"] for r in rules["rules"]] == [
        "remove-empty-seo-entries",
        "remove-nameless-authors",
    ]
    assert rules["environment_settings"]["max_deletions_per_run"] == 100
    assert rules["warnings"] == []

    assert config_data["access_token_set"] is True
    assert "secret-token" not in json.dumps(config_data)


@pytest.mark.asyncio
async def test_lifespan_registers_routes_and_state(temp_dir, graph, rules_document):
    rules_path = temp_dir / "rules.json"
    rules_path.write_text(json.dumps(rules_document))
    config = make_config(temp_dir, rules_path=rules_path)
    app = FastAPI()

    with pytest.raises(RuntimeError):
        get_contentgc_state(app)

    async with contentgc_lifespan(app, config, api=graph):
        state = get_contentgc_state(app)
        assert [r.id for r in state["rule_set"].rules][0] == "remove-empty-seo-entries"

        async with _client(app) as client:
            response = await client.get(f"{PREFIX}/metrics", headers=AUTH_HEADERS)

    assert response.status_code == 200
    assert response.json()["total_runs"] == 0


# ============================================================================
# Run Cycle Integration Tests
# ============================================================================

@pytest.mark.asyncio
async def test_execute_cycle_end_to_end(execute_config, graph, rule_set):
    """Unlink, verify, delete, then record everything to the vault."""
    state = await initialize_gc_state(execute_config, api=graph, rule_set=rule_set)

    result = await run_gc_cycle(execute_config, state)

    assert result.total_scanned == 2
    assert result.deleted_ids == ["n2", "n1"]
    assert result.unlinked_nodes == 1
    assert result.errors == []
    assert not graph.exists("n1")
    assert not graph.exists("n2")
    assert graph.field("n3", "related") == [link("other")]
    assert result.report_path is not None and result.report_path.exists()

    async with aiosqlite.connect(state["vault_db_path"]) as db:
        run = await get_run(db, result.run_id)
        decisions = await get_run_decisions(db, result.run_id)
        unlinks = await get_unlinks_for_target(db, "n2")
        stats = await get_vault_stats(db)

    assert run["completed_at"] is not None
    assert run["error"] is None
    assert run["stats"]["deleted"] == 2
    assert {d["state"] for d in decisions} == {"deleted"}
    [unlink] = unlinks
    assert unlink["referencing_id"] == "n3"
    assert unlink["removed"] == [
        {"field": "related", "locale": "en-US", "removedId": "n2", "linkType": "Entry"}
    ]
    assert stats["runs_by_mode"] == {"execute": 1}
    assert stats["total_unlinks"] == 1

    metrics = await get_metrics(execute_config, state)
    assert metrics.total_runs == 1
    assert metrics.total_deleted == 2
    assert metrics.total_unlinked == 1
    assert metrics.report_count == 1


@pytest.mark.asyncio
async def test_dry_run_cycle_records_nothing_to_vault(test_config, test_gc_state):
    result = await run_gc_cycle(test_config, test_gc_state)

    async with aiosqlite.connect(test_gc_state["vault_db_path"]) as db:
        assert await list_runs(db) == []

    report = await read_report_file(result.report_path)
    assert report["runId"] == result.run_id
    assert report["summary"]["willDelete"] == 1


@pytest.mark.asyncio
async def test_failed_cycle_is_recorded(audit_config, graph, rule_set):
    graph.failures[("page", "author")] = AuthenticationError("denied", status_code=401)
    state = await initialize_gc_state(audit_config, api=graph, rule_set=rule_set)

    with pytest.raises(AuthenticationError):
        await run_gc_cycle(audit_config, state)

    async with aiosqlite.connect(state["vault_db_path"]) as db:
        [run] = await list_runs(db)

    assert "denied" in run["error"]
    assert state["total_runs"] == 0


@pytest.mark.asyncio
async def test_plan_deletions_report_breakdown(test_config, test_gc_state, graph):
    candidates, report = await plan_deletions(test_config, test_gc_state, node_ids=["n2", "n1"])

    assert [c.node_id for c in candidates] == ["n2", "n1"]
    data = report.to_dict()
    assert data["ruleBreakdown"]["remove-nameless-authors"]["count"] == 1
    [author] = data["ruleBreakdown"]["remove-nameless-authors"]["entries"]
    assert author["willDelete"] is False
    assert author["skipReason"] == "Referenced by 1 node(s)"
    assert author["linkedBy"] == [{"id": "n3", "contentType": "article"}]
    assert data["ruleBreakdown"]["remove-empty-seo-entries"]["entries"][0]["reasons"] == [
        "No title provided",
        "No meta description",
    ]


@pytest.mark.asyncio
async def test_run_link_cleanup_counts(test_config, test_gc_state):
    result = await run_link_cleanup(test_config, test_gc_state)

    assert result.dry_run is True
    assert result.total_processed == 4
    assert test_gc_state["total_link_cleanups"] == 1


@pytest.mark.asyncio
async def test_initialize_requires_rules(test_config, graph):
    with pytest.raises(ConfigurationError):
        await initialize_gc_state(test_config, api=graph)


# ============================================================================
# Vault and Report Tests
# ============================================================================

@pytest.mark.asyncio
async def test_vault_run_listing_filters(temp_dir: Path):
    db_path = temp_dir / "vault.db"
    await init_vault_db(db_path)
    await init_vault_db(db_path)  # idempotent

    async with aiosqlite.connect(db_path) as db:
        await record_run(db, "run-1", "master", "audit_only", {})
        await record_run(db, "run-2", "staging", "execute", {})

        assert [r["id"] for r in await list_runs(db, environment="staging")] == ["run-2"]
        assert [r["id"] for r in await list_runs(db, mode="audit_only")] == ["run-1"]
        assert len(await list_runs(db, limit=1)) == 1
        assert await get_run(db, "run-3") is None


@pytest.mark.asyncio
async def test_report_file_roundtrip(temp_dir: Path):
    report = generate_report(
        [], "master", "run-1", "dry_run", timestamp=datetime(2026, 1, 2, 3, 4, 5, tzinfo=UTC)
    )

    assert report_filename(report) == "deletion-report-master-2026-01-02T03-04-05_00-00.json"

    path = await write_report_file(temp_dir, report)

    assert (await read_report_file(path))["timestamp"] == "2026-01-02T03:04:05+00:00"
    assert list_report_files(temp_dir, "master") == [path]
    assert list_report_files(temp_dir, "staging") == []
    assert list(path.parent.glob("*.tmp")) == []

    with pytest.raises(ReportError):
        await read_report_file(temp_dir / "missing.json")
