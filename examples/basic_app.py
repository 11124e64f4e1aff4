# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Example FastAPI Application with contentgc Integration.

This example demonstrates how to mount the contentgc admin routes on a
FastAPI application, with configuration built from environment variables.

Run with:
    uvicorn examples.basic_app:app --reload

Environment variables:
    CONTENTGC_SPACE_ID: Space holding the content graph
    CONTENTGC_MANAGEMENT_TOKEN: Management API token
    CONTENTGC_RULES_PATH: Deletion rules document (JSON)
    CONTENTGC_ENVIRONMENT: Target environment (default: master)
    CONTENTGC_ADMIN_API_KEY: API key for admin endpoints
"""

import os
from pathlib import Path

from fastapi import FastAPI

from contentgc.builder import (
    build_config,
    create_empty_config,
    enable_vault,
    execute_mode,
    with_access_token,
    with_environment,
    with_max_deletions_per_run,
    with_rules_file,
    with_space,
)
from contentgc.env import safe_defaults
from contentgc.integrations.fastapi import contentgc_lifespan


def create_contentgc_config():
    """
    Create contentgc configuration from environment variables.

    This uses the functional builder pattern for clean, composable configuration.
    """
    config = create_empty_config()

    config = with_space(config, os.getenv("CONTENTGC_SPACE_ID", "my-space"))
    config = with_environment(config, os.getenv("CONTENTGC_ENVIRONMENT", "master"))
    config = with_access_token(config, os.getenv("CONTENTGC_MANAGEMENT_TOKEN", ""))
    config = with_rules_file(config, os.getenv("CONTENTGC_RULES_PATH", "deletion-rules.json"))
    config = enable_vault(config, Path(os.getenv("CONTENTGC_VAULT_PATH", "./contentgc_vault")))

    # Never delete more than 25 nodes per run from this app
    config = with_max_deletions_per_run(config, 25)

    # IMPORTANT: Only enable execute mode explicitly in production
    # Default is dry-run for safety
    if os.getenv("CONTENTGC_EXECUTE_MODE", "false").lower() == "true":
        return build_config(execute_mode(config))

    return safe_defaults(build_config(config))


contentgc_config = create_contentgc_config()

app = FastAPI(
    title="Content Graph Admin",
    description="Reference-safe deletion for a content graph",
    version="1.0.0",
    lifespan=lambda app: contentgc_lifespan(app, contentgc_config),
)


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "Content Graph Admin",
        "docs": "/docs",
        "contentgc_admin": "/admin/contentgc/health",
    }


# ============================================================================
# contentgc Admin Endpoints (registered by the lifespan)
# ============================================================================
#
# GET  /admin/contentgc/health       - Health check
# GET  /admin/contentgc/status       - Current run status
# GET  /admin/contentgc/metrics      - Run metrics
# GET  /admin/contentgc/config       - Configuration (redacted)
# GET  /admin/contentgc/rules        - Loaded deletion rules and warnings
# POST /admin/contentgc/run          - Trigger a deletion run
# POST /admin/contentgc/evaluate     - Dry-run plan for nodes or a content type
# POST /admin/contentgc/link-cleanup - Find and remove broken links
# GET  /admin/contentgc/runs         - List recorded runs
# GET  /admin/contentgc/runs/{id}/decisions - Decisions of one run
# GET  /admin/contentgc/vault-stats  - Vault statistics
#
# All admin endpoints require: Authorization: Bearer <CONTENTGC_ADMIN_API_KEY>


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
