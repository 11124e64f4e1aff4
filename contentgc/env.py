# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Environment-based configuration helpers and safety profiles.

These helpers are small, convenient wrappers around create_config() and
ContentGCConfig.with_updates(). They make it easy to:

- Build a configuration from environment variables
- Apply ready-made safety profiles
"""

from __future__ import annotations

import os
from pathlib import Path

from contentgc.builder import create_config
from contentgc.config import DEFAULT_BASE_URL, ContentGCConfig, GCMode
from contentgc.errors import (
    explain_invalid_count_env,
    explain_invalid_mode_env,
    explain_missing_rules_path,
    explain_missing_space_env,
    explain_missing_token_env,
)
from contentgc.exceptions import ConfigurationError


def _parse_mode(value: str | None) -> GCMode:
    if not value:
        return GCMode.DRY_RUN
    try:
        return GCMode(value.lower())
    except ValueError as exc:
        raise ConfigurationError(explain_invalid_mode_env(value)) from exc


def _parse_count(name: str, value: str | None) -> int | None:
    if not value:
        return None
    try:
        count = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(explain_invalid_count_env(name, value)) from exc
    if count < 0:
        raise ConfigurationError(explain_invalid_count_env(name, value))
    return count


def create_config_from_env(*, require_token: bool = True) -> ContentGCConfig:
    """
    Create a ContentGCConfig from environment variables.

    Required:
        - CONTENTGC_SPACE_ID: Space holding the content graph
        - CONTENTGC_MANAGEMENT_TOKEN: Management API token (unless require_token=False)
        - CONTENTGC_RULES_PATH: Deletion rules document

    Optional environment variables:
        - CONTENTGC_ENVIRONMENT: Environment id (default: master)
        - CONTENTGC_BASE_URL: Management API root
        - CONTENTGC_MODE: 'dry_run' | 'audit_only' | 'execute' (default: dry_run)
        - CONTENTGC_VAULT_PATH: Path to the vault directory (default: ./contentgc_vault)
        - CONTENTGC_MAX_DELETIONS: Override of the per-run deletion cap
        - CONTENTGC_MAX_RETRIES: Retries for rate limits and timeouts (default: 5)
    """

    space_id = os.getenv("CONTENTGC_SPACE_ID")
    if not space_id:
        raise ConfigurationError(explain_missing_space_env())

    token = os.getenv("CONTENTGC_MANAGEMENT_TOKEN")
    if require_token and not token:
        raise ConfigurationError(explain_missing_token_env())

    rules_path = os.getenv("CONTENTGC_RULES_PATH")
    if not rules_path:
        raise ConfigurationError(explain_missing_rules_path())

    vault_path_env = os.getenv("CONTENTGC_VAULT_PATH")
    max_retries = _parse_count("CONTENTGC_MAX_RETRIES", os.getenv("CONTENTGC_MAX_RETRIES"))

    extra = {}
    if max_retries is not None:
        extra["max_retries"] = max_retries

    return create_config(
        space_id=space_id,
        environment=os.getenv("CONTENTGC_ENVIRONMENT", "master"),
        access_token=token,
        base_url=os.getenv("CONTENTGC_BASE_URL", DEFAULT_BASE_URL),
        mode=_parse_mode(os.getenv("CONTENTGC_MODE")),
        rules_path=Path(rules_path),
        vault_path=Path(vault_path_env) if vault_path_env else Path("./contentgc_vault"),
        max_deletions_per_run=_parse_count(
            "CONTENTGC_MAX_DELETIONS", os.getenv("CONTENTGC_MAX_DELETIONS")
        ),
        **extra,
    )


# ============================================================================
# Profiles
# ============================================================================

def safe_defaults(config: ContentGCConfig) -> ContentGCConfig:
    """
    Apply conservative, safety-first defaults.

    - Always use DRY_RUN mode
    - Force link checks on
    - Cap deletions at 50 per run
    """

    cap = config.max_deletions_per_run
    return config.with_updates(
        mode=GCMode.DRY_RUN,
        safe_mode=True,
        max_deletions_per_run=50 if cap is None else min(cap, 50),
    )


def aggressive_cleanup(config: ContentGCConfig) -> ContentGCConfig:
    """
    Apply a more aggressive cleanup profile.

    - EXECUTE mode (actual unlinks and deletions)
    - Link checks stay on; referenced nodes are still only deleted after
      a verified unlink
    - Republish referencing nodes after unlinking
    """

    return config.with_updates(
        mode=GCMode.EXECUTE,
        safe_mode=True,
        republish_after_unlink=True,
    )


def compliance_friendly(config: ContentGCConfig) -> ContentGCConfig:
    """
    Apply a compliance-friendly profile.

    - AUDIT_ONLY mode (no mutations, audit trail only)
    - Link checks forced on so the trail records every reference
    - Report files always written
    """

    return config.with_updates(
        mode=GCMode.AUDIT_ONLY,
        safe_mode=True,
        write_report=True,
    )
