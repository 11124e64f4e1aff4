# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
contentgc Builder - Functional builder pattern for configuration.

This module provides pure functions for building ContentGCConfig objects.
Each function takes a config dict and returns a new dict with the
modification applied (immutable updates).
"""

from pathlib import Path
from typing import Any, Callable, Dict

from contentgc.config import DEFAULT_BASE_URL, ContentGCConfig, GCMode


# Type alias for builder functions
ConfigDict = Dict[str, Any]
BuilderFunc = Callable[[ConfigDict], ConfigDict]


def create_empty_config() -> ConfigDict:
    """
    Create an initial empty configuration dictionary.

    Returns:
        Dict with default values for all configuration fields
    """
    return {
        "space_id": "",
        "environment": "master",
        "access_token": None,
        "base_url": DEFAULT_BASE_URL,
        "mode": GCMode.DRY_RUN,
        "rules_path": None,
        "vault_path": Path("./contentgc_vault"),
        "max_retries": 5,
        "retry_base_delay": 2.0,
        "retry_max_delay": 30.0,
        "request_timeout": 30.0,
        "page_size": 1000,
        "page_delay": 0.5,
        "write_delay": 0.5,
        "batch_delay": 2.0,
        "unlink_settle_delay": 2.0,
        "max_concurrent_ops": 10,
        "max_deletions_per_run": None,
        "safe_mode": None,
        "treat_incomplete_links_as_empty": True,
        "republish_after_unlink": False,
        "write_report": True,
    }


def with_space(config: ConfigDict, space_id: str) -> ConfigDict:
    """
    Set the space holding the content graph.

    Args:
        config: Current configuration dictionary
        space_id: Space identifier

    Returns:
        New configuration dictionary with space set
    """
    return {**config, "space_id": space_id}


def with_environment(config: ConfigDict, environment: str) -> ConfigDict:
    """
    Set the environment inside the space (e.g. 'master', 'staging').
    """
    return {**config, "environment": environment}


def with_access_token(config: ConfigDict, token: str, base_url: str | None = None) -> ConfigDict:
    """
    Set the management API credentials.

    Args:
        config: Current configuration dictionary
        token: Management API token
        base_url: Optional API root (defaults to the public management API)

    Returns:
        New configuration dictionary with credentials set
    """
    updated = {**config, "access_token": token}
    if base_url:
        updated["base_url"] = base_url
    return updated


def with_rules_file(config: ConfigDict, rules_path: Path | str) -> ConfigDict:
    """Set the JSON document holding the deletion rules."""
    return {**config, "rules_path": Path(rules_path)}


def dry_run_mode(config: ConfigDict) -> ConfigDict:
    """
    Set mode to dry-run (report only, no actions).

    This is the default mode. Use this explicitly for clarity.
    """
    return {**config, "mode": GCMode.DRY_RUN}


def audit_only_mode(config: ConfigDict) -> ConfigDict:
    """
    Set mode to audit-only (record decisions to the vault, no mutations).
    """
    return {**config, "mode": GCMode.AUDIT_ONLY}


def execute_mode(config: ConfigDict) -> ConfigDict:
    """
    Set mode to execute (unlink, verify and delete).

    WARNING: This enables actual removal of links and deletion of nodes!

    Args:
        config: Current configuration dictionary

    Returns:
        New configuration dictionary with execute mode
    """
    import sys

    print(
        "⚠️  WARNING: Execute mode will be enabled. Deletions will occur.",
        file=sys.stderr,
    )
    return {**config, "mode": GCMode.EXECUTE}


def enable_vault(config: ConfigDict, vault_path: Path | str) -> ConfigDict:
    """
    Configure the audit vault directory.

    Args:
        config: Current configuration dictionary
        vault_path: Path to the vault directory

    Returns:
        New configuration dictionary with vault path set
    """
    path = Path(vault_path) if isinstance(vault_path, str) else vault_path
    return {**config, "vault_path": path}


def with_max_deletions_per_run(config: ConfigDict, max_deletions: int) -> ConfigDict:
    """
    Cap the number of deletions per run, overriding the rules document.
    """
    if max_deletions < 0:
        raise ValueError(f"max_deletions_per_run must be >= 0, got {max_deletions}")
    return {**config, "max_deletions_per_run": max_deletions}


def with_safe_mode(config: ConfigDict, enabled: bool = True) -> ConfigDict:
    """Force link checks on or off, overriding the rules document."""
    return {**config, "safe_mode": enabled}


def with_retry_policy(
    config: ConfigDict,
    max_retries: int,
    base_delay: float = 2.0,
    max_delay: float = 30.0,
) -> ConfigDict:
    """
    Set the retry policy for rate limits and timeouts.

    Args:
        config: Current configuration dictionary
        max_retries: Retries before giving up on an operation
        base_delay: Delay before the first retry, doubled on each retry
        max_delay: Upper bound on any single delay

    Returns:
        New configuration dictionary with retry policy set
    """
    if max_retries < 0:
        raise ValueError(f"max_retries must be >= 0, got {max_retries}")
    return {
        **config,
        "max_retries": max_retries,
        "retry_base_delay": base_delay,
        "retry_max_delay": max_delay,
    }


def with_max_concurrent_ops(config: ConfigDict, max_ops: int) -> ConfigDict:
    """
    Set the number of nodes processed concurrently per batch.

    Args:
        config: Current configuration dictionary
        max_ops: Maximum concurrent operations

    Returns:
        New configuration dictionary with max_concurrent_ops set
    """
    if max_ops < 1:
        raise ValueError(f"max_concurrent_ops must be >= 1, got {max_ops}")
    return {**config, "max_concurrent_ops": max_ops}


def with_page_size(config: ConfigDict, page_size: int) -> ConfigDict:
    """
    Set the page size for listing requests.

    Args:
        config: Current configuration dictionary
        page_size: Number of nodes per request

    Returns:
        New configuration dictionary with page size set
    """
    if page_size < 1 or page_size > 1000:
        raise ValueError(f"page_size must be 1-1000, got {page_size}")
    return {**config, "page_size": page_size}


def without_delays(config: ConfigDict) -> ConfigDict:
    """
    Remove every pacing delay.

    WARNING: Only for in-memory backends and tests; a real backend will
    rate limit the run.
    """
    return {
        **config,
        "page_delay": 0.0,
        "write_delay": 0.0,
        "batch_delay": 0.0,
        "unlink_settle_delay": 0.0,
    }


def build_config(config_dict: ConfigDict) -> ContentGCConfig:
    """
    Validate and build an immutable ContentGCConfig from a configuration dictionary.

    Args:
        config_dict: Configuration dictionary built using builder functions

    Returns:
        Validated, immutable ContentGCConfig instance

    Raises:
        ConfigurationError: If validation fails
    """
    if not config_dict.get("space_id"):
        from contentgc.exceptions import ConfigurationError

        raise ConfigurationError("space_id is required")

    return ContentGCConfig(**config_dict)


def pipe(*funcs: BuilderFunc) -> BuilderFunc:
    """
    Compose multiple builder functions into a single function.

    This allows a more readable pipeline style:

        config = pipe(
            lambda c: with_space(c, "my-space"),
            lambda c: with_rules_file(c, "deletion-rules.json"),
            execute_mode,
        )(create_empty_config())

    Args:
        *funcs: Builder functions to compose

    Returns:
        A single function that applies all functions in sequence
    """

    def composed(config: ConfigDict) -> ConfigDict:
        result = config
        for func in funcs:
            result = func(result)
        return result

    return composed


def build_from_steps(*steps: BuilderFunc) -> ContentGCConfig:
    """
    Build config by applying a sequence of builder functions.

    This is a convenience function that combines pipe() and build_config().

    Example:
        config = build_from_steps(
            lambda c: with_space(c, "my-space"),
            lambda c: with_environment(c, "staging"),
            audit_only_mode,
        )
    """
    return build_config(pipe(*steps)(create_empty_config()))


def create_config(
    space_id: str,
    *,
    environment: str = "master",
    access_token: str | None = None,
    mode: str | GCMode = "dry_run",
    rules_path: str | Path | None = None,
    vault_path: str | Path | None = None,
    max_deletions_per_run: int | None = None,
    **kwargs: Any,
) -> ContentGCConfig:
    """
    Create contentgc configuration from simple parameters.

    This is the recommended user-facing API for creating configurations.
    It's simpler than the builder pattern and easier to understand.

    Args:
        space_id: Space holding the content graph (required)
        environment: Environment inside the space (default: "master")
        access_token: Management API token
        mode: Execution mode: "dry_run", "audit_only", or "execute" (default: "dry_run")
        rules_path: JSON document with the deletion rules
        vault_path: Path to vault directory (default: "./contentgc_vault")
        max_deletions_per_run: Override of the per-environment deletion cap
        **kwargs: Additional configuration options

    Returns:
        Validated, immutable ContentGCConfig instance

    Example:
        config = create_config(
            space_id="my-space",
            environment="staging",
            access_token=os.environ["CONTENTGC_MANAGEMENT_TOKEN"],
            rules_path="deletion-rules.json",
            max_deletions_per_run=25,
        )
    """
    config_dict = create_empty_config()
    config_dict = with_space(config_dict, space_id)
    config_dict = with_environment(config_dict, environment)

    if access_token:
        config_dict = with_access_token(config_dict, access_token)

    if rules_path:
        config_dict = with_rules_file(config_dict, rules_path)

    if vault_path:
        config_dict = enable_vault(config_dict, vault_path)

    if max_deletions_per_run is not None:
        config_dict = with_max_deletions_per_run(config_dict, max_deletions_per_run)

    # Handle mode
    if isinstance(mode, str):
        mode_lower = mode.lower()
        if mode_lower == "execute":
            config_dict = execute_mode(config_dict)
        elif mode_lower == "audit_only":
            config_dict = audit_only_mode(config_dict)
        else:
            config_dict = dry_run_mode(config_dict)
    else:
        config_dict["mode"] = mode

    # Apply any additional kwargs
    for key, value in kwargs.items():
        if key in config_dict:
            config_dict[key] = value

    return build_config(config_dict)
