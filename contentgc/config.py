# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
contentgc Configuration - Immutable configuration data structures.

All configuration is frozen (immutable) after creation so that every
component built from it during a run sees the same settings.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List
import re


DEFAULT_BASE_URL = "https://api.contentful.com"


class GCMode(str, Enum):
    """Deletion run execution mode."""

    DRY_RUN = "dry_run"  # Report only, no actions
    AUDIT_ONLY = "audit_only"  # Record to audit vault, no mutations
    EXECUTE = "execute"  # Unlink, verify and delete


def _validate_identifier(value: str) -> bool:
    """Space and environment ids: letters, digits, dash, underscore, dot."""
    if not value or len(value) > 64:
        return False
    return re.match(r"^[A-Za-z0-9][A-Za-z0-9._-]*$", value) is not None


def _validate_base_url(url: str) -> bool:
    return bool(url) and re.match(r"^https?://[^\s/]+", url) is not None


@dataclass(frozen=True)
class ContentGCConfig:
    """
    Immutable configuration for reference-safe deletion runs.

    One instance is passed to every component at construction; nothing
    reads ambient global settings.
    """

    # Required: space (tenant) holding the content graph
    space_id: str

    # Environment inside the space
    environment: str = "master"

    # Management API token (required for the HTTP adapter only)
    access_token: str | None = field(default=None, repr=False)

    # Management API root
    base_url: str = DEFAULT_BASE_URL

    # Execution mode (default: dry_run for safety)
    mode: GCMode = GCMode.DRY_RUN

    # JSON document holding the deletion rules
    rules_path: Path | None = None

    # Directory for the audit vault and report files
    vault_path: Path = field(default_factory=lambda: Path("./contentgc_vault"))

    # Retry policy for rate limits and timeouts
    max_retries: int = 5
    retry_base_delay: float = 2.0
    retry_max_delay: float = 30.0
    request_timeout: float = 30.0

    # Pagination
    page_size: int = 1000
    page_delay: float = 0.5

    # Pauses that keep the run under the backend's rate budget
    write_delay: float = 0.5
    batch_delay: float = 2.0
    unlink_settle_delay: float = 2.0

    # Nodes processed concurrently per batch
    max_concurrent_ops: int = 10

    # Overrides for the environment settings of the rules document
    max_deletions_per_run: int | None = None
    safe_mode: bool | None = None

    # Links without a target id or link type count as empty data
    treat_incomplete_links_as_empty: bool = True

    # Republish referencing nodes that were published before unlinking
    republish_after_unlink: bool = False

    # Write the JSON report file at the end of each run
    write_report: bool = True

    def __post_init__(self) -> None:
        """Validate configuration after creation."""
        errors: List[str] = []

        if not _validate_identifier(self.space_id):
            errors.append(f"Invalid space_id: {self.space_id!r}")

        if not _validate_identifier(self.environment):
            errors.append(f"Invalid environment: {self.environment!r}")

        if not _validate_base_url(self.base_url):
            errors.append(f"Invalid base_url: {self.base_url!r}")

        if self.max_retries < 0:
            errors.append(f"max_retries must be >= 0, got {self.max_retries}")

        if self.retry_base_delay < 0 or self.retry_max_delay < 0:
            errors.append("retry delays must be >= 0")

        if self.retry_max_delay < self.retry_base_delay:
            errors.append(
                f"retry_max_delay ({self.retry_max_delay}) must be >= "
                f"retry_base_delay ({self.retry_base_delay})"
            )

        if self.request_timeout <= 0:
            errors.append(f"request_timeout must be > 0, got {self.request_timeout}")

        if self.page_size < 1 or self.page_size > 1000:
            errors.append(f"page_size must be 1-1000, got {self.page_size}")

        for name in ("page_delay", "write_delay", "batch_delay", "unlink_settle_delay"):
            if getattr(self, name) < 0:
                errors.append(f"{name} must be >= 0, got {getattr(self, name)}")

        if self.max_concurrent_ops < 1:
            errors.append(f"max_concurrent_ops must be >= 1, got {self.max_concurrent_ops}")

        if self.max_deletions_per_run is not None and self.max_deletions_per_run < 0:
            errors.append(
                f"max_deletions_per_run must be >= 0, got {self.max_deletions_per_run}"
            )

        # Raise all errors at once
        if errors:
            from contentgc.exceptions import ConfigurationError

            raise ConfigurationError(
                "Configuration validation failed",
                details={"errors": errors},
            )

        # Print warning for execute mode
        if self.mode == GCMode.EXECUTE:
            import sys

            print(
                "⚠️  WARNING: Execute mode enabled. Links will be removed and nodes deleted.",
                file=sys.stderr,
            )

    def with_updates(self, **kwargs) -> "ContentGCConfig":
        """
        Create a new config with updated values.

        Since the config is frozen, this creates a new instance.
        """
        from dataclasses import asdict

        current = asdict(self)
        current.update(kwargs)
        return ContentGCConfig(**current)
