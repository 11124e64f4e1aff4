# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Content Graph Reference Manager - Reference-safe deletion for content graphs.

Evaluates declarative deletion rules against the nodes of a remote,
rate-limited content graph, removes references to the nodes it deletes
(verifying they are gone before deleting), cleans broken links, and keeps
an append-only audit trail of every decision. Package name: contentgc.
"""

__version__ = "0.1.0"

# Configuration creation (user-facing API)
from contentgc.builder import create_config

# Core functions
from contentgc.core import (
    initialize_gc_state,
    run_gc_cycle,
    plan_deletions,
    run_link_cleanup,
    get_metrics,
    shutdown_gc_state,
)

# Engine components
from contentgc.orchestrator import DeletionOrchestrator
from contentgc.links import BrokenLinkCleaner, LinkResolver
from contentgc.policy import PolicyEngine, load_rule_set

# Environment-based configuration and profiles (additional helpers)
from contentgc.env import (
    create_config_from_env,
    safe_defaults,
    aggressive_cleanup,
    compliance_friendly,
)

__all__ = [
    # Version
    "__version__",
    # Configuration creation (primary user-facing APIs)
    "create_config",
    "create_config_from_env",
    "safe_defaults",
    "aggressive_cleanup",
    "compliance_friendly",
    # Core orchestration functions
    "initialize_gc_state",
    "run_gc_cycle",
    "plan_deletions",
    "run_link_cleanup",
    "get_metrics",
    "shutdown_gc_state",
    # Engine components
    "DeletionOrchestrator",
    "BrokenLinkCleaner",
    "LinkResolver",
    "PolicyEngine",
    "load_rule_set",
]
