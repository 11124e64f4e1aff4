# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Audit Vault - Append-only trail of runs, decisions and unlinks.
"""

from contentgc.vault.sqlite_vault import (
    init_vault_db,
    record_run,
    complete_run,
    record_decisions,
    record_unlinks,
    get_run,
    list_runs,
    get_run_decisions,
    get_unlinks_for_target,
    get_vault_stats,
    DecisionRecord,
    RunRecord,
    UnlinkAuditRecord,
)

__all__ = [
    # Vault functions
    "init_vault_db",
    "record_run",
    "complete_run",
    "record_decisions",
    "record_unlinks",
    "get_run",
    "list_runs",
    "get_run_decisions",
    "get_unlinks_for_target",
    "get_vault_stats",
    # Types
    "DecisionRecord",
    "RunRecord",
    "UnlinkAuditRecord",
]
