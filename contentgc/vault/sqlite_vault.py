# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
contentgc SQLite Vault - Append-only audit trail of deletion runs.

The vault is the persisted form of the deletion report. It records:
1. Runs - one row per evaluation/execution cycle
2. Decisions - the final state of every candidate of a run
3. Unlinks - every write that removed references from a node

The engine only writes to the vault; nothing read back from it
influences a later run.
"""

import json
from datetime import datetime, UTC
from pathlib import Path
from typing import Iterable, List, TypedDict

import aiosqlite
import structlog

from contentgc.exceptions import VaultError
from contentgc.models import Candidate

logger = structlog.get_logger()


class RunRecord(TypedDict):
    """Record of a deletion run."""

    id: str  # ULID
    timestamp: str  # ISO 8601
    environment: str
    mode: str  # dry_run, audit_only, execute
    stats: dict
    completed_at: str | None
    error: str | None


class DecisionRecord(TypedDict):
    """Final decision for one candidate of a run."""

    id: int
    run_id: str
    node_id: str
    content_type: str
    rule_id: str
    rule_name: str
    state: str
    will_delete: bool
    is_linked: bool
    skip_reason: str | None
    reasons: List[str]
    linked_by: List[dict]
    error: str | None
    recorded_at: str


class UnlinkAuditRecord(TypedDict):
    """One write that removed references to a target from a node."""

    id: int
    run_id: str
    target_id: str
    referencing_id: str
    content_type: str
    removed: List[dict]
    republished: bool
    recorded_at: str


async def init_vault_db(db_path: Path) -> None:
    """
    Initialize the vault database schema.

    Creates tables if they don't exist. This is idempotent.

    Args:
        db_path: Path to the SQLite database file
    """
    try:
        async with aiosqlite.connect(db_path) as db:
            await db.execute("""
                CREATE TABLE IF NOT EXISTS runs (
                    id TEXT PRIMARY KEY,
                    timestamp TEXT NOT NULL,
                    environment TEXT NOT NULL,
                    mode TEXT NOT NULL,
                    stats TEXT NOT NULL,
                    completed_at TEXT,
                    error TEXT
                )
            """)

            await db.execute("""
                CREATE TABLE IF NOT EXISTS decisions (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    run_id TEXT NOT NULL,
                    node_id TEXT NOT NULL,
                    content_type TEXT NOT NULL,
                    rule_id TEXT NOT NULL,
                    rule_name TEXT NOT NULL,
                    state TEXT NOT NULL,
                    will_delete INTEGER NOT NULL,
                    is_linked INTEGER NOT NULL,
                    skip_reason TEXT,
                    reasons TEXT NOT NULL,
                    linked_by TEXT NOT NULL,
                    error TEXT,
                    recorded_at TEXT NOT NULL,
                    FOREIGN KEY (run_id) REFERENCES runs(id)
                )
            """)

            await db.execute("""
                CREATE TABLE IF NOT EXISTS unlinks (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    run_id TEXT NOT NULL,
                    target_id TEXT NOT NULL,
                    referencing_id TEXT NOT NULL,
                    content_type TEXT NOT NULL,
                    removed TEXT NOT NULL,
                    republished INTEGER NOT NULL,
                    recorded_at TEXT NOT NULL,
                    FOREIGN KEY (run_id) REFERENCES runs(id)
                )
            """)

            await db.execute("""
                CREATE INDEX IF NOT EXISTS idx_decisions_run_id
                ON decisions(run_id)
            """)

            await db.execute("""
                CREATE INDEX IF NOT EXISTS idx_decisions_node_id
                ON decisions(node_id)
            """)

            await db.execute("""
                CREATE INDEX IF NOT EXISTS idx_unlinks_target_id
                ON unlinks(target_id)
            """)

            await db.execute("""
                CREATE INDEX IF NOT EXISTS idx_runs_timestamp
                ON runs(timestamp)
            """)

            await db.commit()

        logger.info("vault_db_initialized", db_path=str(db_path))

    except Exception as e:
        raise VaultError(
            f"Failed to initialize vault database: {e}",
            details={"db_path": str(db_path)},
        )


async def record_run(
    db: aiosqlite.Connection,
    run_id: str,
    environment: str,
    mode: str,
    stats: dict,
) -> None:
    """
    Record the start of a run.

    Args:
        db: SQLite database connection
        run_id: Unique run ID (ULID)
        environment: Environment the run targets
        mode: Run mode (dry_run, audit_only, execute)
        stats: Initial statistics
    """
    now = datetime.now(UTC).isoformat()

    await db.execute(
        """
        INSERT INTO runs (id, timestamp, environment, mode, stats)
        VALUES (?, ?, ?, ?, ?)
        """,
        (run_id, now, environment, mode, json.dumps(stats)),
    )
    await db.commit()

    logger.info("run_recorded", run_id=run_id, environment=environment, mode=mode)


async def complete_run(
    db: aiosqlite.Connection,
    run_id: str,
    stats: dict,
    error: str | None = None,
) -> None:
    """
    Mark a run as completed.

    Args:
        db: SQLite database connection
        run_id: Run ID
        stats: Final statistics
        error: Error message if the run failed
    """
    now = datetime.now(UTC).isoformat()

    await db.execute(
        """
        UPDATE runs
        SET stats = ?, completed_at = ?, error = ?
        WHERE id = ?
        """,
        (json.dumps(stats), now, error, run_id),
    )
    await db.commit()


async def record_decisions(
    db: aiosqlite.Connection,
    run_id: str,
    candidates: Iterable[Candidate],
) -> int:
    """
    Record the final decision for every candidate of a run.

    Returns:
        Number of rows written
    """
    now = datetime.now(UTC).isoformat()
    rows = [
        (
            run_id,
            c.node_id,
            c.content_type,
            c.rule_id,
            c.rule_name,
            c.state.value,
            int(c.will_delete),
            int(c.is_linked),
            c.skip_reason,
            json.dumps(c.reasons),
            json.dumps([linked.to_dict() for linked in c.linked_by]),
            c.error,
            now,
        )
        for c in candidates
    ]

    await db.executemany(
        """
        INSERT INTO decisions
        (run_id, node_id, content_type, rule_id, rule_name, state, will_delete,
         is_linked, skip_reason, reasons, linked_by, error, recorded_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        rows,
    )
    await db.commit()

    logger.debug("decisions_recorded", run_id=run_id, count=len(rows))
    return len(rows)


async def record_unlinks(
    db: aiosqlite.Connection,
    run_id: str,
    candidates: Iterable[Candidate],
) -> int:
    """
    Record every reference-removing write made for the candidates of a run.

    Returns:
        Number of rows written
    """
    now = datetime.now(UTC).isoformat()
    rows = [
        (
            run_id,
            record.target_id,
            record.referencing_id,
            record.content_type,
            json.dumps([removed.to_dict() for removed in record.removed]),
            int(record.republished),
            now,
        )
        for c in candidates
        for record in c.unlinked
    ]

    if rows:
        await db.executemany(
            """
            INSERT INTO unlinks
            (run_id, target_id, referencing_id, content_type, removed, republished, recorded_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            rows,
        )
        await db.commit()

    logger.debug("unlinks_recorded", run_id=run_id, count=len(rows))
    return len(rows)


def _run_from_row(row) -> RunRecord:
    return RunRecord(
        id=row[0],
        timestamp=row[1],
        environment=row[2],
        mode=row[3],
        stats=json.loads(row[4]),
        completed_at=row[5],
        error=row[6],
    )


RUN_COLUMNS = "id, timestamp, environment, mode, stats, completed_at, error"


async def get_run(
    db: aiosqlite.Connection,
    run_id: str,
) -> RunRecord | None:
    """
    Get a run record.

    Returns:
        Run record or None if not found
    """
    async with db.execute(
        f"SELECT {RUN_COLUMNS} FROM runs WHERE id = ?",
        (run_id,),
    ) as cursor:
        row = await cursor.fetchone()
        return _run_from_row(row) if row else None


async def list_runs(
    db: aiosqlite.Connection,
    limit: int = 50,
    offset: int = 0,
    mode: str | None = None,
    environment: str | None = None,
) -> List[RunRecord]:
    """
    List runs, newest first.

    Args:
        db: SQLite database connection
        limit: Maximum number of records to return
        offset: Number of records to skip
        mode: Optional filter by mode
        environment: Optional filter by environment
    """
    query = f"SELECT {RUN_COLUMNS} FROM runs"
    clauses: List[str] = []
    params: List = []

    if mode:
        clauses.append("mode = ?")
        params.append(mode)
    if environment:
        clauses.append("environment = ?")
        params.append(environment)
    if clauses:
        query += " WHERE " + " AND ".join(clauses)

    query += " ORDER BY timestamp DESC, id DESC LIMIT ? OFFSET ?"
    params.extend([limit, offset])

    records: List[RunRecord] = []
    async with db.execute(query, params) as cursor:
        async for row in cursor:
            records.append(_run_from_row(row))

    return records


async def get_run_decisions(
    db: aiosqlite.Connection,
    run_id: str,
    state: str | None = None,
) -> List[DecisionRecord]:
    """
    Decisions recorded for a run, in discovery order.

    Args:
        db: SQLite database connection
        run_id: Run ID
        state: Optional filter by final candidate state
    """
    query = """
        SELECT id, run_id, node_id, content_type, rule_id, rule_name, state,
               will_delete, is_linked, skip_reason, reasons, linked_by, error,
               recorded_at
        FROM decisions
        WHERE run_id = ?
    """
    params: List = [run_id]

    if state:
        query += " AND state = ?"
        params.append(state)

    query += " ORDER BY id"

    records: List[DecisionRecord] = []
    async with db.execute(query, params) as cursor:
        async for row in cursor:
            records.append(
                DecisionRecord(
                    id=row[0],
                    run_id=row[1],
                    node_id=row[2],
                    content_type=row[3],
                    rule_id=row[4],
                    rule_name=row[5],
                    state=row[6],
                    will_delete=bool(row[7]),
                    is_linked=bool(row[8]),
                    skip_reason=row[9],
                    reasons=json.loads(row[10]),
                    linked_by=json.loads(row[11]),
                    error=row[12],
                    recorded_at=row[13],
                )
            )

    return records


async def get_unlinks_for_target(
    db: aiosqlite.Connection,
    target_id: str,
    limit: int = 100,
) -> List[UnlinkAuditRecord]:
    """
    Every recorded write that removed references to ``target_id``.

    Useful to restore references by hand after an unwanted deletion.
    """
    records: List[UnlinkAuditRecord] = []

    async with db.execute(
        """
        SELECT id, run_id, target_id, referencing_id, content_type, removed,
               republished, recorded_at
        FROM unlinks
        WHERE target_id = ?
        ORDER BY id DESC
        LIMIT ?
        """,
        (target_id, limit),
    ) as cursor:
        async for row in cursor:
            records.append(
                UnlinkAuditRecord(
                    id=row[0],
                    run_id=row[1],
                    target_id=row[2],
                    referencing_id=row[3],
                    content_type=row[4],
                    removed=json.loads(row[5]),
                    republished=bool(row[6]),
                    recorded_at=row[7],
                )
            )

    return records


async def get_vault_stats(db: aiosqlite.Connection) -> dict:
    """
    Get vault statistics.

    Returns:
        Dict with vault statistics
    """
    stats = {}

    async with db.execute("SELECT COUNT(*) FROM runs") as cursor:
        row = await cursor.fetchone()
        stats["total_runs"] = row[0] if row else 0

    async with db.execute(
        "SELECT mode, COUNT(*) FROM runs GROUP BY mode"
    ) as cursor:
        stats["runs_by_mode"] = {row[0]: row[1] async for row in cursor}

    async with db.execute("SELECT COUNT(*) FROM runs WHERE error IS NOT NULL") as cursor:
        row = await cursor.fetchone()
        stats["failed_runs"] = row[0] if row else 0

    async with db.execute("SELECT COUNT(*) FROM decisions") as cursor:
        row = await cursor.fetchone()
        stats["total_decisions"] = row[0] if row else 0

    async with db.execute(
        "SELECT state, COUNT(*) FROM decisions GROUP BY state"
    ) as cursor:
        stats["decisions_by_state"] = {row[0]: row[1] async for row in cursor}

    async with db.execute("SELECT COUNT(*) FROM unlinks") as cursor:
        row = await cursor.fetchone()
        stats["total_unlinks"] = row[0] if row else 0

    return stats
