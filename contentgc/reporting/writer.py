# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
contentgc Report Writer - Persist deletion reports to the vault directory.

Reports are written once per run and never read back by the engine.
"""

import json
from pathlib import Path
from typing import Any, Dict, List

import aiofiles
import structlog

from contentgc.exceptions import ReportError
from contentgc.reporting.aggregate import DeletionReport

logger = structlog.get_logger()

REPORTS_DIR = "reports"


def report_filename(report: DeletionReport) -> str:
    """``deletion-report-<environment>-<timestamp>.json``; filesystem-safe."""
    stamp = report.timestamp.isoformat().replace(":", "-").replace(".", "-").replace("+", "_")
    return f"deletion-report-{report.environment}-{stamp}.json"


async def write_report_file(vault_path: Path, report: DeletionReport) -> Path:
    """
    Write a report as JSON under ``<vault>/reports/``.

    The file is written atomically (write to temp, then rename) to
    prevent partial files.

    Args:
        vault_path: Path to the vault directory
        report: Report to persist

    Returns:
        Path to the written report
    """
    try:
        reports_dir = vault_path / REPORTS_DIR
        reports_dir.mkdir(parents=True, exist_ok=True)

        report_path = reports_dir / report_filename(report)
        temp_path = report_path.with_suffix(".json.tmp")

        payload = json.dumps(report.to_dict(), indent=2)
        async with aiofiles.open(temp_path, "w", encoding="utf-8") as f:
            await f.write(payload)

        temp_path.rename(report_path)

        logger.info(
            "report_written",
            report_path=str(report_path),
            run_id=report.run_id,
            candidates=report.total_candidates,
        )
        return report_path

    except OSError as e:
        raise ReportError(
            f"Failed to write report file: {e}",
            details={"run_id": report.run_id, "vault_path": str(vault_path)},
        )


async def read_report_file(report_path: Path) -> Dict[str, Any]:
    """Load a persisted report for inspection."""
    try:
        async with aiofiles.open(report_path, "r", encoding="utf-8") as f:
            return json.loads(await f.read())
    except FileNotFoundError:
        raise ReportError(
            f"Report file not found: {report_path}",
            details={"report_path": str(report_path)},
        )
    except (OSError, json.JSONDecodeError) as e:
        raise ReportError(
            f"Failed to read report file: {e}",
            details={"report_path": str(report_path)},
        )


def list_report_files(vault_path: Path, environment: str | None = None) -> List[Path]:
    """Persisted reports, newest first."""
    reports_dir = vault_path / REPORTS_DIR
    if not reports_dir.exists():
        return []
    pattern = f"deletion-report-{environment}-*.json" if environment else "deletion-report-*.json"
    return sorted(reports_dir.glob(pattern), key=lambda p: p.stat().st_mtime, reverse=True)
