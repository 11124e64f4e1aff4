# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Audit Reporting - Report aggregation and persistence.
"""

from contentgc.reporting.aggregate import (
    DeletionReport,
    candidate_entry,
    generate_report,
)

from contentgc.reporting.writer import (
    list_report_files,
    read_report_file,
    report_filename,
    write_report_file,
)

__all__ = [
    # Aggregation
    "DeletionReport",
    "candidate_entry",
    "generate_report",
    # Persistence
    "list_report_files",
    "read_report_file",
    "report_filename",
    "write_report_file",
]
