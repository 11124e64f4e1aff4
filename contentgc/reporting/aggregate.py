# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
contentgc Audit Reporter - Aggregates candidate decisions into a report.

Pure: no I/O, deterministic for a given input and timestamp.
"""

from dataclasses import dataclass, field
from datetime import datetime, UTC
from typing import Any, Dict, Iterable, List

from contentgc.models import Candidate, CandidateState


@dataclass
class DeletionReport:
    """Decision trail of one run."""

    run_id: str
    timestamp: datetime
    environment: str
    mode: str
    total_candidates: int = 0
    summary: Dict[str, int] = field(
        default_factory=lambda: {
            "willDelete": 0,
            "willSkipDueToLinks": 0,
            "willSkipDueToSafety": 0,
        }
    )
    rule_breakdown: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    content_type_breakdown: Dict[str, int] = field(default_factory=dict)
    execution: Dict[str, int] = field(
        default_factory=lambda: {
            "deleted": 0,
            "deleteFailed": 0,
            "unlinkedNodes": 0,
            "removedLinks": 0,
        }
    )

    @property
    def will_delete(self) -> int:
        return self.summary["willDelete"]

    def to_dict(self) -> Dict[str, Any]:
        """Persisted layout of the report."""
        return {
            "runId": self.run_id,
            "timestamp": self.timestamp.isoformat(),
            "environment": self.environment,
            "mode": self.mode,
            "totalCandidates": self.total_candidates,
            "summary": dict(self.summary),
            "ruleBreakdown": {
                rule_id: {**data, "entries": [dict(e) for e in data["entries"]]}
                for rule_id, data in self.rule_breakdown.items()
            },
            "contentTypeBreakdown": dict(self.content_type_breakdown),
            "execution": dict(self.execution),
        }


def candidate_entry(candidate: Candidate) -> Dict[str, Any]:
    """Per-candidate row of the rule breakdown."""
    return {
        "id": candidate.node_id,
        "contentType": candidate.content_type,
        "reasons": list(candidate.reasons),
        "willDelete": candidate.will_delete,
        "skipReason": candidate.skip_reason,
        "state": candidate.state.value,
        "isLinked": candidate.is_linked,
        "linkedBy": [linked.to_dict() for linked in candidate.linked_by],
    }


def generate_report(
    candidates: Iterable[Candidate],
    environment: str,
    run_id: str,
    mode: str,
    timestamp: datetime | None = None,
) -> DeletionReport:
    """
    Build a DeletionReport from the candidates of one run.

    Each candidate is counted once in the summary: ``willDelete`` if it is
    marked for deletion (deleted ones included), else ``willSkipDueToLinks`` if it is
    referenced, else ``willSkipDueToSafety``.
    """
    candidates: List[Candidate] = list(candidates)
    report = DeletionReport(
        run_id=run_id,
        timestamp=timestamp or datetime.now(UTC),
        environment=environment,
        mode=mode,
        total_candidates=len(candidates),
    )

    for candidate in candidates:
        if candidate.will_delete:
            report.summary["willDelete"] += 1
        elif candidate.is_linked:
            report.summary["willSkipDueToLinks"] += 1
        else:
            report.summary["willSkipDueToSafety"] += 1

        rule = report.rule_breakdown.setdefault(
            candidate.rule_id,
            {"ruleName": candidate.rule_name, "count": 0, "entries": []},
        )
        rule["count"] += 1
        rule["entries"].append(candidate_entry(candidate))

        ct = candidate.content_type
        report.content_type_breakdown[ct] = report.content_type_breakdown.get(ct, 0) + 1

        if candidate.state == CandidateState.DELETED:
            report.execution["deleted"] += 1
        elif candidate.state == CandidateState.DELETE_FAILED:
            report.execution["deleteFailed"] += 1
        report.execution["unlinkedNodes"] += len(candidate.unlinked)
        report.execution["removedLinks"] += sum(len(u.removed) for u in candidate.unlinked)

    return report
