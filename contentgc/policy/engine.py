# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
contentgc Policy Engine - Evaluates deletion rules against nodes.

Evaluation never raises: unknown operators, unparsable values and
unexpected errors inside a single condition make that condition evaluate
to False and are logged. A misconfigured rule cannot abort a run.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, UTC
from typing import Any, Callable, Dict, List

import structlog

from contentgc.models import Link, Node, parse_timestamp
from contentgc.policy.rules import (
    Condition,
    ConditionGroup,
    DeletionRule,
    GroupOperator,
    InvalidCondition,
    RuleNode,
    RuleSet,
)

logger = structlog.get_logger()

RELATIVE_DURATION = re.compile(r"^(\d+)([dhm])$")
DURATION_UNITS = {"d": "days", "h": "hours", "m": "minutes"}


@dataclass
class MatchResult:
    """Outcome of evaluating one rule against one node."""

    matched: bool
    reasons: List[str] = field(default_factory=list)
    applicable: bool = True


@dataclass
class RuleMatch:
    """The winning rule for a node."""

    rule: DeletionRule
    reasons: List[str]


def is_empty(value: Any) -> bool:
    """None, blank strings, empty lists and empty objects are empty."""
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, (list, dict)):
        return len(value) == 0
    return False


def _text(value: Any) -> str:
    if isinstance(value, Link):
        return value.target_id or ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _texts(value: Any) -> List[str]:
    if isinstance(value, list):
        return [_text(item) for item in value if item is not None]
    return [_text(value)]


def _parse_moment(value: Any, now: datetime) -> datetime | None:
    if isinstance(value, datetime):
        moment = value
    elif value == "now":
        moment = now
    else:
        moment = parse_timestamp(value)
    if moment is not None and moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    return moment


def _to_float(value: Any) -> float | None:
    if isinstance(value, bool) or value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class PolicyEngine:
    """
    Stateless evaluator of a RuleSet.

    Args:
        rule_set: Ordered deletion rules
        treat_incomplete_links_as_empty: Whether a link missing its target
            id or link type counts as data for ``hasNoData``
        clock: Returns the current time; injectable for tests
    """

    def __init__(
        self,
        rule_set: RuleSet,
        treat_incomplete_links_as_empty: bool = True,
        clock: Callable[[], datetime] | None = None,
    ):
        self.rule_set = rule_set
        self.treat_incomplete_links_as_empty = treat_incomplete_links_as_empty
        self._clock = clock or (lambda: datetime.now(UTC))
        self._operators: Dict[str, Callable[[Any, Any, Node], bool]] = {
            "isEmpty": lambda v, _e, _n: is_empty(v),
            "isNotEmpty": lambda v, _e, _n: not is_empty(v),
            "equals": lambda v, e, _n: v == e,
            "notEquals": lambda v, e, _n: v != e,
            "contains": lambda v, e, _n: self._text_match(v, e, str.__contains__),
            "startsWith": lambda v, e, _n: self._text_match(v, e, str.startswith),
            "endsWith": lambda v, e, _n: self._text_match(v, e, str.endswith),
            "before": lambda v, e, _n: self._compare_dates(v, e, before=True),
            "after": lambda v, e, _n: self._compare_dates(v, e, before=False),
            "olderThan": lambda _v, e, n: self._relative_age(n, e, older=True),
            "newerThan": lambda _v, e, n: self._relative_age(n, e, older=False),
            "greaterThan": lambda v, e, _n: self._compare_numbers(v, e, greater=True),
            "lessThan": lambda v, e, _n: self._compare_numbers(v, e, greater=False),
            "hasNoData": lambda _v, _e, n: self.has_no_data(n),
        }

    def match_node(self, node: Node, environment: str) -> RuleMatch | None:
        """Return the first applicable rule whose conditions match, if any."""
        for rule in self.rule_set.rules:
            result = self.matches(node, rule, environment)
            if result.applicable and result.matched:
                return RuleMatch(rule=rule, reasons=result.reasons)
        return None

    def matches(self, node: Node, rule: DeletionRule, environment: str) -> MatchResult:
        """Evaluate one rule. Non-applicable rules are reported as such."""
        if not rule.applies_to(node.content_type, environment):
            return MatchResult(matched=False, applicable=False)
        matched, reasons = self._evaluate(node, rule.conditions, rule.id)
        return MatchResult(matched=matched, reasons=reasons if matched else [])

    def _evaluate(self, node: Node, condition: RuleNode, rule_id: str) -> tuple[bool, List[str]]:
        if isinstance(condition, InvalidCondition):
            return False, []

        if isinstance(condition, ConditionGroup):
            results = [self._evaluate(node, child, rule_id) for child in condition.rules]
            if not results:
                return False, []
            if condition.operator == GroupOperator.AND:
                if not all(matched for matched, _ in results):
                    return False, []
                reasons = [", ".join(r) for _, r in results]
            else:
                if not any(matched for matched, _ in results):
                    return False, []
                reasons = [", ".join(r) for matched, r in results if matched]
            return True, [reason for reason in reasons if reason]

        matched = self.evaluate_condition(node, condition, rule_id)
        return matched, [condition.reason] if matched else []

    def evaluate_condition(self, node: Node, condition: Condition, rule_id: str = "") -> bool:
        """Evaluate a leaf condition; any problem yields False."""
        operator = self._operators.get(condition.operator)
        if operator is None:
            logger.warning(
                "unknown_operator",
                rule_id=rule_id,
                operator=condition.operator,
                field=condition.field,
            )
            return False

        try:
            value = self.get_field_value(node, condition.field)
            return bool(operator(value, condition.value, node))
        except Exception as e:
            logger.warning(
                "condition_evaluation_failed",
                rule_id=rule_id,
                node_id=node.id,
                field=condition.field,
                operator=condition.operator,
                error=str(e),
            )
            return False

    @staticmethod
    def get_field_value(node: Node, field_path: str) -> Any:
        """
        Resolve ``sys.<path>`` against node metadata or a field's first locale.
        """
        if field_path.startswith("sys."):
            current: Any = node.sys
            for part in field_path[len("sys."):].split("."):
                if not isinstance(current, dict):
                    return None
                current = current.get(part)
            return current

        per_locale = node.fields.get(field_path)
        if not per_locale:
            return None
        return next(iter(per_locale.values()))

    def _text_match(self, value: Any, expected: Any, predicate: Callable[[str, str], bool]) -> bool:
        if is_empty(value) or expected is None:
            return False
        needle = _text(expected)
        return any(predicate(text, needle) for text in _texts(value))

    def _compare_dates(self, value: Any, expected: Any, before: bool) -> bool:
        if not value:
            return False
        now = self._clock()
        field_date = _parse_moment(value, now)
        compare_date = _parse_moment(expected, now)
        if field_date is None or compare_date is None:
            logger.warning("invalid_date_comparison", value=str(value), expected=str(expected))
            return False
        return field_date < compare_date if before else field_date > compare_date

    def _relative_age(self, node: Node, expected: Any, older: bool) -> bool:
        created_at = node.created_at
        if created_at is None:
            return False
        match = RELATIVE_DURATION.match(expected) if isinstance(expected, str) else None
        if not match:
            logger.warning("invalid_relative_date", value=str(expected))
            return False

        amount, unit = int(match.group(1)), match.group(2)
        cutoff = self._clock() - timedelta(**{DURATION_UNITS[unit]: amount})
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=UTC)
        return created_at < cutoff if older else created_at > cutoff

    @staticmethod
    def _compare_numbers(value: Any, expected: Any, greater: bool) -> bool:
        left, right = _to_float(value), _to_float(expected)
        if left is None or right is None:
            return False
        return left > right if greater else left < right

    def has_no_data(self, node: Node) -> bool:
        """True iff no field holds meaningful data in any locale."""
        for per_locale in node.fields.values():
            for value in per_locale.values():
                if self._is_meaningful(value):
                    return False
        return True

    def _is_meaningful(self, value: Any) -> bool:
        if isinstance(value, Link):
            return value.is_complete or not self.treat_incomplete_links_as_empty
        if isinstance(value, list):
            return any(self._is_meaningful(item) for item in value)
        if isinstance(value, dict):
            return any(self._is_meaningful(item) for item in value.values())
        if isinstance(value, str):
            return value.strip() != ""
        return value is not None
