# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Deletion Policy - Rule documents and the engine that evaluates them.
"""

from contentgc.policy.rules import (
    Condition,
    ConditionGroup,
    DeletionRule,
    EnvironmentSettings,
    GroupOperator,
    InvalidCondition,
    RuleSet,
    load_rule_set,
    parse_rule_set,
    validate_rule_set,
)

from contentgc.policy.engine import (
    MatchResult,
    PolicyEngine,
    RuleMatch,
    is_empty,
)

__all__ = [
    # Rules
    "Condition",
    "ConditionGroup",
    "DeletionRule",
    "EnvironmentSettings",
    "GroupOperator",
    "InvalidCondition",
    "RuleSet",
    "load_rule_set",
    "parse_rule_set",
    "validate_rule_set",
    # Engine
    "MatchResult",
    "PolicyEngine",
    "RuleMatch",
    "is_empty",
]
