# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
contentgc Deletion Rules - Typed, read-only deletion policy documents.

The rules document is JSON:

    {
      "deletionRules": [
        {
          "id": "remove-empty-seo-entries",
          "name": "Remove empty SEO entries",
          "enabled": true,
          "contentTypes": ["seoHead"],
          "environments": null,
          "conditions": {
            "operator": "AND",
            "rules": [
              {"field": "title", "operator": "isEmpty", "description": "No title provided"},
              {"field": "description", "operator": "isEmpty", "description": "No meta description"}
            ]
          },
          "safetyChecks": {"checkLinks": true, "skipIfReferenced": true}
        }
      ],
      "globalSettings": {"defaultBehavior": {"checkLinksBeforeDeletion": true, "maxDeletionsPerRun": 100}},
      "environmentConfig": {"staging": {"safeMode": true, "maxDeletionsPerRun": 50}}
    }

A malformed rule or condition never aborts loading: it is replaced by an
``InvalidCondition`` that never matches, and a warning is logged.
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Set, Union

import structlog

from contentgc.exceptions import ConfigurationError
from contentgc.models import SafetyChecks

logger = structlog.get_logger()

WILDCARD = "*"
DEFAULT_MAX_DELETIONS_PER_RUN = 100

LEAF_OPERATORS = frozenset(
    {
        "isEmpty",
        "isNotEmpty",
        "equals",
        "notEquals",
        "contains",
        "startsWith",
        "endsWith",
        "before",
        "after",
        "olderThan",
        "newerThan",
        "greaterThan",
        "lessThan",
        "hasNoData",
    }
)


class GroupOperator(str, Enum):
    AND = "AND"
    OR = "OR"


@dataclass(frozen=True)
class Condition:
    """Leaf condition: apply ``operator`` to the value of ``field``."""

    field: str
    operator: str
    value: Any = None
    description: str | None = None

    @property
    def reason(self) -> str:
        if self.description:
            return self.description
        suffix = "" if self.value is None else str(self.value)
        return f"{self.field} {self.operator} {suffix}".rstrip()


@dataclass(frozen=True)
class InvalidCondition:
    """Placeholder for a condition that could not be parsed. Never matches."""

    problem: str


@dataclass(frozen=True)
class ConditionGroup:
    """AND/OR combination of child conditions."""

    operator: GroupOperator
    rules: tuple = ()


RuleNode = Union[Condition, ConditionGroup, InvalidCondition]


@dataclass(frozen=True)
class DeletionRule:
    """A named, content-type-scoped deletion policy."""

    id: str
    name: str
    enabled: bool
    content_types: tuple
    environments: tuple | None
    conditions: RuleNode
    safety_checks: SafetyChecks = field(default_factory=SafetyChecks)

    def applies_to(self, content_type: str, environment: str) -> bool:
        """Content-type and environment gate."""
        if not self.enabled:
            return False
        if self.environments is not None and environment not in self.environments:
            return False
        return any(ct == WILDCARD or ct == content_type for ct in self.content_types)


@dataclass(frozen=True)
class EnvironmentSettings:
    """Resolved per-environment deletion settings."""

    safe_mode: bool = True
    max_deletions_per_run: int = DEFAULT_MAX_DELETIONS_PER_RUN
    require_confirmation_for_all: bool = False


@dataclass(frozen=True)
class RuleSet:
    """Ordered deletion rules plus global and per-environment settings."""

    rules: tuple = ()
    default_check_links: bool | None = None
    default_max_deletions: int | None = None
    environment_config: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    def environment_settings(self, environment: str) -> EnvironmentSettings:
        env = self.environment_config.get(environment) or {}

        safe_mode = env.get("safeMode")
        if not isinstance(safe_mode, bool):
            safe_mode = self.default_check_links if self.default_check_links is not None else True

        max_deletions = env.get("maxDeletionsPerRun")
        if not _is_count(max_deletions):
            max_deletions = (
                self.default_max_deletions
                if self.default_max_deletions is not None
                else DEFAULT_MAX_DELETIONS_PER_RUN
            )

        return EnvironmentSettings(
            safe_mode=safe_mode,
            max_deletions_per_run=max_deletions,
            require_confirmation_for_all=bool(env.get("requireConfirmationForAll", False)),
        )

    def enabled_rules_for_environment(self, environment: str) -> List[DeletionRule]:
        return [
            rule
            for rule in self.rules
            if rule.enabled and (rule.environments is None or environment in rule.environments)
        ]

    def content_types_for_environment(self, environment: str) -> Set[str] | None:
        """
        Content types covered by the enabled rules of an environment.

        Returns None when a wildcard rule covers every content type.
        """
        content_types: Set[str] = set()
        for rule in self.enabled_rules_for_environment(environment):
            if WILDCARD in rule.content_types:
                return None
            content_types.update(rule.content_types)
        return content_types

    def summary(self) -> dict:
        content_types: List[str] = []
        for rule in self.rules:
            for ct in rule.content_types:
                if ct not in content_types:
                    content_types.append(ct)
        return {
            "total_rules": len(self.rules),
            "enabled_rules": sum(1 for r in self.rules if r.enabled),
            "content_types": content_types,
            "environments": sorted(self.environment_config),
        }


def _is_count(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


def parse_condition(raw: Any, path: str = "conditions") -> RuleNode:
    """Parse a condition tree; problems become InvalidCondition nodes."""
    if not isinstance(raw, dict):
        return _invalid(path, "condition is not an object")

    operator = raw.get("operator")
    if operator in (GroupOperator.AND.value, GroupOperator.OR.value):
        children = raw.get("rules")
        if not isinstance(children, list) or not children:
            return _invalid(path, f"{operator} group has no rules")
        return ConditionGroup(
            operator=GroupOperator(operator),
            rules=tuple(
                parse_condition(child, f"{path}.rules[{i}]")
                for i, child in enumerate(children)
            ),
        )

    # Top-level groups may omit the operator; AND is the default
    if operator is None and isinstance(raw.get("rules"), list):
        return parse_condition({**raw, "operator": GroupOperator.AND.value}, path)

    if not isinstance(operator, str) or not operator:
        return _invalid(path, "condition has no operator")

    field_name = raw.get("field")
    if operator != "hasNoData" and (not isinstance(field_name, str) or not field_name):
        return _invalid(path, f"{operator} condition has no field")

    description = raw.get("description")
    return Condition(
        field=field_name if isinstance(field_name, str) else "",
        operator=operator,
        value=raw.get("value"),
        description=description if isinstance(description, str) else None,
    )


def _invalid(path: str, problem: str) -> InvalidCondition:
    logger.warning("invalid_condition", path=path, problem=problem)
    return InvalidCondition(problem=f"{path}: {problem}")


def _string_tuple(value: Any) -> tuple:
    if not isinstance(value, list):
        return ()
    return tuple(v for v in value if isinstance(v, str) and v)


def parse_rule(raw: Any, index: int) -> DeletionRule | None:
    """Parse one deletion rule. Returns None only for non-object entries."""
    if not isinstance(raw, dict):
        logger.warning("invalid_deletion_rule", index=index, problem="rule is not an object")
        return None

    rule_id = raw.get("id") if isinstance(raw.get("id"), str) and raw.get("id") else f"rule-{index}"
    name = raw.get("name") if isinstance(raw.get("name"), str) else rule_id

    environments = raw.get("environments")
    parsed_envs = None if environments is None else _string_tuple(environments)

    safety = raw.get("safetyChecks") if isinstance(raw.get("safetyChecks"), dict) else {}

    return DeletionRule(
        id=rule_id,
        name=name,
        enabled=raw.get("enabled") is True,
        content_types=_string_tuple(raw.get("contentTypes")),
        environments=parsed_envs,
        conditions=parse_condition(raw.get("conditions"), f"deletionRules[{index}].conditions"),
        safety_checks=SafetyChecks(
            check_links=safety.get("checkLinks") is True,
            skip_if_referenced=safety.get("skipIfReferenced") is True,
        ),
    )


def parse_rule_set(doc: Any) -> RuleSet:
    """Build a RuleSet from a decoded rules document."""
    if not isinstance(doc, dict):
        raise ConfigurationError(
            "Rules document must be a JSON object",
            details={"type": type(doc).__name__},
        )

    raw_rules = doc.get("deletionRules") or []
    if not isinstance(raw_rules, list):
        logger.warning("invalid_rules_document", problem="deletionRules is not a list")
        raw_rules = []

    rules = tuple(
        rule for rule in (parse_rule(raw, i) for i, raw in enumerate(raw_rules)) if rule
    )

    global_settings = doc.get("globalSettings") if isinstance(doc.get("globalSettings"), dict) else {}
    defaults = global_settings.get("defaultBehavior")
    defaults = defaults if isinstance(defaults, dict) else {}

    check_links = defaults.get("checkLinksBeforeDeletion")
    max_deletions = defaults.get("maxDeletionsPerRun")

    env_config = doc.get("environmentConfig")
    env_config = {
        name: settings
        for name, settings in (env_config.items() if isinstance(env_config, dict) else [])
        if isinstance(settings, dict)
    }

    return RuleSet(
        rules=rules,
        default_check_links=check_links if isinstance(check_links, bool) else None,
        default_max_deletions=max_deletions if _is_count(max_deletions) else None,
        environment_config=env_config,
    )


def load_rule_set(path: Path | str) -> RuleSet:
    """
    Load the rules document from disk.

    Raises:
        ConfigurationError: If the file is missing, unreadable or not JSON
    """
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise ConfigurationError(
            f"Rules document not found: {path}", details={"rules_path": str(path)}
        )
    except OSError as e:
        raise ConfigurationError(
            f"Failed to read rules document: {e}", details={"rules_path": str(path)}
        )

    try:
        doc = json.loads(text)
    except json.JSONDecodeError as e:
        raise ConfigurationError(
            f"Rules document is not valid JSON: {e}", details={"rules_path": str(path)}
        )

    rule_set = parse_rule_set(doc)
    logger.info(
        "rules_loaded",
        rules_path=str(path),
        total_rules=len(rule_set.rules),
        enabled_rules=sum(1 for r in rule_set.rules if r.enabled),
    )
    return rule_set


def _collect_condition_warnings(node: RuleNode, rule_id: str, warnings: List[str]) -> None:
    if isinstance(node, InvalidCondition):
        warnings.append(f"{rule_id}: {node.problem}")
    elif isinstance(node, ConditionGroup):
        for child in node.rules:
            _collect_condition_warnings(child, rule_id, warnings)
    elif node.operator not in LEAF_OPERATORS:
        warnings.append(f"{rule_id}: unknown operator {node.operator!r} never matches")


def validate_rule_set(rule_set: RuleSet) -> List[str]:
    """Return human-readable warnings about rules that can never match."""
    warnings: List[str] = []
    seen: Set[str] = set()

    for rule in rule_set.rules:
        if rule.id in seen:
            warnings.append(f"{rule.id}: duplicate rule id")
        seen.add(rule.id)

        if not rule.content_types:
            warnings.append(f"{rule.id}: no content types, rule never applies")

        if rule.environments is not None and not rule.environments:
            warnings.append(f"{rule.id}: empty environments list, rule never applies")

        if rule.safety_checks.skip_if_referenced and not rule.safety_checks.check_links:
            warnings.append(f"{rule.id}: skipIfReferenced has no effect without checkLinks")

        _collect_condition_warnings(rule.conditions, rule.id, warnings)

    if rule_set.rules and not any(r.enabled for r in rule_set.rules):
        warnings.append("no deletion rules are enabled")

    return warnings
