# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Policy Tests for contentgc.

Rule document parsing, operator semantics and environment gating.
"""

import json
from datetime import datetime, timedelta, UTC
from pathlib import Path

import pytest

from contentgc.exceptions import ConfigurationError
from contentgc.models import Link, LinkKind, Node
from contentgc.policy import (
    Condition,
    InvalidCondition,
    PolicyEngine,
    load_rule_set,
    parse_rule_set,
    validate_rule_set,
)
from contentgc.policy.engine import is_empty

from conftest import entry, link, node

NOW = datetime(2026, 6, 1, 12, 0, tzinfo=UTC)


def _single_rule(conditions, content_types=("page",), environments=None, **extra):
    return parse_rule_set(
        {
            "deletionRules": [
                {
                    "id": "rule",
                    "name": "Rule",
                    "enabled": True,
                    "contentTypes": list(content_types),
                    "environments": environments,
                    "conditions": conditions,
                    **extra,
                }
            ]
        }
    )


def _matches(conditions, fields=None, environment="master", **kwargs) -> bool:
    rule_set = _single_rule(conditions)
    engine = PolicyEngine(rule_set, clock=lambda: NOW, **kwargs)
    return engine.match_node(node(entry("x", "page", fields)), environment) is not None


def _leaf(field, operator, value=None):
    return {"operator": "AND", "rules": [{"field": field, "operator": operator, "value": value}]}


# ============================================================================
# Operators
# ============================================================================

@pytest.mark.parametrize(
    "value,expected",
    [(None, True), ("", True), ("   ", True), ([], True), ({}, True), ("x", False), (0, False), (False, False)],
)
def test_is_empty(value, expected):
    assert is_empty(value) is expected


def test_text_operators():
    fields = {"slug": "blog-post-draft"}

    assert _matches(_leaf("slug", "contains", "post"), fields)
    assert _matches(_leaf("slug", "startsWith", "blog"), fields)
    assert _matches(_leaf("slug", "endsWith", "draft"), fields)
    assert not _matches(_leaf("slug", "startsWith", "draft"), fields)
    assert _matches(_leaf("slug", "equals", "blog-post-draft"), fields)
    assert _matches(_leaf("slug", "notEquals", "other"), fields)


def test_contains_checks_array_elements_and_link_targets():
    fields = {"tags": ["news", "archive"], "related": [link("abc-123")]}

    assert _matches(_leaf("tags", "contains", "arch"), fields)
    assert _matches(_leaf("related", "contains", "abc"), fields)
    assert not _matches(_leaf("tags", "contains", "sport"), fields)


def test_numeric_operators_ignore_unparsable_values():
    assert _matches(_leaf("views", "lessThan", 10), {"views": 3})
    assert _matches(_leaf("views", "greaterThan", "2"), {"views": "3"})
    assert not _matches(_leaf("views", "greaterThan", 10), {"views": "many"})


def test_absolute_date_operators():
    fields = {"expires": "2026-01-01T00:00:00Z"}

    assert _matches(_leaf("expires", "before", "now"), fields)
    assert _matches(_leaf("expires", "after", "2025-12-31"), fields)
    assert not _matches(_leaf("expires", "after", "not a date"), fields)


def test_relative_date_units():
    engine = PolicyEngine(
        _single_rule(_leaf("sys.createdAt", "newerThan", "2h")), clock=lambda: NOW
    )

    recent = Node(id="r", content_type="page", created_at=NOW - timedelta(minutes=30))
    old = Node(id="o", content_type="page", created_at=NOW - timedelta(hours=3))
    unknown = Node(id="u", content_type="page")

    assert engine.match_node(recent, "master") is not None
    assert engine.match_node(old, "master") is None
    assert engine.match_node(unknown, "master") is None


def test_invalid_relative_date_never_matches():
    assert not _matches(_leaf("sys.createdAt", "olderThan", "thirty days"))


def test_sys_field_paths():
    raw = entry("x", "page", {"title": "t"}, published=True)
    engine = PolicyEngine(_single_rule(_leaf("sys.contentType.sys.id", "equals", "page")))

    assert engine.match_node(node(raw), "master") is not None
    assert engine.get_field_value(node(raw), "sys.missing.path") is None


def test_first_locale_is_used():
    raw = entry("x", "page")
    raw["fields"]["title"] = {"de-DE": "", "en-US": "Hallo"}

    engine = PolicyEngine(_single_rule(_leaf("title", "isEmpty")))

    assert engine.match_node(node(raw), "master") is not None


def test_unknown_operator_never_matches():
    assert not _matches(_leaf("title", "isSpooky"), {"title": ""})


def test_or_group_reports_only_matching_reasons():
    conditions = {
        "operator": "OR",
        "rules": [
            {"field": "title", "operator": "isEmpty", "description": "No title"},
            {"field": "body", "operator": "isEmpty", "description": "No body"},
        ],
    }
    engine = PolicyEngine(_single_rule(conditions))

    match = engine.match_node(node(entry("x", "page", {"title": "", "body": "text"})), "master")

    assert match.reasons == ["No title"]
    assert engine.match_node(node(entry("y", "page", {"title": "t", "body": "b"})), "master") is None


def test_nested_groups():
    conditions = {
        "operator": "AND",
        "rules": [
            {"field": "title", "operator": "isEmpty"},
            {
                "operator": "OR",
                "rules": [
                    {"field": "status", "operator": "equals", "value": "draft"},
                    {"field": "status", "operator": "equals", "value": "stale"},
                ],
            },
        ],
    }

    assert _matches(conditions, {"title": "", "status": "stale"})
    assert not _matches(conditions, {"title": "", "status": "live"})


def test_empty_group_never_matches():
    rule_set = _single_rule({"operator": "OR", "rules": []})

    assert isinstance(rule_set.rules[0].conditions, InvalidCondition)
    assert not _matches({"operator": "OR", "rules": []}, {"title": ""})


# ============================================================================
# hasNoData
# ============================================================================

def test_has_no_data_and_incomplete_links():
    incomplete = {"sys": {"type": "Link", "linkType": "Entry"}}
    conditions = {"operator": "AND", "rules": [{"operator": "hasNoData"}]}

    assert _matches(conditions, {"title": "", "body": None, "tags": []})
    assert not _matches(conditions, {"title": "", "ref": link("a")})
    assert _matches(conditions, {"ref": incomplete})
    assert not _matches(conditions, {"ref": incomplete}, treat_incomplete_links_as_empty=False)


def test_incomplete_link_model():
    assert Link(kind=LinkKind.ENTRY, target_id="a").is_complete
    assert not Link(kind=None, target_id="a").is_complete
    assert not Link(kind=LinkKind.ASSET, target_id=None).is_complete


# ============================================================================
# Gating
# ============================================================================

def test_environment_gating_skips_rule():
    rule_set = _single_rule(_leaf("title", "isEmpty"), environments=["staging"])
    engine = PolicyEngine(rule_set)
    page = node(entry("x", "page", {"title": ""}))

    result = engine.matches(page, rule_set.rules[0], "master")

    assert result.applicable is False
    assert engine.match_node(page, "staging") is not None


def test_wildcard_and_disabled_rules():
    rule_set = parse_rule_set(
        {
            "deletionRules": [
                {
                    "id": "disabled",
                    "enabled": False,
                    "contentTypes": ["*"],
                    "conditions": _leaf("title", "isEmpty"),
                },
                {
                    "id": "wildcard",
                    "enabled": True,
                    "contentTypes": ["*"],
                    "conditions": _leaf("title", "isEmpty"),
                },
            ]
        }
    )
    engine = PolicyEngine(rule_set)

    match = engine.match_node(node(entry("x", "anything", {"title": ""})), "master")

    assert match.rule.id == "wildcard"
    assert rule_set.content_types_for_environment("master") is None


# ============================================================================
# Rules document
# ============================================================================

def test_parse_rules_document(rule_set):
    seo = rule_set.rules[0]

    assert seo.id == "remove-empty-seo-entries"
    assert seo.content_types == ("seoHead",)
    assert seo.environments is None
    assert seo.safety_checks.check_links is True
    assert seo.safety_checks.skip_if_referenced is True
    assert seo.conditions.rules[0] == Condition(
        field="title", operator="isEmpty", description="No title provided"
    )
    assert rule_set.content_types_for_environment("master") == {"seoHead", "author"}


def test_environment_settings(rule_set):
    staging = rule_set.environment_settings("staging")
    master = rule_set.environment_settings("master")

    assert staging.safe_mode is True
    assert staging.max_deletions_per_run == 50
    assert master.max_deletions_per_run == 100


def test_malformed_rule_entries_do_not_abort_loading():
    rule_set = parse_rule_set(
        {
            "deletionRules": [
                "not a rule",
                {"id": "no-field", "enabled": True, "contentTypes": ["page"],
                 "conditions": {"operator": "AND", "rules": [{"operator": "isEmpty"}]}},
            ]
        }
    )

    [rule] = rule_set.rules
    assert isinstance(rule.conditions.rules[0], InvalidCondition)
    assert any("no-field" in warning for warning in validate_rule_set(rule_set))


def test_validate_rule_set_warnings():
    rule_set = parse_rule_set(
        {
            "deletionRules": [
                {"id": "a", "enabled": False, "contentTypes": [], "conditions": _leaf("t", "isEmpty"),
                 "safetyChecks": {"skipIfReferenced": True}},
                {"id": "a", "enabled": False, "contentTypes": ["page"], "conditions": _leaf("t", "bogus")},
            ]
        }
    )

    warnings = validate_rule_set(rule_set)

    assert "a: duplicate rule id" in warnings
    assert "a: no content types, rule never applies" in warnings
    assert "a: skipIfReferenced has no effect without checkLinks" in warnings
    assert "a: unknown operator 'bogus' never matches" in warnings
    assert "no deletion rules are enabled" in warnings


def test_load_rule_set_from_file(temp_dir: Path, rules_document):
    path = temp_dir / "rules.json"
    path.write_text(json.dumps(rules_document))

    rule_set = load_rule_set(path)

    assert [r.id for r in rule_set.rules] == ["remove-empty-seo-entries", "remove-nameless-authors"]


def test_load_rule_set_errors(temp_dir: Path):
    with pytest.raises(ConfigurationError):
        load_rule_set(temp_dir / "missing.json")

    broken = temp_dir / "broken.json"
    broken.write_text("{not json")
    with pytest.raises(ConfigurationError):
        load_rule_set(broken)

    listed = temp_dir / "list.json"
    listed.write_text("[]")
    with pytest.raises(ConfigurationError):
        load_rule_set(listed)
