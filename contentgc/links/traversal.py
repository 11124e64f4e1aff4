# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
contentgc Field Traversal - Per-field, per-locale link removal.

Each field/locale step returns a typed outcome (``Ok`` or ``Skipped``)
that the caller aggregates, so one bad value is reported and skipped
without dropping the rest of the node.
"""

from dataclasses import dataclass, field
from typing import Callable, Iterator, List, Tuple, Union

from contentgc.models import FieldMap, Link, LinkKind, RemovedLink, Value

LinkPredicate = Callable[[Link], bool]


@dataclass(frozen=True)
class Ok:
    value: Value
    removed: Tuple[Link, ...] = ()


@dataclass(frozen=True)
class Skipped:
    field: str
    locale: str
    reason: str


Outcome = Union[Ok, Skipped]


@dataclass
class StripOutcome:
    """Aggregated result of removing links from every field of a node."""

    fields: FieldMap
    removed: List[RemovedLink] = field(default_factory=list)
    skipped: List[Skipped] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.removed)


def targets(target_id: str, kind: LinkKind | None = None) -> LinkPredicate:
    """Predicate matching links that point at ``target_id`` (of ``kind``, if given)."""
    if kind is None:
        return lambda link: link.target_id == target_id
    return lambda link: link.target_id == target_id and link.kind == kind


def strip_links(value: Value, predicate: LinkPredicate) -> Ok:
    """
    Remove matching links from one locale value.

    Array values keep every non-matching element in its original order.
    A matching scalar link becomes None. Anything else is returned as is.
    """
    if isinstance(value, Link):
        if predicate(value):
            return Ok(value=None, removed=(value,))
        return Ok(value=value)

    if isinstance(value, list):
        kept: List[Value] = []
        removed: List[Link] = []
        for item in value:
            if isinstance(item, Link) and predicate(item):
                removed.append(item)
            else:
                kept.append(item)
        if not removed:
            return Ok(value=value)
        return Ok(value=kept, removed=tuple(removed))

    return Ok(value=value)


def _strip_locale(field_name: str, locale: str, value: Value, predicate: LinkPredicate) -> Outcome:
    try:
        return strip_links(value, predicate)
    except Exception as e:
        return Skipped(field=field_name, locale=locale, reason=f"{type(e).__name__}: {e}")


def remove_links(fields: FieldMap, predicate: LinkPredicate) -> StripOutcome:
    """
    Remove every link matching ``predicate`` from a copy of ``fields``.

    The input mapping is not modified.
    """
    outcome = StripOutcome(fields={})
    for field_name, per_locale in fields.items():
        new_locales = {}
        for locale, value in per_locale.items():
            result = _strip_locale(field_name, locale, value, predicate)
            if isinstance(result, Skipped):
                outcome.skipped.append(result)
                new_locales[locale] = value
                continue
            new_locales[locale] = result.value
            for link in result.removed:
                outcome.removed.append(
                    RemovedLink(
                        field=field_name,
                        locale=locale,
                        removed_id=link.target_id or "",
                        link_kind=link.kind.value if link.kind else None,
                    )
                )
        outcome.fields[field_name] = new_locales
    return outcome


def iter_links(fields: FieldMap) -> Iterator[Tuple[str, str, Link]]:
    """Yield ``(field, locale, link)`` for every link, scalar or array element."""
    for field_name, per_locale in fields.items():
        for locale, value in per_locale.items():
            if isinstance(value, Link):
                yield field_name, locale, value
            elif isinstance(value, list):
                for item in value:
                    if isinstance(item, Link):
                        yield field_name, locale, item
