# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
contentgc Models - Typed representation of content graph nodes.

Field values arrive from the backend as nested JSON. They are parsed once
into a small tagged union so that the rest of the package can ask
``isinstance(value, Link)`` instead of probing dictionaries:

    Value = str | int | float | bool | None | Link | List[Value] | Dict[str, Any]

Plain JSON objects that are not links (rich text, location, JSON fields)
stay dictionaries.
"""

import copy
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Union

from contentgc.exceptions import ValidationError


# Content type tag used for asset nodes, which carry no content type
ASSET_CONTENT_TYPE = "Asset"


class LinkKind(str, Enum):
    """Kind of node a link points at."""

    ENTRY = "Entry"
    ASSET = "Asset"


class NodeKind(str, Enum):
    """Kind of node stored in the graph."""

    ENTRY = "Entry"
    ASSET = "Asset"


@dataclass(frozen=True)
class Link:
    """A typed reference from a field value to another node."""

    kind: LinkKind | None
    target_id: str | None

    @property
    def is_complete(self) -> bool:
        return self.kind is not None and bool(self.target_id)

    def to_raw(self) -> dict:
        sys: Dict[str, Any] = {"type": "Link"}
        if self.kind is not None:
            sys["linkType"] = self.kind.value
        if self.target_id is not None:
            sys["id"] = self.target_id
        return {"sys": sys}


Value = Union[str, int, float, bool, None, Link, List[Any], Dict[str, Any]]
FieldMap = Dict[str, Dict[str, Value]]


def is_link_shaped(raw: Any) -> bool:
    """True for JSON objects of the form ``{"sys": {"type": "Link", ...}}``."""
    return (
        isinstance(raw, dict)
        and isinstance(raw.get("sys"), dict)
        and raw["sys"].get("type") == "Link"
    )


def parse_value(raw: Any) -> Value:
    """Convert a raw JSON value into the typed value union."""
    if is_link_shaped(raw):
        sys = raw["sys"]
        try:
            kind = LinkKind(sys.get("linkType"))
        except ValueError:
            kind = None
        target_id = sys.get("id")
        return Link(kind=kind, target_id=target_id if isinstance(target_id, str) else None)
    if isinstance(raw, list):
        return [parse_value(item) for item in raw]
    return raw


def dump_value(value: Value) -> Any:
    """Inverse of parse_value."""
    if isinstance(value, Link):
        return value.to_raw()
    if isinstance(value, list):
        return [dump_value(item) for item in value]
    return value


def parse_fields(raw_fields: Any) -> FieldMap:
    """Parse ``{field: {locale: value}}``. Non-mapping field data is dropped."""
    fields: FieldMap = {}
    if not isinstance(raw_fields, dict):
        return fields
    for name, per_locale in raw_fields.items():
        if not isinstance(per_locale, dict):
            continue
        fields[name] = {locale: parse_value(value) for locale, value in per_locale.items()}
    return fields


def dump_fields(fields: FieldMap) -> Dict[str, Dict[str, Any]]:
    return {
        name: {locale: dump_value(value) for locale, value in per_locale.items()}
        for name, per_locale in fields.items()
    }


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO 8601 timestamp; a trailing ``Z`` is accepted."""
    if not value or not isinstance(value, str):
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


@dataclass
class Node:
    """
    A content item (entry or asset) as last fetched from the backend.

    ``version`` always reflects the fetched snapshot. Writes must be based on
    a freshly fetched node; a stale version is rejected by the backend.
    """

    id: str
    content_type: str
    fields: FieldMap = field(default_factory=dict)
    version: int = 1
    kind: NodeKind = NodeKind.ENTRY
    published_version: int | None = None
    archived_at: datetime | None = None
    published_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    sys: Dict[str, Any] = field(default_factory=dict, repr=False)

    @property
    def is_published(self) -> bool:
        return self.published_version is not None or self.published_at is not None

    @property
    def is_archived(self) -> bool:
        return self.archived_at is not None

    @classmethod
    def from_raw(cls, raw: Dict[str, Any]) -> "Node":
        """Build a Node from the backend's JSON representation."""
        sys = raw.get("sys") or {}
        node_id = sys.get("id")
        if not isinstance(node_id, str) or not node_id:
            raise ValidationError("Node without sys.id", details={"sys": sys})

        kind = NodeKind.ASSET if sys.get("type") == "Asset" else NodeKind.ENTRY
        if kind == NodeKind.ASSET:
            content_type = ASSET_CONTENT_TYPE
        else:
            content_type = ((sys.get("contentType") or {}).get("sys") or {}).get("id", "")

        return cls(
            id=node_id,
            content_type=content_type,
            fields=parse_fields(raw.get("fields")),
            version=int(sys.get("version") or 1),
            kind=kind,
            published_version=sys.get("publishedVersion"),
            archived_at=parse_timestamp(sys.get("archivedAt")),
            published_at=parse_timestamp(sys.get("publishedAt")),
            created_at=parse_timestamp(sys.get("createdAt")),
            updated_at=parse_timestamp(sys.get("updatedAt")),
            sys=copy.deepcopy(sys),
        )

    def to_raw(self) -> Dict[str, Any]:
        sys = copy.deepcopy(self.sys)
        sys["id"] = self.id
        sys["version"] = self.version
        return {"sys": sys, "fields": dump_fields(self.fields)}


@dataclass(frozen=True)
class LinkedBy:
    """A node holding a reference to another node."""

    id: str
    content_type: str

    def to_dict(self) -> dict:
        return {"id": self.id, "contentType": self.content_type}


@dataclass(frozen=True)
class RemovedLink:
    """One link removed from one field/locale of a referencing node."""

    field: str
    locale: str
    removed_id: str
    link_kind: str | None = None

    def to_dict(self) -> dict:
        return {
            "field": self.field,
            "locale": self.locale,
            "removedId": self.removed_id,
            "linkType": self.link_kind,
        }


@dataclass
class UnlinkRecord:
    """Audit record of a single successful write to a referencing node."""

    referencing_id: str
    content_type: str
    target_id: str
    removed: List[RemovedLink] = field(default_factory=list)
    republished: bool = False


class CandidateState(str, Enum):
    """Per-node deletion state. See orchestrator.ALLOWED_TRANSITIONS."""

    MATCHED = "matched"
    NOT_LINKED = "not_linked"
    LINKED = "linked"
    LINK_CHECK_FAILED = "link_check_failed"
    UNLINKING = "unlinking"
    VERIFIED_CLEAR = "verified_clear"
    STILL_LINKED = "still_linked"
    DELETABLE = "deletable"
    DELETED = "deleted"
    DELETE_FAILED = "delete_failed"
    SKIPPED = "skipped"


@dataclass
class SafetyChecks:
    """Safety switches of a deletion rule."""

    check_links: bool = False
    skip_if_referenced: bool = False


@dataclass
class Candidate:
    """A node matched by a deletion rule during one run, with its decision trail."""

    node: Node
    rule_id: str
    rule_name: str
    reasons: List[str] = field(default_factory=list)
    safety_checks: SafetyChecks = field(default_factory=SafetyChecks)
    is_linked: bool = False
    linked_by: List[LinkedBy] = field(default_factory=list)
    will_delete: bool = False
    skip_reason: str | None = None
    state: CandidateState = CandidateState.MATCHED
    pending_unlink: bool = False
    unlinked: List[UnlinkRecord] = field(default_factory=list)
    error: str | None = None

    @property
    def node_id(self) -> str:
        return self.node.id

    @property
    def content_type(self) -> str:
        return self.node.content_type
