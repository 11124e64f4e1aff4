# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Link Integrity - Reference discovery, removal and broken-link cleanup.
"""

from contentgc.links.traversal import (
    Ok,
    Skipped,
    StripOutcome,
    iter_links,
    remove_links,
    strip_links,
    targets,
)

from contentgc.links.resolver import (
    LinkResolver,
    UnlinkFailure,
    UnlinkResult,
    inbound_query,
)

from contentgc.links.cleanup import (
    BrokenLinkCleaner,
    BrokenLinkResult,
    BulkCleanupResult,
)

__all__ = [
    # Traversal
    "Ok",
    "Skipped",
    "StripOutcome",
    "iter_links",
    "remove_links",
    "strip_links",
    "targets",
    # Resolver
    "LinkResolver",
    "UnlinkFailure",
    "UnlinkResult",
    "inbound_query",
    # Cleanup
    "BrokenLinkCleaner",
    "BrokenLinkResult",
    "BulkCleanupResult",
]
