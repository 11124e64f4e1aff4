# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Remote Client - Backend adapter plus retry/pagination wrapper.
"""

from contentgc.client.api import (
    ContentGraphAPI,
    HTTPContentGraphAPI,
    raise_for_status,
)

from contentgc.client.backoff import (
    BackoffClient,
    parse_page,
)

__all__ = [
    # Backend
    "ContentGraphAPI",
    "HTTPContentGraphAPI",
    "raise_for_status",
    # Retry and paging
    "BackoffClient",
    "parse_page",
]
