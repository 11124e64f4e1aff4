# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Framework Integrations - FastAPI admin routes and lifespan.
"""

from contentgc.integrations.fastapi import (
    contentgc_lifespan,
    get_contentgc_config,
    get_contentgc_state,
    register_contentgc_routes,
    verify_api_key,
)

__all__ = [
    "contentgc_lifespan",
    "get_contentgc_config",
    "get_contentgc_state",
    "register_contentgc_routes",
    "verify_api_key",
]
