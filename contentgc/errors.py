# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Human-friendly error message helpers for contentgc.

These helpers centralize wording for common configuration errors so that
all modules present consistent, actionable messages.
"""


def explain_missing_space_env() -> str:
    """
    Explain that the space environment variable is missing.
    """

    return (
        "Content space is not configured. "
        "Set the CONTENTGC_SPACE_ID environment variable or pass space_id=... to create_config()."
    )


def explain_missing_token_env() -> str:
    """
    Explain that the management token is missing.
    """

    return (
        "Management API token is not configured. "
        "Set CONTENTGC_MANAGEMENT_TOKEN or pass access_token=... to create_config(). "
        "The token needs read and write access to the target environment."
    )


def explain_invalid_mode_env(value: str | None) -> str:
    """
    Explain that CONTENTGC_MODE is invalid.
    """

    return (
        f"Invalid CONTENTGC_MODE value: {value!r}. "
        "Expected one of: 'dry_run', 'audit_only', or 'execute'."
    )


def explain_invalid_count_env(name: str, value: str | None) -> str:
    """
    Explain that a numeric environment variable is invalid.
    """

    return f"Invalid {name} value: {value!r}. It must be a non-negative integer."


def explain_missing_rules_path() -> str:
    return (
        "No deletion rules document configured. "
        "Set CONTENTGC_RULES_PATH or pass rules_path=... to create_config(); "
        "the document must contain a 'deletionRules' list."
    )
