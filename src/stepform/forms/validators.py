"""Built-in validators for field values.

Each validator returns an error message string on failure, None on success.
Validators only run on present values; absence is decided by ``is_absent``.
"""

from __future__ import annotations

import re
from collections.abc import Collection
from typing import Any

EMAIL_PATTERN = re.compile(r"[a-zA-Z0-9._%+\-]+@[a-zA-Z0-9.\-]+\.[a-zA-Z]{2,}")


def is_absent(value: Any) -> bool:
    """None, blank strings and empty collections count as "not filled in"."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, set, frozenset, dict)):
        return len(value) == 0
    return False


def validate_regex(value: str, pattern: re.Pattern[str], message: str | None = None) -> str | None:
    if not pattern.search(value):
        return message or "Invalid format"
    return None


def validate_email(value: str) -> str | None:
    if not EMAIL_PATTERN.fullmatch(value.strip()):
        return "Invalid email address"
    return None


def validate_min(value: float, min_val: float, message: str | None = None) -> str | None:
    if value < min_val:
        return message or f"Minimum value is {min_val}"
    return None


def validate_max(value: float, max_val: float, message: str | None = None) -> str | None:
    if value > max_val:
        return message or f"Maximum value is {max_val}"
    return None


def validate_one_of(
    value: str, allowed: Collection[str], label: str, message: str | None = None
) -> str | None:
    if value not in allowed:
        return message or f"Please select a valid option for {label}"
    return None
