"""Input normalization helpers shared by the service layer.

Every helper either returns a cleaned value or raises ``ValidationError``;
services call them before touching the session so a rejected request never
leaves a partial mutation behind.
"""

from __future__ import annotations

import math
import re
from datetime import date, datetime
from enum import Enum
from typing import Iterable, List, Optional, Type, TypeVar

from insightvalue.core.errors import ValidationError

E = TypeVar("E", bound=Enum)

METHOD_KEY_RE = re.compile(r"^[A-Za-z0-9._-]+$")


def normalize_required_string(value, field: str, max_length: int | None = None) -> str:
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string.", field=field)
    trimmed = value.strip()
    if not trimmed:
        raise ValidationError(f"{field} must not be empty.", field=field)
    if max_length is not None and len(trimmed) > max_length:
        raise ValidationError(f"{field} must be at most {max_length} characters.", field=field)
    return trimmed


def normalize_optional_string(value, field: str) -> Optional[str]:
    """Trimmed text, or ``None`` for ``None`` and blank strings."""
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string.", field=field)
    trimmed = value.strip()
    return trimmed or None


def normalize_string_list(value) -> List[str]:
    """De-duplicate and trim, preserving first-seen order."""
    if value is None:
        return []
    if isinstance(value, str) or not isinstance(value, Iterable):
        raise ValidationError("Expected a list of strings.", field="tags")
    out: List[str] = []
    for item in value:
        normalized = normalize_optional_string(item, "tags")
        if normalized and normalized not in out:
            out.append(normalized)
    return out


def normalize_date(value, field: str) -> date:
    """Accept ``date`` objects or ``YYYY-MM-DD`` strings."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip())
        except ValueError:
            pass
    raise ValidationError(f"{field} must be a calendar date (YYYY-MM-DD).", field=field)


def normalize_optional_date(value, field: str) -> Optional[date]:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    return normalize_date(value, field)


def normalize_finite_number(value, field: str) -> float:
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a finite number.", field=field)
    try:
        num = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a finite number.", field=field) from None
    if not math.isfinite(num):
        raise ValidationError(f"{field} must be a finite number.", field=field)
    return num


def normalize_integer(value, field: str) -> int:
    num = normalize_finite_number(value, field)
    if not num.is_integer():
        raise ValidationError(f"{field} must be an integer.", field=field)
    return int(num)


def normalize_enum(value, enum_cls: Type[E], field: str) -> E:
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, str):
        try:
            return enum_cls(value.strip().lower())
        except ValueError:
            pass
    allowed = ", ".join(member.value for member in enum_cls)
    raise ValidationError(f"{field} must be one of: {allowed}.", field=field)


def normalize_symbol(value, field: str = "symbol") -> str:
    return normalize_required_string(value, field, max_length=64).upper()


def normalize_method_key(value, field: str = "method_key", allow_wildcard: bool = False) -> str:
    key = normalize_required_string(value, field, max_length=128)
    if allow_wildcard and key == "*":
        return key
    if not METHOD_KEY_RE.match(key):
        raise ValidationError(f"{field} may only contain letters, digits, '.', '_' and '-'.", field=field)
    return key


def normalize_limit(value, default: int, maximum: int) -> int:
    if value is None:
        return default
    limit = normalize_integer(value, "limit")
    return max(1, min(maximum, limit))


def normalize_offset(value) -> int:
    if value is None:
        return 0
    return max(0, normalize_integer(value, "offset"))
