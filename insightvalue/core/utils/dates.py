"""Clock helpers (naive UTC, matching the DateTime columns)."""

from __future__ import annotations

from datetime import date, datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def today() -> date:
    return utcnow().date()


def isoformat_or_none(value) -> str | None:
    return value.isoformat() if value else None
