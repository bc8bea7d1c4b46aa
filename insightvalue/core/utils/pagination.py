"""Limit/offset pagination helper for SQLAlchemy queries."""

from __future__ import annotations

from typing import Any, Dict

from sqlalchemy.orm import Query


def paginate(query: Query, limit: int = 100, offset: int = 0) -> Dict[str, Any]:
    limit = max(limit, 1)
    offset = max(offset, 0)
    items = query.limit(limit).offset(offset).all()
    total = query.order_by(None).count()
    return {"items": items, "total": total, "limit": limit, "offset": offset}
