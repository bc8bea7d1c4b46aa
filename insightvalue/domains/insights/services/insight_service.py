"""Insight store: lifecycle of insight records."""

from __future__ import annotations

import logging
from datetime import date
from typing import Any, Dict, Optional

from flask import current_app
from sqlalchemy import or_

from insightvalue.core.errors import NotFoundError, ValidationError
from insightvalue.core.events.event_service import log_event
from insightvalue.core.utils.dates import isoformat_or_none, utcnow
from insightvalue.core.utils.pagination import paginate
from insightvalue.core.utils.transactions import atomic, insight_write_locks
from insightvalue.core.utils.validation import (
    normalize_enum,
    normalize_limit,
    normalize_offset,
    normalize_optional_date,
    normalize_optional_string,
    normalize_required_string,
    normalize_string_list,
)
from insightvalue.domains.insights.constants import EDITABLE_STATUSES, InsightStatus
from insightvalue.domains.insights.events import INSIGHT_CREATED, INSIGHT_DELETED, INSIGHT_UPDATED
from insightvalue.domains.insights.models.insight_models import Insight
from insightvalue.extensions import db

logger = logging.getLogger(__name__)

_UPDATABLE_FIELDS = ("title", "thesis", "status", "valid_from", "valid_to", "tags", "meta")


def _normalize_status(value) -> str:
    status = normalize_enum(value, InsightStatus, "status")
    if status not in EDITABLE_STATUSES:
        raise ValidationError(
            "status 'deleted' can only be reached by removing the insight.", field="status"
        )
    return status.value


def _check_window(valid_from: Optional[date], valid_to: Optional[date]) -> None:
    if valid_from and valid_to and valid_from > valid_to:
        raise ValidationError("valid_from must be on or before valid_to.", field="valid_from")


def _normalize_meta(value) -> Dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValidationError("meta must be an object.", field="meta")
    return dict(value)


def get_insight(insight_id: int) -> Insight:
    insight = db.session.get(Insight, insight_id)
    if insight is None:
        raise NotFoundError(f"Insight {insight_id} not found.", field="insight_id")
    return insight


def _refuse_deleted(insight: Insight) -> Insight:
    if insight.is_deleted:
        raise ValidationError(
            f"Insight {insight.id} is deleted.", code="insight_deleted", field="insight_id"
        )
    return insight


def get_live_insight(insight_id: int) -> Insight:
    return _refuse_deleted(get_insight(insight_id))


def lock_insight_for_write(insight_id: int) -> Insight:
    """Row-lock an insight inside the caller's transaction and refuse deleted ones.

    Callers hold ``insight_write_locks.hold(insight_id)`` around the transaction.
    """
    insight = (
        db.session.query(Insight).filter(Insight.id == insight_id).with_for_update().one_or_none()
    )
    if insight is None:
        raise NotFoundError(f"Insight {insight_id} not found.", field="insight_id")
    return _refuse_deleted(insight)


def create_insight(
    *,
    title,
    thesis=None,
    status=None,
    valid_from=None,
    valid_to=None,
    tags=None,
    meta=None,
) -> Insight:
    clean_title = normalize_required_string(title, "title", max_length=255)
    clean_thesis = normalize_optional_string(thesis, "thesis") or ""
    clean_status = _normalize_status(status) if status is not None else InsightStatus.DRAFT.value
    clean_from = normalize_optional_date(valid_from, "valid_from")
    clean_to = normalize_optional_date(valid_to, "valid_to")
    _check_window(clean_from, clean_to)
    clean_tags = normalize_string_list(tags)
    clean_meta = _normalize_meta(meta)

    insight = Insight(
        title=clean_title,
        thesis=clean_thesis,
        status=clean_status,
        valid_from=clean_from,
        valid_to=clean_to,
        tags=clean_tags,
        meta=clean_meta,
    )
    with atomic():
        db.session.add(insight)
    logger.info("Created insight %s (%s)", insight.id, insight.status)
    log_event(
        INSIGHT_CREATED,
        {
            "insight_id": insight.id,
            "title": insight.title,
            "status": insight.status,
            "valid_from": isoformat_or_none(insight.valid_from),
            "valid_to": isoformat_or_none(insight.valid_to),
            "tags": list(insight.tags),
            "created_at": insight.created_at.isoformat(),
        },
        insight_id=insight.id,
    )
    return insight


def update_insight(insight_id: int, **fields) -> Insight:
    """Apply a partial update; only keys present in ``fields`` are touched."""
    unknown = set(fields) - set(_UPDATABLE_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown field: {sorted(unknown)[0]}", field=sorted(unknown)[0])

    clean: Dict[str, Any] = {}
    if "title" in fields:
        clean["title"] = normalize_required_string(fields["title"], "title", max_length=255)
    if "thesis" in fields:
        clean["thesis"] = normalize_optional_string(fields["thesis"], "thesis") or ""
    if "status" in fields:
        clean["status"] = _normalize_status(fields["status"])
    if "valid_from" in fields:
        clean["valid_from"] = normalize_optional_date(fields["valid_from"], "valid_from")
    if "valid_to" in fields:
        clean["valid_to"] = normalize_optional_date(fields["valid_to"], "valid_to")
    if "tags" in fields:
        clean["tags"] = normalize_string_list(fields["tags"])
    if "meta" in fields:
        clean["meta"] = _normalize_meta(fields["meta"])

    with insight_write_locks.hold(insight_id):
        with atomic():
            insight = lock_insight_for_write(insight_id)
            _check_window(
                clean.get("valid_from", insight.valid_from),
                clean.get("valid_to", insight.valid_to),
            )
            for key, value in clean.items():
                setattr(insight, key, value)
            insight.updated_at = utcnow()

    changed = {
        key: (value.isoformat() if isinstance(value, date) else value) for key, value in clean.items()
    }
    log_event(
        INSIGHT_UPDATED,
        {"insight_id": insight.id, "fields": changed, "updated_at": insight.updated_at.isoformat()},
        insight_id=insight.id,
    )
    return insight


def remove_insight(insight_id: int) -> Insight:
    """Soft delete: the row and its children stay for audit."""
    with insight_write_locks.hold(insight_id):
        with atomic():
            insight = (
                db.session.query(Insight).filter(Insight.id == insight_id).with_for_update().one_or_none()
            )
            if insight is None:
                raise NotFoundError(f"Insight {insight_id} not found.", field="insight_id")
            if insight.is_deleted:
                return insight
            now = utcnow()
            insight.status = InsightStatus.DELETED.value
            insight.deleted_at = now
            insight.updated_at = now
    logger.info("Soft-deleted insight %s", insight_id)
    log_event(
        INSIGHT_DELETED,
        {"insight_id": insight.id, "deleted_at": insight.deleted_at.isoformat()},
        insight_id=insight.id,
    )
    return insight


def list_insights(*, query=None, status=None, limit=None, offset=None) -> Dict[str, Any]:
    """Page of insights, newest change first.

    ``status`` may be any insight status or ``"all"``; when omitted deleted
    insights are hidden.
    """
    max_limit = current_app.config.get("INSIGHT_LIST_LIMIT_MAX", 500)
    clean_limit = normalize_limit(limit, default=50, maximum=max_limit)
    clean_offset = normalize_offset(offset)

    q = Insight.query
    status_text = normalize_optional_string(status, "status")
    if status_text is None:
        q = q.filter(Insight.status != InsightStatus.DELETED.value)
    elif status_text.lower() != "all":
        q = q.filter(Insight.status == normalize_enum(status_text, InsightStatus, "status").value)

    text = normalize_optional_string(query, "query")
    if text:
        like = f"%{text}%"
        q = q.filter(or_(Insight.title.ilike(like), Insight.thesis.ilike(like)))

    q = q.order_by(Insight.updated_at.desc(), Insight.id.desc())
    return paginate(q, limit=clean_limit, offset=clean_offset)
