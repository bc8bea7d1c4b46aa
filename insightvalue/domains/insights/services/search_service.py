"""Full-text lookup over insight title, thesis and tags.

The index is a denormalized table rebuilt from the insight store whenever an
insight event is published; queries never touch the insight table itself.
"""

from __future__ import annotations

import html
import logging
import re
from datetime import datetime
from typing import Any, Dict, List, Optional

from flask import current_app
from sqlalchemy import or_

from insightvalue.core.events.event_bus import event_bus
from insightvalue.core.events.event_models import EventRecord
from insightvalue.core.utils.dates import utcnow
from insightvalue.core.utils.transactions import atomic
from insightvalue.core.utils.validation import normalize_limit, normalize_offset, normalize_optional_string
from insightvalue.domains.insights.constants import InsightStatus
from insightvalue.domains.insights.events import SEARCH_RELEVANT_EVENTS
from insightvalue.domains.insights.models.insight_models import Insight, InsightSearchDocument
from insightvalue.extensions import db

logger = logging.getLogger(__name__)

SNIPPET_RADIUS = 60
FIELD_WEIGHTS = {"title": 3.0, "tags_text": 2.0, "thesis": 1.0}


def _tokens(query: str) -> List[str]:
    seen: List[str] = []
    for token in re.split(r"\s+", query.lower()):
        if token and token not in seen:
            seen.append(token)
    return seen


def _upsert_document(insight: Insight) -> None:
    doc = db.session.get(InsightSearchDocument, insight.id)
    if insight.is_deleted:
        if doc is not None:
            db.session.delete(doc)
        return
    if doc is None:
        doc = InsightSearchDocument(insight_id=insight.id)
        db.session.add(doc)
    doc.title = insight.title
    doc.thesis = insight.thesis or ""
    doc.tags_text = " ".join(insight.tags or [])
    doc.status = insight.status
    doc.indexed_at = utcnow()
    doc.insight_updated_at = insight.updated_at


def reindex_insight(insight_id: int) -> None:
    """Refresh (or drop, for deleted insights) one document."""
    with atomic():
        insight = db.session.get(Insight, insight_id)
        if insight is None:
            doc = db.session.get(InsightSearchDocument, insight_id)
            if doc is not None:
                db.session.delete(doc)
            return
        _upsert_document(insight)


def rebuild_search_index() -> int:
    with atomic():
        for doc in InsightSearchDocument.query.all():
            db.session.delete(doc)
        db.session.flush()
        insights = Insight.query.filter(Insight.status != InsightStatus.DELETED.value).all()
        for insight in insights:
            _upsert_document(insight)
    logger.info("Rebuilt search index with %s documents", len(insights))
    return len(insights)


def _highlight(text: str, tokens: List[str]) -> str:
    escaped = html.escape(text)
    alternatives = "|".join(re.escape(html.escape(token)) for token in sorted(tokens, key=len, reverse=True))
    pattern = re.compile(alternatives, re.IGNORECASE)
    return pattern.sub(lambda m: f"<mark>{m.group(0)}</mark>", escaped)


def _snippet(doc: InsightSearchDocument, tokens: List[str]) -> str:
    for text in (doc.thesis, doc.title, doc.tags_text):
        if not text:
            continue
        lowered = text.lower()
        hits = [lowered.find(token) for token in tokens if token in lowered]
        if not hits:
            continue
        first = min(hits)
        start = max(0, first - SNIPPET_RADIUS)
        end = min(len(text), first + SNIPPET_RADIUS)
        window = text[start:end]
        prefix = " … " if start > 0 else ""
        suffix = " … " if end < len(text) else ""
        return f"{prefix}{_highlight(window, tokens)}{suffix}".strip()
    return html.escape(doc.title)


def _score(doc: InsightSearchDocument, tokens: List[str]) -> float:
    score = 0.0
    for attr, weight in FIELD_WEIGHTS.items():
        text = (getattr(doc, attr) or "").lower()
        for token in tokens:
            score += weight * text.count(token)
    return score


def search(query, limit=None, offset=None) -> Dict[str, Any]:
    """Relevance-ranked page of hits; every token must appear in some field."""
    max_limit = current_app.config.get("INSIGHT_SEARCH_LIMIT_MAX", 200)
    clean_limit = normalize_limit(limit, default=20, maximum=max_limit)
    clean_offset = normalize_offset(offset)
    text: Optional[str] = normalize_optional_string(query, "q")
    page: Dict[str, Any] = {"items": [], "total": 0, "limit": clean_limit, "offset": clean_offset}
    if not text:
        return page

    tokens = _tokens(text)
    q = InsightSearchDocument.query.filter(InsightSearchDocument.status != InsightStatus.DELETED.value)
    for token in tokens:
        like = f"%{token}%"
        q = q.filter(
            or_(
                InsightSearchDocument.title.ilike(like),
                InsightSearchDocument.thesis.ilike(like),
                InsightSearchDocument.tags_text.ilike(like),
            )
        )
    docs = q.all()
    ranked = [(_score(doc, tokens), doc) for doc in docs]
    # Stable two-pass sort: score first, then most recently changed.
    ranked.sort(key=lambda pair: (pair[1].insight_updated_at or datetime.min, pair[1].insight_id), reverse=True)
    ranked.sort(key=lambda pair: pair[0], reverse=True)
    page["total"] = len(ranked)
    page["items"] = [
        {
            "insight_id": doc.insight_id,
            "title": doc.title,
            "status": doc.status,
            "score": score,
            "snippet": _snippet(doc, tokens),
        }
        for score, doc in ranked[clean_offset : clean_offset + clean_limit]
    ]
    return page


def _on_insight_event(event: EventRecord) -> None:
    if event.insight_id is not None:
        reindex_insight(event.insight_id)


def register_subscriptions() -> None:
    event_bus.subscribe(SEARCH_RELEVANT_EVENTS, _on_insight_event)
