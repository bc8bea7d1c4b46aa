"""Fact notes: free-text drafting aids with create/list/remove only."""

from __future__ import annotations

from typing import Any, Dict

from insightvalue.core.errors import NotFoundError
from insightvalue.core.events.event_service import log_event
from insightvalue.core.utils.pagination import paginate
from insightvalue.core.utils.transactions import atomic
from insightvalue.core.utils.validation import normalize_limit, normalize_offset, normalize_required_string
from insightvalue.domains.insights.events import FACT_CREATED, FACT_REMOVED
from insightvalue.domains.insights.models.insight_models import InsightFact
from insightvalue.extensions import db


def create_fact(content) -> InsightFact:
    fact = InsightFact(content=normalize_required_string(content, "content", max_length=10000))
    with atomic():
        db.session.add(fact)
    log_event(FACT_CREATED, {"fact_id": fact.id, "created_at": fact.created_at.isoformat()})
    return fact


def list_facts(limit=None, offset=None) -> Dict[str, Any]:
    query = InsightFact.query.order_by(InsightFact.created_at.desc(), InsightFact.id.desc())
    return paginate(query, limit=normalize_limit(limit, default=100, maximum=500), offset=normalize_offset(offset))


def remove_fact(fact_id: int) -> None:
    with atomic():
        fact = db.session.get(InsightFact, fact_id)
        if fact is None:
            raise NotFoundError(f"Fact {fact_id} not found.", field="fact_id")
        db.session.delete(fact)
    log_event(FACT_REMOVED, {"fact_id": fact_id})
