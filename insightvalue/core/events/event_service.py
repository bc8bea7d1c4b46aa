"""Event persistence and dispatch."""

from __future__ import annotations

from typing import Optional

from flask import has_request_context
from flask_jwt_extended import get_jwt_identity, verify_jwt_in_request

from insightvalue.core.events.event_bus import event_bus
from insightvalue.core.events.event_models import EventRecord
from insightvalue.core.utils.transactions import atomic
from insightvalue.extensions import db


def _current_actor() -> Optional[str]:
    if not has_request_context():
        return None
    verify_jwt_in_request(optional=True)
    identity = get_jwt_identity()
    return str(identity) if identity is not None else None


def log_event(event_type: str, payload: dict, insight_id: Optional[int] = None) -> EventRecord:
    """Persist an event and publish to subscribers.

    Called after the mutation it describes has been committed, so subscribers
    (the search index) always observe the new state.
    """
    record = EventRecord(
        event_type=event_type,
        payload=payload,
        insight_id=insight_id,
        actor=_current_actor(),
    )
    with atomic():
        db.session.add(record)
    event_bus.publish(record)
    return record
