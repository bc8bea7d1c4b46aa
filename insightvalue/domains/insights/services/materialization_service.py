"""Materializer: persisted per-symbol scope membership with exclusion overrides."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from flask import current_app

from insightvalue.core.errors import NotFoundError, ValidationError
from insightvalue.core.events.event_service import log_event
from insightvalue.core.utils.dates import isoformat_or_none, utcnow
from insightvalue.core.utils.transactions import atomic, insight_write_locks
from insightvalue.core.utils.validation import normalize_limit, normalize_optional_string, normalize_symbol
from insightvalue.domains.insights.constants import EDITABLE_STATUSES
from insightvalue.domains.insights.events import TARGET_EXCLUDED, TARGET_UNEXCLUDED, TARGETS_MATERIALIZED
from insightvalue.domains.insights.models.insight_models import Insight, InsightMaterializedTarget
from insightvalue.domains.insights.services.insight_service import (
    get_insight,
    get_live_insight,
    lock_insight_for_write,
)
from insightvalue.domains.insights.services.scope_service import resolve_rules
from insightvalue.domains.market.services.universe_service import InstrumentUniverse
from insightvalue.extensions import db

logger = logging.getLogger(__name__)


@dataclass
class MaterializationPreview:
    insight_id: int
    total: int
    symbols: List[str]
    truncated: bool
    rules_applied: int
    excluded: List[str] = field(default_factory=list)
    persisted: bool = False
    updated_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "insight_id": self.insight_id,
            "total": self.total,
            "symbols": list(self.symbols),
            "truncated": self.truncated,
            "rules_applied": self.rules_applied,
            "excluded": list(self.excluded),
            "persisted": self.persisted,
            "updated_at": isoformat_or_none(self.updated_at),
        }


def _preview_limit(limit) -> int:
    return normalize_limit(
        limit,
        default=current_app.config.get("INSIGHT_PREVIEW_LIMIT", 200),
        maximum=current_app.config.get("INSIGHT_PREVIEW_LIMIT_MAX", 2000),
    )


def _existing_rows(insight_id: int) -> Dict[str, InsightMaterializedTarget]:
    rows = InsightMaterializedTarget.query.filter_by(insight_id=insight_id).all()
    return {row.symbol: row for row in rows}


def _materialize(
    insight: Insight,
    limit: int,
    persist: bool,
    universe: Optional[InstrumentUniverse] = None,
) -> MaterializationPreview:
    """Resolve, apply overrides and optionally write rows inside the caller's transaction."""
    resolved = resolve_rules(insight, universe)
    existing = _existing_rows(insight.id)
    overridden = {symbol for symbol, row in existing.items() if row.excluded}
    effective = [symbol for symbol in resolved.sources if symbol not in overridden]

    updated_at = None
    if persist:
        now = utcnow()
        for symbol, sources in resolved.sources.items():
            row = existing.get(symbol)
            if row is None:
                row = InsightMaterializedTarget(insight_id=insight.id, symbol=symbol)
                insight.materialized_targets.append(row)
            row.sources = list(sources)
            row.materialized_at = now
        for symbol, row in existing.items():
            # Out of scope rows go unless they carry an exclusion override.
            if symbol not in resolved.sources and not row.excluded:
                db.session.delete(row)
        db.session.expire(insight, ["materialized_targets"])
        updated_at = now
    elif existing:
        updated_at = max(row.materialized_at for row in existing.values())

    return MaterializationPreview(
        insight_id=insight.id,
        total=len(effective),
        symbols=effective[:limit],
        truncated=len(effective) > limit,
        rules_applied=resolved.rules_applied,
        excluded=sorted(overridden),
        persisted=persist,
        updated_at=updated_at,
    )


def _log_materialized(preview: MaterializationPreview) -> None:
    logger.info(
        "Materialized insight %s: %s targets from %s rules (%s excluded)",
        preview.insight_id,
        preview.total,
        preview.rules_applied,
        len(preview.excluded),
    )
    log_event(
        TARGETS_MATERIALIZED,
        {
            "insight_id": preview.insight_id,
            "total": preview.total,
            "rules_applied": preview.rules_applied,
            "excluded": len(preview.excluded),
            "materialized_at": isoformat_or_none(preview.updated_at),
        },
        insight_id=preview.insight_id,
    )


def preview_materialized_targets(
    insight_id: int,
    limit=None,
    persist: bool = True,
    universe: Optional[InstrumentUniverse] = None,
) -> MaterializationPreview:
    """Resolve the insight's scope; with ``persist`` write the full set atomically.

    ``limit`` only truncates the returned symbol list; ``total`` and the
    persisted rows always cover the whole resolved set.
    """
    clean_limit = _preview_limit(limit)
    if not persist:
        return _materialize(get_live_insight(insight_id), clean_limit, False, universe)

    with insight_write_locks.hold(insight_id):
        with atomic():
            insight = lock_insight_for_write(insight_id)
            preview = _materialize(insight, clean_limit, True, universe)
    _log_materialized(preview)
    return preview


def exclude_target(insight_id: int, symbol, reason=None) -> InsightMaterializedTarget:
    """Mark a symbol as excluded for this insight, creating the row if needed."""
    clean_symbol = normalize_symbol(symbol)
    clean_reason = normalize_optional_string(reason, "reason")

    with insight_write_locks.hold(insight_id):
        with atomic():
            insight = lock_insight_for_write(insight_id)
            row = InsightMaterializedTarget.query.filter_by(
                insight_id=insight_id, symbol=clean_symbol
            ).first()
            if row is None:
                row = InsightMaterializedTarget(insight_id=insight_id, symbol=clean_symbol, sources=[])
                insight.materialized_targets.append(row)
            changed = not row.excluded or (clean_reason is not None and clean_reason != row.exclusion_reason)
            if not row.excluded:
                row.excluded = True
                row.excluded_at = utcnow()
            if clean_reason is not None:
                row.exclusion_reason = clean_reason

    if changed:
        logger.info("Excluded %s from insight %s", clean_symbol, insight_id)
        log_event(
            TARGET_EXCLUDED,
            {"insight_id": insight_id, "symbol": clean_symbol, "reason": row.exclusion_reason},
            insight_id=insight_id,
        )
    return row


def clear_target_exclusion(
    insight_id: int, symbol, universe: Optional[InstrumentUniverse] = None
) -> MaterializationPreview:
    """Drop an exclusion override and re-materialize in the same transaction."""
    clean_symbol = normalize_symbol(symbol)

    with insight_write_locks.hold(insight_id):
        with atomic():
            insight = lock_insight_for_write(insight_id)
            row = InsightMaterializedTarget.query.filter_by(
                insight_id=insight_id, symbol=clean_symbol, excluded=True
            ).first()
            if row is None:
                raise NotFoundError(
                    f"{clean_symbol} is not excluded from insight {insight_id}.", field="symbol"
                )
            row.excluded = False
            row.exclusion_reason = None
            row.excluded_at = None
            preview = _materialize(insight, _preview_limit(None), True, universe)

    logger.info("Cleared exclusion of %s from insight %s", clean_symbol, insight_id)
    log_event(TARGET_UNEXCLUDED, {"insight_id": insight_id, "symbol": clean_symbol}, insight_id=insight_id)
    _log_materialized(preview)
    return preview


def refresh_all_materializations(universe: Optional[InstrumentUniverse] = None) -> Dict[str, int]:
    """Re-materialize every draft, active and archived insight."""
    statuses = [status.value for status in EDITABLE_STATUSES]
    ids = [row[0] for row in db.session.query(Insight.id).filter(Insight.status.in_(statuses)).all()]
    refreshed = targets = 0
    skipped: List[int] = []
    for insight_id in sorted(ids):
        try:
            preview = preview_materialized_targets(insight_id, persist=True, universe=universe)
        except ValidationError as exc:
            # Deleted after the id snapshot was taken.
            if exc.code != "insight_deleted":
                raise
            skipped.append(insight_id)
            continue
        refreshed += 1
        targets += preview.total
    if skipped:
        logger.info("Skipped %s insights deleted during refresh: %s", len(skipped), skipped)
    logger.info("Refreshed materialization for %s insights (%s targets)", refreshed, targets)
    return {"insights": refreshed, "targets": targets, "skipped": len(skipped)}


def list_materialized_targets(insight_id: int, include_excluded: bool = True) -> List[InsightMaterializedTarget]:
    get_insight(insight_id)
    query = InsightMaterializedTarget.query.filter_by(insight_id=insight_id)
    if not include_excluded:
        query = query.filter(InsightMaterializedTarget.excluded.is_(False))
    return query.order_by(InsightMaterializedTarget.symbol.asc()).all()

