"""Scope rules and their resolution against the instrument universe."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

from insightvalue.core.errors import NotFoundError, ValidationError
from insightvalue.core.events.event_service import log_event
from insightvalue.core.utils.dates import utcnow
from insightvalue.core.utils.transactions import atomic, insight_write_locks
from insightvalue.core.utils.validation import normalize_enum, normalize_integer, normalize_required_string
from insightvalue.domains.insights.constants import ScopeMode, ScopeType
from insightvalue.domains.insights.events import SCOPE_RULE_REMOVED, SCOPE_RULE_UPSERTED
from insightvalue.domains.insights.models.insight_models import Insight, InsightScopeRule
from insightvalue.domains.insights.services.insight_service import get_insight, lock_insight_for_write
from insightvalue.domains.market.services.universe_service import InstrumentUniverse, current_universe
from insightvalue.extensions import db

logger = logging.getLogger(__name__)


@dataclass
class ResolvedScope:
    """Symbols in scope for one insight, each with the rules that brought it in."""

    sources: Dict[str, List[str]] = field(default_factory=dict)
    rules_applied: int = 0

    @property
    def symbols(self) -> Set[str]:
        return set(self.sources)


def _normalize_scope_key(scope_type: ScopeType, value) -> str:
    key = normalize_required_string(value, "scope_key", max_length=255)
    if scope_type == ScopeType.SYMBOL:
        return key.upper()
    return key


def _get_rule(rule_id: int) -> InsightScopeRule:
    rule = db.session.get(InsightScopeRule, rule_id)
    if rule is None:
        raise NotFoundError(f"Scope rule {rule_id} not found.", field="rule_id")
    return rule


def upsert_scope_rule(
    insight_id: int,
    *,
    scope_type,
    scope_key,
    mode=ScopeMode.INCLUDE,
    enabled: bool = True,
    rule_id: Optional[int] = None,
) -> InsightScopeRule:
    """Create or update a rule.

    With ``rule_id`` the named rule is edited in place; otherwise the rule is
    found by its ``(scope_type, scope_key, mode)`` identity within the insight.
    """
    clean_type = normalize_enum(scope_type, ScopeType, "scope_type")
    clean_key = _normalize_scope_key(clean_type, scope_key)
    clean_mode = normalize_enum(mode, ScopeMode, "mode")
    if not isinstance(enabled, bool):
        raise ValidationError("enabled must be a boolean.", field="enabled")
    clean_rule_id = normalize_integer(rule_id, "rule_id") if rule_id is not None else None

    with insight_write_locks.hold(insight_id):
        with atomic():
            insight = lock_insight_for_write(insight_id)
            twin = InsightScopeRule.query.filter_by(
                insight_id=insight_id,
                scope_type=clean_type.value,
                scope_key=clean_key,
                mode=clean_mode.value,
            ).first()
            if clean_rule_id is not None:
                rule = _get_rule(clean_rule_id)
                if rule.insight_id != insight_id:
                    raise NotFoundError(f"Scope rule {clean_rule_id} not found.", field="rule_id")
                if twin is not None and twin.id != rule.id:
                    raise ValidationError(
                        "Another rule already has this scope type, key and mode.",
                        code="duplicate",
                        field="scope_key",
                    )
            else:
                rule = twin
            if rule is None:
                rule = InsightScopeRule(insight_id=insight_id)
                insight.scope_rules.append(rule)
            rule.scope_type = clean_type.value
            rule.scope_key = clean_key
            rule.mode = clean_mode.value
            rule.enabled = enabled
            rule.updated_at = utcnow()

    log_event(
        SCOPE_RULE_UPSERTED,
        {
            "rule_id": rule.id,
            "insight_id": insight_id,
            "scope_type": rule.scope_type,
            "scope_key": rule.scope_key,
            "mode": rule.mode,
            "enabled": rule.enabled,
        },
        insight_id=insight_id,
    )
    return rule


def remove_scope_rule(rule_id: int) -> None:
    insight_id = _get_rule(rule_id).insight_id
    with insight_write_locks.hold(insight_id):
        with atomic():
            insight = lock_insight_for_write(insight_id)
            db.session.delete(_get_rule(rule_id))
            db.session.expire(insight, ["scope_rules"])
    log_event(SCOPE_RULE_REMOVED, {"rule_id": rule_id, "insight_id": insight_id}, insight_id=insight_id)


def list_scope_rules(insight_id: int) -> List[InsightScopeRule]:
    get_insight(insight_id)
    return (
        InsightScopeRule.query.filter_by(insight_id=insight_id).order_by(InsightScopeRule.id.asc()).all()
    )


def resolve_rules(insight: Insight, universe: Optional[InstrumentUniverse] = None) -> ResolvedScope:
    """Include minus exclude over the insight's enabled rules, with per-symbol sources."""
    if insight.is_deleted:
        return ResolvedScope()
    universe = universe or current_universe()
    rules = (
        InsightScopeRule.query.filter_by(insight_id=insight.id, enabled=True)
        .order_by(InsightScopeRule.id.asc())
        .all()
    )

    included: Dict[str, List[str]] = {}
    excluded: Set[str] = set()
    for rule in rules:
        matched = universe.symbols_for(rule.scope_type, rule.scope_key)
        if rule.mode == ScopeMode.EXCLUDE.value:
            excluded.update(matched)
            continue
        for symbol in matched:
            sources = included.setdefault(symbol, [])
            if rule.source not in sources:
                sources.append(rule.source)

    # Exclusion wins regardless of rule order.
    sources = {symbol: srcs for symbol, srcs in included.items() if symbol not in excluded}
    return ResolvedScope(sources=dict(sorted(sources.items())), rules_applied=len(rules))


def resolve_scope(insight_id: int, universe: Optional[InstrumentUniverse] = None) -> Set[str]:
    """Symbols currently matched by the insight's rules; reads only."""
    return resolve_rules(get_insight(insight_id), universe).symbols
