"""Valuation adjustment evaluator.

Collects every enabled effect channel of the active, in-window insights whose
materialized targets (after exclusion overrides) contain the symbol, samples
each channel at the as-of date and composes the samples onto the base
valuation stage by stage. Evaluation only reads.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from flask import current_app
from sqlalchemy import and_, or_

from insightvalue.core.utils.dates import today
from insightvalue.core.utils.validation import normalize_method_key, normalize_optional_date, normalize_symbol
from insightvalue.domains.insights.constants import (
    STAGE_ORDER_INDEX,
    WILDCARD_METHOD_KEY,
    EffectOperator,
    EffectStage,
    InsightStatus,
)
from insightvalue.domains.insights.models.insight_models import (
    Insight,
    InsightEffectChannel,
    InsightEffectPoint,
    InsightMaterializedTarget,
)
from insightvalue.domains.insights.services.effect_service import interpolate_points
from insightvalue.domains.insights.telemetry import valuation_telemetry
from insightvalue.domains.market.services.base_valuation_service import (
    BaseValuationProvider,
    Degradation,
    current_base_valuation_provider,
)
from insightvalue.extensions import db

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EffectContribution:
    """One channel's sampled value, ready to be composed."""

    insight_id: int
    insight_title: str
    channel_id: int
    metric_key: str
    stage: str
    operator: str
    priority: int
    value: float
    scopes: Tuple[str, ...] = ()

    @property
    def sort_key(self) -> Tuple[int, int, int]:
        return (STAGE_ORDER_INDEX[EffectStage(self.stage)], self.priority, self.channel_id)


@dataclass(frozen=True)
class AppliedEffect:
    insight_id: int
    insight_title: str
    channel_id: int
    metric_key: str
    stage: str
    operator: str
    value: float
    priority: int
    before_value: float
    after_value: float
    scopes: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "insight_id": self.insight_id,
            "insight_title": self.insight_title,
            "channel_id": self.channel_id,
            "metric_key": self.metric_key,
            "stage": self.stage,
            "operator": self.operator,
            "value": self.value,
            "priority": self.priority,
            "before_value": self.before_value,
            "after_value": self.after_value,
            "scopes": list(self.scopes),
        }


@dataclass
class ValuationAdjustmentResult:
    symbol: str
    as_of_date: date
    method_key: Optional[str]
    base_value: Optional[float]
    adjusted_value: Optional[float]
    confidence: Optional[float]
    degradation_reasons: List[str] = field(default_factory=list)
    applied_effects: List[AppliedEffect] = field(default_factory=list)
    not_applicable: bool = False
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "as_of_date": self.as_of_date.isoformat(),
            "method_key": self.method_key,
            "base_value": self.base_value,
            "adjusted_value": self.adjusted_value,
            "confidence": self.confidence,
            "degradation_reasons": list(self.degradation_reasons),
            "applied_effects": [effect.to_dict() for effect in self.applied_effects],
            "not_applicable": self.not_applicable,
            "reason": self.reason,
        }


def apply_operator(operator: str, current: float, value: float) -> float:
    op = EffectOperator(operator)
    if op == EffectOperator.SET:
        return value
    if op == EffectOperator.ADD:
        return current + value
    if op == EffectOperator.MUL:
        return current * value
    if op == EffectOperator.MIN:
        return min(current, value)
    return max(current, value)


def compose_effects(
    base_value: float, contributions: Iterable[EffectContribution]
) -> Tuple[float, List[AppliedEffect]]:
    """Fold contributions over the base value in (stage, priority, channel id) order."""
    current = base_value
    applied: List[AppliedEffect] = []
    for item in sorted(contributions, key=lambda c: c.sort_key):
        after = apply_operator(item.operator, current, item.value)
        applied.append(
            AppliedEffect(
                insight_id=item.insight_id,
                insight_title=item.insight_title,
                channel_id=item.channel_id,
                metric_key=item.metric_key,
                stage=item.stage,
                operator=item.operator,
                value=item.value,
                priority=item.priority,
                before_value=current,
                after_value=after,
                scopes=item.scopes,
            )
        )
        current = after
    return current, applied


def confidence_for(degradations: Sequence[str], penalties: Dict[str, float], default_penalty: float) -> float:
    """Product of ``1 - penalty`` over every degradation, clamped to [0, 1]."""
    confidence = 1.0
    for kind in degradations:
        penalty = penalties.get(kind, default_penalty)
        confidence *= 1.0 - min(max(penalty, 0.0), 1.0)
    return min(max(confidence, 0.0), 1.0)


def _candidate_channels(symbol: str, method_key: str, as_of: date):
    return (
        db.session.query(InsightEffectChannel, Insight, InsightMaterializedTarget)
        .join(Insight, Insight.id == InsightEffectChannel.insight_id)
        .join(
            InsightMaterializedTarget,
            and_(
                InsightMaterializedTarget.insight_id == Insight.id,
                InsightMaterializedTarget.symbol == symbol,
            ),
        )
        .filter(
            Insight.status == InsightStatus.ACTIVE.value,
            Insight.deleted_at.is_(None),
            or_(Insight.valid_from.is_(None), Insight.valid_from <= as_of),
            or_(Insight.valid_to.is_(None), Insight.valid_to >= as_of),
            InsightMaterializedTarget.excluded.is_(False),
            InsightEffectChannel.enabled.is_(True),
            InsightEffectChannel.method_key.in_([method_key, WILDCARD_METHOD_KEY]),
        )
        .all()
    )


def _samples_by_channel(channel_ids: List[int]) -> Dict[int, List[Tuple[date, float]]]:
    out: Dict[int, List[Tuple[date, float]]] = {channel_id: [] for channel_id in channel_ids}
    if not channel_ids:
        return out
    rows = (
        db.session.query(
            InsightEffectPoint.channel_id, InsightEffectPoint.effect_date, InsightEffectPoint.effect_value
        )
        .filter(InsightEffectPoint.channel_id.in_(channel_ids))
        .all()
    )
    for channel_id, effect_date, effect_value in rows:
        out[channel_id].append((effect_date, effect_value))
    return out


def _collect_contributions(
    symbol: str, method_key: str, as_of: date
) -> Tuple[List[EffectContribution], List[Degradation]]:
    rows = _candidate_channels(symbol, method_key, as_of)
    samples = _samples_by_channel([channel.id for channel, _, _ in rows])
    contributions: List[EffectContribution] = []
    skipped: List[Degradation] = []
    for channel, insight, target in rows:
        points = samples.get(channel.id, [])
        value = interpolate_points(points, as_of)
        if value is None:
            # A channel without points has nothing to say; one with points
            # that do not reach the date is worth flagging.
            if points:
                skipped.append(
                    Degradation(
                        "channel_out_of_range",
                        f"Effect channel {channel.id} of insight {insight.id} has no value on {as_of.isoformat()}",
                    )
                )
            continue
        contributions.append(
            EffectContribution(
                insight_id=insight.id,
                insight_title=insight.title,
                channel_id=channel.id,
                metric_key=channel.metric_key,
                stage=channel.stage,
                operator=channel.operator,
                priority=channel.priority,
                value=value,
                scopes=tuple(target.sources or ()),
            )
        )
    return contributions, skipped


def compute_valuation_adjustment(
    symbol,
    as_of_date=None,
    method_key=None,
    provider: Optional[BaseValuationProvider] = None,
) -> ValuationAdjustmentResult:
    """Adjusted valuation of ``symbol`` on ``as_of_date`` with its audit trail."""
    started = time.perf_counter()
    clean_symbol = normalize_symbol(symbol)
    as_of = normalize_optional_date(as_of_date, "as_of_date") or today()
    requested_method = normalize_method_key(method_key) if method_key is not None else None
    provider = provider or current_base_valuation_provider()
    penalties = current_app.config.get("INSIGHT_CONFIDENCE_PENALTIES", {})
    default_penalty = current_app.config.get("INSIGHT_DEFAULT_CONFIDENCE_PENALTY", 0.10)

    base = provider.base_valuation(clean_symbol, as_of, requested_method)
    if not base.available:
        result = ValuationAdjustmentResult(
            symbol=clean_symbol,
            as_of_date=as_of,
            method_key=requested_method,
            base_value=None,
            adjusted_value=None,
            confidence=None,
            degradation_reasons=[d.message for d in base.degradations],
            not_applicable=True,
            reason=base.reason or f"No valuation method available for {clean_symbol}.",
        )
        _record(result, [d.kind for d in base.degradations], 0, started)
        return result

    contributions, skipped = _collect_contributions(clean_symbol, base.method_key, as_of)
    adjusted, applied = compose_effects(base.value, contributions)
    degradations = list(base.degradations) + skipped
    kinds = [d.kind for d in degradations]
    result = ValuationAdjustmentResult(
        symbol=clean_symbol,
        as_of_date=as_of,
        method_key=base.method_key,
        base_value=base.value,
        adjusted_value=adjusted,
        confidence=confidence_for(kinds, penalties, default_penalty),
        degradation_reasons=[d.message for d in degradations],
        applied_effects=applied,
    )
    _record(result, kinds, len(skipped), started)
    logger.debug(
        "Adjusted %s on %s under %s: %s -> %s (%s effects)",
        clean_symbol,
        as_of.isoformat(),
        base.method_key,
        base.value,
        adjusted,
        len(applied),
    )
    return result


def compute_valuation_adjustments(
    symbols: Iterable, as_of_date=None, method_key=None, provider: Optional[BaseValuationProvider] = None
) -> List[ValuationAdjustmentResult]:
    """Evaluate several symbols independently, preserving input order."""
    return [
        compute_valuation_adjustment(symbol, as_of_date, method_key, provider=provider) for symbol in symbols
    ]


def _record(result: ValuationAdjustmentResult, kinds: List[str], skipped: int, started: float) -> None:
    valuation_telemetry.record_evaluation(
        result.symbol,
        result.method_key,
        not_applicable=result.not_applicable,
        applied=len(result.applied_effects),
        skipped=skipped,
        degradations=kinds,
        latency_ms=(time.perf_counter() - started) * 1000.0,
    )
