"""DTO mappers for insights."""

from __future__ import annotations

from typing import Iterable

from insightvalue.core.utils.dates import isoformat_or_none
from insightvalue.domains.insights.models.insight_models import (
    Insight,
    InsightEffectChannel,
    InsightEffectPoint,
    InsightFact,
    InsightMaterializedTarget,
    InsightScopeRule,
)


def map_insight(insight: Insight) -> dict:
    return {
        "id": insight.id,
        "title": insight.title,
        "thesis": insight.thesis,
        "status": insight.status,
        "valid_from": isoformat_or_none(insight.valid_from),
        "valid_to": isoformat_or_none(insight.valid_to),
        "tags": list(insight.tags or []),
        "meta": dict(insight.meta or {}),
        "created_at": isoformat_or_none(insight.created_at),
        "updated_at": isoformat_or_none(insight.updated_at),
        "deleted_at": isoformat_or_none(insight.deleted_at),
    }


def map_scope_rule(rule: InsightScopeRule) -> dict:
    return {
        "id": rule.id,
        "insight_id": rule.insight_id,
        "scope_type": rule.scope_type,
        "scope_key": rule.scope_key,
        "mode": rule.mode,
        "enabled": rule.enabled,
        "created_at": isoformat_or_none(rule.created_at),
        "updated_at": isoformat_or_none(rule.updated_at),
    }


def map_effect_point(point: InsightEffectPoint) -> dict:
    return {
        "id": point.id,
        "channel_id": point.channel_id,
        "effect_date": point.effect_date.isoformat(),
        "effect_value": point.effect_value,
    }


def map_effect_channel(channel: InsightEffectChannel, points: Iterable[InsightEffectPoint] | None = None) -> dict:
    data = {
        "id": channel.id,
        "insight_id": channel.insight_id,
        "method_key": channel.method_key,
        "metric_key": channel.metric_key,
        "stage": channel.stage,
        "operator": channel.operator,
        "priority": channel.priority,
        "enabled": channel.enabled,
        "meta": dict(channel.meta or {}),
        "created_at": isoformat_or_none(channel.created_at),
        "updated_at": isoformat_or_none(channel.updated_at),
    }
    if points is not None:
        data["points"] = [map_effect_point(p) for p in points]
    return data


def map_materialized_target(target: InsightMaterializedTarget) -> dict:
    return {
        "insight_id": target.insight_id,
        "symbol": target.symbol,
        "sources": list(target.sources or []),
        "materialized_at": isoformat_or_none(target.materialized_at),
        "excluded": bool(target.excluded),
        "exclusion_reason": target.exclusion_reason,
        "excluded_at": isoformat_or_none(target.excluded_at),
    }


def map_fact(fact: InsightFact) -> dict:
    return {
        "id": fact.id,
        "content": fact.content,
        "created_at": isoformat_or_none(fact.created_at),
        "updated_at": isoformat_or_none(fact.updated_at),
    }
