"""Insight API controllers."""

from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask_jwt_extended import jwt_required
from pydantic import ValidationError

from insightvalue.domains.insights import services
from insightvalue.domains.insights.mappers import (
    map_effect_channel,
    map_effect_point,
    map_fact,
    map_insight,
    map_materialized_target,
    map_scope_rule,
)
from insightvalue.domains.insights.schemas.insight_schemas import (
    ChannelValueQuery,
    EffectChannelUpsert,
    EffectPointsUpsert,
    FactCreate,
    FactListFilter,
    InsightCreate,
    InsightListFilter,
    InsightUpdate,
    ScopeRuleUpsert,
    SearchQuery,
    TargetExclusionCreate,
    TargetListFilter,
    TargetPreviewRequest,
)
from insightvalue.extensions import limiter

insight_api_bp = Blueprint("insight_api", __name__)


def _parse_query(schema_cls):
    data = {k: v for k, v in request.args.items()}
    try:
        return schema_cls.model_validate(data), None
    except ValidationError as exc:
        return None, exc


def _parse_body(schema_cls):
    payload = request.get_json(silent=True) or {}
    try:
        return schema_cls.model_validate(payload), None
    except ValidationError as exc:
        return None, exc


def _validation_error(exc: ValidationError):
    return (
        jsonify({"ok": False, "error": "validation_error", "details": exc.errors()}),
        400,
    )


def _insight_detail(insight_id: int) -> dict:
    insight = services.get_insight(insight_id)
    channels = services.list_effect_channels(insight_id)
    return {
        **map_insight(insight),
        "scope_rules": [map_scope_rule(r) for r in services.list_scope_rules(insight_id)],
        "effect_channels": [
            map_effect_channel(c, services.list_effect_points(c.id)) for c in channels
        ],
        "materialized_targets": [
            map_materialized_target(t) for t in services.list_materialized_targets(insight_id)
        ],
    }


@insight_api_bp.get("")
@jwt_required()
def list_insights():
    params, err = _parse_query(InsightListFilter)
    if err:
        return _validation_error(err)
    page = services.list_insights(
        query=params.query, status=params.status, limit=params.limit, offset=params.offset
    )
    return jsonify(
        {
            "ok": True,
            "items": [map_insight(i) for i in page["items"]],
            "total": page["total"],
            "limit": page["limit"],
            "offset": page["offset"],
        }
    )


@insight_api_bp.post("")
@jwt_required()
def create_insight():
    data, err = _parse_body(InsightCreate)
    if err:
        return _validation_error(err)
    insight = services.create_insight(**data.model_dump())
    return jsonify({"ok": True, "insight": map_insight(insight)}), 201


@insight_api_bp.get("/search")
@jwt_required()
@limiter.limit("240/minute")
def search_insights():
    params, err = _parse_query(SearchQuery)
    if err:
        return _validation_error(err)
    page = services.search(params.q, limit=params.limit, offset=params.offset)
    return jsonify({"ok": True, **page})


@insight_api_bp.get("/<int:insight_id>")
@jwt_required()
def get_insight(insight_id: int):
    return jsonify({"ok": True, "insight": _insight_detail(insight_id)})


@insight_api_bp.patch("/<int:insight_id>")
@jwt_required()
def update_insight(insight_id: int):
    data, err = _parse_body(InsightUpdate)
    if err:
        return _validation_error(err)
    insight = services.update_insight(insight_id, **data.model_dump(exclude_unset=True))
    return jsonify({"ok": True, "insight": map_insight(insight)})


@insight_api_bp.delete("/<int:insight_id>")
@jwt_required()
def delete_insight(insight_id: int):
    insight = services.remove_insight(insight_id)
    return jsonify({"ok": True, "insight": map_insight(insight)})


@insight_api_bp.get("/<int:insight_id>/scope")
@jwt_required()
def resolved_scope(insight_id: int):
    symbols = sorted(services.resolve_scope(insight_id))
    return jsonify({"ok": True, "insight_id": insight_id, "symbols": symbols, "total": len(symbols)})


@insight_api_bp.put("/<int:insight_id>/scope-rules")
@jwt_required()
def upsert_scope_rule(insight_id: int):
    data, err = _parse_body(ScopeRuleUpsert)
    if err:
        return _validation_error(err)
    rule = services.upsert_scope_rule(
        insight_id,
        scope_type=data.scope_type,
        scope_key=data.scope_key,
        mode=data.mode,
        enabled=data.enabled,
        rule_id=data.id,
    )
    return jsonify({"ok": True, "scope_rule": map_scope_rule(rule)})


@insight_api_bp.delete("/scope-rules/<int:rule_id>")
@jwt_required()
def remove_scope_rule(rule_id: int):
    services.remove_scope_rule(rule_id)
    return jsonify({"ok": True})


@insight_api_bp.put("/<int:insight_id>/effect-channels")
@jwt_required()
def upsert_effect_channel(insight_id: int):
    data, err = _parse_body(EffectChannelUpsert)
    if err:
        return _validation_error(err)
    channel = services.upsert_effect_channel(insight_id, **data.model_dump())
    return jsonify({"ok": True, "effect_channel": map_effect_channel(channel)})


@insight_api_bp.delete("/effect-channels/<int:channel_id>")
@jwt_required()
def remove_effect_channel(channel_id: int):
    services.remove_effect_channel(channel_id)
    return jsonify({"ok": True})


@insight_api_bp.put("/effect-channels/<int:channel_id>/points")
@jwt_required()
def upsert_effect_points(channel_id: int):
    data, err = _parse_body(EffectPointsUpsert)
    if err:
        return _validation_error(err)
    points = services.upsert_effect_points(channel_id, [p.model_dump() for p in data.points])
    return jsonify({"ok": True, "effect_points": [map_effect_point(p) for p in points]})


@insight_api_bp.delete("/effect-points/<int:point_id>")
@jwt_required()
def remove_effect_point(point_id: int):
    services.remove_effect_point(point_id)
    return jsonify({"ok": True})


@insight_api_bp.get("/effect-channels/<int:channel_id>/value")
@jwt_required()
def effect_channel_value(channel_id: int):
    params, err = _parse_query(ChannelValueQuery)
    if err:
        return _validation_error(err)
    value = services.interpolate(channel_id, params.as_of)
    return jsonify(
        {"ok": True, "channel_id": channel_id, "as_of": params.as_of.isoformat(), "value": value}
    )


@insight_api_bp.post("/<int:insight_id>/targets/preview")
@jwt_required()
@limiter.limit("120/minute")
def preview_targets(insight_id: int):
    data, err = _parse_body(TargetPreviewRequest)
    if err:
        return _validation_error(err)
    preview = services.preview_materialized_targets(insight_id, limit=data.limit, persist=data.persist)
    return jsonify({"ok": True, "preview": preview.to_dict()})


@insight_api_bp.get("/<int:insight_id>/targets")
@jwt_required()
def list_targets(insight_id: int):
    params, err = _parse_query(TargetListFilter)
    if err:
        return _validation_error(err)
    targets = services.list_materialized_targets(insight_id, include_excluded=params.include_excluded)
    return jsonify({"ok": True, "items": [map_materialized_target(t) for t in targets]})


@insight_api_bp.post("/<int:insight_id>/targets/exclusions")
@jwt_required()
def exclude_target(insight_id: int):
    data, err = _parse_body(TargetExclusionCreate)
    if err:
        return _validation_error(err)
    target = services.exclude_target(insight_id, data.symbol, data.reason)
    return jsonify({"ok": True, "target": map_materialized_target(target)})


@insight_api_bp.delete("/<int:insight_id>/targets/exclusions/<symbol>")
@jwt_required()
def clear_target_exclusion(insight_id: int, symbol: str):
    preview = services.clear_target_exclusion(insight_id, symbol)
    return jsonify({"ok": True, "preview": preview.to_dict()})


@insight_api_bp.get("/facts")
@jwt_required()
def list_facts():
    params, err = _parse_query(FactListFilter)
    if err:
        return _validation_error(err)
    page = services.list_facts(limit=params.limit, offset=params.offset)
    return jsonify(
        {
            "ok": True,
            "items": [map_fact(f) for f in page["items"]],
            "total": page["total"],
            "limit": page["limit"],
            "offset": page["offset"],
        }
    )


@insight_api_bp.post("/facts")
@jwt_required()
def create_fact():
    data, err = _parse_body(FactCreate)
    if err:
        return _validation_error(err)
    fact = services.create_fact(data.content)
    return jsonify({"ok": True, "fact": map_fact(fact)}), 201


@insight_api_bp.delete("/facts/<int:fact_id>")
@jwt_required()
def remove_fact(fact_id: int):
    services.remove_fact(fact_id)
    return jsonify({"ok": True})
