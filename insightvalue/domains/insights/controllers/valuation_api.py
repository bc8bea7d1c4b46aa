"""Valuation adjustment API controllers."""

from __future__ import annotations

from dataclasses import asdict

from flask import Blueprint, jsonify, request
from flask_jwt_extended import jwt_required
from pydantic import ValidationError

from insightvalue.domains.insights import services
from insightvalue.domains.insights.schemas.valuation_schemas import AdjustmentBatchRequest, AdjustmentQuery
from insightvalue.domains.insights.telemetry import valuation_telemetry
from insightvalue.extensions import limiter

valuation_api_bp = Blueprint("valuation_api", __name__)


def _validation_error(exc: ValidationError):
    return (
        jsonify({"ok": False, "error": "validation_error", "details": exc.errors()}),
        400,
    )


@valuation_api_bp.get("/adjustment")
@jwt_required()
@limiter.limit("600/minute")
def get_adjustment():
    try:
        params = AdjustmentQuery.model_validate({k: v for k, v in request.args.items()})
    except ValidationError as exc:
        return _validation_error(exc)
    result = services.compute_valuation_adjustment(params.symbol, params.as_of, params.method_key)
    return jsonify({"ok": True, "result": result.to_dict()})


@valuation_api_bp.post("/adjustments")
@jwt_required()
@limiter.limit("120/minute")
def batch_adjustments():
    try:
        data = AdjustmentBatchRequest.model_validate(request.get_json(silent=True) or {})
    except ValidationError as exc:
        return _validation_error(exc)
    results = services.compute_valuation_adjustments(data.symbols, data.as_of, data.method_key)
    return jsonify({"ok": True, "results": [r.to_dict() for r in results]})


@valuation_api_bp.get("/telemetry")
@jwt_required()
def telemetry():
    return jsonify({"ok": True, "telemetry": asdict(valuation_telemetry.snapshot())})
