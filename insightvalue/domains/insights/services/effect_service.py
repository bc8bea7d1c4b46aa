"""Effect channels, their dated points, and linear interpolation between points."""

from __future__ import annotations

import logging
from datetime import date
from typing import Iterable, List, Optional, Sequence, Tuple

from insightvalue.core.errors import NotFoundError, ValidationError
from insightvalue.core.events.event_service import log_event
from insightvalue.core.utils.dates import utcnow
from insightvalue.core.utils.transactions import atomic, insight_write_locks
from insightvalue.core.utils.validation import (
    normalize_date,
    normalize_enum,
    normalize_finite_number,
    normalize_integer,
    normalize_method_key,
    normalize_required_string,
)
from insightvalue.domains.insights.constants import EffectOperator, EffectStage
from insightvalue.domains.insights.events import (
    EFFECT_CHANNEL_REMOVED,
    EFFECT_CHANNEL_UPSERTED,
    EFFECT_POINT_REMOVED,
    EFFECT_POINT_UPSERTED,
)
from insightvalue.domains.insights.models.insight_models import InsightEffectChannel, InsightEffectPoint
from insightvalue.domains.insights.services.insight_service import get_insight, lock_insight_for_write
from insightvalue.extensions import db

logger = logging.getLogger(__name__)

PointSample = Tuple[date, float]


def interpolate_points(points: Iterable[PointSample], as_of: date) -> Optional[float]:
    """Value of a piecewise-linear timeline at ``as_of``.

    Returns ``None`` outside ``[first, last]``; never extrapolates. The
    interpolation parameter is the whole-day distance between breakpoints.
    """
    ordered = sorted(points, key=lambda point: point[0])
    if not ordered:
        return None
    if as_of < ordered[0][0] or as_of > ordered[-1][0]:
        return None
    for left, right in zip(ordered, ordered[1:]):
        if left[0] == as_of:
            return left[1]
        if left[0] < as_of < right[0]:
            span = (right[0] - left[0]).days
            offset = (as_of - left[0]).days
            return left[1] + (right[1] - left[1]) * offset / span
    # Only the last breakpoint (or a lone point) is left.
    return ordered[-1][1] if ordered[-1][0] == as_of else None


def channel_samples(channel_id: int) -> List[PointSample]:
    rows = (
        db.session.query(InsightEffectPoint.effect_date, InsightEffectPoint.effect_value)
        .filter(InsightEffectPoint.channel_id == channel_id)
        .order_by(InsightEffectPoint.effect_date.asc())
        .all()
    )
    return [(row[0], row[1]) for row in rows]


def get_effect_channel(channel_id: int) -> InsightEffectChannel:
    channel = db.session.get(InsightEffectChannel, channel_id)
    if channel is None:
        raise NotFoundError(f"Effect channel {channel_id} not found.", field="channel_id")
    return channel


def _get_point(point_id: int) -> InsightEffectPoint:
    point = db.session.get(InsightEffectPoint, point_id)
    if point is None:
        raise NotFoundError(f"Effect point {point_id} not found.", field="point_id")
    return point


def upsert_effect_channel(
    insight_id: int,
    *,
    method_key,
    metric_key,
    stage,
    operator,
    priority=0,
    enabled: bool = True,
    meta=None,
) -> InsightEffectChannel:
    """Create or update by ``(method_key, metric_key, stage)`` within the insight."""
    clean_method = normalize_method_key(method_key, allow_wildcard=True)
    clean_metric = normalize_required_string(metric_key, "metric_key", max_length=128)
    clean_stage = normalize_enum(stage, EffectStage, "stage")
    clean_operator = normalize_enum(operator, EffectOperator, "operator")
    clean_priority = normalize_integer(priority if priority is not None else 0, "priority")
    if not isinstance(enabled, bool):
        raise ValidationError("enabled must be a boolean.", field="enabled")
    if meta is not None and not isinstance(meta, dict):
        raise ValidationError("meta must be an object.", field="meta")

    with insight_write_locks.hold(insight_id):
        with atomic():
            insight = lock_insight_for_write(insight_id)
            channel = InsightEffectChannel.query.filter_by(
                insight_id=insight_id,
                method_key=clean_method,
                metric_key=clean_metric,
                stage=clean_stage.value,
            ).first()
            if channel is None:
                channel = InsightEffectChannel(
                    insight_id=insight.id,
                    method_key=clean_method,
                    metric_key=clean_metric,
                    stage=clean_stage.value,
                )
                insight.effect_channels.append(channel)
            channel.operator = clean_operator.value
            channel.priority = clean_priority
            channel.enabled = enabled
            if meta is not None:
                channel.meta = dict(meta)
            elif channel.meta is None:
                channel.meta = {}
            channel.updated_at = utcnow()

    log_event(
        EFFECT_CHANNEL_UPSERTED,
        {
            "channel_id": channel.id,
            "insight_id": insight_id,
            "method_key": channel.method_key,
            "metric_key": channel.metric_key,
            "stage": channel.stage,
            "operator": channel.operator,
            "priority": channel.priority,
            "enabled": channel.enabled,
        },
        insight_id=insight_id,
    )
    return channel


def remove_effect_channel(channel_id: int) -> None:
    """Delete a channel together with all of its points."""
    insight_id = get_effect_channel(channel_id).insight_id
    with insight_write_locks.hold(insight_id):
        with atomic():
            insight = lock_insight_for_write(insight_id)
            channel = get_effect_channel(channel_id)
            # Reload points so the delete-orphan cascade sees every stored row.
            db.session.expire(channel, ["points"])
            db.session.delete(channel)
            db.session.expire(insight, ["effect_channels"])
    logger.info("Removed effect channel %s of insight %s", channel_id, insight_id)
    log_event(
        EFFECT_CHANNEL_REMOVED, {"channel_id": channel_id, "insight_id": insight_id}, insight_id=insight_id
    )


def _write_point(channel: InsightEffectChannel, effect_date: date, effect_value: float) -> InsightEffectPoint:
    point = InsightEffectPoint.query.filter_by(channel_id=channel.id, effect_date=effect_date).first()
    if point is None:
        point = InsightEffectPoint(channel_id=channel.id, effect_date=effect_date)
        channel.points.append(point)
    point.effect_value = effect_value
    point.updated_at = utcnow()
    return point


def upsert_effect_point(channel_id: int, *, effect_date, effect_value) -> InsightEffectPoint:
    return upsert_effect_points(channel_id, [{"effect_date": effect_date, "effect_value": effect_value}])[0]


def upsert_effect_points(channel_id: int, points: Sequence[dict]) -> List[InsightEffectPoint]:
    """Upsert several points by date in one transaction.

    Every point is validated before the first write; a failure while writing
    rolls back the whole batch.
    """
    cleaned = [
        (
            normalize_date(item.get("effect_date"), "effect_date"),
            normalize_finite_number(item.get("effect_value"), "effect_value"),
        )
        for item in points
    ]
    insight_id = get_effect_channel(channel_id).insight_id

    with insight_write_locks.hold(insight_id):
        with atomic():
            lock_insight_for_write(insight_id)
            channel = get_effect_channel(channel_id)
            written = [_write_point(channel, effect_date, value) for effect_date, value in cleaned]

    for point in written:
        log_event(
            EFFECT_POINT_UPSERTED,
            {
                "point_id": point.id,
                "channel_id": channel_id,
                "insight_id": insight_id,
                "effect_date": point.effect_date.isoformat(),
                "effect_value": point.effect_value,
            },
            insight_id=insight_id,
        )
    return written


def remove_effect_point(point_id: int) -> None:
    point = _get_point(point_id)
    channel_id = point.channel_id
    insight_id = get_effect_channel(channel_id).insight_id
    with insight_write_locks.hold(insight_id):
        with atomic():
            lock_insight_for_write(insight_id)
            db.session.delete(_get_point(point_id))
            db.session.expire(get_effect_channel(channel_id), ["points"])
    log_event(
        EFFECT_POINT_REMOVED,
        {"point_id": point_id, "channel_id": channel_id, "insight_id": insight_id},
        insight_id=insight_id,
    )


def list_effect_channels(insight_id: int) -> List[InsightEffectChannel]:
    get_insight(insight_id)
    return (
        InsightEffectChannel.query.filter_by(insight_id=insight_id)
        .order_by(InsightEffectChannel.id.asc())
        .all()
    )


def list_effect_points(channel_id: int) -> List[InsightEffectPoint]:
    get_effect_channel(channel_id)
    return (
        InsightEffectPoint.query.filter_by(channel_id=channel_id)
        .order_by(InsightEffectPoint.effect_date.asc())
        .all()
    )


def interpolate(channel_id: int, as_of) -> Optional[float]:
    """Interpolated value of a stored channel at ``as_of``, or ``None``."""
    get_effect_channel(channel_id)
    return interpolate_points(channel_samples(channel_id), normalize_date(as_of, "as_of"))
