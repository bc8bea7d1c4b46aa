from datetime import date, timedelta

import pytest

from insightvalue.core.errors import NotFoundError, ValidationError
from insightvalue.core.events.event_models import EventRecord
from insightvalue.domains.insights import events, services
from insightvalue.domains.insights.models.insight_models import InsightEffectPoint


@pytest.mark.unit
def test_interpolate_points_between_breakpoints_is_linear():
    points = [(date(2025, 1, 1), 1.0), (date(2025, 1, 11), 2.0)]
    assert services.interpolate_points(points, date(2025, 1, 6)) == pytest.approx(1.5)
    assert services.interpolate_points(points, date(2025, 1, 2)) == pytest.approx(1.1)


@pytest.mark.unit
@pytest.mark.parametrize("left_value, right_value", [(0.0, 10.0), (3.0, -3.0), (-2.5, 7.25)])
def test_interpolated_values_stay_strictly_between_endpoints(left_value, right_value):
    start = date(2025, 3, 1)
    points = [(start, left_value), (start + timedelta(days=30), right_value)]
    low, high = sorted((left_value, right_value))
    for offset in range(1, 30):
        value = services.interpolate_points(points, start + timedelta(days=offset))
        assert low < value < high
    assert services.interpolate_points(points, start) == left_value
    assert services.interpolate_points(points, start + timedelta(days=30)) == right_value


@pytest.mark.unit
def test_interpolate_points_never_extrapolates():
    points = [(date(2025, 2, 1), 1.0), (date(2025, 1, 1), 0.0), (date(2025, 3, 1), 4.0)]
    assert services.interpolate_points(points, date(2024, 12, 31)) is None
    assert services.interpolate_points(points, date(2025, 3, 2)) is None
    assert services.interpolate_points([], date(2025, 1, 1)) is None
    # Unordered input is sorted by date first.
    assert services.interpolate_points(points, date(2025, 2, 1)) == 1.0


@pytest.mark.unit
def test_single_point_channel_only_answers_its_own_date():
    points = [(date(2025, 5, 5), 0.8)]
    assert services.interpolate_points(points, date(2025, 5, 5)) == 0.8
    assert services.interpolate_points(points, date(2025, 5, 4)) is None
    assert services.interpolate_points(points, date(2025, 5, 6)) is None


@pytest.mark.integration
def test_upsert_channel_by_identity_and_cascade_delete(app):
    with app.app_context():
        insight = services.create_insight(title="Channels")
        channel = services.upsert_effect_channel(
            insight.id, method_key="*", metric_key="pe", stage="output", operator="add", priority=-3
        )
        same = services.upsert_effect_channel(
            insight.id, method_key="*", metric_key="pe", stage="output", operator="mul", priority=2
        )
        assert same.id == channel.id
        assert same.operator == "mul"
        assert same.priority == 2
        assert len(services.list_effect_channels(insight.id)) == 1

        services.upsert_effect_points(
            channel.id,
            [
                {"effect_date": "2025-01-01", "effect_value": 1},
                {"effect_date": "2025-02-01", "effect_value": 2},
            ],
        )
        services.remove_effect_channel(channel.id)

        assert services.list_effect_channels(insight.id) == []
        assert InsightEffectPoint.query.filter_by(channel_id=channel.id).count() == 0


@pytest.mark.integration
def test_upsert_point_by_date_and_interpolate(app):
    with app.app_context():
        insight = services.create_insight(title="Points")
        channel = services.upsert_effect_channel(
            insight.id, method_key="builtin.stock.pe.relative.v1", metric_key="pe", stage="base", operator="set"
        )
        services.upsert_effect_point(channel.id, effect_date="2025-01-01", effect_value=10)
        services.upsert_effect_point(channel.id, effect_date="2025-01-21", effect_value=20)
        services.upsert_effect_point(channel.id, effect_date="2025-01-21", effect_value=30)

        points = services.list_effect_points(channel.id)
        assert [(p.effect_date, p.effect_value) for p in points] == [
            (date(2025, 1, 1), 10.0),
            (date(2025, 1, 21), 30.0),
        ]
        assert services.interpolate(channel.id, "2025-01-11") == pytest.approx(20.0)
        assert services.interpolate(channel.id, date(2025, 1, 22)) is None

        services.remove_effect_point(points[0].id)
        assert [p.effect_date for p in services.list_effect_points(channel.id)] == [date(2025, 1, 21)]


@pytest.mark.integration
@pytest.mark.parametrize(
    "overrides, field",
    [
        ({"method_key": "   "}, "method_key"),
        ({"method_key": "bad key!"}, "method_key"),
        ({"metric_key": ""}, "metric_key"),
        ({"stage": "final"}, "stage"),
        ({"operator": "pow"}, "operator"),
        ({"priority": 1.5}, "priority"),
        ({"priority": float("inf")}, "priority"),
    ],
)
def test_channel_validation(app, overrides, field):
    with app.app_context():
        insight = services.create_insight(title="Validation")
        kwargs = {"method_key": "*", "metric_key": "pe", "stage": "output", "operator": "add"}
        kwargs.update(overrides)
        with pytest.raises(ValidationError) as excinfo:
            services.upsert_effect_channel(insight.id, **kwargs)
        assert excinfo.value.field == field
        assert services.list_effect_channels(insight.id) == []


@pytest.mark.integration
def test_point_validation_happens_before_any_write(app):
    with app.app_context():
        insight = services.create_insight(title="Atomic points")
        channel = services.upsert_effect_channel(
            insight.id, method_key="*", metric_key="pe", stage="output", operator="add"
        )
        with pytest.raises(ValidationError):
            services.upsert_effect_points(
                channel.id,
                [
                    {"effect_date": "2025-01-01", "effect_value": 1},
                    {"effect_date": "2025-01-02", "effect_value": float("nan")},
                ],
            )
        with pytest.raises(ValidationError):
            services.upsert_effect_point(channel.id, effect_date="2025-13-01", effect_value=1)
        assert services.list_effect_points(channel.id) == []


@pytest.mark.integration
def test_unknown_channel_and_point_references(app):
    with app.app_context():
        with pytest.raises(NotFoundError):
            services.upsert_effect_point(999, effect_date="2025-01-01", effect_value=1)
        with pytest.raises(NotFoundError):
            services.remove_effect_point(999)
        with pytest.raises(NotFoundError):
            services.remove_effect_channel(999)
        with pytest.raises(NotFoundError):
            services.interpolate(999, "2025-01-01")


@pytest.mark.integration
def test_batch_points_roll_back_together_when_a_write_fails(app, monkeypatch):
    from insightvalue.domains.insights.services import effect_service

    with app.app_context():
        insight = services.create_insight(title="All or nothing")
        channel = services.upsert_effect_channel(
            insight.id, method_key="*", metric_key="pe", stage="output", operator="add"
        )
        real_utcnow = effect_service.utcnow
        calls = []

        def failing_on_second_point():
            calls.append(1)
            if len(calls) == 2:
                raise RuntimeError("disk full")
            return real_utcnow()

        monkeypatch.setattr(effect_service, "utcnow", failing_on_second_point)

        with pytest.raises(RuntimeError):
            services.upsert_effect_points(
                channel.id,
                [
                    {"effect_date": "2025-01-01", "effect_value": 1},
                    {"effect_date": "2025-01-02", "effect_value": 2},
                    {"effect_date": "2025-01-03", "effect_value": 3},
                ],
            )

        assert services.list_effect_points(channel.id) == []
        assert EventRecord.query.filter_by(event_type=events.EFFECT_POINT_UPSERTED).count() == 0


@pytest.mark.integration
def test_batch_points_commit_once_and_log_each_point(app):
    with app.app_context():
        insight = services.create_insight(title="Batch")
        channel = services.upsert_effect_channel(
            insight.id, method_key="*", metric_key="pe", stage="output", operator="add"
        )
        written = services.upsert_effect_points(
            channel.id,
            [
                {"effect_date": "2025-01-01", "effect_value": 1},
                {"effect_date": "2025-01-02", "effect_value": 2},
            ],
        )

        assert [p.effect_date.isoformat() for p in written] == ["2025-01-01", "2025-01-02"]
        logged = EventRecord.query.filter_by(event_type=events.EFFECT_POINT_UPSERTED).all()
        assert sorted(e.payload["effect_date"] for e in logged) == ["2025-01-01", "2025-01-02"]
