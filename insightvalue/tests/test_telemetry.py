from dataclasses import asdict

import pytest

from insightvalue.domains.insights import services
from insightvalue.domains.insights.telemetry import ValuationTelemetry, valuation_telemetry

pytestmark = pytest.mark.integration


@pytest.mark.unit
def test_recorder_aggregates_counts_and_latency():
    telemetry = ValuationTelemetry()
    telemetry.record_evaluation(
        "AAA", "m1", not_applicable=False, applied=2, skipped=1, degradations=["stale_input"], latency_ms=4.0
    )
    telemetry.record_evaluation(
        "BBB", None, not_applicable=True, applied=0, skipped=0, degradations=[], latency_ms=2.0
    )

    snap = telemetry.snapshot()
    assert snap.evaluations == 2
    assert snap.not_applicable == 1
    assert snap.applied_channels == 2
    assert snap.skipped_channels == 1
    assert snap.per_method_counts == {"m1": 1, "none": 1}
    assert snap.per_degradation_counts == {"stale_input": 1}
    assert snap.avg_latency_ms == pytest.approx(3.0)
    assert snap.per_method_avg_latency_ms["m1"] == pytest.approx(4.0)
    assert [e["symbol"] for e in snap.recent_evaluations] == ["AAA", "BBB"]

    telemetry.reset()
    assert asdict(telemetry.snapshot())["evaluations"] == 0


def test_evaluations_are_recorded(app, make_instrument, make_base_value):
    from datetime import date

    with app.app_context():
        make_instrument("AAA")
        make_base_value("AAA", 10.0, date(2025, 6, 30), quality="fallback")

        services.compute_valuation_adjustment("AAA", "2025-06-30")
        services.compute_valuation_adjustment("NOPE", "2025-06-30")

        snap = valuation_telemetry.snapshot()
        assert snap.evaluations == 2
        assert snap.not_applicable == 1
        assert snap.per_degradation_counts == {"fallback_input": 1}
        assert snap.per_method_counts["builtin.stock.pe.relative.v1"] == 1
