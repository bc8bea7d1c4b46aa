import json
from datetime import date

import pytest

from insightvalue.domains.insights import services
from insightvalue.domains.insights.models.insight_models import (
    Insight,
    InsightMaterializedTarget,
    InsightSearchDocument,
)
from insightvalue.scripts.seed_demo import DEMO_INSIGHT_TITLE

pytestmark = pytest.mark.integration


def test_refresh_targets_command(app, make_instrument):
    make_instrument("AAA", tags=["sector:tech"])
    make_instrument("BBB", tags=["sector:tech"])
    insight = services.create_insight(title="Tech", status="active")
    services.upsert_scope_rule(insight.id, scope_type="tag", scope_key="sector:tech")

    result = app.test_cli_runner().invoke(args=["insights", "refresh-targets"])

    assert result.exit_code == 0, result.output
    assert "Refreshed 1 insights" in result.output
    assert "Targets: 2" in result.output
    assert InsightMaterializedTarget.query.filter_by(insight_id=insight.id).count() == 2


def test_reindex_command(app):
    services.create_insight(title="Reindexed")
    InsightSearchDocument.query.delete()

    result = app.test_cli_runner().invoke(args=["insights", "reindex"])

    assert result.exit_code == 0, result.output
    assert "Indexed 1 insights" in result.output


def test_evaluate_command_prints_json(app, make_instrument, make_base_value):
    make_instrument("AAA")
    make_base_value("AAA", 10.0, date(2025, 6, 30))

    result = app.test_cli_runner().invoke(args=["insights", "evaluate", "aaa", "--as-of", "2025-06-30"])

    assert result.exit_code == 0, result.output
    payload = json.loads(result.output)
    assert payload["symbol"] == "AAA"
    assert payload["adjusted_value"] == 10.0
    assert payload["confidence"] == 1.0


def test_evaluate_command_rejects_bad_date(app):
    result = app.test_cli_runner().invoke(args=["insights", "evaluate", "AAA", "--as-of", "June"])
    assert result.exit_code != 0
    assert "as_of_date" in result.output


def test_seed_demo_is_repeatable(app):
    runner = app.test_cli_runner()
    first = runner.invoke(args=["seed-demo"])
    second = runner.invoke(args=["seed-demo"])

    assert first.exit_code == 0, first.output
    assert second.exit_code == 0, second.output
    assert Insight.query.filter_by(title=DEMO_INSIGHT_TITLE).count() == 1

    insight = Insight.query.filter_by(title=DEMO_INSIGHT_TITLE).one()
    symbols = {t.symbol for t in services.list_materialized_targets(insight.id)}
    assert symbols == {"AAA", "BBB"}

    result = services.compute_valuation_adjustment("AAA")
    assert result.not_applicable is False
    assert result.adjusted_value > result.base_value
