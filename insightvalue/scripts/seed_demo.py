"""Seed a small demo catalogue and one active insight.

Usage:
    flask seed-demo
    python -m insightvalue.scripts.seed_demo
"""

from __future__ import annotations

from datetime import timedelta

from insightvalue import create_app
from insightvalue.core.utils.dates import today
from insightvalue.domains.insights import services
from insightvalue.domains.insights.models.insight_models import Insight
from insightvalue.domains.market.models.market_models import (
    BaseValuationSnapshot,
    InstrumentProfile,
    WatchlistItem,
)
from insightvalue.extensions import db

DEMO_INSIGHT_TITLE = "Demo: AI capex rerating"

DEMO_INSTRUMENTS = [
    # symbol, name, kind, asset_class, market, tags
    ("AAA", "Alpha Compute", "stock", "equity", "US", ["sector:tech", "theme:ai"]),
    ("BBB", "Beta Networks", "stock", "equity", "US", ["sector:tech"]),
    ("CCC", "Gamma Retail", "stock", "equity", "HK", ["sector:consumer"]),
    ("TECH50", "Tech 50 ETF", "fund", "etf", "US", ["sector:tech"]),
    ("GB10", "Govt Bond 10Y", "bond", "fixed_income", "CN", ["kind:bond"]),
]

DEMO_BASE_VALUES = {
    "AAA": 10.0,
    "BBB": 24.5,
    "CCC": 7.2,
    "TECH50": 101.0,
}


def seed_catalogue() -> None:
    for symbol, name, kind, asset_class, market, tags in DEMO_INSTRUMENTS:
        if db.session.get(InstrumentProfile, symbol) is None:
            db.session.add(
                InstrumentProfile(
                    symbol=symbol, name=name, kind=kind, asset_class=asset_class, market=market, tags=tags
                )
            )
    for symbol in ("AAA", "CCC"):
        if not WatchlistItem.query.filter_by(symbol=symbol, group_name=None).first():
            db.session.add(WatchlistItem(symbol=symbol))
    db.session.flush()


def seed_base_valuations() -> None:
    from insightvalue.domains.market.services.base_valuation_service import resolve_method_key

    as_of = today()
    for symbol, value in DEMO_BASE_VALUES.items():
        method_key = resolve_method_key(db.session.get(InstrumentProfile, symbol))
        exists = BaseValuationSnapshot.query.filter_by(
            symbol=symbol, method_key=method_key, as_of_date=as_of
        ).first()
        if not exists:
            db.session.add(
                BaseValuationSnapshot(symbol=symbol, method_key=method_key, as_of_date=as_of, value=value)
            )
    db.session.commit()


def seed_insight() -> Insight:
    existing = Insight.query.filter_by(title=DEMO_INSIGHT_TITLE).first()
    if existing is not None:
        return existing

    start = today() - timedelta(days=30)
    insight = services.create_insight(
        title=DEMO_INSIGHT_TITLE,
        thesis="Hyperscaler capex guidance lifts fair multiples for tech hardware names.",
        status="active",
        valid_from=start,
        tags=["ai", "capex"],
    )
    services.upsert_scope_rule(insight.id, scope_type="tag", scope_key="sector:tech")
    services.upsert_scope_rule(insight.id, scope_type="symbol", scope_key="TECH50", mode="exclude")
    channel = services.upsert_effect_channel(
        insight.id,
        method_key="*",
        metric_key="target_multiple",
        stage="first_order",
        operator="mul",
    )
    services.upsert_effect_points(
        channel.id,
        [
            {"effect_date": start, "effect_value": 1.0},
            {"effect_date": start + timedelta(days=60), "effect_value": 1.4},
        ],
    )
    services.preview_materialized_targets(insight.id, persist=True)
    return insight


def seed_demo() -> Insight:
    seed_catalogue()
    seed_base_valuations()
    return seed_insight()


def main():
    app = create_app()
    with app.app_context():
        insight = seed_demo()
        print("Seeded demo insight", insight.id)


if __name__ == "__main__":
    main()
