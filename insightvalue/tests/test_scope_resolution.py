import pytest

from insightvalue.core.errors import NotFoundError, ValidationError
from insightvalue.domains.insights import services
from insightvalue.domains.insights.services.scope_service import resolve_rules
from insightvalue.domains.market.services.universe_service import CatalogInstrumentUniverse

pytestmark = pytest.mark.integration


@pytest.fixture()
def catalogue(make_instrument, make_watchlist_item):
    make_instrument("AAA", tags=["sector:tech", "theme:ai"])
    make_instrument("BBB", tags=["sector:tech"])
    make_instrument("CCC", market="HK", tags=["sector:consumer"])
    make_instrument("TECH50", kind="fund", asset_class="etf", tags=["sector:tech"])
    make_instrument("GB10", kind="bond", asset_class="fixed_income", market="CN", tags=["kind:bond"])
    make_instrument("CL", kind="futures", asset_class="commodity", market="CN")
    make_watchlist_item("AAA")
    make_watchlist_item("CCC", group_name="asia")


class StaticUniverse:
    def __init__(self, mapping):
        self.mapping = mapping

    def symbols_for(self, scope_type, scope_key):
        return set(self.mapping.get((scope_type, scope_key), set()))


def test_exclude_overrides_include_regardless_of_order(app):
    with app.app_context():
        insight = services.create_insight(title="Semis")
        services.upsert_scope_rule(insight.id, scope_type="symbol", scope_key="BBB", mode="exclude")
        services.upsert_scope_rule(insight.id, scope_type="tag", scope_key="semis")
        universe = StaticUniverse({("tag", "semis"): {"AAA", "BBB"}, ("symbol", "BBB"): {"BBB"}})

        assert services.resolve_scope(insight.id, universe) == {"AAA"}


def test_resolve_records_sources_and_ignores_disabled_rules(app):
    with app.app_context():
        insight = services.create_insight(title="Sources")
        services.upsert_scope_rule(insight.id, scope_type="tag", scope_key="semis")
        services.upsert_scope_rule(insight.id, scope_type="symbol", scope_key="aaa")
        services.upsert_scope_rule(insight.id, scope_type="tag", scope_key="old", enabled=False)
        universe = StaticUniverse(
            {("tag", "semis"): {"AAA", "BBB"}, ("symbol", "AAA"): {"AAA"}, ("tag", "old"): {"ZZZ"}}
        )

        resolved = resolve_rules(services.get_insight(insight.id), universe)
        assert resolved.rules_applied == 2
        assert resolved.sources == {"AAA": ["tag:semis", "symbol:AAA"], "BBB": ["tag:semis"]}


def test_catalogue_universe_matches_each_scope_type(app, catalogue):
    with app.app_context():
        universe = CatalogInstrumentUniverse()
        assert universe.symbols_for("tag", "sector:tech") == {"AAA", "BBB", "TECH50"}
        assert universe.symbols_for("kind", "STOCK") == {"AAA", "BBB", "CCC"}
        assert universe.symbols_for("asset_class", "etf") == {"TECH50"}
        assert universe.symbols_for("market", "hk") == {"CCC"}
        assert universe.symbols_for("symbol", "zzz") == {"ZZZ"}
        assert universe.symbols_for("watchlist", "default") == {"AAA"}
        assert universe.symbols_for("watchlist", "asia") == {"CCC"}
        assert universe.symbols_for("watchlist", "all") == {"AAA", "CCC"}
        assert universe.symbols_for("domain", "etf") == {"TECH50"}
        assert universe.symbols_for("domain", "bond") == {"GB10"}
        assert universe.symbols_for("domain", "futures") == {"CL"}
        assert universe.symbols_for("domain", "hk_stock") == {"CCC"}
        assert universe.symbols_for("domain", "us_stock") == {"AAA", "BBB"}


def test_unknown_attributes_resolve_empty_instead_of_failing(app, catalogue):
    with app.app_context():
        insight = services.create_insight(title="Stale tags")
        services.upsert_scope_rule(insight.id, scope_type="tag", scope_key="sector:gone")
        services.upsert_scope_rule(insight.id, scope_type="domain", scope_key="crypto")
        services.upsert_scope_rule(insight.id, scope_type="watchlist", scope_key="nobody")

        assert services.resolve_scope(insight.id) == set()


def test_upsert_by_identity_updates_in_place(app):
    with app.app_context():
        insight = services.create_insight(title="Identity")
        rule = services.upsert_scope_rule(insight.id, scope_type="tag", scope_key="ai")
        again = services.upsert_scope_rule(insight.id, scope_type="tag", scope_key="ai", enabled=False)

        assert again.id == rule.id
        assert again.enabled is False
        assert len(services.list_scope_rules(insight.id)) == 1


def test_upsert_by_id_refuses_duplicate_identity(app):
    with app.app_context():
        insight = services.create_insight(title="Duplicates")
        services.upsert_scope_rule(insight.id, scope_type="tag", scope_key="ai")
        other = services.upsert_scope_rule(insight.id, scope_type="tag", scope_key="cloud")

        with pytest.raises(ValidationError) as excinfo:
            services.upsert_scope_rule(insight.id, scope_type="tag", scope_key="ai", rule_id=other.id)
        assert excinfo.value.code == "duplicate"

        moved = services.upsert_scope_rule(
            insight.id, scope_type="tag", scope_key="cloud", mode="exclude", rule_id=other.id
        )
        assert moved.id == other.id
        assert moved.mode == "exclude"


def test_upsert_rejects_invalid_rule_fields(app):
    with app.app_context():
        insight = services.create_insight(title="Invalid")
        with pytest.raises(ValidationError):
            services.upsert_scope_rule(insight.id, scope_type="sector", scope_key="tech")
        with pytest.raises(ValidationError):
            services.upsert_scope_rule(insight.id, scope_type="tag", scope_key="  ")
        with pytest.raises(ValidationError):
            services.upsert_scope_rule(insight.id, scope_type="tag", scope_key="ai", mode="maybe")
        assert services.list_scope_rules(insight.id) == []


def test_remove_scope_rule_and_unknown_references(app):
    with app.app_context():
        insight = services.create_insight(title="Removal")
        rule = services.upsert_scope_rule(insight.id, scope_type="symbol", scope_key="AAA")
        services.remove_scope_rule(rule.id)
        assert services.list_scope_rules(insight.id) == []

        with pytest.raises(NotFoundError):
            services.remove_scope_rule(rule.id)
        with pytest.raises(NotFoundError):
            services.upsert_scope_rule(12345, scope_type="tag", scope_key="ai")
        with pytest.raises(NotFoundError):
            services.resolve_scope(12345)


def test_deleted_insight_refuses_rule_changes(app):
    with app.app_context():
        insight = services.create_insight(title="Gone")
        services.remove_insight(insight.id)
        with pytest.raises(ValidationError) as excinfo:
            services.upsert_scope_rule(insight.id, scope_type="tag", scope_key="ai")
        assert excinfo.value.code == "insight_deleted"
