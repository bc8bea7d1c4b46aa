import os
import sys
import tempfile
from datetime import date
from pathlib import Path

import pytest
from alembic import command
from alembic.config import Config as AlembicConfig

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Point the testing config at a throwaway sqlite file before the app is imported.
_TEST_DB_DIR = tempfile.mkdtemp(prefix="insightvalue-tests-")
TEST_DATABASE_URL = os.environ.get("TEST_DATABASE_URL") or f"sqlite:///{_TEST_DB_DIR}/test.db"
os.environ["TEST_DATABASE_URL"] = TEST_DATABASE_URL

from flask_jwt_extended import create_access_token

from insightvalue import create_app
from insightvalue.domains.insights.telemetry import valuation_telemetry
from insightvalue.domains.market.models.market_models import (
    BaseValuationSnapshot,
    InstrumentProfile,
    WatchlistItem,
)
from insightvalue.extensions import db

STOCK_METHOD = "builtin.stock.pe.relative.v1"


# ==================== Pytest Markers ====================
def pytest_configure(config):
    """Register custom pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests (no external dependencies)")
    config.addinivalue_line("markers", "integration: Integration tests (database, API)")


def _alembic_config() -> AlembicConfig:
    cfg = AlembicConfig(str(ROOT / "alembic.ini"))
    cfg.set_main_option("script_location", str(ROOT / "insightvalue" / "migrations"))
    cfg.set_main_option("insightvalue_env", "testing")
    cfg.set_main_option("sqlalchemy.url", TEST_DATABASE_URL)
    return cfg


@pytest.fixture(scope="session", autouse=True)
def migrated_db():
    """Apply migrations once per session to mirror production schema."""
    cfg = _alembic_config()
    command.upgrade(cfg, "head")
    yield cfg


@pytest.fixture()
def app(migrated_db):
    """Per-test app; every table is emptied afterwards so tests never leak rows."""
    app = create_app("testing", SQLALCHEMY_DATABASE_URI=TEST_DATABASE_URL)
    ctx = app.app_context()
    ctx.push()
    valuation_telemetry.reset()
    try:
        yield app
    finally:
        db.session.rollback()
        for table in reversed(db.metadata.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        db.session.remove()
        ctx.pop()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def auth_headers(app):
    token = create_access_token(identity="analyst-1")
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def make_instrument(app):
    def _make(symbol, kind="stock", asset_class="equity", market="US", tags=None, name=None):
        profile = InstrumentProfile(
            symbol=symbol,
            name=name or symbol,
            kind=kind,
            asset_class=asset_class,
            market=market,
            tags=list(tags or []),
        )
        db.session.add(profile)
        db.session.commit()
        return profile

    return _make


@pytest.fixture()
def make_watchlist_item(app):
    def _make(symbol, group_name=None):
        item = WatchlistItem(symbol=symbol, group_name=group_name)
        db.session.add(item)
        db.session.commit()
        return item

    return _make


@pytest.fixture()
def make_base_value(app):
    def _make(symbol, value, as_of: date, method_key=STOCK_METHOD, quality="fresh", missing_inputs=None):
        snapshot = BaseValuationSnapshot(
            symbol=symbol,
            method_key=method_key,
            as_of_date=as_of,
            value=value,
            quality=quality,
            missing_inputs=list(missing_inputs or []),
        )
        db.session.add(snapshot)
        db.session.commit()
        return snapshot

    return _make
