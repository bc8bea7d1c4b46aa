"""Insight valuation service application factory and bootstrap."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

from flask import Flask

from insightvalue.config import config_by_name, engine_options_from_uri
from insightvalue.core.events.event_bus import event_bus
from insightvalue.extensions import init_extensions


def create_app(config_name: Optional[str] = None, **overrides) -> Flask:
    """Create and configure the insight valuation Flask application."""
    env_name = (config_name or os.environ.get("APP_ENV") or "development").lower()
    project_root = Path(__file__).resolve().parent.parent
    instance_root = project_root / "instance"

    app = Flask(__name__, instance_path=str(instance_root), instance_relative_config=True)
    config_cls = config_by_name.get(env_name, config_by_name["development"])
    app.config.from_object(config_cls)
    app.config.update(overrides)
    if "SQLALCHEMY_DATABASE_URI" in overrides and "SQLALCHEMY_ENGINE_OPTIONS" not in overrides:
        app.config["SQLALCHEMY_ENGINE_OPTIONS"] = engine_options_from_uri(overrides["SQLALCHEMY_DATABASE_URI"])

    _configure_logging(app)

    # Normalize relative sqlite paths against the project root
    db_uri = app.config.get("SQLALCHEMY_DATABASE_URI") or ""
    if db_uri.startswith("sqlite:///") and db_uri != "sqlite:///:memory:":
        db_path = Path(db_uri.replace("sqlite:///", "", 1))
        abs_path = db_path if db_path.is_absolute() else project_root / db_path
        abs_path.parent.mkdir(parents=True, exist_ok=True)
        app.config["SQLALCHEMY_DATABASE_URI"] = f"sqlite:///{abs_path}"

    init_extensions(app)
    _register_blueprints(app)
    _register_error_handlers(app)

    # Attach shared collaborators; tests may replace them per app.
    from insightvalue.domains.market.services.base_valuation_service import SnapshotBaseValuationProvider
    from insightvalue.domains.market.services.universe_service import CatalogInstrumentUniverse

    app.extensions["event_bus"] = event_bus
    app.extensions.setdefault("instrument_universe", CatalogInstrumentUniverse())
    app.extensions.setdefault("base_valuation_provider", SnapshotBaseValuationProvider())

    # Keep the search index in step with insight events
    from insightvalue.domains.insights.services import search_service

    search_service.register_subscriptions()

    @app.get("/health")
    def health():
        return {"ok": True}, 200

    @app.get("/api/v1/ping")
    def ping():
        """Lightweight endpoint for load-balancer health checks."""
        return {"pong": True}, 200

    # Register CLI commands
    from insightvalue.scripts.insight_commands import register_commands

    register_commands(app)

    return app


def _configure_logging(app: Flask) -> None:
    level = getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logging.getLogger("insightvalue").setLevel(level)
    app.logger.setLevel(level)


def _register_blueprints(app: Flask) -> None:
    """Lazy import and register all controllers."""
    from insightvalue.domains.insights.controllers.insight_api import insight_api_bp
    from insightvalue.domains.insights.controllers.valuation_api import valuation_api_bp

    app.register_blueprint(insight_api_bp, url_prefix="/api/insights")
    app.register_blueprint(valuation_api_bp, url_prefix="/api/valuation")


def _register_error_handlers(app: Flask) -> None:
    """JSON error responses."""
    from werkzeug.exceptions import HTTPException

    from insightvalue.core.errors import DomainError

    @app.errorhandler(DomainError)
    def _domain_error(exc: DomainError):
        return exc.to_dict(), exc.status_code

    @app.errorhandler(HTTPException)
    def _http_error(exc: HTTPException):
        return {"ok": False, "error": exc.description}, exc.code

    @app.errorhandler(Exception)
    def _generic_error(exc: Exception):
        app.logger.exception("Unhandled error: %s", exc)
        # In debug/testing, surface the exception message to speed up diagnosis
        if app.debug or app.testing:
            return {"ok": False, "error": "unexpected_error", "message": str(exc)}, 500
        return {"ok": False, "error": "unexpected_error"}, 500
