"""Application configuration for the insight valuation service."""

from __future__ import annotations

import json
import os
from datetime import timedelta
from typing import Dict, Type

from dotenv import load_dotenv
from sqlalchemy.engine.url import make_url

load_dotenv()

DEFAULT_CONFIDENCE_PENALTIES: Dict[str, float] = {
    "missing_input": 0.25,
    "stale_input": 0.10,
    "fallback_input": 0.10,
    "channel_out_of_range": 0.05,
}


_CONNECT_ARGS_BY_BACKEND = {
    # Writers wait on each other instead of failing with "database is locked".
    "sqlite": lambda: {"timeout": 30},
    "postgresql": lambda: {"connect_timeout": int(os.environ.get("DB_CONNECT_TIMEOUT_SECONDS", "10"))},
}


def engine_options_from_uri(uri: str) -> dict:
    options: dict = {"pool_pre_ping": True}
    connect_args = _CONNECT_ARGS_BY_BACKEND.get(make_url(uri).get_backend_name())
    if connect_args is not None:
        options["connect_args"] = connect_args()
    return options


def _confidence_penalties_from_env() -> Dict[str, float]:
    penalties = dict(DEFAULT_CONFIDENCE_PENALTIES)
    raw = os.environ.get("INSIGHT_CONFIDENCE_PENALTIES")
    if not raw:
        return penalties
    parsed = json.loads(raw)
    if not isinstance(parsed, dict):
        raise ValueError("INSIGHT_CONFIDENCE_PENALTIES must be a JSON object")
    for kind, penalty in parsed.items():
        penalties[str(kind)] = min(max(float(penalty), 0.0), 1.0)
    return penalties


def _env_flag(name: str, default: str) -> bool:
    return os.environ.get(name, default).lower() in ("1", "true", "yes")


class BaseConfig:
    SECRET_KEY = os.environ.get("SECRET_KEY", "change-me")
    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL", "sqlite:///instance/insightvalue.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = engine_options_from_uri(SQLALCHEMY_DATABASE_URI)

    JWT_SECRET_KEY = os.environ.get("JWT_SECRET_KEY", SECRET_KEY)
    JWT_TOKEN_LOCATION = ["headers"]
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(minutes=int(os.environ.get("JWT_ACCESS_MINUTES", "30")))

    RATELIMIT_DEFAULT = "600/hour"
    RATELIMIT_STORAGE_URI = os.environ.get("REDIS_URL", "memory://")
    RATELIMIT_ENABLED = _env_flag("RATELIMIT_ENABLED", "true")

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

    # Valuation adjustment engine
    INSIGHT_CONFIDENCE_PENALTIES = _confidence_penalties_from_env()
    INSIGHT_DEFAULT_CONFIDENCE_PENALTY = float(
        os.environ.get("INSIGHT_DEFAULT_CONFIDENCE_PENALTY", "0.10")
    )
    INSIGHT_PREVIEW_LIMIT = int(os.environ.get("INSIGHT_PREVIEW_LIMIT", "200"))
    INSIGHT_PREVIEW_LIMIT_MAX = int(os.environ.get("INSIGHT_PREVIEW_LIMIT_MAX", "2000"))
    INSIGHT_LIST_LIMIT_MAX = 500
    INSIGHT_SEARCH_LIMIT_MAX = 200
    BASE_VALUATION_STALE_AFTER_DAYS = int(os.environ.get("BASE_VALUATION_STALE_AFTER_DAYS", "5"))


class DevelopmentConfig(BaseConfig):
    DEBUG = True
    ENV = "development"
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "DEBUG").upper()


class TestingConfig(BaseConfig):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.environ.get("TEST_DATABASE_URL", "sqlite:///instance/test.db")
    SQLALCHEMY_ENGINE_OPTIONS = engine_options_from_uri(SQLALCHEMY_DATABASE_URI)
    RATELIMIT_ENABLED = False
    JWT_SECRET_KEY = "testing-secret-key-with-enough-length-for-hs256"


class ProductionConfig(BaseConfig):
    ENV = "production"


config_by_name: Dict[str, Type[BaseConfig]] = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "ci": TestingConfig,
}
