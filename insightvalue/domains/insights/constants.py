"""Closed vocabularies of the insight engine."""

from __future__ import annotations

from enum import Enum
from typing import Dict, NewType, Tuple

# Open vocabularies kept as validated strings, typed apart from ids and symbols.
MethodKey = NewType("MethodKey", str)
MetricKey = NewType("MetricKey", str)

WILDCARD_METHOD_KEY = MethodKey("*")


class InsightStatus(str, Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    ARCHIVED = "archived"
    DELETED = "deleted"


class ScopeType(str, Enum):
    SYMBOL = "symbol"
    TAG = "tag"
    KIND = "kind"
    ASSET_CLASS = "asset_class"
    MARKET = "market"
    DOMAIN = "domain"
    WATCHLIST = "watchlist"


class ScopeMode(str, Enum):
    INCLUDE = "include"
    EXCLUDE = "exclude"


class EffectStage(str, Enum):
    BASE = "base"
    FIRST_ORDER = "first_order"
    SECOND_ORDER = "second_order"
    OUTPUT = "output"
    RISK = "risk"


class EffectOperator(str, Enum):
    SET = "set"
    ADD = "add"
    MUL = "mul"
    MIN = "min"
    MAX = "max"


# Earlier stages feed later ones.
STAGE_ORDER: Tuple[EffectStage, ...] = (
    EffectStage.BASE,
    EffectStage.FIRST_ORDER,
    EffectStage.SECOND_ORDER,
    EffectStage.OUTPUT,
    EffectStage.RISK,
)
STAGE_ORDER_INDEX: Dict[EffectStage, int] = {stage: idx for idx, stage in enumerate(STAGE_ORDER)}

# Statuses an insight may be created with or moved to through update.
EDITABLE_STATUSES = frozenset({InsightStatus.DRAFT, InsightStatus.ACTIVE, InsightStatus.ARCHIVED})
