"""Instrument universe backed by the instrument catalogue tables.

Resolves a ``(scope_type, scope_key)`` pair to the set of matching symbols.
A key that matches no attribute, or an attribute the catalogue does not carry,
resolves to an empty set so that stale tags never break materialization.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, Iterable, Protocol, Set

from flask import current_app
from sqlalchemy import func, or_

from insightvalue.domains.market.models.market_models import InstrumentProfile, WatchlistItem
from insightvalue.extensions import db

logger = logging.getLogger(__name__)

WATCHLIST_ALL = "all"
WATCHLIST_DEFAULT = "default"


class InstrumentUniverse(Protocol):
    def symbols_for(self, scope_type: str, scope_key: str) -> Set[str]: ...


def _profile_symbols(*criteria) -> Set[str]:
    rows = db.session.query(InstrumentProfile.symbol).filter(*criteria).all()
    return {row[0] for row in rows}


def _lower_eq(column, value: str):
    return func.lower(column) == value.lower()


# Domain groupings are fixed; anything else resolves empty.
_DOMAIN_FILTERS: Dict[str, Callable[[], Set[str]]] = {
    "stock": lambda: _profile_symbols(_lower_eq(InstrumentProfile.kind, "stock")),
    "etf": lambda: _profile_symbols(
        or_(_lower_eq(InstrumentProfile.asset_class, "etf"), _lower_eq(InstrumentProfile.kind, "fund"))
    ),
    "index": lambda: _profile_symbols(_lower_eq(InstrumentProfile.kind, "index")),
    "public_fund": lambda: _profile_symbols(_lower_eq(InstrumentProfile.kind, "fund")),
    "futures": lambda: _profile_symbols(_lower_eq(InstrumentProfile.kind, "futures")),
    "spot": lambda: _profile_symbols(_lower_eq(InstrumentProfile.kind, "spot")),
    "fx": lambda: _profile_symbols(_lower_eq(InstrumentProfile.kind, "forex")),
    "hk_stock": lambda: _profile_symbols(
        _lower_eq(InstrumentProfile.kind, "stock"), func.upper(InstrumentProfile.market) == "HK"
    ),
    "us_stock": lambda: _profile_symbols(
        _lower_eq(InstrumentProfile.kind, "stock"), func.upper(InstrumentProfile.market) == "US"
    ),
    "bond": lambda: _tagged_symbols({"kind:bond", "domain:bond"}),
}


def _tagged_symbols(tags: Iterable[str]) -> Set[str]:
    # Tags live in a JSON column, so membership is checked in Python.
    wanted = set(tags)
    out: Set[str] = set()
    for profile in InstrumentProfile.query.all():
        if wanted.intersection(profile.tags or []):
            out.add(profile.symbol)
    return out


def _watchlist_symbols(key: str) -> Set[str]:
    query = db.session.query(WatchlistItem.symbol)
    if key.lower() == WATCHLIST_ALL:
        pass
    elif key.lower() == WATCHLIST_DEFAULT:
        query = query.filter(or_(WatchlistItem.group_name.is_(None), WatchlistItem.group_name == ""))
    else:
        query = query.filter(WatchlistItem.group_name == key)
    return {row[0] for row in query.all()}


class CatalogInstrumentUniverse:
    """Reads ``instrument_profile`` and ``watchlist_item`` through the app session."""

    def symbols_for(self, scope_type: str, scope_key: str) -> Set[str]:
        key = (scope_key or "").strip()
        if not key:
            return set()
        if scope_type == "symbol":
            return {key.upper()}
        if scope_type == "tag":
            return _tagged_symbols({key})
        if scope_type == "kind":
            return _profile_symbols(_lower_eq(InstrumentProfile.kind, key))
        if scope_type == "asset_class":
            return _profile_symbols(_lower_eq(InstrumentProfile.asset_class, key))
        if scope_type == "market":
            return _profile_symbols(func.upper(InstrumentProfile.market) == key.upper())
        if scope_type == "watchlist":
            return _watchlist_symbols(key)
        if scope_type == "domain":
            resolver = _DOMAIN_FILTERS.get(key.lower())
            if resolver is None:
                logger.debug("Unknown domain grouping %s resolves empty", key)
                return set()
            return resolver()
        logger.debug("Unknown scope type %s resolves empty", scope_type)
        return set()


def current_universe() -> InstrumentUniverse:
    """Universe registered on the app, falling back to the catalogue tables."""
    universe = current_app.extensions.get("instrument_universe")
    return universe if universe is not None else CatalogInstrumentUniverse()
