"""Base (pre-adjustment) valuation provider backed by ``base_valuation_snapshot``."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional, Protocol

from flask import current_app

from insightvalue.domains.market.models.market_models import BaseValuationSnapshot, InstrumentProfile

logger = logging.getLogger(__name__)

SNAPSHOT_QUALITIES = {"fresh", "stale", "fallback", "missing"}


@dataclass(frozen=True)
class Degradation:
    kind: str
    message: str


@dataclass
class BaseValuation:
    symbol: str
    method_key: Optional[str]
    value: Optional[float]
    as_of_date: Optional[date] = None
    reason: Optional[str] = None
    degradations: List[Degradation] = field(default_factory=list)

    @property
    def available(self) -> bool:
        return self.method_key is not None and self.value is not None


class BaseValuationProvider(Protocol):
    def base_valuation(self, symbol: str, as_of: date, method_key: Optional[str] = None) -> BaseValuation: ...


def resolve_method_key(profile: Optional[InstrumentProfile]) -> str:
    """Default valuation method for an instrument, by kind, asset class and tags."""
    if profile is None:
        return "builtin.generic.factor"
    kind = (profile.kind or "").lower()
    asset_class = (profile.asset_class or "").lower()
    tags = set(profile.tags or [])
    if kind == "futures":
        return "builtin.futures.basis"
    if kind == "spot":
        return "builtin.spot.carry"
    if kind == "forex":
        return "builtin.forex.ppp"
    if asset_class == "etf" or kind == "fund":
        return "builtin.etf.pe.relative.v1"
    if kind == "stock":
        return "builtin.stock.pe.relative.v1"
    if tags.intersection({"kind:bond", "domain:bond"}):
        return "builtin.bond.yield"
    return "builtin.generic.factor"


class SnapshotBaseValuationProvider:
    """Latest snapshot on or before the as-of date for the resolved method."""

    def __init__(self, stale_after_days: Optional[int] = None) -> None:
        self._stale_after_days = stale_after_days

    @property
    def stale_after_days(self) -> int:
        if self._stale_after_days is not None:
            return self._stale_after_days
        return int(current_app.config.get("BASE_VALUATION_STALE_AFTER_DAYS", 5))

    def base_valuation(self, symbol: str, as_of: date, method_key: Optional[str] = None) -> BaseValuation:
        if method_key is None:
            profile = InstrumentProfile.query.filter_by(symbol=symbol).first()
            if profile is None:
                return BaseValuation(
                    symbol=symbol,
                    method_key=None,
                    value=None,
                    reason=f"No instrument profile for {symbol}; no valuation method available.",
                )
            method_key = resolve_method_key(profile)

        snapshot = (
            BaseValuationSnapshot.query.filter(
                BaseValuationSnapshot.symbol == symbol,
                BaseValuationSnapshot.method_key == method_key,
                BaseValuationSnapshot.as_of_date <= as_of,
            )
            .order_by(BaseValuationSnapshot.as_of_date.desc())
            .first()
        )
        if snapshot is None:
            return BaseValuation(
                symbol=symbol,
                method_key=None,
                value=None,
                reason=f"No base valuation for {symbol} under {method_key} on or before {as_of.isoformat()}.",
            )

        degradations = self._degradations(snapshot, as_of)
        if snapshot.value is None:
            return BaseValuation(
                symbol=symbol,
                method_key=None,
                value=None,
                as_of_date=snapshot.as_of_date,
                reason=f"Base valuation for {symbol} under {method_key} is missing key inputs.",
                degradations=degradations,
            )
        return BaseValuation(
            symbol=symbol,
            method_key=method_key,
            value=float(snapshot.value),
            as_of_date=snapshot.as_of_date,
            degradations=degradations,
        )

    def _degradations(self, snapshot: BaseValuationSnapshot, as_of: date) -> List[Degradation]:
        out: List[Degradation] = []
        for key in snapshot.missing_inputs or []:
            out.append(Degradation("missing_input", f"Missing key input: {key}"))
        quality = snapshot.quality if snapshot.quality in SNAPSHOT_QUALITIES else "fresh"
        if quality == "missing" and not snapshot.missing_inputs:
            out.append(Degradation("missing_input", "Base valuation inputs are missing"))
        elif quality == "stale":
            out.append(Degradation("stale_input", "Base valuation inputs are stale"))
        elif quality == "fallback":
            out.append(Degradation("fallback_input", "Base valuation uses fallback inputs"))
        age_days = (as_of - snapshot.as_of_date).days
        if age_days > self.stale_after_days:
            out.append(
                Degradation(
                    "stale_input",
                    f"Base valuation is {age_days} days older than {as_of.isoformat()}",
                )
            )
        return out


def current_base_valuation_provider() -> BaseValuationProvider:
    provider = current_app.extensions.get("base_valuation_provider")
    return provider if provider is not None else SnapshotBaseValuationProvider()
