"""Instrument catalogue tables read by the scope resolver and base valuation provider.

These rows are owned by the market-data ingestion side; the engine only reads them.
"""

from __future__ import annotations

from datetime import date, datetime

from sqlalchemy.orm import Mapped, mapped_column

from insightvalue.core.utils.dates import utcnow
from insightvalue.extensions import db


class InstrumentProfile(db.Model):
    __tablename__ = "instrument_profile"
    __table_args__ = (
        db.Index("ix_instrument_profile_kind", "kind"),
        db.Index("ix_instrument_profile_asset_class", "asset_class"),
        db.Index("ix_instrument_profile_market", "market"),
    )

    symbol: Mapped[str] = mapped_column(db.String(64), primary_key=True)
    name: Mapped[str | None] = mapped_column(db.String(255))
    kind: Mapped[str | None] = mapped_column(db.String(32))
    asset_class: Mapped[str | None] = mapped_column(db.String(32))
    market: Mapped[str | None] = mapped_column(db.String(16))
    tags: Mapped[list] = mapped_column(db.JSON, nullable=False, default=list)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow)


class WatchlistItem(db.Model):
    __tablename__ = "watchlist_item"
    __table_args__ = (
        db.UniqueConstraint("group_name", "symbol", name="uq_watchlist_item_group_symbol"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    symbol: Mapped[str] = mapped_column(db.String(64), nullable=False, index=True)
    group_name: Mapped[str | None] = mapped_column(db.String(128))
    created_at: Mapped[datetime] = mapped_column(default=utcnow)


class BaseValuationSnapshot(db.Model):
    """Pre-adjustment valuation produced by a valuation method for one date."""

    __tablename__ = "base_valuation_snapshot"
    __table_args__ = (
        db.UniqueConstraint(
            "symbol", "method_key", "as_of_date", name="uq_base_valuation_snapshot_key"
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    symbol: Mapped[str] = mapped_column(db.String(64), nullable=False, index=True)
    method_key: Mapped[str] = mapped_column(db.String(128), nullable=False)
    as_of_date: Mapped[date] = mapped_column(db.Date, nullable=False)
    value: Mapped[float | None] = mapped_column(db.Float)
    quality: Mapped[str] = mapped_column(db.String(16), nullable=False, default="fresh")
    missing_inputs: Mapped[list] = mapped_column(db.JSON, nullable=False, default=list)
    created_at: Mapped[datetime] = mapped_column(default=utcnow)


__all__ = ["InstrumentProfile", "WatchlistItem", "BaseValuationSnapshot"]
