"""Insight domain models."""

from __future__ import annotations

from datetime import date, datetime

from sqlalchemy.orm import Mapped, mapped_column, relationship

from insightvalue.core.utils.dates import utcnow
from insightvalue.extensions import db


class Insight(db.Model):
    __tablename__ = "insight"
    __table_args__ = (
        db.Index("ix_insight_status_updated_at", "status", "updated_at"),
        db.Index("ix_insight_valid_window", "valid_from", "valid_to"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    title: Mapped[str] = mapped_column(db.String(255), nullable=False)
    thesis: Mapped[str] = mapped_column(db.Text, nullable=False, default="")
    status: Mapped[str] = mapped_column(db.String(16), nullable=False, default="draft")
    valid_from: Mapped[date | None] = mapped_column(db.Date)
    valid_to: Mapped[date | None] = mapped_column(db.Date)
    tags: Mapped[list] = mapped_column(db.JSON, nullable=False, default=list)
    meta: Mapped[dict] = mapped_column(db.JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow)
    deleted_at: Mapped[datetime | None] = mapped_column()

    scope_rules: Mapped[list["InsightScopeRule"]] = relationship(
        "InsightScopeRule",
        back_populates="insight",
        cascade="all, delete-orphan",
        order_by="InsightScopeRule.id",
    )
    effect_channels: Mapped[list["InsightEffectChannel"]] = relationship(
        "InsightEffectChannel",
        back_populates="insight",
        cascade="all, delete-orphan",
        order_by="InsightEffectChannel.id",
    )
    materialized_targets: Mapped[list["InsightMaterializedTarget"]] = relationship(
        "InsightMaterializedTarget",
        back_populates="insight",
        cascade="all, delete-orphan",
        order_by="InsightMaterializedTarget.symbol",
    )

    @property
    def is_deleted(self) -> bool:
        return self.status == "deleted"

    def covers(self, as_of: date) -> bool:
        """Inclusive validity window check; open ends always match."""
        if self.valid_from and as_of < self.valid_from:
            return False
        if self.valid_to and as_of > self.valid_to:
            return False
        return True


class InsightScopeRule(db.Model):
    __tablename__ = "insight_scope_rule"
    __table_args__ = (
        db.UniqueConstraint(
            "insight_id", "scope_type", "scope_key", "mode", name="uq_insight_scope_rule_identity"
        ),
        db.Index("ix_insight_scope_rule_insight_enabled", "insight_id", "enabled"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    insight_id: Mapped[int] = mapped_column(
        db.ForeignKey("insight.id", ondelete="CASCADE"), index=True, nullable=False
    )
    scope_type: Mapped[str] = mapped_column(db.String(32), nullable=False)
    scope_key: Mapped[str] = mapped_column(db.String(255), nullable=False)
    mode: Mapped[str] = mapped_column(db.String(16), nullable=False, default="include")
    enabled: Mapped[bool] = mapped_column(db.Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow)

    insight: Mapped[Insight] = relationship(Insight, back_populates="scope_rules")

    @property
    def source(self) -> str:
        return f"{self.scope_type}:{self.scope_key}"


class InsightEffectChannel(db.Model):
    __tablename__ = "insight_effect_channel"
    __table_args__ = (
        db.UniqueConstraint(
            "insight_id", "method_key", "metric_key", "stage", name="uq_insight_effect_channel_identity"
        ),
        db.Index("ix_insight_effect_channel_insight_stage", "insight_id", "stage", "priority"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    insight_id: Mapped[int] = mapped_column(
        db.ForeignKey("insight.id", ondelete="CASCADE"), index=True, nullable=False
    )
    method_key: Mapped[str] = mapped_column(db.String(128), nullable=False)
    metric_key: Mapped[str] = mapped_column(db.String(128), nullable=False)
    stage: Mapped[str] = mapped_column(db.String(16), nullable=False)
    operator: Mapped[str] = mapped_column(db.String(8), nullable=False)
    priority: Mapped[int] = mapped_column(db.Integer, nullable=False, default=0)
    enabled: Mapped[bool] = mapped_column(db.Boolean, nullable=False, default=True)
    meta: Mapped[dict] = mapped_column(db.JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow)

    insight: Mapped[Insight] = relationship(Insight, back_populates="effect_channels")
    points: Mapped[list["InsightEffectPoint"]] = relationship(
        "InsightEffectPoint",
        back_populates="channel",
        cascade="all, delete-orphan",
        order_by="InsightEffectPoint.effect_date",
    )


class InsightEffectPoint(db.Model):
    __tablename__ = "insight_effect_point"
    __table_args__ = (
        db.UniqueConstraint("channel_id", "effect_date", name="uq_insight_effect_point_channel_date"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    channel_id: Mapped[int] = mapped_column(
        db.ForeignKey("insight_effect_channel.id", ondelete="CASCADE"), index=True, nullable=False
    )
    effect_date: Mapped[date] = mapped_column(db.Date, nullable=False)
    effect_value: Mapped[float] = mapped_column(db.Float, nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow)

    channel: Mapped[InsightEffectChannel] = relationship(InsightEffectChannel, back_populates="points")


class InsightMaterializedTarget(db.Model):
    """Persisted scope membership, plus the analyst's per-symbol exclusion override."""

    __tablename__ = "insight_materialized_target"
    __table_args__ = (
        db.UniqueConstraint("insight_id", "symbol", name="uq_insight_materialized_target_symbol"),
        db.Index("ix_insight_materialized_target_symbol_insight", "symbol", "insight_id"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    insight_id: Mapped[int] = mapped_column(
        db.ForeignKey("insight.id", ondelete="CASCADE"), index=True, nullable=False
    )
    symbol: Mapped[str] = mapped_column(db.String(64), nullable=False)
    sources: Mapped[list] = mapped_column(db.JSON, nullable=False, default=list)
    materialized_at: Mapped[datetime] = mapped_column(default=utcnow)
    excluded: Mapped[bool] = mapped_column(db.Boolean, nullable=False, default=False)
    exclusion_reason: Mapped[str | None] = mapped_column(db.Text)
    excluded_at: Mapped[datetime | None] = mapped_column()

    insight: Mapped[Insight] = relationship(Insight, back_populates="materialized_targets")


class InsightFact(db.Model):
    """Free-text drafting note; never read by the evaluator."""

    __tablename__ = "insight_fact"
    __table_args__ = (db.Index("ix_insight_fact_created_at", "created_at"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    content: Mapped[str] = mapped_column(db.Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(default=utcnow, onupdate=utcnow)


class InsightSearchDocument(db.Model):
    """Denormalized search row, rebuilt from the insight on every change."""

    __tablename__ = "insight_search_document"

    insight_id: Mapped[int] = mapped_column(
        db.ForeignKey("insight.id", ondelete="CASCADE"), primary_key=True
    )
    title: Mapped[str] = mapped_column(db.String(255), nullable=False)
    thesis: Mapped[str] = mapped_column(db.Text, nullable=False, default="")
    tags_text: Mapped[str] = mapped_column(db.Text, nullable=False, default="")
    status: Mapped[str] = mapped_column(db.String(16), nullable=False, index=True)
    indexed_at: Mapped[datetime] = mapped_column(default=utcnow)
    insight_updated_at: Mapped[datetime | None] = mapped_column()


__all__ = [
    "Insight",
    "InsightScopeRule",
    "InsightEffectChannel",
    "InsightEffectPoint",
    "InsightMaterializedTarget",
    "InsightFact",
    "InsightSearchDocument",
]
