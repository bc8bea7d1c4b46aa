"""insight engine initial schema

Revision ID: 0001_initial_insight_engine
Revises:
Create Date: 2026-01-12

Creates the instrument catalogue read models, the insight aggregate tables
(scope rules, effect channels and points, materialized targets), drafting
facts, the search document table and the event log.
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "0001_initial_insight_engine"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    ]


def upgrade():
    # ----- market catalogue -----
    op.create_table(
        "instrument_profile",
        sa.Column("symbol", sa.String(length=64), primary_key=True),
        sa.Column("name", sa.String(length=255)),
        sa.Column("kind", sa.String(length=32)),
        sa.Column("asset_class", sa.String(length=32)),
        sa.Column("market", sa.String(length=16)),
        sa.Column("tags", sa.JSON(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_instrument_profile_kind", "instrument_profile", ["kind"])
    op.create_index("ix_instrument_profile_asset_class", "instrument_profile", ["asset_class"])
    op.create_index("ix_instrument_profile_market", "instrument_profile", ["market"])

    op.create_table(
        "watchlist_item",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("symbol", sa.String(length=64), nullable=False, index=True),
        sa.Column("group_name", sa.String(length=128)),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("group_name", "symbol", name="uq_watchlist_item_group_symbol"),
    )

    op.create_table(
        "base_valuation_snapshot",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("symbol", sa.String(length=64), nullable=False, index=True),
        sa.Column("method_key", sa.String(length=128), nullable=False),
        sa.Column("as_of_date", sa.Date(), nullable=False),
        sa.Column("value", sa.Float()),
        sa.Column("quality", sa.String(length=16), nullable=False, server_default="fresh"),
        sa.Column("missing_inputs", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint(
            "symbol", "method_key", "as_of_date", name="uq_base_valuation_snapshot_key"
        ),
    )

    # ----- insight aggregate -----
    op.create_table(
        "insight",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("thesis", sa.Text(), nullable=False, server_default=""),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="draft"),
        sa.Column("valid_from", sa.Date()),
        sa.Column("valid_to", sa.Date()),
        sa.Column("tags", sa.JSON(), nullable=False),
        sa.Column("meta", sa.JSON(), nullable=False),
        *_timestamps(),
        sa.Column("deleted_at", sa.DateTime()),
    )
    op.create_index("ix_insight_status_updated_at", "insight", ["status", "updated_at"])
    op.create_index("ix_insight_valid_window", "insight", ["valid_from", "valid_to"])

    op.create_table(
        "insight_scope_rule",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "insight_id",
            sa.Integer(),
            sa.ForeignKey("insight.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("scope_type", sa.String(length=32), nullable=False),
        sa.Column("scope_key", sa.String(length=255), nullable=False),
        sa.Column("mode", sa.String(length=16), nullable=False, server_default="include"),
        sa.Column("enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.UniqueConstraint(
            "insight_id", "scope_type", "scope_key", "mode", name="uq_insight_scope_rule_identity"
        ),
    )
    op.create_index(
        "ix_insight_scope_rule_insight_enabled", "insight_scope_rule", ["insight_id", "enabled"]
    )

    op.create_table(
        "insight_effect_channel",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "insight_id",
            sa.Integer(),
            sa.ForeignKey("insight.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("method_key", sa.String(length=128), nullable=False),
        sa.Column("metric_key", sa.String(length=128), nullable=False),
        sa.Column("stage", sa.String(length=16), nullable=False),
        sa.Column("operator", sa.String(length=8), nullable=False),
        sa.Column("priority", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("meta", sa.JSON(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint(
            "insight_id",
            "method_key",
            "metric_key",
            "stage",
            name="uq_insight_effect_channel_identity",
        ),
    )
    op.create_index(
        "ix_insight_effect_channel_insight_stage",
        "insight_effect_channel",
        ["insight_id", "stage", "priority"],
    )

    op.create_table(
        "insight_effect_point",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "channel_id",
            sa.Integer(),
            sa.ForeignKey("insight_effect_channel.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("effect_date", sa.Date(), nullable=False),
        sa.Column("effect_value", sa.Float(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("channel_id", "effect_date", name="uq_insight_effect_point_channel_date"),
    )

    op.create_table(
        "insight_materialized_target",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "insight_id",
            sa.Integer(),
            sa.ForeignKey("insight.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("symbol", sa.String(length=64), nullable=False),
        sa.Column("sources", sa.JSON(), nullable=False),
        sa.Column("materialized_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("excluded", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("exclusion_reason", sa.Text()),
        sa.Column("excluded_at", sa.DateTime()),
        sa.UniqueConstraint("insight_id", "symbol", name="uq_insight_materialized_target_symbol"),
    )
    op.create_index(
        "ix_insight_materialized_target_symbol_insight",
        "insight_materialized_target",
        ["symbol", "insight_id"],
    )

    # ----- drafting, search, audit -----
    op.create_table(
        "insight_fact",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("content", sa.Text(), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_insight_fact_created_at", "insight_fact", ["created_at"])

    op.create_table(
        "insight_search_document",
        sa.Column(
            "insight_id",
            sa.Integer(),
            sa.ForeignKey("insight.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("thesis", sa.Text(), nullable=False, server_default=""),
        sa.Column("tags_text", sa.Text(), nullable=False, server_default=""),
        sa.Column("status", sa.String(length=16), nullable=False, index=True),
        sa.Column("indexed_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("insight_updated_at", sa.DateTime()),
    )

    op.create_table(
        "event_record",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("event_type", sa.String(length=128), nullable=False, index=True),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("insight_id", sa.Integer(), index=True),
        sa.Column("actor", sa.String(length=128)),
        sa.Column(
            "created_at", sa.DateTime(), nullable=False, server_default=sa.func.now(), index=True
        ),
    )
    op.create_index(
        "ix_event_record_insight_created_at", "event_record", ["insight_id", "created_at"]
    )


def downgrade():
    op.drop_index("ix_event_record_insight_created_at", table_name="event_record")
    op.drop_table("event_record")
    op.drop_table("insight_search_document")
    op.drop_index("ix_insight_fact_created_at", table_name="insight_fact")
    op.drop_table("insight_fact")
    op.drop_index(
        "ix_insight_materialized_target_symbol_insight", table_name="insight_materialized_target"
    )
    op.drop_table("insight_materialized_target")
    op.drop_table("insight_effect_point")
    op.drop_index("ix_insight_effect_channel_insight_stage", table_name="insight_effect_channel")
    op.drop_table("insight_effect_channel")
    op.drop_index("ix_insight_scope_rule_insight_enabled", table_name="insight_scope_rule")
    op.drop_table("insight_scope_rule")
    op.drop_index("ix_insight_valid_window", table_name="insight")
    op.drop_index("ix_insight_status_updated_at", table_name="insight")
    op.drop_table("insight")
    op.drop_table("base_valuation_snapshot")
    op.drop_table("watchlist_item")
    op.drop_index("ix_instrument_profile_market", table_name="instrument_profile")
    op.drop_index("ix_instrument_profile_asset_class", table_name="instrument_profile")
    op.drop_index("ix_instrument_profile_kind", table_name="instrument_profile")
    op.drop_table("instrument_profile")
