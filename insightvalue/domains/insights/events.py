"""Insights domain event catalog."""

from __future__ import annotations

INSIGHT_CREATED = "insights.insight.created"
INSIGHT_UPDATED = "insights.insight.updated"
INSIGHT_DELETED = "insights.insight.deleted"
SCOPE_RULE_UPSERTED = "insights.scope_rule.upserted"
SCOPE_RULE_REMOVED = "insights.scope_rule.removed"
EFFECT_CHANNEL_UPSERTED = "insights.effect_channel.upserted"
EFFECT_CHANNEL_REMOVED = "insights.effect_channel.removed"
EFFECT_POINT_UPSERTED = "insights.effect_point.upserted"
EFFECT_POINT_REMOVED = "insights.effect_point.removed"
TARGETS_MATERIALIZED = "insights.targets.materialized"
TARGET_EXCLUDED = "insights.target.excluded"
TARGET_UNEXCLUDED = "insights.target.unexcluded"
FACT_CREATED = "insights.fact.created"
FACT_REMOVED = "insights.fact.removed"

# Events that change what the search index holds for an insight.
SEARCH_RELEVANT_EVENTS = (INSIGHT_CREATED, INSIGHT_UPDATED, INSIGHT_DELETED)

EVENT_CATALOG = {
    INSIGHT_CREATED: {
        "version": "v1",
        "payload": {
            "insight_id": "int",
            "title": "str",
            "status": "str",
            "valid_from": "date?",
            "valid_to": "date?",
            "tags": "list[str]",
            "created_at": "datetime",
        },
    },
    INSIGHT_UPDATED: {
        "version": "v1",
        "payload": {
            "insight_id": "int",
            "fields": "dict",
            "updated_at": "datetime",
        },
    },
    INSIGHT_DELETED: {
        "version": "v1",
        "payload": {
            "insight_id": "int",
            "deleted_at": "datetime",
        },
    },
    SCOPE_RULE_UPSERTED: {
        "version": "v1",
        "payload": {
            "rule_id": "int",
            "insight_id": "int",
            "scope_type": "str",
            "scope_key": "str",
            "mode": "str",
            "enabled": "bool",
        },
    },
    SCOPE_RULE_REMOVED: {
        "version": "v1",
        "payload": {"rule_id": "int", "insight_id": "int"},
    },
    EFFECT_CHANNEL_UPSERTED: {
        "version": "v1",
        "payload": {
            "channel_id": "int",
            "insight_id": "int",
            "method_key": "str",
            "metric_key": "str",
            "stage": "str",
            "operator": "str",
            "priority": "int",
            "enabled": "bool",
        },
    },
    EFFECT_CHANNEL_REMOVED: {
        "version": "v1",
        "payload": {"channel_id": "int", "insight_id": "int"},
    },
    EFFECT_POINT_UPSERTED: {
        "version": "v1",
        "payload": {
            "point_id": "int",
            "channel_id": "int",
            "insight_id": "int",
            "effect_date": "date",
            "effect_value": "float",
        },
    },
    EFFECT_POINT_REMOVED: {
        "version": "v1",
        "payload": {"point_id": "int", "channel_id": "int", "insight_id": "int"},
    },
    TARGETS_MATERIALIZED: {
        "version": "v1",
        "payload": {
            "insight_id": "int",
            "total": "int",
            "rules_applied": "int",
            "excluded": "int",
            "materialized_at": "datetime",
        },
    },
    TARGET_EXCLUDED: {
        "version": "v1",
        "payload": {"insight_id": "int", "symbol": "str", "reason": "str?"},
    },
    TARGET_UNEXCLUDED: {
        "version": "v1",
        "payload": {"insight_id": "int", "symbol": "str"},
    },
    FACT_CREATED: {
        "version": "v1",
        "payload": {"fact_id": "int", "created_at": "datetime"},
    },
    FACT_REMOVED: {
        "version": "v1",
        "payload": {"fact_id": "int"},
    },
}
