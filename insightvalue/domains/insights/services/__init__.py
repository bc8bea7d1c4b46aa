from insightvalue.domains.insights.services.effect_service import (
    interpolate,
    interpolate_points,
    list_effect_channels,
    list_effect_points,
    remove_effect_channel,
    remove_effect_point,
    upsert_effect_channel,
    upsert_effect_point,
    upsert_effect_points,
)
from insightvalue.domains.insights.services.fact_service import create_fact, list_facts, remove_fact
from insightvalue.domains.insights.services.insight_service import (
    create_insight,
    get_insight,
    list_insights,
    remove_insight,
    update_insight,
)
from insightvalue.domains.insights.services.materialization_service import (
    clear_target_exclusion,
    exclude_target,
    list_materialized_targets,
    preview_materialized_targets,
    refresh_all_materializations,
)
from insightvalue.domains.insights.services.scope_service import (
    list_scope_rules,
    remove_scope_rule,
    resolve_scope,
    upsert_scope_rule,
)
from insightvalue.domains.insights.services.search_service import rebuild_search_index, search
from insightvalue.domains.insights.services.valuation_service import (
    compute_valuation_adjustment,
    compute_valuation_adjustments,
)

__all__ = [
    "create_insight",
    "get_insight",
    "update_insight",
    "remove_insight",
    "list_insights",
    "upsert_scope_rule",
    "remove_scope_rule",
    "list_scope_rules",
    "resolve_scope",
    "preview_materialized_targets",
    "exclude_target",
    "clear_target_exclusion",
    "refresh_all_materializations",
    "list_materialized_targets",
    "upsert_effect_channel",
    "remove_effect_channel",
    "upsert_effect_point",
    "upsert_effect_points",
    "remove_effect_point",
    "list_effect_channels",
    "list_effect_points",
    "interpolate",
    "interpolate_points",
    "compute_valuation_adjustment",
    "compute_valuation_adjustments",
    "search",
    "rebuild_search_index",
    "create_fact",
    "list_facts",
    "remove_fact",
]
