"""CLI commands for the insight valuation engine.

Usage:
    flask insights refresh-targets        # Re-materialize every live insight
    flask insights reindex                # Rebuild the search index
    flask insights evaluate AAA --as-of 2025-01-15 --method builtin.stock.pe.relative.v1
    flask seed-demo                       # Load the demo catalogue and insight
"""

from __future__ import annotations

import json

import click
from flask.cli import AppGroup, with_appcontext

from insightvalue.core.errors import DomainError

insights_cli = AppGroup("insights", help="Insight valuation maintenance commands.")


@insights_cli.command("refresh-targets")
def refresh_targets_command():
    """Re-materialize the targets of every draft, active and archived insight."""
    from insightvalue.domains.insights.services import refresh_all_materializations

    stats = refresh_all_materializations()
    click.echo(f"  ✓ Refreshed {stats['insights']} insights | Targets: {stats['targets']}")


@insights_cli.command("reindex")
def reindex_command():
    """Rebuild the search index from the insight store."""
    from insightvalue.domains.insights.services import rebuild_search_index

    count = rebuild_search_index()
    click.echo(f"  ✓ Indexed {count} insights")


@insights_cli.command("evaluate")
@click.argument("symbol")
@click.option("--as-of", "as_of", default=None, help="Valuation date (YYYY-MM-DD); defaults to today")
@click.option("--method", "method_key", default=None, help="Valuation method key override")
def evaluate_command(symbol: str, as_of: str | None, method_key: str | None):
    """Print the adjusted valuation of SYMBOL as JSON."""
    from insightvalue.domains.insights.services import compute_valuation_adjustment

    try:
        result = compute_valuation_adjustment(symbol, as_of, method_key)
    except DomainError as exc:
        raise click.ClickException(exc.message) from exc
    click.echo(json.dumps(result.to_dict(), indent=2, ensure_ascii=False))


@click.command("seed-demo")
@with_appcontext
def seed_demo_command():
    """Load a small demo catalogue, watchlist, base valuations and one active insight."""
    from insightvalue.scripts.seed_demo import seed_demo

    insight = seed_demo()
    click.echo(f"Seeded demo insight {insight.id} ({insight.title})")


def register_commands(app):
    """Register CLI commands with the app."""
    app.cli.add_command(insights_cli)
    app.cli.add_command(seed_demo_command)
