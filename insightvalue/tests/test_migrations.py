import pytest
import sqlalchemy as sa

from insightvalue.extensions import db

pytestmark = pytest.mark.integration


def test_migrated_schema_matches_models(app):
    """Every model table and column exists in the migrated database."""
    inspector = sa.inspect(db.engine)
    tables = set(inspector.get_table_names())
    for table in db.metadata.sorted_tables:
        assert table.name in tables, f"missing table {table.name}"
        migrated = {col["name"] for col in inspector.get_columns(table.name)}
        declared = {col.name for col in table.columns}
        assert declared == migrated, f"column drift on {table.name}"


def test_named_indexes_and_constraints_exist(app):
    inspector = sa.inspect(db.engine)
    for table in db.metadata.sorted_tables:
        migrated_indexes = {ix["name"] for ix in inspector.get_indexes(table.name)}
        for index in table.indexes:
            assert index.name in migrated_indexes, f"missing index {index.name} on {table.name}"
        migrated_uniques = {uq["name"] for uq in inspector.get_unique_constraints(table.name)}
        for constraint in table.constraints:
            if isinstance(constraint, sa.UniqueConstraint) and constraint.name:
                assert constraint.name in migrated_uniques, f"missing constraint {constraint.name}"


def test_alembic_is_at_head(app, migrated_db):
    from alembic.runtime.migration import MigrationContext
    from alembic.script import ScriptDirectory

    heads = set(ScriptDirectory.from_config(migrated_db).get_heads())
    with db.engine.connect() as connection:
        current = set(MigrationContext.configure(connection).get_current_heads())
    assert current == heads
