from __future__ import annotations

import importlib

from alembic.migration import MigrationContext
from alembic.operations import Operations
from sqlalchemy import create_engine, inspect

from docgate.domain.models import Base


migration = importlib.import_module("docgate.persistence.alembic.versions.0001_rbac_documents")


def test_migration_matches_model_metadata() -> None:
    engine = create_engine("sqlite://")
    with engine.begin() as conn:
        with Operations.context(MigrationContext.configure(conn)):
            migration.upgrade()
        inspector = inspect(conn)
        assert set(inspector.get_table_names()) == set(Base.metadata.tables)
        for name, table in Base.metadata.tables.items():
            columns = {column["name"] for column in inspector.get_columns(name)}
            assert columns == set(table.columns.keys()), name

        with Operations.context(MigrationContext.configure(conn)):
            migration.downgrade()
        assert inspect(conn).get_table_names() == []
    engine.dispose()
