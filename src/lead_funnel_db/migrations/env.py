"""Alembic environment for the ``form_sessions`` schema.

Migrations run synchronously against ``get_sync_url()``; the URL in
alembic.ini is only a placeholder.  The funnel tables often share a
database with the ingestion side, so autogenerate only looks at tables
declared on ``Base.metadata`` and ignores everything else it finds.
"""

from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool

from lead_funnel_db.config import get_sync_url
from lead_funnel_db.models.base import Base

# Register tables on Base.metadata
import lead_funnel_db.models.session  # noqa: F401

config = context.config
config.set_main_option("sqlalchemy.url", get_sync_url())

if config.config_file_name is not None:
    fileConfig(config.config_file_name)


def _owned_tables_only(obj, name, type_, reflected, compare_to) -> bool:
    """Skip reflected tables this package does not declare."""
    if type_ == "table" and reflected and compare_to is None:
        return False
    return True


_CONFIGURE_OPTIONS = {
    "target_metadata": Base.metadata,
    "include_object": _owned_tables_only,
    "compare_type": True,
}


def run_offline() -> None:
    """Print the SQL instead of executing it (``alembic upgrade --sql``)."""
    context.configure(
        url=config.get_main_option("sqlalchemy.url"),
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **_CONFIGURE_OPTIONS,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_online() -> None:
    engine = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with engine.connect() as connection:
        context.configure(connection=connection, **_CONFIGURE_OPTIONS)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_offline()
else:
    run_online()
