"""SQLModel database engine and session management."""

import logging

from sqlalchemy import inspect
from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, create_engine, Session

from hedgedesk.config import settings

logger = logging.getLogger(__name__)


def build_engine(database_url: str) -> Engine:
    # SQLite needs check_same_thread=False; PostgreSQL does not
    connect_args = {}
    if database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    return create_engine(database_url, echo=False, connect_args=connect_args)


engine = build_engine(settings.database_url)


# (table, column, DDL type) added after the first release
_ADDED_COLUMNS = [
    ("hedge_order", "batch_index", "INTEGER"),
    ("operator", "last_login_at", "TIMESTAMP"),
]


def _run_migrations(target: Engine):
    """Add columns introduced after the first release."""
    from sqlalchemy import text

    inspector = inspect(target)
    tables = inspector.get_table_names()
    for table, column, ddl_type in _ADDED_COLUMNS:
        if table not in tables:
            continue
        columns = {col["name"] for col in inspector.get_columns(table)}
        if column in columns:
            continue
        logger.info(f"Migrating: adding {table}.{column}")
        with target.connect() as conn:
            conn.execute(text(f"ALTER TABLE {table} ADD COLUMN {column} {ddl_type}"))
            conn.commit()


def create_db_and_tables(target: Engine | None = None):
    """Create all tables. Called on startup."""
    import hedgedesk.models  # noqa: F401  registers tables on the metadata

    target = target or engine
    SQLModel.metadata.create_all(target)
    _run_migrations(target)


def get_session() -> Session:
    """Dependency that yields a database session."""
    with Session(engine) as session:
        yield session
