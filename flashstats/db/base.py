from sqlalchemy import Table
from sqlalchemy.dialects import postgresql, sqlite
from sqlmodel import SQLModel, create_engine

from flashstats.config.settings import get_settings

_engine = None


def get_engine():
    global _engine
    if _engine is None:
        database_url = get_settings().database_url
        connect_args = {"check_same_thread": False} if database_url.startswith("sqlite") else {}
        _engine = create_engine(database_url, echo=False, connect_args=connect_args)
    return _engine


def init_db() -> None:
    """Create all tables."""
    import flashstats.db.schemas  # noqa: F401  registers table metadata

    SQLModel.metadata.create_all(get_engine())


def upsert_statement(bind, table: Table):
    """Return an ``INSERT`` construct that supports ``on_conflict_do_*`` for the bound dialect."""
    dialect = bind.dialect.name
    if dialect == "sqlite":
        return sqlite.insert(table)
    if dialect == "postgresql":
        return postgresql.insert(table)
    raise NotImplementedError(f"Upserts are not supported for dialect {dialect!r}")
