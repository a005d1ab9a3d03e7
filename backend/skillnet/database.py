"""Database engine and helpers.

This module configures the SQLModel/SQLAlchemy engine from
`settings.DATABASE_URL` (a local SQLite file by default) and provides
small helpers used by the application and tests.
"""

from sqlalchemy import event
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, create_engine, Session

from .config import settings

_MEMORY_URLS = ("sqlite://", "sqlite:///:memory:")


def _enable_foreign_keys(dbapi_conn, connection_record):
    """Turn on FK enforcement so ON DELETE CASCADE / SET NULL rules apply.

    SQLite ships with foreign keys off and the PRAGMA is per connection.
    """
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def make_engine(url: str):
    """Build an engine for `url`.

    In-memory SQLite URLs get a `StaticPool` so every session (and every
    TestClient worker thread) sees the same database.
    """
    kwargs = {}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if url in _MEMORY_URLS:
            kwargs["poolclass"] = StaticPool
    eng = create_engine(url, echo=False, **kwargs)
    if url.startswith("sqlite"):
        event.listen(eng, "connect", _enable_foreign_keys)
    return eng


engine = make_engine(settings.DATABASE_URL)


def create_db_and_tables(target=None):
    """Create database tables using SQLModel metadata.

    Intended for local development and tests; production deployments
    should manage the schema with a migration tool instead.
    """
    from . import models  # noqa: F401  registers the tables on the metadata

    SQLModel.metadata.create_all(target or engine)


def get_session():
    """Yield a database `Session` for FastAPI dependency injection.

    The generator yields a session and ensures it is closed when the
    request scope finishes.
    """
    with Session(engine) as session:
        yield session
