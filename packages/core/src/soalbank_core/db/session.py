from __future__ import annotations

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import Session, sessionmaker

from soalbank_core.db.base import Base


def make_engine(database_url: str, **kwargs) -> Engine:
    if database_url.startswith("sqlite"):
        engine = create_engine(database_url, **kwargs)
        _enable_sqlite_savepoints(engine)
        return engine
    return create_engine(database_url, pool_pre_ping=True, **kwargs)


def make_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False, future=True)


def create_tables(engine: Engine) -> None:
    # Importing registers every mapped table on Base.metadata.
    from soalbank_core.db import models  # noqa: F401

    Base.metadata.create_all(engine)


def _enable_sqlite_savepoints(engine: Engine) -> None:
    """
    pysqlite issues its own BEGIN lazily, which breaks SAVEPOINT. Take over transaction
    control and turn on foreign key enforcement (ON DELETE SET NULL / CASCADE rely on it).
    """

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record) -> None:
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn) -> None:
        conn.exec_driver_sql("BEGIN")
