from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from kits.models import Base


def _install_sqlite_hooks(engine: Engine) -> None:
    # pysqlite defers BEGIN until the first write, which lets a SAVEPOINT
    # run outside the outer transaction. Take over transaction control.
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL;")
        cursor.execute("PRAGMA foreign_keys=ON;")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def create_engine_from_url(database_url: str) -> Engine:
    # sqlite pragmas: WAL improves concurrency; foreign_keys for integrity
    if database_url.startswith("sqlite:"):
        engine = create_engine(
            database_url,
            future=True,
            connect_args={"check_same_thread": False},
        )
        _install_sqlite_hooks(engine)
        return engine

    return create_engine(database_url, future=True)


def init_db(engine: Engine) -> None:
    Base.metadata.create_all(engine)


def make_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


@contextmanager
def session_scope(session_factory: sessionmaker[Session]) -> Iterator[Session]:
    session = session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
