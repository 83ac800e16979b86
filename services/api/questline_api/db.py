from __future__ import annotations

import contextlib
from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from questline_api.core.config import Settings


# Connection execution option marking a transaction that will write.
WRITE_INTENT = "questline_write_intent"


class Base(DeclarativeBase):
    pass


def _configure_sqlite(engine: Engine, *, busy_timeout_sec: float) -> None:
    # pysqlite defers BEGIN until the first DML statement, which breaks SAVEPOINT
    # scoping and lets reads escape the transaction. Take over BEGIN ourselves.
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record) -> None:  # noqa: ARG001
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute(f"PRAGMA busy_timeout = {int(busy_timeout_sec * 1000)}")
        cursor.close()

    # A writer takes the write lock at BEGIN and waits out busy_timeout behind
    # other writers. A deferred BEGIN that later upgrades from a read lock gets
    # SQLITE_BUSY immediately when another writer is active.
    @event.listens_for(engine, "begin")
    def _on_begin(conn: Connection) -> None:
        if conn.get_execution_options().get(WRITE_INTENT):
            conn.exec_driver_sql("BEGIN IMMEDIATE")
        else:
            conn.exec_driver_sql("BEGIN")


def make_engine(settings: Settings) -> Engine:
    out = create_engine(settings.db_url, future=True)
    if out.dialect.name == "sqlite":
        _configure_sqlite(out, busy_timeout_sec=float(settings.sqlite_busy_timeout_sec))
    return out


settings = Settings()
engine = make_engine(settings)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


def begin_write(session: Session) -> Connection:
    """
    Open the session's next transaction as a writer. Only the first connection
    of a transaction carries the intent; inside an already open transaction
    this returns that transaction's connection unchanged.
    """
    if session.in_transaction():
        return session.connection()
    return session.connection(execution_options={WRITE_INTENT: True})


@contextlib.contextmanager
def atomic(session: Session) -> Iterator[Session]:
    """Write transaction: commit on success, roll back on any exception and re-raise."""
    begin_write(session)
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
