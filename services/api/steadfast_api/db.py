from __future__ import annotations

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from steadfast_api.core.config import Settings


class Base(DeclarativeBase):
    pass


def _install_sqlite_hooks(engine: Engine) -> None:
    # pysqlite opens transactions lazily and never around SAVEPOINT; take over
    # BEGIN so get-or-create and unlock inserts can nest savepoints.
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, _record) -> None:  # noqa: ANN001
        dbapi_connection.isolation_level = None
        cur = dbapi_connection.cursor()
        cur.execute("PRAGMA busy_timeout = 10000")
        cur.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn) -> None:  # noqa: ANN001
        conn.exec_driver_sql("BEGIN")


def build_engine(db_url: str) -> Engine:
    if db_url.startswith("sqlite"):
        eng = create_engine(db_url, future=True)
        _install_sqlite_hooks(eng)
        return eng
    return create_engine(db_url, future=True, pool_pre_ping=True)


settings = Settings()
engine = build_engine(settings.db_url)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
