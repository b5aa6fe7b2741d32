from typing import Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker
from sqlalchemy.pool import StaticPool

from config import get_settings


def create_db_engine(
    database_url: str, timeout_secs: Optional[float] = None
) -> Engine:
    if timeout_secs is None:
        timeout_secs = get_settings().db_timeout_secs
    connect_args: dict[str, object] = {}
    engine_args: dict[str, object] = {}
    if database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
        connect_args["timeout"] = timeout_secs
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            # one shared connection, otherwise every checkout sees an empty db
            engine_args["poolclass"] = StaticPool
    else:
        engine_args["pool_timeout"] = timeout_secs
        engine_args["pool_pre_ping"] = True
        if database_url.startswith("postgresql"):
            statement_ms = int(timeout_secs * 1000)
            connect_args["options"] = f"-c statement_timeout={statement_ms}"

    eng = create_engine(database_url, connect_args=connect_args, **engine_args)
    if database_url.startswith("sqlite"):
        event.listen(eng, "connect", _enable_sqlite_pragmas)
    return eng


def _unicode_lower(value):
    return value.lower() if isinstance(value, str) else value


def _enable_sqlite_pragmas(dbapi_conn, _record):
    # built-in lower() only folds ASCII; filters compare against str.lower()
    dbapi_conn.create_function("lower", 1, _unicode_lower, deterministic=True)
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL;")
    cursor.execute("PRAGMA foreign_keys=ON;")
    cursor.close()


def make_sessionmaker(bind: Engine) -> sessionmaker:
    return sessionmaker(bind=bind, autoflush=False, expire_on_commit=False)


engine = create_db_engine(get_settings().database_url)
SessionLocal = make_sessionmaker(engine)


class Base(DeclarativeBase):
    pass
