from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker
from sqlalchemy.pool import StaticPool

from config import get_settings


def _create_engine() -> Engine:
    settings = get_settings()
    connect_args: dict[str, object] = {}
    engine_kwargs: dict[str, object] = {}
    if settings.database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
        if ":memory:" in settings.database_url:
            # every session must see the same in-memory database
            engine_kwargs["poolclass"] = StaticPool
    from sqlalchemy import create_engine

    eng = create_engine(
        settings.database_url, connect_args=connect_args, **engine_kwargs
    )
    if settings.database_url.startswith("sqlite"):
        enable_sqlite_foreign_keys(eng)
    return eng


def enable_sqlite_foreign_keys(eng: Engine) -> None:
    event.listen(eng, "connect", _enable_sqlite_pragmas)


def _enable_sqlite_pragmas(dbapi_conn, _record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON;")
    cursor.close()


engine = _create_engine()
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


class Base(DeclarativeBase):
    pass


def init_db(eng: Engine = engine) -> None:
    import models  # noqa: F401

    Base.metadata.create_all(eng)
