from __future__ import annotations

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from backend.app.core.config import DATABASE_URL, SQLALCHEMY_ECHO, SQLITE_BUSY_TIMEOUT_S


def make_engine(url: str, **kwargs) -> Engine:
    """
    Engine partagé (pool de connexions).

    SQLite (dev / tests) :
    - check_same_thread désactivé (threadpool FastAPI)
    - busy timeout : les écrivains concurrents attendent au lieu d'échouer
    - PRAGMA foreign_keys=ON (désactivé par défaut sous SQLite)
    """
    if url.startswith("sqlite"):
        connect_args = kwargs.pop("connect_args", {})
        connect_args.setdefault("check_same_thread", False)
        connect_args.setdefault("timeout", SQLITE_BUSY_TIMEOUT_S)
        eng = create_engine(url, connect_args=connect_args, echo=SQLALCHEMY_ECHO, **kwargs)

        @event.listens_for(eng, "connect")
        def _sqlite_pragmas(dbapi_conn, _record):
            cur = dbapi_conn.cursor()
            cur.execute("PRAGMA foreign_keys=ON")
            cur.close()

        return eng

    return create_engine(url, pool_pre_ping=True, echo=SQLALCHEMY_ECHO, **kwargs)


def make_session_factory(bind: Engine) -> sessionmaker:
    # expire_on_commit=False : les reçus restent lisibles après commit
    return sessionmaker(bind=bind, autoflush=False, expire_on_commit=False)


engine = make_engine(DATABASE_URL)
SessionLocal = make_session_factory(engine)
