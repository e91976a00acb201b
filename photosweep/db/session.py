from __future__ import annotations

import threading

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import Session, sessionmaker

from photosweep.core.config import get_settings

_SQLITE_PRAGMAS = (
    "PRAGMA journal_mode=WAL;",
    "PRAGMA synchronous=FULL;",
    "PRAGMA busy_timeout=5000;",
)

_lock = threading.Lock()
_engine: Engine | None = None
_engine_url: str | None = None
_session_factory: sessionmaker[Session] | None = None


def _build_engine(url: str) -> Engine:
    is_sqlite = url.startswith("sqlite")
    # Scan persistence runs on worker threads.
    connect_args: dict[str, object] = {"check_same_thread": False} if is_sqlite else {}
    engine = create_engine(url, pool_pre_ping=True, connect_args=connect_args)
    if is_sqlite:

        @event.listens_for(engine, "connect")
        def _apply_pragmas(dbapi_connection, _connection_record) -> None:  # type: ignore[no-untyped-def]
            cursor = dbapi_connection.cursor()
            for pragma in _SQLITE_PRAGMAS:
                cursor.execute(pragma)
            cursor.close()

    return engine


def get_engine() -> Engine:
    """Engine for the configured database, rebuilt when the URL changes."""
    global _engine, _engine_url, _session_factory
    url = get_settings().effective_database_url
    with _lock:
        if _engine is None or _engine_url != url:
            if _engine is not None:
                _engine.dispose()
            _engine = _build_engine(url)
            _engine_url = url
            _session_factory = None
        return _engine


def get_session_factory() -> sessionmaker[Session]:
    global _session_factory
    engine = get_engine()
    with _lock:
        if _session_factory is None:
            _session_factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
        return _session_factory


def reset_engine() -> None:
    global _engine, _engine_url, _session_factory
    with _lock:
        if _engine is not None:
            _engine.dispose()
        _engine = None
        _engine_url = None
        _session_factory = None
