import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from config import get_settings

logger = logging.getLogger(__name__)


def _create_engine(database_url: str, echo: bool = False) -> Engine:
    url = make_url(database_url)
    connect_args: dict[str, object] = {}
    if url.get_backend_name() == "sqlite":
        connect_args["check_same_thread"] = False
    eng = create_engine(url, connect_args=connect_args, echo=echo)
    if url.get_backend_name() == "sqlite":
        # WAL needs a file; in-memory databases keep the default journal.
        in_memory = url.database in (None, "", ":memory:")
        event.listen(
            eng,
            "connect",
            lambda conn, _record: _enable_sqlite_pragmas(conn, wal=not in_memory),
        )
    return eng


def _enable_sqlite_pragmas(dbapi_conn, *, wal: bool) -> None:
    cursor = dbapi_conn.cursor()
    if wal:
        cursor.execute("PRAGMA journal_mode=WAL;")
    cursor.execute("PRAGMA foreign_keys=ON;")
    cursor.execute("PRAGMA busy_timeout=5000;")
    cursor.close()


_settings = get_settings()
engine = _create_engine(_settings.database_url, echo=_settings.sql_echo)
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


class Base(DeclarativeBase):
    pass


@contextmanager
def session_scope() -> Iterator[Session]:
    """One unit of work: commit on success, roll back on any exception."""
    session: Session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception as exc:
        logger.debug(f"session_rollback: error={type(exc).__name__}")
        session.rollback()
        raise
    finally:
        session.close()
