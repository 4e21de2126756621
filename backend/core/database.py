from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from typing import Iterable, Iterator

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from core.config import settings


logger = logging.getLogger(__name__)


class DatabaseUnavailableError(RuntimeError):
    """The store could not be reached after retrying; generation results were not persisted."""


# Backoff between connection attempts; len()+1 attempts in total.
_BACKOFF_SECONDS: tuple[float, ...] = (0.2, 0.5, 1.0)

# Lower-cased fragments of driver messages that mean "try again later".
_TRANSIENT_MARKERS: tuple[str, ...] = (
    "could not translate host name",
    "name or service not known",
    "connection refused",
    "connection reset",
    "server closed the connection unexpectedly",
    "database is locked",
    "timeout",
    "timed out",
)

_POSTGRES_PREFIXES: tuple[str, ...] = ("postgresql://", "postgres://")


def _exception_chain(exc: BaseException) -> Iterable[BaseException]:
    seen: set[int] = set()
    cur: BaseException | None = exc
    while cur is not None and id(cur) not in seen:
        seen.add(id(cur))
        yield cur
        cur = cur.__cause__ or cur.__context__


def is_transient_db_connectivity_error(exc: BaseException) -> bool:
    """True for connectivity and writer-lock failures anywhere in the exception chain.

    Constraint violations and SQL errors are never transient.
    """

    text_ = " ".join(str(e).lower() for e in _exception_chain(exc))
    return any(marker in text_ for marker in _TRANSIENT_MARKERS)


def normalize_database_url(url: str) -> str:
    url = url.strip()
    for prefix in _POSTGRES_PREFIXES:
        if url.startswith(prefix):
            return "postgresql+psycopg2://" + url[len(prefix):]
    return url


def get_engine(url: str | None = None) -> Engine:
    url = normalize_database_url(url or settings.database_url)
    parsed = make_url(url)

    if parsed.get_backend_name() == "sqlite":
        # The generation service may commit from worker threads.
        connect_args: dict[str, object] = {"check_same_thread": False}
        if parsed.database in (None, "", ":memory:"):
            # One shared connection, otherwise every session sees an empty database.
            return create_engine(url, connect_args=connect_args, poolclass=StaticPool)
        return create_engine(url, connect_args=connect_args)

    return create_engine(url, pool_pre_ping=True, connect_args={"connect_timeout": 3})


ENGINE = get_engine()
SessionLocal = sessionmaker(bind=ENGINE, autoflush=False, autocommit=False)


def init_db(engine: Engine | None = None) -> None:
    """Create the timetable tables if they do not exist."""
    from models.base import Base
    import models  # noqa: F401

    Base.metadata.create_all(bind=engine or ENGINE)


def table_exists(db: Session, table_name: str) -> bool:
    return inspect(db.get_bind()).has_table(table_name)


def _open_pinged(factory: sessionmaker) -> Session:
    """Open a session that has answered SELECT 1, retrying transient failures."""

    failure: OperationalError | None = None
    for attempt, delay in enumerate((*_BACKOFF_SECONDS, None), start=1):
        db = factory()
        try:
            db.execute(text("SELECT 1"))
            return db
        except OperationalError as exc:
            db.close()
            failure = exc
            if delay is None or not is_transient_db_connectivity_error(exc):
                break
            logger.warning("Database ping failed (attempt %d), retrying in %.1fs", attempt, delay)
            time.sleep(delay)

    raise DatabaseUnavailableError("Database temporarily unavailable") from failure


@contextmanager
def session_scope(factory: sessionmaker | None = None) -> Iterator[Session]:
    """Yield a live session; commit on success, roll back on error."""

    db = _open_pinged(factory or SessionLocal)
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
