"""Engine and session factory for the webmail database."""
from __future__ import annotations

import contextlib
from typing import Any, Dict, Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session as OrmSession, sessionmaker
from sqlalchemy.pool import StaticPool

from ..utils.logging import get_logger
from .models import Base

LOGGER = get_logger("webmail.storage")


def _is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


def _is_memory(url: str) -> bool:
    return url in ("sqlite://", "sqlite:///:memory:") or "mode=memory" in url


def _enable_foreign_keys(dbapi_connection: Any, _record: Any) -> None:
    cursor = dbapi_connection.cursor()
    try:
        cursor.execute("PRAGMA foreign_keys=ON")
    finally:
        cursor.close()


class Database:
    """Own the SQLAlchemy engine and hand out transactional sessions.

    What:
      Build an engine for ``url`` and expose :meth:`session`, a context manager
      yielding an ORM session that commits on success and rolls back on error.

    Why:
      The API serves requests from a thread pool; every unit of work needs its
      own session, and SQLite needs a few connection options to cope with that.

    How:
      SQLite connections disable the same-thread check and enable foreign keys
      on connect. In-memory databases use a :class:`StaticPool` so all threads
      share the single connection that holds the data.
    """

    def __init__(self, url: str, *, echo: bool = False):
        self.url = url
        kwargs: Dict[str, Any] = {"echo": echo}
        if _is_sqlite(url):
            kwargs["connect_args"] = {"check_same_thread": False}
            if _is_memory(url):
                kwargs["poolclass"] = StaticPool
        self.engine: Engine = create_engine(url, **kwargs)
        if _is_sqlite(url):
            event.listen(self.engine, "connect", _enable_foreign_keys)
        self._factory = sessionmaker(bind=self.engine, expire_on_commit=False)

    def create_all(self) -> None:
        Base.metadata.create_all(self.engine)
        LOGGER.info("database_ready", url=self.engine.url.render_as_string(hide_password=True))

    @contextlib.contextmanager
    def session(self) -> Iterator[OrmSession]:
        session = self._factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def dispose(self) -> None:
        self.engine.dispose()
