"""Database engine and session utilities."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

Base = declarative_base()


def _is_sqlite_memory(database_url: str) -> bool:
    url = make_url(database_url)
    return url.get_backend_name() == "sqlite" and url.database in (None, "", ":memory:")


def _enable_sqlite_foreign_keys(dbapi_connection, _connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Store:
    """Owns the engine and session factory for one database.

    A single instance is built at process start and handed to every
    repository, so tests can run each case against an isolated database.
    """

    def __init__(self, database_url: str, *, echo: bool = False) -> None:
        engine_options: dict = {"future": True, "echo": echo}
        if _is_sqlite_memory(database_url):
            # One shared connection, otherwise every worker thread sees its own empty database.
            engine_options.update(poolclass=StaticPool, connect_args={"check_same_thread": False})
        self._engine = create_engine(database_url, **engine_options)
        if self._engine.dialect.name == "sqlite":
            event.listen(self._engine, "connect", _enable_sqlite_foreign_keys)
        self._session_factory = sessionmaker(
            bind=self._engine, autoflush=False, autocommit=False, expire_on_commit=False, future=True
        )

    @property
    def engine(self) -> Engine:
        return self._engine

    @contextmanager
    def session_scope(self) -> Generator[Session, None, None]:
        """Provide a transactional scope for DB operations."""

        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def create_all(self) -> None:
        # Import for side effects: registers the mapped tables on Base.metadata.
        from approval_broker import models  # noqa: F401

        Base.metadata.create_all(self._engine)

    def drop_all(self) -> None:
        from approval_broker import models  # noqa: F401

        Base.metadata.drop_all(self._engine)

    def ping(self) -> None:
        """Run a trivial query; raises when the database is unreachable."""

        with self.session_scope() as session:
            session.execute(text("SELECT 1"))

    def dispose(self) -> None:
        self._engine.dispose()
