"""SQLAlchemy engine and session handling for the schema tables.

Only two backends are accepted: PostgreSQL through psycopg 3 (documents
stored as JSONB) and SQLite (documents stored as JSON text).
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from sqlalchemy import Engine, create_engine, text
from sqlalchemy.exc import ArgumentError, NoSuchModuleError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from orgschema.exceptions import ConnectionError

logger = logging.getLogger(__name__)

BACKENDS = ("postgresql", "sqlite")


def resolve_url(url: str) -> str:
    """Pin bare ``postgresql://`` URLs to psycopg 3; other URLs pass through."""
    scheme, sep, rest = url.partition("://")
    if sep and scheme == "postgresql":
        return f"postgresql+psycopg://{rest}"
    return url


def is_memory_url(url: str) -> bool:
    if not url.startswith("sqlite"):
        return False
    return ":memory:" in url or url.rstrip("/") in ("sqlite:", "sqlite")


def engine_options(url: str, echo: bool = False) -> dict[str, Any]:
    """Keyword arguments for ``create_engine`` given the target URL."""
    options: dict[str, Any] = {"echo": echo, "pool_pre_ping": True}
    if url.startswith("sqlite"):
        options["connect_args"] = {"check_same_thread": False}
        if is_memory_url(url):
            # A memory database lives as long as its single connection
            options["poolclass"] = StaticPool
    return options


class DatabaseConnection:
    """Lazily built engine plus a session factory for the repository.

    Example:
        >>> db = DatabaseConnection("sqlite:///orgschema.db")
        >>> with db.transaction() as session:
        ...     session.add(record)
    """

    def __init__(self, url: str, echo: bool = False) -> None:
        self._url = resolve_url(str(url))
        self._echo = echo
        self._engine: Engine | None = None
        self._sessions: sessionmaker[Session] | None = None

    @property
    def url(self) -> str:
        return self._url

    def _build_engine(self) -> Engine:
        try:
            engine = create_engine(self._url, **engine_options(self._url, self._echo))
        except (ArgumentError, NoSuchModuleError, ImportError) as e:
            raise ConnectionError(f"Cannot open schema database '{self._url}': {e}") from e
        if engine.dialect.name not in BACKENDS:
            engine.dispose()
            raise ConnectionError(
                f"Unsupported database backend '{engine.dialect.name}'. "
                f"Use one of: {', '.join(BACKENDS)}"
            )
        if engine.dialect.name == "sqlite" and not is_memory_url(self._url):
            try:
                with engine.begin() as conn:
                    conn.execute(text("PRAGMA journal_mode = WAL"))
            except SQLAlchemyError as e:
                engine.dispose()
                raise ConnectionError(f"Cannot open schema database '{self._url}': {e}") from e
        logger.debug(f"Opened {engine.dialect.name} engine for schema storage")
        return engine

    @property
    def engine(self) -> Engine:
        """The SQLAlchemy engine, created on first access.

        Raises:
            ConnectionError: If the URL is invalid or names an unsupported backend
        """
        if self._engine is None:
            self._engine = self._build_engine()
        return self._engine

    @property
    def backend(self) -> str:
        return self.engine.dialect.name

    @property
    def is_postgresql(self) -> bool:
        return self.backend == "postgresql"

    def get_session(self) -> Session:
        if self._sessions is None:
            self._sessions = sessionmaker(bind=self.engine, expire_on_commit=False)
        return self._sessions()

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """Session that commits on success and rolls back on any error."""
        session = self.get_session()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def ping(self) -> bool:
        """Round-trip a trivial query.

        Raises:
            ConnectionError: If the database cannot be reached
        """
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            raise ConnectionError(f"Schema database is unreachable: {e}") from e
        return True

    def close(self) -> None:
        """Dispose of the engine; the next access builds a new one."""
        if self._engine is not None:
            self._engine.dispose()
        self._engine = None
        self._sessions = None

    def __enter__(self) -> DatabaseConnection:
        self.ping()
        return self

    def __exit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        self.close()
