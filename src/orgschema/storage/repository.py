"""Schema repository: durable current schema plus bounded version history.

Two implementations share the versioning rules in :class:`SchemaRepository`:
- InMemorySchemaRepository: process-local, for tests and throwaway sessions
- SqlSchemaRepository: SQLAlchemy tables on SQLite or PostgreSQL

Documents are stored in the camelCase wire shape so a stored row and an
exported file are interchangeable.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import datetime
from typing import Any

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from orgschema.core.compat import utc_now
from orgschema.core.types import OrgSchema, SchemaSettings, SchemaVersionInfo
from orgschema.exceptions import RepositoryError, VersionNotFoundError
from orgschema.storage.connection import DatabaseConnection
from orgschema.storage.models import (
    CURRENT_ROW_ID,
    Base,
    CurrentSchemaRecord,
    SchemaVersionRecord,
)
from orgschema.storage.seed import create_sample_schema

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 10


def _parse_document(document: dict[str, Any]) -> OrgSchema:
    try:
        return OrgSchema.model_validate(document)
    except PydanticValidationError as e:
        raise RepositoryError(
            f"Stored schema document is corrupt: {e.error_count()} validation error(s)",
            {"errors": e.errors(include_url=False, include_context=False)},
        ) from e


class SchemaRepository(ABC):
    """Persistence contract for the schema store.

    ``save`` swaps the current schema and appends a history entry as one
    unit; a failed save leaves the previous current schema visible.
    """

    def __init__(
        self,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
        seed_defaults: bool = True,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        if history_limit < 1:
            raise ValueError("history_limit must be at least 1")
        self.history_limit = history_limit
        self.seed_defaults = seed_defaults
        self._clock = clock

    # === Backend hooks ===

    @abstractmethod
    def _read_current(self) -> dict[str, Any] | None:
        """Return the stored current document, or None when nothing is saved."""

    @abstractmethod
    def _read_history(self) -> list[tuple[dict[str, Any], SchemaVersionInfo]]:
        """Return retained history entries, most recent first."""

    @abstractmethod
    def _commit(self, document: dict[str, Any], info: SchemaVersionInfo) -> None:
        """Atomically write current + history entry and evict beyond the limit."""

    @abstractmethod
    def reset(self) -> None:
        """Delete the current schema and all history."""

    # === Operations ===

    def load(self) -> OrgSchema:
        """Return the persisted schema, or a seeded (unsaved) one on first run."""
        document = self._read_current()
        if document is not None:
            schema = _parse_document(document)
            logger.debug(f"Loaded schema version {schema.version} ({len(schema.objects)} objects)")
            return schema
        if self.seed_defaults:
            logger.debug("No persisted schema; synthesizing sample schema")
            return create_sample_schema(clock=self._clock)
        return OrgSchema(version=0, updated_at=self._clock())

    def save(
        self,
        schema: OrgSchema,
        changed_by: str | None = None,
        description: str | None = None,
    ) -> None:
        """Persist ``schema`` as current and append it to the history.

        Raises:
            RepositoryError: If the write fails; nothing is changed
        """
        info = SchemaVersionInfo(
            version=schema.version,
            updated_at=schema.updated_at,
            object_count=len(schema.objects),
            changed_by=changed_by or schema.created_by,
            description=description,
        )
        self._commit(schema.to_wire(), info)
        logger.info(f"Saved schema version {schema.version} ({len(schema.objects)} objects)")

    def history(self) -> list[OrgSchema]:
        """Retained snapshots, most recent first."""
        return [_parse_document(document) for document, _ in self._read_history()]

    def history_info(self) -> list[SchemaVersionInfo]:
        """Summaries of the retained snapshots, most recent first."""
        return [info for _, info in self._read_history()]

    def get_version(self, version: int) -> OrgSchema:
        """Look up a retained snapshot by its ``version``.

        Raises:
            VersionNotFoundError: If the version is not in the history
        """
        entries = self._read_history()
        for document, info in entries:
            if info.version == version:
                return _parse_document(document)
        raise VersionNotFoundError(version, [info.version for _, info in entries])

    def latest_version(self) -> int:
        """Highest version known to the repository (0 when empty)."""
        versions = [info.version for _, info in self._read_history()]
        current = self._read_current()
        if current is not None:
            versions.append(int(current.get("version", 0)))
        return max(versions, default=0)

    def rollback(self, version: int, changed_by: str | None = None) -> OrgSchema:
        """Restore a snapshot's content as a new, higher version.

        History is never rewritten: the restored copy gets
        ``latest_version() + 1`` and a fresh ``updatedAt`` and is saved.

        Raises:
            VersionNotFoundError: If the version is not in the history
        """
        target = self.get_version(version)
        restored = target.model_copy(
            update={"version": self.latest_version() + 1, "updated_at": self._clock()}
        )
        self.save(restored, changed_by=changed_by, description=f"Rollback to version {version}")
        logger.info(f"Rolled back to version {version} as version {restored.version}")
        return restored

    def _trim(self, entries: list[Any], version_of: Callable[[Any], int]) -> list[Any]:
        ordered = sorted(entries, key=version_of, reverse=True)
        return ordered[: self.history_limit]


class InMemorySchemaRepository(SchemaRepository):
    """Repository kept in process memory."""

    def __init__(
        self,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
        seed_defaults: bool = True,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        super().__init__(history_limit, seed_defaults, clock)
        self._lock = threading.Lock()
        self._current: dict[str, Any] | None = None
        self._history: list[tuple[dict[str, Any], SchemaVersionInfo]] = []

    def _read_current(self) -> dict[str, Any] | None:
        with self._lock:
            return self._current

    def _read_history(self) -> list[tuple[dict[str, Any], SchemaVersionInfo]]:
        with self._lock:
            return list(self._history)

    def _commit(self, document: dict[str, Any], info: SchemaVersionInfo) -> None:
        with self._lock:
            entries = [e for e in self._history if e[1].version != info.version]
            entries.append((document, info))
            history = self._trim(entries, lambda e: e[1].version)
            # Both references swap together under the lock
            self._current, self._history = document, history

    def reset(self) -> None:
        with self._lock:
            self._current = None
            self._history = []
        logger.info("Cleared stored schema and history")


class SqlSchemaRepository(SchemaRepository):
    """Repository backed by ``osc_current_schema`` and ``osc_schema_versions``."""

    def __init__(
        self,
        connection: DatabaseConnection | str,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
        seed_defaults: bool = True,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        super().__init__(history_limit, seed_defaults, clock)
        if isinstance(connection, str):
            connection = DatabaseConnection(connection)
        self._connection = connection
        self._initialized = False

    @classmethod
    def from_settings(cls, settings: SchemaSettings) -> SqlSchemaRepository:
        return cls(
            DatabaseConnection(settings.database_url, echo=settings.echo),
            history_limit=settings.history_limit,
            seed_defaults=settings.seed_defaults,
        )

    @property
    def connection(self) -> DatabaseConnection:
        return self._connection

    def initialize(self) -> None:
        """Create the tables if they don't exist."""
        if not self._initialized:
            try:
                Base.metadata.create_all(self._connection.engine)
            except SQLAlchemyError as e:
                raise RepositoryError(f"Failed to create schema tables: {e}") from e
            self._initialized = True

    def _read_current(self) -> dict[str, Any] | None:
        self.initialize()
        try:
            with self._connection.get_session() as session:
                record = session.get(CurrentSchemaRecord, CURRENT_ROW_ID)
                return dict(record.document) if record else None
        except SQLAlchemyError as e:
            raise RepositoryError(f"Failed to read current schema: {e}") from e

    def _read_history(self) -> list[tuple[dict[str, Any], SchemaVersionInfo]]:
        self.initialize()
        try:
            with self._connection.get_session() as session:
                rows = session.scalars(
                    select(SchemaVersionRecord).order_by(SchemaVersionRecord.version.desc())
                ).all()
                return [
                    (
                        dict(row.document),
                        SchemaVersionInfo(
                            version=row.version,
                            updated_at=row.saved_at,
                            object_count=row.object_count,
                            changed_by=row.changed_by,
                            description=row.description,
                        ),
                    )
                    for row in rows
                ]
        except SQLAlchemyError as e:
            raise RepositoryError(f"Failed to read schema history: {e}") from e

    def _commit(self, document: dict[str, Any], info: SchemaVersionInfo) -> None:
        self.initialize()
        try:
            with self._connection.transaction() as session:
                self._write_version(session, document, info)
        except SQLAlchemyError as e:
            raise RepositoryError(
                f"Failed to save schema version {info.version}: {e}",
                {"version": info.version},
            ) from e

    def _write_version(self, session: Session, document: dict[str, Any], info: SchemaVersionInfo) -> None:
        current = session.get(CurrentSchemaRecord, CURRENT_ROW_ID)
        if current is None:
            session.add(
                CurrentSchemaRecord(
                    id=CURRENT_ROW_ID,
                    version=info.version,
                    document=document,
                    saved_at=info.updated_at,
                )
            )
        else:
            current.version = info.version
            current.document = document
            current.saved_at = info.updated_at
        session.merge(
            SchemaVersionRecord(
                version=info.version,
                document=document,
                object_count=info.object_count,
                changed_by=info.changed_by,
                description=info.description,
                saved_at=info.updated_at,
            )
        )
        session.flush()
        kept = session.scalars(
            select(SchemaVersionRecord.version)
            .order_by(SchemaVersionRecord.version.desc())
            .limit(self.history_limit)
        ).all()
        session.execute(delete(SchemaVersionRecord).where(SchemaVersionRecord.version.not_in(kept)))

    def reset(self) -> None:
        self.initialize()
        try:
            with self._connection.transaction() as session:
                session.execute(delete(SchemaVersionRecord))
                session.execute(delete(CurrentSchemaRecord))
        except SQLAlchemyError as e:
            raise RepositoryError(f"Failed to reset schema storage: {e}") from e
        logger.info("Cleared stored schema and history")

    def close(self) -> None:
        self._connection.close()
