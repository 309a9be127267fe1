"""SQLAlchemy ORM tables for persisted schema documents.

The whole schema is stored as one JSON document per row: one row for the
current schema and one row per retained history entry.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from orgschema.core.compat import utc_now

# JSONB on PostgreSQL, JSON on SQLite
JSONType = JSONB().with_variant(JSON(), "sqlite")

CURRENT_ROW_ID = 1


class Base(DeclarativeBase):
    """Base class for all orgschema tables."""

    pass


class CurrentSchemaRecord(Base):
    """Single-row table holding the committed current schema."""

    __tablename__ = "osc_current_schema"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, default=CURRENT_ROW_ID)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    document: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False)
    saved_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now)


class SchemaVersionRecord(Base):
    """One retained snapshot in the version history."""

    __tablename__ = "osc_schema_versions"

    version: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    document: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False)
    object_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    changed_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    saved_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, index=True)
