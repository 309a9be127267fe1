"""Schema persistence.

- InMemorySchemaRepository: process-local storage
- SqlSchemaRepository: SQLAlchemy tables on SQLite or PostgreSQL
"""

from orgschema.storage.connection import DatabaseConnection
from orgschema.storage.repository import (
    InMemorySchemaRepository,
    SchemaRepository,
    SqlSchemaRepository,
)

__all__ = [
    "DatabaseConnection",
    "InMemorySchemaRepository",
    "SchemaRepository",
    "SqlSchemaRepository",
]
