"""CLI context management for the schema store and shared state."""

import logging
import os
from dataclasses import dataclass, field

from orgschema.core.types import SchemaSettings
from orgschema.storage.repository import SqlSchemaRepository
from orgschema.store import SchemaStore

DEFAULT_DATABASE_URL = "sqlite:///./orgschema.db"


def get_database_url(url: str | None) -> str:
    """Resolve database URL from CLI arg, environment variable, or default.

    Priority:
    1. Explicit URL argument
    2. ORGSCHEMA_URL environment variable
    3. Default: sqlite:///./orgschema.db
    """
    if url:
        return url
    if env_url := os.getenv("ORGSCHEMA_URL"):
        return env_url
    return DEFAULT_DATABASE_URL


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


@dataclass
class CLIContext:
    """Shared context for CLI commands.

    Manages the repository connection lifecycle and output preferences.
    """

    database_url: str
    echo: bool
    json_output: bool
    _repository: SqlSchemaRepository | None = field(default=None, init=False, repr=False)
    _store: SchemaStore | None = field(default=None, init=False, repr=False)

    @property
    def settings(self) -> SchemaSettings:
        return SchemaSettings(database_url=self.database_url, echo=self.echo)

    def get_store(self) -> SchemaStore:
        """Get or create the schema store (lazy initialization)."""
        if self._store is None:
            self._repository = SqlSchemaRepository.from_settings(self.settings)
            self._store = SchemaStore(self._repository)
        return self._store

    def close(self) -> None:
        """Close the database connection if open."""
        if self._repository is not None:
            self._repository.close()
        self._repository = None
        self._store = None
