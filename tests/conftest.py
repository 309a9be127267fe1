"""Shared test fixtures for orgschema."""

import os
from collections.abc import Callable, Generator
from datetime import datetime, timedelta

import pytest

from orgschema.core.compat import UTC
from orgschema.storage.repository import InMemorySchemaRepository, SqlSchemaRepository
from orgschema.store import SchemaStore

EPOCH = datetime(2024, 1, 1, tzinfo=UTC)


def _psycopg_available() -> bool:
    """Check if psycopg is installed."""
    try:
        import psycopg  # noqa: F401

        return True
    except ImportError:
        return False


requires_postgresql = pytest.mark.skipif(
    not _psycopg_available(),
    reason="psycopg not installed (install with: pip install orgschema[postgresql])",
)


class Counter:
    """Deterministic id factory: id1, id2, ..."""

    def __init__(self, prefix: str = "id") -> None:
        self.prefix = prefix
        self.count = 0

    def __call__(self) -> str:
        self.count += 1
        return f"{self.prefix}{self.count}"


class TickingClock:
    """Clock that advances one second per call."""

    def __init__(self, start: datetime = EPOCH) -> None:
        self.now = start

    def __call__(self) -> datetime:
        self.now = self.now + timedelta(seconds=1)
        return self.now


@pytest.fixture
def id_factory() -> Callable[[], str]:
    return Counter()


@pytest.fixture
def clock() -> Callable[[], datetime]:
    return TickingClock()


@pytest.fixture
def memory_repo(clock: Callable[[], datetime]) -> InMemorySchemaRepository:
    """In-memory repository seeded with the sample schema on first load."""
    return InMemorySchemaRepository(clock=clock)


@pytest.fixture
def sqlite_repo(clock: Callable[[], datetime]) -> Generator[SqlSchemaRepository, None, None]:
    """SQLite in-memory repository."""
    repo = SqlSchemaRepository("sqlite:///:memory:", clock=clock)
    yield repo
    repo.close()


@pytest.fixture(params=["memory", "sqlite"])
def repo(request: pytest.FixtureRequest, clock: Callable[[], datetime]) -> Generator:
    """Each repository implementation in turn."""
    if request.param == "memory":
        yield InMemorySchemaRepository(clock=clock)
    else:
        sql_repo = SqlSchemaRepository("sqlite:///:memory:", clock=clock)
        yield sql_repo
        sql_repo.close()


@pytest.fixture
def store(
    memory_repo: InMemorySchemaRepository,
    id_factory: Callable[[], str],
    clock: Callable[[], datetime],
) -> SchemaStore:
    """Store over the seeded sample schema (Account, Contact, Property, Deal)."""
    return SchemaStore(memory_repo, id_factory=id_factory, clock=clock)


@pytest.fixture
def empty_store(id_factory: Callable[[], str], clock: Callable[[], datetime]) -> SchemaStore:
    """Store with no objects at all."""
    return SchemaStore(
        InMemorySchemaRepository(seed_defaults=False, clock=clock), id_factory=id_factory, clock=clock
    )


@pytest.fixture
def postgresql_url() -> str:
    """PostgreSQL URL from TEST_DATABASE_URL; skips when unavailable."""
    url = os.environ.get("TEST_DATABASE_URL")
    if not url:
        pytest.skip("TEST_DATABASE_URL not set")
    if not _psycopg_available():
        pytest.skip("psycopg not installed")
    return url


__all__ = ["requires_postgresql", "Counter", "TickingClock", "EPOCH"]
