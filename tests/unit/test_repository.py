"""Tests for schema repositories (in-memory and SQL)."""

import pytest

from orgschema.core.types import OrgSchema, SchemaSettings
from orgschema.exceptions import RepositoryError, VersionNotFoundError
from orgschema.storage.repository import InMemorySchemaRepository, SqlSchemaRepository
from orgschema.storage.seed import create_sample_schema


def snapshot(version: int, object_count: int = 4) -> OrgSchema:
    sample = create_sample_schema()
    return sample.model_copy(update={"version": version, "objects": sample.objects[:object_count]})


class TestLoad:
    def test_first_load_is_seeded(self, repo):
        schema = repo.load()
        assert schema.version == 0
        assert [o.api_name for o in schema.objects] == ["Account", "Contact", "Property", "Deal"]

    def test_seed_not_persisted(self, repo):
        repo.load()
        assert repo.history() == []
        assert repo.latest_version() == 0

    def test_unseeded_is_empty(self):
        repo = InMemorySchemaRepository(seed_defaults=False)
        schema = repo.load()
        assert schema.version == 0
        assert schema.objects == []

    def test_load_returns_saved(self, repo):
        repo.save(snapshot(1, object_count=2))
        schema = repo.load()
        assert schema.version == 1
        assert len(schema.objects) == 2

    def test_invalid_history_limit(self):
        with pytest.raises(ValueError):
            InMemorySchemaRepository(history_limit=0)


class TestVersioning:
    """Saves append to the history; rollback creates a new version."""

    def test_history_most_recent_first(self, repo):
        for version in (1, 2, 3):
            repo.save(snapshot(version, object_count=version))
        assert [s.version for s in repo.history()] == [3, 2, 1]
        assert repo.latest_version() == 3

    def test_history_info(self, repo):
        repo.save(snapshot(1, object_count=2), changed_by="ana", description="Initial")
        [info] = repo.history_info()
        assert info.version == 1
        assert info.object_count == 2
        assert info.changed_by == "ana"
        assert info.description == "Initial"

    def test_get_version(self, repo):
        repo.save(snapshot(1, object_count=1))
        repo.save(snapshot(2, object_count=2))
        assert len(repo.get_version(1).objects) == 1

    def test_get_unknown_version(self, repo):
        repo.save(snapshot(1))
        with pytest.raises(VersionNotFoundError) as exc_info:
            repo.get_version(7)
        assert exc_info.value.available_versions == [1]

    def test_rollback_creates_new_version(self, repo):
        for version in (1, 2, 3):
            repo.save(snapshot(version, object_count=version))
        restored = repo.rollback(2, changed_by="ana")

        assert restored.version == 4
        assert len(restored.objects) == 2
        assert [s.version for s in repo.history()] == [4, 3, 2, 1]
        assert repo.load().version == 4
        assert len(repo.load().objects) == 2
        assert repo.history_info()[0].description == "Rollback to version 2"

    def test_rollback_keeps_original(self, repo):
        for version in (1, 2):
            repo.save(snapshot(version, object_count=version))
        repo.rollback(1)
        assert len(repo.get_version(1).objects) == 1
        assert len(repo.get_version(2).objects) == 2

    def test_rollback_unknown_version(self, repo):
        repo.save(snapshot(1))
        with pytest.raises(VersionNotFoundError):
            repo.rollback(5)
        assert repo.load().version == 1

    def test_history_is_bounded(self, repo):
        for version in range(1, 12):
            repo.save(snapshot(version, object_count=1))
        versions = [s.version for s in repo.history()]
        assert len(versions) == 10
        assert versions[0] == 11
        assert 1 not in versions
        with pytest.raises(VersionNotFoundError):
            repo.get_version(1)

    def test_custom_limit(self):
        repo = InMemorySchemaRepository(history_limit=2)
        for version in (1, 2, 3):
            repo.save(snapshot(version, object_count=1))
        assert [info.version for info in repo.history_info()] == [3, 2]

    def test_reset(self, repo):
        repo.save(snapshot(1))
        repo.reset()
        assert repo.history() == []
        assert repo.load().version == 0


class TestInMemoryRepository:
    def test_corrupt_document(self):
        repo = InMemorySchemaRepository()
        repo._current = {"version": "not-a-number", "objects": []}
        with pytest.raises(RepositoryError, match="corrupt"):
            repo.load()


class TestSqlRepository:
    def test_persists_across_instances(self, tmp_path):
        url = f"sqlite:///{tmp_path / 'schema.db'}"
        first = SqlSchemaRepository(url)
        first.save(snapshot(1, object_count=3), description="first")
        first.close()

        second = SqlSchemaRepository(url)
        schema = second.load()
        assert schema.version == 1
        assert len(schema.objects) == 3
        assert second.history_info()[0].description == "first"
        second.close()

    def test_document_keeps_wire_shape(self, sqlite_repo):
        sqlite_repo.save(snapshot(1, object_count=1))
        document = sqlite_repo._read_current()
        assert document["objects"][0]["apiName"] == "Account"
        assert "pageLayouts" in document["objects"][0]

    def test_from_settings(self):
        repo = SqlSchemaRepository.from_settings(
            SchemaSettings(database_url="sqlite:///:memory:", history_limit=3, seed_defaults=False)
        )
        assert repo.history_limit == 3
        assert repo.load().objects == []
        repo.close()
