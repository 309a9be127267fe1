"""CLI command tests for orgschema."""

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from orgschema.cli.main import app

runner = CliRunner()


@pytest.fixture
def temp_db(tmp_path: Path) -> str:
    """SQLite database file URL inside the test's temp dir."""
    return f"sqlite:///{tmp_path / 'orgschema.db'}"


def invoke_json(db: str, *args: str):
    result = runner.invoke(app, ["-d", db, "--json", *args])
    return result, (json.loads(result.stdout) if result.stdout.strip() else None)


class TestVersionCommand:
    def test_version_output(self) -> None:
        result = runner.invoke(app, ["version"])
        assert result.exit_code == 0
        assert "orgschema v" in result.stdout


class TestObjectsCommands:
    """Inspecting objects of the sample schema."""

    def test_list(self, temp_db: str) -> None:
        result, data = invoke_json(temp_db, "objects", "list")
        assert result.exit_code == 0, result.stdout
        assert [row["apiName"] for row in data] == ["Account", "Contact", "Property", "Deal"]
        assert data[3]["rules"] == 1

    def test_list_table(self, temp_db: str) -> None:
        result = runner.invoke(app, ["-d", temp_db, "objects", "list"])
        assert result.exit_code == 0
        assert "Deal" in result.stdout

    def test_describe(self, temp_db: str) -> None:
        result, data = invoke_json(temp_db, "objects", "describe", "Deal")
        assert result.exit_code == 0
        assert data["apiName"] == "Deal"
        assert data["validationRules"][0]["name"] == "Amount_Required_When_Won"

    def test_describe_unknown(self, temp_db: str) -> None:
        result, data = invoke_json(temp_db, "objects", "describe", "Invoice")
        assert result.exit_code == 1
        assert data["error"] == "ObjectNotFoundError"
        assert "Deal" in data["context"]["available_objects"]

    def test_fields(self, temp_db: str) -> None:
        result, data = invoke_json(temp_db, "objects", "fields", "Deal")
        assert result.exit_code == 0
        assert len(data) == 7
        stage = next(row for row in data if row["apiName"] == "Deal__stage")
        assert stage["category"] == "Selection"

    def test_fields_with_system(self, temp_db: str) -> None:
        result, data = invoke_json(temp_db, "objects", "fields", "Deal", "--system")
        assert result.exit_code == 0
        assert len(data) == 12
        assert data[0]["apiName"] == "Id"


class TestLayoutCommands:
    def test_validate(self, temp_db: str) -> None:
        result, data = invoke_json(temp_db, "layout", "validate", "Deal")
        assert result.exit_code == 0
        assert data == []

    def test_validate_table(self, temp_db: str) -> None:
        result = runner.invoke(app, ["-d", temp_db, "layout", "validate", "Deal"])
        assert result.exit_code == 0
        assert "is valid" in result.stdout

    def test_show(self, temp_db: str) -> None:
        result, data = invoke_json(temp_db, "layout", "show", "Deal")
        assert result.exit_code == 0
        assert data["layout_name"] == "Deal Layout"
        assert data["is_fallback"] is False
        section = data["tabs"][0]["sections"][0]
        assert section["columns"] == 2
        assert section["column_fields"][0]["fields"][0]["api_name"] == "Deal__name"

    def test_show_tree(self, temp_db: str) -> None:
        result = runner.invoke(app, ["-d", temp_db, "layout", "show", "Deal"])
        assert result.exit_code == 0
        assert "Information" in result.stdout

    def test_show_unknown_layout(self, temp_db: str) -> None:
        result, data = invoke_json(temp_db, "layout", "show", "Deal", "--layout", "nope")
        assert result.exit_code == 1
        assert data["error"] == "LayoutNotFoundError"


class TestRulesCommands:
    def test_violation(self, temp_db: str) -> None:
        result, data = invoke_json(temp_db, "rules", "check", "Deal", "--record", '{"Deal__stage": "Closed Won"}')
        assert result.exit_code == 2
        assert [v["rule_name"] for v in data] == ["Amount_Required_When_Won"]

    def test_passing_record(self, temp_db: str) -> None:
        record = '{"Deal__stage": "Closed Won", "Deal__amount": 1200}'
        result, data = invoke_json(temp_db, "rules", "check", "Deal", "-r", record)
        assert result.exit_code == 0
        assert data == []

    def test_record_from_file(self, temp_db: str, tmp_path: Path) -> None:
        path = tmp_path / "record.json"
        path.write_text('{"Deal__stage": "Closed Won"}', encoding="utf-8")
        result, data = invoke_json(temp_db, "rules", "check", "Deal", "-r", f"@{path}")
        assert result.exit_code == 2
        assert len(data) == 1

    def test_invalid_record(self, temp_db: str) -> None:
        result, data = invoke_json(temp_db, "rules", "check", "Deal", "-r", "[1, 2]")
        assert result.exit_code == 1
        assert "JSON object" in data["error"]


class TestSchemaCommands:
    """Saving, history, rollback, export and import."""

    def test_save_and_history(self, temp_db: str) -> None:
        result, data = invoke_json(temp_db, "schema", "save", "-m", "Initial", "--changed-by", "ana")
        assert result.exit_code == 0
        assert data["version"] == 1

        result, data = invoke_json(temp_db, "schema", "save")
        assert data["version"] == 2

        result, data = invoke_json(temp_db, "schema", "history")
        assert [row["version"] for row in data] == [2, 1]
        assert data[1]["description"] == "Initial"
        assert data[1]["changed_by"] == "ana"

    def test_rollback(self, temp_db: str) -> None:
        invoke_json(temp_db, "schema", "save")
        invoke_json(temp_db, "schema", "save")
        result, data = invoke_json(temp_db, "schema", "rollback", "1")
        assert result.exit_code == 0
        assert data["version"] == 3
        assert data["restored_from"] == 1

    def test_rollback_unknown(self, temp_db: str) -> None:
        invoke_json(temp_db, "schema", "save")
        result, data = invoke_json(temp_db, "schema", "rollback", "9")
        assert result.exit_code == 1
        assert data["error"] == "VersionNotFoundError"

    def test_export_stdout(self, temp_db: str) -> None:
        result = runner.invoke(app, ["-d", temp_db, "schema", "export", "--object", "Deal"])
        assert result.exit_code == 0
        assert json.loads(result.stdout)["apiName"] == "Deal"

    def test_export_import_round_trip(self, temp_db: str, tmp_path: Path) -> None:
        path = tmp_path / "schema.json"
        result, data = invoke_json(temp_db, "schema", "export", "-f", str(path))
        assert result.exit_code == 0
        assert path.exists()

        result, data = invoke_json(temp_db, "schema", "import", str(path))
        assert result.exit_code == 0, result.stdout
        assert data["objects"] == 4
        assert data["merge"] is False

        result, data = invoke_json(temp_db, "schema", "history")
        assert data[0]["description"] == "Import from schema.json"

    def test_import_missing_file(self, temp_db: str) -> None:
        result, data = invoke_json(temp_db, "schema", "import", "/no/such/file.json")
        assert result.exit_code == 1
        assert "File not found" in data["error"]

    def test_import_invalid(self, temp_db: str, tmp_path: Path) -> None:
        path = tmp_path / "bad.json"
        path.write_text('{"objects": []}', encoding="utf-8")
        result, data = invoke_json(temp_db, "schema", "import", str(path))
        assert result.exit_code == 1
        assert data["error"] == "InvalidSchemaFormatError"

    def test_merge_clash(self, temp_db: str, tmp_path: Path) -> None:
        path = tmp_path / "schema.json"
        invoke_json(temp_db, "schema", "export", "-f", str(path))
        result, data = invoke_json(temp_db, "schema", "import", str(path), "--merge")
        assert result.exit_code == 1
        assert data["error"] == "ObjectAlreadyExistsError"

    def test_reset(self, temp_db: str) -> None:
        invoke_json(temp_db, "schema", "save")
        invoke_json(temp_db, "schema", "save")
        result, data = invoke_json(temp_db, "schema", "reset", "--force")
        assert result.exit_code == 0
        assert data["version"] == 1
        assert data["objects"] == 4

    def test_reset_cancelled(self, temp_db: str) -> None:
        result = runner.invoke(app, ["-d", temp_db, "schema", "reset"], input="n\n")
        assert result.exit_code == 0
        assert "Cancelled" in result.stdout


class TestDatabaseOption:
    def test_env_var(self, temp_db: str, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("ORGSCHEMA_URL", temp_db)
        result = runner.invoke(app, ["--json", "schema", "save"])
        assert result.exit_code == 0
        assert json.loads(result.stdout)["version"] == 1
