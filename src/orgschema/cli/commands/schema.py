"""Schema versioning and import/export commands."""

from pathlib import Path
from typing import Annotated

import typer

from orgschema.cli.context import CLIContext
from orgschema.cli.output import OutputFormatter
from orgschema.cli.parsing import read_text_file
from orgschema.exceptions import OrgSchemaError

app = typer.Typer(help="Save, version, import and export the schema")


@app.command("export")
def schema_export(
    ctx: typer.Context,
    object_api_name: Annotated[
        str | None,
        typer.Option("--object", "-o", help="Export only this object"),
    ] = None,
    output: Annotated[
        str | None,
        typer.Option("--output", "-f", help="Write to file instead of stdout"),
    ] = None,
) -> None:
    """Export the schema (or one object) as JSON."""
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    try:
        text = cli_ctx.get_store().export_schema(object_api_name)
        if output:
            Path(output).write_text(text, encoding="utf-8")
            formatter.print_success(f"Exported schema to {output}", {"bytes": len(text)})
        else:
            typer.echo(text)
    except (OrgSchemaError, OSError) as e:
        formatter.print_error(e)
        raise typer.Exit(code=1)
    finally:
        cli_ctx.close()


@app.command("import")
def schema_import(
    ctx: typer.Context,
    path: Annotated[str, typer.Argument(help="Schema JSON file")],
    merge: Annotated[
        bool,
        typer.Option("--merge", help="Append objects instead of replacing the schema"),
    ] = False,
    changed_by: Annotated[
        str | None,
        typer.Option("--changed-by", help="Author recorded in the version history"),
    ] = None,
) -> None:
    """Import a schema file and save it as a new version.

    All identifiers in the file are regenerated.
    """
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    try:
        store = cli_ctx.get_store()
        imported = store.import_schema(read_text_file(path), merge=merge)
        saved = store.save(changed_by=changed_by, description=f"Import from {Path(path).name}")
        formatter.print_success(
            f"Imported {path}",
            {"objects": len(imported.objects), "version": saved.version, "merge": merge},
        )
    except (OrgSchemaError, OSError) as e:
        formatter.print_error(e)
        raise typer.Exit(code=1)
    finally:
        cli_ctx.close()


@app.command("save")
def schema_save(
    ctx: typer.Context,
    description: Annotated[
        str | None,
        typer.Option("--description", "-m", help="Change description"),
    ] = None,
    changed_by: Annotated[
        str | None,
        typer.Option("--changed-by", help="Author recorded in the version history"),
    ] = None,
) -> None:
    """Save the current schema as a new version."""
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    try:
        saved = cli_ctx.get_store().save(changed_by=changed_by, description=description)
        formatter.print_success(
            f"Saved schema version {saved.version}", {"version": saved.version, "objects": len(saved.objects)}
        )
    except OrgSchemaError as e:
        formatter.print_error(e)
        raise typer.Exit(code=1)
    finally:
        cli_ctx.close()


@app.command("history")
def schema_history(ctx: typer.Context) -> None:
    """List saved versions, most recent first."""
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    try:
        entries = cli_ctx.get_store().history_info()
        formatter.print_table(
            f"Schema history ({len(entries)} versions)",
            [entry.model_dump(mode="json") for entry in entries],
            ["version", "updated_at", "object_count", "changed_by", "description"],
        )
    except OrgSchemaError as e:
        formatter.print_error(e)
        raise typer.Exit(code=1)
    finally:
        cli_ctx.close()


@app.command("rollback")
def schema_rollback(
    ctx: typer.Context,
    version: Annotated[int, typer.Argument(help="Version to restore")],
    changed_by: Annotated[
        str | None,
        typer.Option("--changed-by", help="Author recorded in the version history"),
    ] = None,
) -> None:
    """Restore a saved version's content as a new version."""
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    try:
        restored = cli_ctx.get_store().rollback(version, changed_by=changed_by)
        formatter.print_success(
            f"Rolled back to version {version}",
            {"restored_from": version, "version": restored.version},
        )
    except OrgSchemaError as e:
        formatter.print_error(e)
        raise typer.Exit(code=1)
    finally:
        cli_ctx.close()


@app.command("reset")
def schema_reset(
    ctx: typer.Context,
    force: Annotated[
        bool,
        typer.Option("--force", help="Skip confirmation prompt"),
    ] = False,
) -> None:
    """Delete all saved versions and start over from the sample schema."""
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    if not force and not cli_ctx.json_output:
        confirm = typer.confirm("This deletes the schema and its whole history. Continue?")
        if not confirm:
            typer.echo("Cancelled.")
            raise typer.Exit(code=0)

    try:
        schema = cli_ctx.get_store().reset_schema()
        formatter.print_success(
            "Schema reset to sample data", {"version": schema.version, "objects": len(schema.objects)}
        )
    except OrgSchemaError as e:
        formatter.print_error(e)
        raise typer.Exit(code=1)
    finally:
        cli_ctx.close()
