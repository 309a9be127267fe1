"""Object inspection commands."""

from typing import Annotated

import typer

from orgschema.cli.context import CLIContext
from orgschema.cli.output import OutputFormatter
from orgschema.exceptions import OrgSchemaError
from orgschema.schema.fields import field_type_category
from orgschema.schema.objects import all_fields, custom_fields

app = typer.Typer(help="Inspect objects and their fields")


@app.command("list")
def objects_list(ctx: typer.Context) -> None:
    """List all objects in the schema."""
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    try:
        store = cli_ctx.get_store()
        objects = store.list_objects()
        formatter.print_table(
            f"Objects ({len(objects)} total, schema v{store.version})",
            [
                {
                    "apiName": obj.api_name,
                    "label": obj.label,
                    "fields": len(custom_fields(obj)),
                    "layouts": len(obj.page_layouts),
                    "rules": len(obj.validation_rules),
                }
                for obj in objects
            ],
            ["apiName", "label", "fields", "layouts", "rules"],
        )
    except OrgSchemaError as e:
        formatter.print_error(e)
        raise typer.Exit(code=1)
    finally:
        cli_ctx.close()


@app.command("describe")
def objects_describe(
    ctx: typer.Context,
    api_name: Annotated[str, typer.Argument(help="Object API name")],
) -> None:
    """Show detailed object information."""
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    try:
        formatter.print_object_info(cli_ctx.get_store().get_object(api_name))
    except OrgSchemaError as e:
        formatter.print_error(e)
        raise typer.Exit(code=1)
    finally:
        cli_ctx.close()


@app.command("fields")
def objects_fields(
    ctx: typer.Context,
    api_name: Annotated[str, typer.Argument(help="Object API name")],
    include_system: Annotated[
        bool,
        typer.Option("--system/--no-system", help="Include system fields"),
    ] = False,
) -> None:
    """List the fields of an object."""
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    try:
        obj = cli_ctx.get_store().get_object(api_name)
        fields = all_fields(obj) if include_system else custom_fields(obj)
        formatter.print_table(
            f"{api_name} fields ({len(fields)})",
            [
                {
                    "apiName": f.api_name,
                    "label": f.label,
                    "type": f.type,
                    "category": field_type_category(f.type),
                    "required": f.required,
                    "custom": f.custom,
                }
                for f in fields
            ],
            ["apiName", "label", "type", "category", "required", "custom"],
        )
    except OrgSchemaError as e:
        formatter.print_error(e)
        raise typer.Exit(code=1)
    finally:
        cli_ctx.close()
