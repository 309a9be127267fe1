"""Page layout commands."""

from typing import Annotated

import typer

from orgschema.cli.context import CLIContext
from orgschema.cli.output import OutputFormatter
from orgschema.core.types import LayoutType
from orgschema.exceptions import OrgSchemaError

app = typer.Typer(help="Validate and render page layouts")


@app.command("validate")
def layout_validate(
    ctx: typer.Context,
    api_name: Annotated[str, typer.Argument(help="Object API name")],
    layout_id: Annotated[
        str | None,
        typer.Option("--layout", "-l", help="Layout id (default: every layout of the object)"),
    ] = None,
) -> None:
    """Check layouts for dangling fields, column overflow and duplicates."""
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    try:
        store = cli_ctx.get_store()
        obj = store.get_object(api_name)
        layouts = [store.get_layout(api_name, layout_id)] if layout_id else obj.page_layouts
        found = False
        for layout in layouts:
            issues = store.validate_layout(api_name, layout.id)
            found = found or bool(issues)
            formatter.print_issues(layout.name, issues)
    except OrgSchemaError as e:
        formatter.print_error(e)
        raise typer.Exit(code=1)
    finally:
        cli_ctx.close()
    if found:
        raise typer.Exit(code=2)


@app.command("show")
def layout_show(
    ctx: typer.Context,
    api_name: Annotated[str, typer.Argument(help="Object API name")],
    layout_type: Annotated[
        LayoutType,
        typer.Option("--type", "-t", help="Layout type used to pick the effective layout"),
    ] = LayoutType.EDIT,
    layout_id: Annotated[
        str | None,
        typer.Option("--layout", "-l", help="Render this layout instead of the effective one"),
    ] = None,
    record_type_id: Annotated[
        str | None,
        typer.Option("--record-type", help="Use the layout assigned to this record type"),
    ] = None,
) -> None:
    """Render the tab / section / column tree of a layout."""
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    try:
        tree = cli_ctx.get_store().resolve_layout(api_name, layout_id, layout_type, record_type_id)
        formatter.print_render_tree(tree)
    except OrgSchemaError as e:
        formatter.print_error(e)
        raise typer.Exit(code=1)
    finally:
        cli_ctx.close()
