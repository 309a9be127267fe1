"""orgschema CLI - Main entry point."""

from typing import Annotated

import typer

import orgschema
from orgschema.cli.context import CLIContext, configure_logging, get_database_url

app = typer.Typer(
    name="orgschema",
    help="orgschema CLI - versioned object, field and layout metadata for low-code CRMs",
    no_args_is_help=True,
)


@app.callback()
def main_callback(
    ctx: typer.Context,
    database: Annotated[
        str | None,
        typer.Option(
            "--database",
            "-d",
            envvar="ORGSCHEMA_URL",
            help="Database URL (PostgreSQL or SQLite)",
        ),
    ] = None,
    echo: Annotated[
        bool,
        typer.Option("--echo", "-e", help="Echo SQL statements to console"),
    ] = False,
    json_output: Annotated[
        bool,
        typer.Option("--json", "-j", help="Output as JSON (machine-readable)"),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable debug logging"),
    ] = False,
) -> None:
    """Initialize CLI context with global options."""
    configure_logging(verbose)
    ctx.obj = CLIContext(
        database_url=get_database_url(database),
        echo=echo,
        json_output=json_output,
    )


@app.command()
def version() -> None:
    """Show version information."""
    typer.echo(f"orgschema v{orgschema.__version__}")


# Register command groups
from orgschema.cli.commands import layout, objects, rules, schema  # noqa: E402

app.add_typer(objects.app, name="objects")
app.add_typer(layout.app, name="layout")
app.add_typer(schema.app, name="schema")
app.add_typer(rules.app, name="rules")


def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
