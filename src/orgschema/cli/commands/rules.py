"""Validation rule commands."""

from typing import Annotated

import typer

from orgschema.cli.context import CLIContext
from orgschema.cli.output import OutputFormatter
from orgschema.cli.parsing import parse_record
from orgschema.exceptions import OrgSchemaError

app = typer.Typer(help="Evaluate validation rules")


@app.command("check")
def rules_check(
    ctx: typer.Context,
    api_name: Annotated[str, typer.Argument(help="Object API name")],
    record: Annotated[
        str,
        typer.Option("--record", "-r", help="Record as JSON, or @file.json"),
    ],
) -> None:
    """Report the active validation rules a record would violate.

    Examples:

        orgschema rules check Deal --record '{"Deal__stage": "Closed Won"}'
    """
    cli_ctx: CLIContext = ctx.obj
    formatter = OutputFormatter(cli_ctx.json_output)

    try:
        values = parse_record(record)
        violations = cli_ctx.get_store().evaluate_validation_rules(api_name, values)
        if cli_ctx.json_output:
            formatter.print_data([v.model_dump() for v in violations])
        elif violations:
            formatter.print_table(
                f"{len(violations)} rule(s) would block the save",
                [v.model_dump() for v in violations],
                ["rule_name", "error_message"],
            )
        else:
            formatter.print_success("Record passes all active validation rules")
    except (OrgSchemaError, ValueError, OSError) as e:
        formatter.print_error(e)
        raise typer.Exit(code=1)
    finally:
        cli_ctx.close()
    if violations:
        raise typer.Exit(code=2)
