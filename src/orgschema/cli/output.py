"""Output formatting for CLI commands."""

import json
from typing import Any

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.tree import Tree

from orgschema.core.types import LayoutIssue, ObjectDef, RenderTree
from orgschema.exceptions import OrgSchemaError
from orgschema.schema.objects import custom_fields

console = Console()


class OutputFormatter:
    """Formats output for terminal or JSON mode."""

    def __init__(self, json_mode: bool = False) -> None:
        """Initialize formatter.

        Args:
            json_mode: If True, output JSON instead of Rich formatting
        """
        self.json_mode = json_mode

    def _print_json(self, data: Any) -> None:
        print(json.dumps(data, default=str, indent=2))

    def print_table(
        self,
        title: str,
        data: list[dict[str, Any]],
        columns: list[str],
    ) -> None:
        """Print data as Rich table or JSON array."""
        if self.json_mode:
            self._print_json(data)
        else:
            table = Table(title=title, show_header=True, header_style="bold magenta")
            for col in columns:
                table.add_column(col)
            for row in data:
                table.add_row(*[str(row.get(col, "")) for col in columns])
            console.print(table)

    def print_object_info(self, obj: ObjectDef) -> None:
        """Print an object with its fields, record types, layouts and rules."""
        if self.json_mode:
            self._print_json(obj.to_wire())
            return
        console.print(f"\n[bold]Object:[/bold] {obj.api_name} ({obj.label})")
        if obj.description:
            console.print(f"Description: {obj.description}")
        console.print(f"Updated: {obj.updated_at}")

        fields = custom_fields(obj)
        if fields:
            console.print(f"\n[bold]Fields ({len(fields)}):[/bold]")
            fields_table = Table(show_header=True, header_style="bold cyan")
            fields_table.add_column("API Name")
            fields_table.add_column("Label")
            fields_table.add_column("Type")
            fields_table.add_column("Required")
            fields_table.add_column("Unique")
            for field in fields:
                fields_table.add_row(
                    field.api_name,
                    field.label,
                    str(field.type),
                    "✓" if field.required else "",
                    "✓" if field.unique else "",
                )
            console.print(fields_table)

        if obj.record_types:
            console.print(f"\n[bold]Record types ({len(obj.record_types)}):[/bold]")
            for rt in obj.record_types:
                marker = " [green](default)[/green]" if rt.default else ""
                console.print(f"  {rt.name} [dim]{rt.id}[/dim]{marker}")

        if obj.page_layouts:
            console.print(f"\n[bold]Page layouts ({len(obj.page_layouts)}):[/bold]")
            for layout in obj.page_layouts:
                console.print(f"  {layout.name} [dim]{layout.id}[/dim] ({layout.layout_type})")

        if obj.validation_rules:
            console.print(f"\n[bold]Validation rules ({len(obj.validation_rules)}):[/bold]")
            for rule in obj.validation_rules:
                state = "" if rule.active else " [yellow](inactive)[/yellow]"
                console.print(f"  {rule.name}{state}: [dim]{rule.condition}[/dim]")

    def print_render_tree(self, tree: RenderTree) -> None:
        if self.json_mode:
            self._print_json(tree.model_dump(mode="json"))
            return
        title = f"[bold]{tree.object_api_name}[/bold] / {tree.layout_name} ({tree.layout_type})"
        if tree.is_fallback:
            title += " [yellow](fallback)[/yellow]"
        root = Tree(title)
        for tab in tree.tabs:
            tab_node = root.add(f"[magenta]{tab.label}[/magenta]")
            for section in tab.sections:
                section_node = tab_node.add(f"[cyan]{section.label}[/cyan] [dim]{section.columns} col[/dim]")
                for column in section.column_fields:
                    for placed in column.fields:
                        section_node.add(
                            f"[{column.index}] {placed.field.label} [dim]{placed.api_name} {placed.field.type}[/dim]"
                        )
        console.print(root)

    def print_issues(self, layout_name: str, issues: list[LayoutIssue]) -> None:
        if self.json_mode:
            self._print_json([issue.model_dump() for issue in issues])
            return
        if not issues:
            console.print(f"✓ Layout '{layout_name}' is valid", style="green")
            return
        self.print_table(
            f"Layout '{layout_name}' issues ({len(issues)})",
            [issue.model_dump() for issue in issues],
            ["code", "section_id", "field_api_name", "message"],
        )

    def print_success(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Print success message with optional details."""
        if self.json_mode:
            output: dict[str, Any] = {"success": True, "message": message}
            if details:
                output.update(details)
            self._print_json(output)
        else:
            console.print(f"✓ {message}", style="green")
            if details:
                for key, value in details.items():
                    console.print(f"  {key}: {value}", style="dim")

    def print_warnings(self, warnings: list[str]) -> None:
        if self.json_mode or not warnings:
            return
        for warning in warnings:
            console.print(f"! {warning}", style="yellow")

    def print_error(self, error: Exception) -> None:
        """Print error message, with context for orgschema errors."""
        if self.json_mode:
            if isinstance(error, OrgSchemaError):
                self._print_json(error.to_dict())
            else:
                self._print_json({"error": str(error)})
        else:
            error_text = str(error)
            if isinstance(error, OrgSchemaError) and error.context:
                context_str = "\n".join(f"{k}: {v}" for k, v in error.context.items())
                error_text = f"{error_text}\n\n{context_str}"
            console.print(Panel(error_text, title="[red]Error[/red]", border_style="red"))

    def print_data(self, data: Any) -> None:
        """Print generic data (dict, list, etc.)."""
        if self.json_mode:
            self._print_json(data)
        else:
            console.print(data)
