"""Rich console output utilities for the azmp CLI."""

from typing import Any

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from plugins.manifest import TemplateMetadata
from plugins.report import LoadResult, PluginLoadFailure

console = Console()
error_console = Console(stderr=True)


def print_success(message: str) -> None:
    """Print a success message."""
    console.print(f"[green]✓[/green] {message}")


def print_error(message: str) -> None:
    """Print an error message to stderr."""
    error_console.print(f"[red]✗[/red] {message}")


def print_warning(message: str) -> None:
    """Print a warning message."""
    console.print(f"[yellow]![/yellow] {message}")


def print_info(message: str) -> None:
    """Print an info message."""
    console.print(f"[blue]→[/blue] {message}")


def print_key_value(key: str, value: Any, key_style: str = "bold") -> None:
    console.print(f"[{key_style}]{key}:[/{key_style}] {value}")


def print_failure(failure: PluginLoadFailure) -> None:
    """One warning line for a plugin that did not load."""
    print_warning(escape(f"Plugin '{failure.label}' failed at {failure.stage.value}: {failure.message}"))


def print_templates(templates: list[TemplateMetadata], owners: dict[str, str]) -> None:
    """Print template types as a table."""
    if not templates:
        print_info("No templates found.")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("Type", style="cyan")
    table.add_column("Name")
    table.add_column("Version")
    table.add_column("Tags")
    table.add_column("Provided by")

    for t in templates:
        table.add_row(t.type, t.name, t.version, ", ".join(t.tags) or "-", owners.get(t.type, "-"))

    console.print(table)


def print_helpers(owners: dict[str, str]) -> None:
    """Print helper names and owners as a table."""
    table = Table(show_header=True, header_style="bold")
    table.add_column("Helper", style="cyan")
    table.add_column("Provided by")

    for name, owner in sorted(owners.items()):
        table.add_row(name, owner)

    console.print(table)


def print_load_result(result: LoadResult) -> None:
    """Print the plugin load report."""
    if not (result.loaded or result.failed or result.skipped):
        print_info("No plugins configured.")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("Plugin", style="cyan")
    table.add_column("Status")
    table.add_column("Source")
    table.add_column("Templates", justify="right")
    table.add_column("Helpers", justify="right")
    table.add_column("Commands", justify="right")

    for record in result.loaded:
        table.add_row(
            f"{record.plugin_id}@{record.version}",
            "[green]loaded[/green]",
            record.source,
            str(record.templates),
            str(record.helpers),
            str(record.commands),
        )

    for failure in result.failed:
        table.add_row(
            failure.label,
            f"[red]failed ({failure.stage.value})[/red]",
            failure.descriptor.source,
            "-",
            "-",
            "-",
        )

    for descriptor in result.skipped:
        table.add_row(descriptor.source, "[dim]disabled[/dim]", descriptor.source, "-", "-", "-")

    console.print(table)

    for failure in result.failed:
        console.print(f"  [red]{escape(failure.label)}[/red]: {escape(failure.message)}", highlight=False)

    console.print(f"\n{result.summary()}")
