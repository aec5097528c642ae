"""azmp CLI.

Azure Marketplace managed application generator. Plugins listed in
azmp.toml are loaded before the command line is parsed, so commands
they contribute are available like built-in ones.
"""

import sys
from pathlib import Path
from typing import Optional

import typer
from rich.markup import escape
from rich.table import Table

from cli.azmp.output import (
    console,
    print_error,
    print_failure,
    print_helpers,
    print_info,
    print_load_result,
    print_success,
    print_templates,
    print_warning,
)
from generator.config import Config, load_config, write_default_config
from generator.host import Host
from generator.log import setup_logging
from plugins.errors import ConfigurationError

# Exit status for configuration problems
EXIT_CONFIG_ERROR = 2


def create_app() -> typer.Typer:
    """Build the Typer app with the built-in commands only."""
    app = typer.Typer(
        name="azmp",
        help="Azure Marketplace managed application generator",
        no_args_is_help=True,
    )

    config_app = typer.Typer(name="config", help="Manage configuration settings.")
    app.add_typer(config_app, name="config")

    app.command("templates")(list_templates)
    app.command("helpers")(list_helpers)
    app.command("plugins")(plugins_report)
    app.command("version")(version)
    config_app.command("show")(config_show)
    config_app.command("init")(config_init)

    return app


def _host(ctx: typer.Context) -> Host:
    host = ctx.obj
    if not isinstance(host, Host):
        print_error("CLI started without a host runtime")
        raise typer.Exit(1)
    return host


def list_templates(
    ctx: typer.Context,
    tag: Optional[str] = typer.Option(None, "--tag", "-t", help="Only templates with this tag"),
    search: Optional[str] = typer.Option(None, "--search", "-s", help="Keyword in name, description or type"),
) -> None:
    """List available template types.

    Examples:
        azmp templates
        azmp templates --tag storage
        azmp templates --search machine
    """
    registry = _host(ctx).templates

    if tag and search:
        templates = [t for t in registry.by_tag(tag) if t in registry.search(search)]
    elif tag:
        templates = registry.by_tag(tag)
    elif search:
        templates = registry.search(search)
    else:
        templates = registry.list_all()

    owners = {t.type: registry.owner(t.type) or "-" for t in templates}
    print_templates(templates, owners)


def list_helpers(ctx: typer.Context) -> None:
    """List Handlebars helpers available to templates."""
    registrar = _host(ctx).helpers
    print_helpers({name: registrar.owner(name) or "-" for name in registrar.names()})


def plugins_report(ctx: typer.Context) -> None:
    """Show which plugins loaded, failed or were skipped."""
    print_load_result(_host(ctx).result)


def version() -> None:
    """Show azmp version."""
    from cli.azmp import __version__

    console.print(f"azmp v{__version__}")


def config_show(
    ctx: typer.Context,
    section: Optional[str] = typer.Argument(None, help="Config section to show (paths, logging, plugins)"),
) -> None:
    """Show current configuration.

    Examples:
        azmp config show
        azmp config show paths
    """
    config = _host(ctx).config

    if config.source:
        print_info(f"Config file: {config.source}")
    else:
        print_warning("No azmp.toml found (using defaults)")

    sections = config.to_dict()
    sections["plugins"]["load"] = [d.source for d in config.descriptors()]

    if section:
        section_lower = section.lower()
        if section_lower not in sections:
            print_error(f"Unknown section: {section}")
            print_info(f"Available: {', '.join(sections)}")
            raise typer.Exit(1)
        sections = {section_lower: sections[section_lower]}

    for name, values in sections.items():
        console.print(f"\n[bold]\\[{name}][/bold]")
        table = Table(show_header=False)
        table.add_column("Key", style="cyan")
        table.add_column("Value")
        for key, value in values.items():
            table.add_row(key, str(value))
        console.print(table)


def config_init(
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite existing azmp.toml"),
) -> None:
    """Create a default azmp.toml file.

    Example:
        azmp config init
        azmp config init --force
    """
    try:
        config_path = write_default_config(Path.cwd(), force=force)
    except FileExistsError as e:
        print_warning(f"Config file already exists: {e}")
        print_info("Use --force to overwrite")
        raise typer.Exit(1)

    print_success(f"Created config file: {config_path}")


def start_host(app: typer.Typer, config: Config) -> Host:
    """Seed registries, load plugins and report failures.

    Raises:
        ConfigurationError: If the plugin list is malformed
    """
    from cli.azmp import __version__

    host = Host(config, app, host_version=__version__)
    try:
        result = host.load_plugins()
    except ConfigurationError:
        host.shutdown()
        raise
    for failure in result.failed:
        # Security violations are already logged as errors by the loader
        if not failure.is_security_violation:
            print_failure(failure)
    return host


def _report_config_error(error: ConfigurationError) -> None:
    print_error("Invalid configuration:")
    for problem in error.problems:
        print_error(f"  {escape(problem)}")


def main(args: Optional[list[str]] = None) -> None:
    """Main entry point for the CLI."""
    try:
        config = load_config()
    except ConfigurationError as e:
        _report_config_error(e)
        sys.exit(EXIT_CONFIG_ERROR)

    setup_logging(config.logging.level)
    app = create_app()

    try:
        host = start_host(app, config)
    except ConfigurationError as e:
        _report_config_error(e)
        sys.exit(EXIT_CONFIG_ERROR)

    try:
        app(args=args, obj=host, prog_name="azmp")
    finally:
        host.shutdown()


if __name__ == "__main__":
    main()
