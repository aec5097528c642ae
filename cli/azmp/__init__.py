"""azmp CLI.

Command-line interface for the Azure Marketplace managed application
generator.
"""

__version__ = "0.1.0"

from cli.azmp.cli import create_app, main

__all__ = ["__version__", "create_app", "main"]
