"""Plugin system for extending the azmp generator.

Plugins add template types, Handlebars helpers and CLI commands. They
are listed in configuration and loaded in order at startup.

Plugin Structure:
    ./plugins/compute/
    └── __init__.py        # defines `Plugin` (class) or `plugin` (instance)

Example azmp.toml:
    [[plugins.load]]
    source = "./plugins/compute"
    options = { default_size = "Standard_B2s" }

Example plugin:
    from plugins import BasePlugin

    class Plugin(BasePlugin):
        metadata = {"id": "azmp-compute", "name": "Compute", "version": "1.0.0"}

        def get_templates(self):
            return [{"type": "vm", "name": "Virtual Machine",
                     "version": "1.0.0", "templatePath": "vm"}]
"""

from .base import BasePlugin, PluginContext
from .commands import CommandEntry, CommandRegistrar, PluginCommandApi
from .errors import (
    ConfigurationError,
    InitializationError,
    MetadataValidationError,
    ModuleResolutionError,
    PathTraversalError,
    PluginError,
    RegistrationConflictError,
)
from .helpers import HelperRegistrar
from .loader import PluginLoader
from .manifest import PluginDescriptor, PluginMetadata, TemplateMetadata, parse_descriptors
from .registry import TemplateRegistry
from .report import LoadResult, LoadStage, PluginLoadFailure, PluginLoadRecord
from .resolver import ModuleResolver, ResolvedLocation
from .validator import MetadataValidator

__all__ = [
    "BasePlugin",
    "CommandEntry",
    "CommandRegistrar",
    "ConfigurationError",
    "HelperRegistrar",
    "InitializationError",
    "LoadResult",
    "LoadStage",
    "MetadataValidationError",
    "MetadataValidator",
    "ModuleResolutionError",
    "ModuleResolver",
    "PathTraversalError",
    "PluginCommandApi",
    "PluginContext",
    "PluginDescriptor",
    "PluginError",
    "PluginLoadFailure",
    "PluginLoadRecord",
    "PluginLoader",
    "PluginMetadata",
    "RegistrationConflictError",
    "ResolvedLocation",
    "TemplateMetadata",
    "TemplateRegistry",
    "parse_descriptors",
]
