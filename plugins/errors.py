"""Exceptions raised by the plugin subsystem.

Every per-plugin error is caught by the loader and reported in the
LoadResult. Only ConfigurationError is allowed to reach the host.
"""

from __future__ import annotations


class PluginError(Exception):
    """Base class for plugin subsystem errors."""

    pass


class ConfigurationError(PluginError):
    """The plugin descriptor list is malformed.

    Collects every problem found so the user can fix them in one pass.
    """

    def __init__(self, problems: list[str]):
        self.problems = list(problems)
        super().__init__(
            f"Invalid plugin configuration ({len(self.problems)} problem(s)): "
            + "; ".join(self.problems)
        )


class ModuleResolutionError(PluginError):
    """A plugin source could not be resolved or imported."""

    pass


class PathTraversalError(PluginError):
    """A relative plugin path escapes the workspace root."""

    def __init__(self, source: str, normalized: str, workspace_root: str):
        self.source = source
        self.normalized = normalized
        self.workspace_root = workspace_root
        super().__init__(
            f"Security violation: plugin path '{source}' attempts to escape "
            f"workspace root. Normalized path '{normalized}' is outside '{workspace_root}'"
        )


class MetadataValidationError(PluginError):
    """A module exposes no plugin, or its metadata is invalid."""

    pass


class InitializationError(PluginError):
    """Plugin initialize() raised or timed out."""

    def __init__(self, plugin_id: str, message: str, timed_out: bool = False):
        self.plugin_id = plugin_id
        self.timed_out = timed_out
        super().__init__(f"Plugin '{plugin_id}' initialization failed: {message}")


class RegistrationConflictError(PluginError):
    """A template type, helper name or command name is taken or invalid.

    Attributes:
        kind: "template", "helper" or "command".
        name: Offending name.
        plugin_id: Plugin that tried to register it.
        owner: Owner of the existing entry (None for invalid names).
    """

    def __init__(
        self,
        kind: str,
        name: str,
        plugin_id: str,
        owner: str | None = None,
        reason: str | None = None,
    ):
        self.kind = kind
        self.name = name
        self.plugin_id = plugin_id
        self.owner = owner
        if reason is None:
            reason = f"already registered by '{owner}'"
        super().__init__(
            f"{kind.capitalize()} '{name}' from plugin '{plugin_id}' rejected: {reason}"
        )
