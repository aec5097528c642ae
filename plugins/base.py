"""Plugin contract for the azmp generator.

A plugin module exposes either a ``Plugin`` class/instance or a ``plugin``
attribute. Subclassing BasePlugin is optional; any object with a
``metadata`` attribute and some of the hooks below is accepted.

Example:
    >>> class ComputePlugin(BasePlugin):
    ...     metadata = {"id": "azmp-compute", "name": "Compute", "version": "1.0.0"}
    ...
    ...     def get_templates(self):
    ...         return [{"type": "vm", "name": "Virtual Machine",
    ...                  "version": "1.0.0", "templatePath": "vm"}]
    ...
    ...     def get_handlebars_helpers(self):
    ...         return {"vmSize": lambda tier: "Standard_B2s"}
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Mapping

if TYPE_CHECKING:
    from .commands import PluginCommandApi
    from .manifest import TemplateMetadata

HelperFunction = Callable[..., Any]


def freeze(value: Any) -> Any:
    """Return a read-only deep copy of nested dicts and lists."""
    if isinstance(value, Mapping):
        return MappingProxyType({k: freeze(v) for k, v in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(freeze(v) for v in value)
    if isinstance(value, set):
        return frozenset(freeze(v) for v in value)
    return value


@dataclass(frozen=True)
class PluginContext:
    """Read-only bundle handed to ``initialize``.

    Attributes:
        host_version: Version of the azmp generator.
        templates_dir: Root directory of template sources.
        output_dir: Directory generated files are written to.
        config: Frozen host configuration. This plugin's options are
            under ``plugin_options``.
        logger: Logger named after the plugin.
    """

    host_version: str
    templates_dir: str
    output_dir: str
    config: Mapping[str, Any]
    logger: logging.Logger

    @classmethod
    def create(
        cls,
        host_version: str,
        templates_dir: str,
        output_dir: str,
        config: Mapping[str, Any] | None = None,
        logger: logging.Logger | None = None,
    ) -> "PluginContext":
        """Build a context, freezing the given configuration."""
        return cls(
            host_version=host_version,
            templates_dir=str(templates_dir),
            output_dir=str(output_dir),
            config=freeze(dict(config or {})),
            logger=logger or logging.getLogger("azmp.plugins"),
        )

    def for_plugin(self, plugin_id: str, options: Mapping[str, Any]) -> "PluginContext":
        """Derive the context a single plugin sees."""
        merged = {**self.config, "plugin_options": dict(options)}
        return PluginContext(
            host_version=self.host_version,
            templates_dir=self.templates_dir,
            output_dir=self.output_dir,
            config=freeze(merged),
            logger=logging.getLogger(f"azmp.plugins.{plugin_id}"),
        )


class BasePlugin:
    """Convenience base class with no-op defaults for every hook.

    Subclasses must set ``metadata`` as a class attribute so it can be
    validated before the class is instantiated.
    """

    metadata: Mapping[str, Any] | Any = None

    def initialize(self, context: PluginContext) -> None | Awaitable[None]:
        """Called once after loading. May be a coroutine function."""
        return None

    def get_templates(self) -> list["TemplateMetadata | Mapping[str, Any]"]:
        return []

    def get_handlebars_helpers(self) -> Mapping[str, HelperFunction]:
        return {}

    def register_commands(self, api: "PluginCommandApi") -> None:
        pass

    def cleanup(self) -> None | Awaitable[None]:
        """Called at shutdown. May be a coroutine function."""
        return None
