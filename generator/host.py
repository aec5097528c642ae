"""Host runtime: registries seeded with built-ins plus the plugin loader.

Example:
    >>> host = Host(load_config(), app)
    >>> result = host.load_plugins()
    >>> host.templates.types()
    ['storage', 'vm']
    >>> host.shutdown()
"""

import asyncio
import logging
from pathlib import Path

import typer

from plugins.base import PluginContext
from plugins.commands import CommandRegistrar
from plugins.helpers import HelperRegistrar
from plugins.loader import PluginLoader
from plugins.registry import TemplateRegistry
from plugins.report import LoadResult
from plugins.resolver import ModuleResolver
from scaffolding import BUILTIN_HELPERS, BUILTIN_TEMPLATES

from .config import Config

logger = logging.getLogger(__name__)


class Host:
    """Everything a CLI run needs, built from one Config."""

    def __init__(self, config: Config, app: typer.Typer | None = None, host_version: str = "0.0.0"):
        """Seed registries with built-ins.

        Args:
            config: Loaded configuration
            app: Typer app; its commands are reserved and plugin commands
                are added to it
            host_version: Version reported to plugins
        """
        self.config = config
        self.host_version = host_version

        self.templates = TemplateRegistry()
        self.templates.register_builtins(BUILTIN_TEMPLATES)

        self.helpers = HelperRegistrar()
        self.helpers.register_builtins(BUILTIN_HELPERS)

        self.commands = CommandRegistrar(app)
        if app is not None:
            self.commands.seed_from_typer(app)

        self.loader = PluginLoader(
            self.templates,
            self.helpers,
            self.commands,
            resolver=ModuleResolver(config.workspace_root),
            init_timeout=config.plugins.init_timeout,
        )
        self.result = LoadResult()

        # Shared by load_plugins() and shutdown(); plugin tasks live on it
        self._loop = asyncio.new_event_loop()

    @property
    def templates_dir(self) -> Path:
        return self._resolve(self.config.paths.templates_dir)

    @property
    def output_dir(self) -> Path:
        return self._resolve(self.config.paths.output_dir)

    def _resolve(self, value: str) -> Path:
        path = Path(value).expanduser()
        if not path.is_absolute():
            path = self.config.workspace_root / path
        return path

    def context(self) -> PluginContext:
        return PluginContext.create(
            host_version=self.host_version,
            templates_dir=str(self.templates_dir),
            output_dir=str(self.output_dir),
            config=self.config.to_dict(),
        )

    def load_plugins(self) -> LoadResult:
        """Load configured plugins.

        Raises:
            ConfigurationError: If the descriptor list is malformed
        """
        descriptors = self.config.descriptors()
        if not self.config.plugins.enabled:
            logger.info("Plugin loading disabled in configuration")
        self.result = self._loop.run_until_complete(self.loader.load_all(descriptors, self.context()))
        return self.result

    def shutdown(self) -> None:
        """Run cleanup on every loaded plugin, then close the event loop.

        Tasks plugins left running are cancelled. Safe to call twice.
        """
        if self._loop.is_closed():
            return
        try:
            self._loop.run_until_complete(self.loader.cleanup_all())
            self._cancel_pending()
            self._loop.run_until_complete(self._loop.shutdown_asyncgens())
        finally:
            self._loop.close()

    def _cancel_pending(self) -> None:
        pending = asyncio.all_tasks(self._loop)
        if not pending:
            return
        logger.debug("Cancelling %d task(s) left by plugins", len(pending))
        for task in pending:
            task.cancel()
        self._loop.run_until_complete(asyncio.wait(pending, timeout=self.loader.cleanup_timeout))
