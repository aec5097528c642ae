"""Plugin loader with lifecycle management.

Loads plugins listed in configuration, one at a time and in order:

    resolve -> validate metadata -> initialize (time-bounded) -> register

A plugin that fails any stage is excluded and reported; it never stops
the remaining plugins from loading. Plugins that load are cleaned up at
shutdown through cleanup_all().
"""

from __future__ import annotations

import asyncio
import importlib
import importlib.util
import inspect
import logging
import sys
from collections.abc import Mapping, Sequence
from types import ModuleType
from typing import Any

from .base import PluginContext
from .commands import CommandRegistrar, PluginCommandApi
from .errors import (
    InitializationError,
    MetadataValidationError,
    ModuleResolutionError,
    PathTraversalError,
    PluginError,
)
from .helpers import HelperRegistrar
from .manifest import PluginDescriptor, parse_descriptors
from .registry import TemplateRegistry
from .report import LoadResult, LoadStage, PluginLoadFailure, PluginLoadRecord
from .resolver import LocationKind, ModuleResolver, ResolvedLocation
from .validator import MetadataValidator, PluginCandidate

logger = logging.getLogger(__name__)

# Keeps a hung plugin from blocking the CLI
INIT_TIMEOUT_SECONDS = 5.0
CLEANUP_TIMEOUT_SECONDS = 2.0


class PluginLoader:
    """Loads plugins and feeds their artifacts to the registries.

    Note on timeouts: a coroutine ``initialize`` that exceeds the timeout
    is reported as failed straight away. It is neither cancelled nor
    awaited; it may keep running in the background and its late outcome
    is ignored. A synchronous ``initialize`` cannot be interrupted at all.
    Loading a plugin means trusting its code.
    """

    def __init__(
        self,
        templates: TemplateRegistry,
        helpers: HelperRegistrar,
        commands: CommandRegistrar,
        resolver: ModuleResolver | None = None,
        validator: MetadataValidator | None = None,
        init_timeout: float = INIT_TIMEOUT_SECONDS,
        cleanup_timeout: float = CLEANUP_TIMEOUT_SECONDS,
    ) -> None:
        """Initialize plugin loader.

        Args:
            templates: Template registry (built-ins already seeded)
            helpers: Helper registrar (built-ins already seeded)
            commands: Command registrar (built-ins already seeded)
            resolver: Module resolver (default: rooted at cwd)
            validator: Metadata validator
            init_timeout: Seconds allowed for each plugin's initialize()
            cleanup_timeout: Seconds allowed for each plugin's cleanup()
        """
        self.templates = templates
        self.helpers = helpers
        self.commands = commands
        self.resolver = resolver or ModuleResolver()
        self.validator = validator or MetadataValidator()
        self.init_timeout = init_timeout
        self.cleanup_timeout = cleanup_timeout

        # Only plugins that reached LOADED, in load order
        self._instances: dict[str, Any] = {}
        # Timed-out hooks still running; referenced so they are not collected
        self._abandoned: set[asyncio.Future] = set()

    @property
    def loaded_ids(self) -> list[str]:
        return list(self._instances)

    def is_loaded(self, plugin_id: str) -> bool:
        return plugin_id in self._instances

    async def load_all(
        self,
        descriptors: Sequence[PluginDescriptor | Mapping[str, Any]],
        context: PluginContext,
    ) -> LoadResult:
        """Load every descriptor in order.

        Args:
            descriptors: Descriptors (or raw mappings) from configuration
            context: Host context; each plugin gets a derived copy

        Returns:
            LoadResult listing loaded, failed and skipped plugins

        Raises:
            ConfigurationError: If raw descriptors are malformed. Raised
                before any plugin is touched.
        """
        descriptors = _coerce_descriptors(descriptors)
        result = LoadResult()

        logger.info("Loading %d plugin(s) from configuration", len(descriptors))

        for descriptor in descriptors:
            if not descriptor.enabled:
                logger.info("Skipping disabled plugin: %s", descriptor.source)
                result.skipped.append(descriptor)
                continue

            outcome = await self._load_one(descriptor, context)
            if isinstance(outcome, PluginLoadRecord):
                result.loaded.append(outcome)
            else:
                result.failed.append(outcome)

        if result.failed:
            logger.warning(result.summary())
        else:
            logger.info(result.summary())

        return result

    async def _load_one(
        self, descriptor: PluginDescriptor, context: PluginContext
    ) -> PluginLoadRecord | PluginLoadFailure:
        """Run the pipeline for one descriptor."""
        source = descriptor.source

        try:
            location = self.resolver.resolve(source)
            loaded = self._load_module(location)
        except (ModuleResolutionError, PathTraversalError) as e:
            return self._fail(descriptor, LoadStage.RESOLVING, e)
        except Exception as e:
            return self._fail(descriptor, LoadStage.RESOLVING, ModuleResolutionError(str(e)))

        outcome = await self._load_candidate(descriptor, loaded, context)
        if isinstance(outcome, PluginLoadFailure) and location.is_local:
            # A rejected local plugin leaves nothing importable behind
            sys.modules.pop(location.module_name, None)
        return outcome

    async def _load_candidate(
        self, descriptor: PluginDescriptor, loaded: Any, context: PluginContext
    ) -> PluginLoadRecord | PluginLoadFailure:
        """Validate, initialize and register an imported plugin module."""
        source = descriptor.source

        try:
            candidate = self.validator.validate(loaded, source)
            if candidate.metadata.id in self._instances:
                raise MetadataValidationError(f"Plugin id '{candidate.metadata.id}' is already loaded")
        except MetadataValidationError as e:
            return self._fail(descriptor, LoadStage.VALIDATING, e)
        except Exception as e:
            # e.g. a metadata property that raises
            error = MetadataValidationError(f"Plugin '{source}' metadata could not be read: {e}")
            return self._fail(descriptor, LoadStage.VALIDATING, error)

        plugin_id = candidate.metadata.id

        try:
            instance = self._instantiate(candidate)
            await self._initialize(instance, plugin_id, context.for_plugin(plugin_id, descriptor.options))
        except InitializationError as e:
            return self._fail(descriptor, LoadStage.INITIALIZING, e, plugin_id)

        try:
            templates, helpers, commands = self._register(plugin_id, instance)
        except PluginError as e:
            return self._fail(descriptor, LoadStage.REGISTERING, e, plugin_id)
        except Exception as e:
            error = PluginError(f"Plugin '{plugin_id}' registration failed: {e}")
            return self._fail(descriptor, LoadStage.REGISTERING, error, plugin_id)

        self._instances[plugin_id] = instance
        logger.info("Successfully loaded plugin: %s@%s", plugin_id, candidate.metadata.version)

        return PluginLoadRecord(
            plugin_id=plugin_id,
            source=source,
            version=candidate.metadata.version,
            templates=templates,
            helpers=helpers,
            commands=commands,
        )

    def _load_module(self, location: ResolvedLocation) -> Any:
        """Import the module (or entry point object) at a resolved location.

        Raises:
            ModuleResolutionError: If importing fails
        """
        try:
            if location.kind == LocationKind.PACKAGE:
                return importlib.import_module(location.module_name)
            if location.kind == LocationKind.ENTRY_POINT:
                return location.entry_point.load()
            return self._load_local_module(location)
        except ModuleResolutionError:
            raise
        except Exception as e:
            raise ModuleResolutionError(f"Failed to import plugin '{location.source}': {e}") from e

    def _load_local_module(self, location: ResolvedLocation) -> ModuleType:
        """Load a plugin from a .py file or package directory."""
        path = location.path
        if location.kind == LocationKind.DIRECTORY:
            spec = importlib.util.spec_from_file_location(
                location.module_name, path / "__init__.py", submodule_search_locations=[str(path)]
            )
        else:
            spec = importlib.util.spec_from_file_location(location.module_name, path)

        if spec is None or spec.loader is None:
            raise ModuleResolutionError(f"Cannot load module spec: {path}")

        logger.debug("Loading local plugin from: %s", path)
        module = importlib.util.module_from_spec(spec)
        sys.modules[location.module_name] = module
        try:
            spec.loader.exec_module(module)
        except BaseException:
            sys.modules.pop(location.module_name, None)
            raise
        return module

    def _instantiate(self, candidate: PluginCandidate) -> Any:
        """Instantiate class exports; instances are used as-is."""
        if not candidate.is_class:
            logger.debug("Using pre-instantiated plugin: %s", candidate.metadata.id)
            return candidate.target

        try:
            return candidate.target()
        except Exception as e:
            raise InitializationError(candidate.metadata.id, f"failed to instantiate plugin class: {e}") from e

    async def _initialize(self, instance: Any, plugin_id: str, context: PluginContext) -> None:
        """Call initialize(context) under the timeout.

        Raises:
            InitializationError: If initialize raises, rejects or times out
        """
        hook = getattr(instance, "initialize", None)
        if hook is None:
            return
        if not callable(hook):
            raise InitializationError(plugin_id, "initialize is not callable")

        logger.info("Initializing plugin: %s", plugin_id)
        try:
            outcome = hook(context)
            if not inspect.isawaitable(outcome):
                return
            task = asyncio.ensure_future(outcome)
        except Exception as e:
            raise InitializationError(plugin_id, str(e) or type(e).__name__) from e

        if not await self._settle(task, self.init_timeout):
            raise InitializationError(
                plugin_id, f"initialization timed out after {self.init_timeout:g}s", timed_out=True
            )

        if task.cancelled():
            raise InitializationError(plugin_id, "initialization was cancelled")
        error = task.exception()
        if error is not None:
            if not isinstance(error, Exception):
                raise error
            raise InitializationError(plugin_id, str(error) or type(error).__name__) from error

    async def _settle(self, task: asyncio.Future, timeout: float) -> bool:
        """Wait up to timeout for task; a late task is left running, not cancelled.

        Returns:
            True if the task finished in time
        """
        done, _ = await asyncio.wait({task}, timeout=timeout)
        if done:
            return True
        self._abandoned.add(task)
        task.add_done_callback(self._forget)
        return False

    def _forget(self, task: asyncio.Future) -> None:
        self._abandoned.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.debug("Ignoring late failure from timed-out plugin hook: %s", error)

    def _register(self, plugin_id: str, instance: Any) -> tuple[int, int, int]:
        """Feed templates, helpers and commands to the registrars, in that order.

        Artifacts committed by an earlier registrar stay registered if a
        later one rejects its batch.
        """
        templates = self._call_hook(instance, "get_templates", plugin_id) or []
        registered_templates = self.templates.register_many(plugin_id, templates)

        helpers = self._call_hook(instance, "get_handlebars_helpers", plugin_id) or {}
        registered_helpers = self.helpers.register_many(plugin_id, helpers)

        api = PluginCommandApi(plugin_id)
        self._call_hook(instance, "register_commands", plugin_id, api)
        registered_commands = self.commands.register_many(plugin_id, api.entries)

        return len(registered_templates), len(registered_helpers), len(registered_commands)

    def _call_hook(self, instance: Any, name: str, plugin_id: str, *args: Any) -> Any:
        """Call an optional artifact hook; a missing hook contributes nothing."""
        hook = getattr(instance, name, None)
        if hook is None:
            logger.debug("Plugin '%s' has no %s()", plugin_id, name)
            return None
        try:
            return hook(*args)
        except Exception as e:
            raise PluginError(f"Plugin '{plugin_id}' {name}() failed: {e}") from e

    def _fail(
        self,
        descriptor: PluginDescriptor,
        stage: LoadStage,
        error: PluginError,
        plugin_id: str | None = None,
    ) -> PluginLoadFailure:
        label = plugin_id or descriptor.source
        if isinstance(error, PathTraversalError):
            logger.error("Security violation loading plugin '%s': %s", label, error)
        else:
            # The host reports ordinary failures from the LoadResult
            logger.debug("Failed to load plugin '%s' (%s): %s", label, stage.value, error)

        return PluginLoadFailure(
            descriptor=descriptor,
            stage=stage,
            message=str(error),
            error=error,
            plugin_id=plugin_id,
        )

    async def cleanup_all(self) -> None:
        """Call cleanup() on every loaded plugin, best-effort.

        Errors and timeouts are logged, never raised.
        """
        if self._instances:
            logger.info("Running plugin cleanup...")

        for plugin_id, instance in list(self._instances.items()):
            hook = getattr(instance, "cleanup", None)
            if hook is None:
                continue
            try:
                outcome = hook()
                if inspect.isawaitable(outcome):
                    task = asyncio.ensure_future(outcome)
                    if not await self._settle(task, self.cleanup_timeout):
                        logger.warning("Plugin '%s' cleanup timed out", plugin_id)
                        continue
                    if not task.cancelled() and task.exception() is not None:
                        raise task.exception()
                logger.debug("Plugin '%s' cleaned up", plugin_id)
            except Exception as e:
                logger.warning("Plugin '%s' cleanup failed: %s", plugin_id, e)

        self._instances.clear()


def _coerce_descriptors(
    descriptors: Sequence[PluginDescriptor | Mapping[str, Any]],
) -> list[PluginDescriptor]:
    """Validate raw descriptors; pass parsed ones through."""
    if all(isinstance(d, PluginDescriptor) for d in descriptors):
        return list(descriptors)
    return parse_descriptors([d.model_dump() if isinstance(d, PluginDescriptor) else d for d in descriptors])
