"""Template helper registrar.

Tracks named helper functions for the Handlebars renderer and who
contributed each one. A plugin's helper set is registered as a unit.
"""

import logging
from collections.abc import Mapping
from types import MappingProxyType
from typing import Any

from .base import HelperFunction
from .errors import PluginError, RegistrationConflictError
from .manifest import BUILT_IN, IDENTIFIER_PATTERN

logger = logging.getLogger(__name__)


class HelperRegistrar:
    """Registry of template helpers with conflict detection."""

    def __init__(self) -> None:
        self._helpers: dict[str, HelperFunction] = {}
        self._owners: dict[str, str] = {}

    @property
    def helpers(self) -> Mapping[str, HelperFunction]:
        """Read-only view handed to the renderer."""
        return MappingProxyType(self._helpers)

    def register_builtins(self, helpers: Mapping[str, HelperFunction]) -> None:
        """Seed the host's own helpers before plugins load."""
        if any(owner != BUILT_IN for owner in self._owners.values()):
            raise PluginError("Built-in helpers must be registered before plugins load")
        self._commit(BUILT_IN, self._preflight(BUILT_IN, helpers))

    def register_many(self, plugin_id: str, helpers: Mapping[str, HelperFunction]) -> list[str]:
        """Register a plugin's helpers, all or nothing.

        Args:
            plugin_id: Plugin contributing the helpers
            helpers: Mapping of helper name to function

        Returns:
            Names of the registered helpers

        Raises:
            RegistrationConflictError: If any name is invalid, taken, or
                its value is not callable. Nothing is registered.
        """
        batch = self._preflight(plugin_id, helpers)
        self._commit(plugin_id, batch)
        return list(batch)

    def _preflight(self, plugin_id: str, helpers: Any) -> dict[str, HelperFunction]:
        """Validate every helper before any is committed."""
        if not isinstance(helpers, Mapping):
            raise RegistrationConflictError(
                "helper", repr(helpers), plugin_id, reason=f"expected a mapping, got {type(helpers).__name__}"
            )

        batch: dict[str, HelperFunction] = {}
        for name, fn in helpers.items():
            if not isinstance(name, str) or not name:
                raise RegistrationConflictError("helper", repr(name), plugin_id, reason="must be a non-empty string")
            if not IDENTIFIER_PATTERN.match(name):
                raise RegistrationConflictError(
                    "helper", name, plugin_id, reason=f"must match pattern {IDENTIFIER_PATTERN.pattern}"
                )
            if name in self._helpers:
                raise RegistrationConflictError("helper", name, plugin_id, self._owners[name])
            if not callable(fn):
                raise RegistrationConflictError("helper", name, plugin_id, reason="helper is not callable")
            batch[name] = fn

        return batch

    def _commit(self, owner: str, batch: dict[str, HelperFunction]) -> None:
        for name, fn in batch.items():
            self._helpers[name] = fn
            self._owners[name] = owner
            logger.debug("Registered helper '%s' from %s", name, owner)

        if batch:
            logger.info("Registered %d helper(s) from %s", len(batch), owner)

    def has(self, name: str) -> bool:
        return name in self._helpers

    def get(self, name: str) -> HelperFunction | None:
        return self._helpers.get(name)

    def owner(self, name: str) -> str | None:
        """Plugin id (or "built-in") that registered a helper."""
        return self._owners.get(name)

    def names(self) -> list[str]:
        return list(self._helpers)

    def clear(self) -> None:
        """Drop plugin helpers, keeping built-ins."""
        for name in [n for n, owner in self._owners.items() if owner != BUILT_IN]:
            del self._helpers[name]
            del self._owners[name]

    def __len__(self) -> int:
        return len(self._helpers)

    def __contains__(self, name: str) -> bool:
        return name in self._helpers
