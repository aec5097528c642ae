"""Locate a plugin inside a loaded module and validate its metadata.

Nothing here touches shared registry state, so a module that fails
validation can be discarded without side effects.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from types import ModuleType
from typing import Any

from pydantic import ValidationError

from .errors import MetadataValidationError
from .manifest import IDENTIFIER_PATTERN, PluginMetadata

logger = logging.getLogger(__name__)


class ExportKind(str, Enum):
    """Which export a plugin was found under."""

    DEFAULT = "default"
    NAMED = "named"
    ENTRY_POINT = "entry_point"


@dataclass(frozen=True)
class PluginCandidate:
    """A plugin export that passed metadata validation."""

    export: ExportKind
    target: Any
    metadata: PluginMetadata

    @property
    def is_class(self) -> bool:
        return isinstance(self.target, type)


class MetadataValidator:
    """Validates plugin exports and their declared identity.

    Export lookup order for modules:
        1. ``Plugin`` - the conventional default export (class or instance)
        2. ``plugin`` - named export (class or instance)
    """

    DEFAULT_EXPORT = "Plugin"
    NAMED_EXPORT = "plugin"
    REQUIRED_FIELDS = ("id", "name", "version")

    def find_export(self, loaded: Any) -> tuple[ExportKind, Any] | None:
        """Find the plugin export of a module or entry point object.

        Returns:
            (kind, target) or None when the module exposes no plugin
        """
        if not isinstance(loaded, ModuleType):
            if loaded is None:
                return None
            return ExportKind.ENTRY_POINT, loaded

        default = getattr(loaded, self.DEFAULT_EXPORT, None)
        if default is not None:
            return ExportKind.DEFAULT, default

        named = getattr(loaded, self.NAMED_EXPORT, None)
        if named is not None:
            return ExportKind.NAMED, named

        return None

    def validate(self, loaded: Any, source: str) -> PluginCandidate:
        """Extract and validate the plugin exposed by a loaded module.

        Args:
            loaded: Loaded module, or the object an entry point resolved to
            source: Descriptor source, used in error messages

        Returns:
            PluginCandidate with validated metadata

        Raises:
            MetadataValidationError: If no export is found or metadata is invalid
        """
        found = self.find_export(loaded)
        if found is None:
            raise MetadataValidationError(
                f"No plugin export found in '{source}'. "
                f"Define a '{self.DEFAULT_EXPORT}' class or a '{self.NAMED_EXPORT}' instance."
            )

        kind, target = found
        metadata = self.validate_metadata(getattr(target, "metadata", None), source)

        logger.debug("Validated plugin metadata: %s@%s (%s export)", metadata.id, metadata.version, kind.value)
        return PluginCandidate(export=kind, target=target, metadata=metadata)

    def validate_metadata(self, raw: Any, source: str) -> PluginMetadata:
        """Validate declared metadata, reporting the first problem only.

        Raises:
            MetadataValidationError: If metadata is missing or invalid
        """
        if raw is None:
            raise MetadataValidationError(f"Plugin '{source}' missing required metadata object")

        if isinstance(raw, PluginMetadata):
            return raw

        try:
            if isinstance(raw, Mapping):
                return PluginMetadata.model_validate(dict(raw))
            return PluginMetadata.model_validate(raw, from_attributes=True)
        except ValidationError as e:
            raise MetadataValidationError(self._describe(e.errors()[0], source)) from None

    def _describe(self, error: dict[str, Any], source: str) -> str:
        """Turn a pydantic error into a readable message."""
        field_name = str(error["loc"][0]) if error["loc"] else "metadata"

        if error["type"] in ("missing", "string_too_short") or error.get("input", "") is None:
            return f"Plugin '{source}' missing required metadata.{field_name}"
        if field_name == "id" and error["type"] == "value_error":
            return (
                f"Plugin '{source}' has invalid metadata.id '{error.get('input')}'. "
                f"Must match pattern {IDENTIFIER_PATTERN.pattern}"
            )
        return f"Plugin '{source}' has invalid metadata.{field_name}: {error['msg']}"
