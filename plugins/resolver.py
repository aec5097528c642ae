"""Resolve plugin sources to loadable module locations.

A source is either an importable package name or a filesystem path.
Relative paths are resolved against the workspace root and must stay
inside it; absolute paths are trusted as given.
"""

from __future__ import annotations

import hashlib
import importlib.util
import logging
import os
import re
from dataclasses import dataclass
from enum import Enum
from importlib.metadata import EntryPoint, entry_points
from pathlib import Path

from .errors import ModuleResolutionError, PathTraversalError

logger = logging.getLogger(__name__)


class LocationKind(str, Enum):
    """How a resolved plugin module is loaded."""

    PACKAGE = "package"
    ENTRY_POINT = "entry_point"
    FILE = "file"
    DIRECTORY = "directory"


@dataclass(frozen=True)
class ResolvedLocation:
    """Where a plugin module lives and the name to load it under."""

    source: str
    kind: LocationKind
    module_name: str
    path: Path | None = None
    entry_point: EntryPoint | None = None

    @property
    def is_local(self) -> bool:
        return self.kind in (LocationKind.FILE, LocationKind.DIRECTORY)


class ModuleResolver:
    """Turns descriptor sources into ResolvedLocation objects.

    Example:
        >>> resolver = ModuleResolver(Path.cwd())
        >>> resolver.resolve("./plugins/compute")
        ResolvedLocation(source='./plugins/compute', kind=<LocationKind.DIRECTORY: ...>, ...)
    """

    ENTRY_POINT_GROUP = "azmp.plugins"
    MODULE_PREFIX = "azmp_plugin_"

    def __init__(self, workspace_root: Path | str | None = None, entry_point_group: str | None = None):
        """Initialize resolver.

        Args:
            workspace_root: Root for relative plugin paths (default: cwd)
            entry_point_group: Entry point group searched for package names
        """
        self.workspace_root = Path(workspace_root) if workspace_root else Path.cwd()
        self.entry_point_group = entry_point_group or self.ENTRY_POINT_GROUP

    @staticmethod
    def is_local_source(source: str) -> bool:
        """Check whether a source names a filesystem path."""
        return source.startswith((".", "/")) or os.path.isabs(source)

    def resolve(self, source: str, workspace_root: Path | str | None = None) -> ResolvedLocation:
        """Resolve a plugin source.

        Args:
            source: Package name or filesystem path
            workspace_root: Overrides the resolver's workspace root

        Returns:
            ResolvedLocation for the loader

        Raises:
            PathTraversalError: If a relative path escapes the workspace root
            ModuleResolutionError: If the source cannot be found
        """
        root = Path(workspace_root) if workspace_root else self.workspace_root
        logger.debug("Resolving plugin source: %s", source)

        if self.is_local_source(source):
            return self._resolve_path(source, root)
        return self._resolve_package(source)

    def _resolve_path(self, source: str, workspace_root: Path) -> ResolvedLocation:
        """Resolve a local file or directory source."""
        if os.path.isabs(source):
            normalized = os.path.normpath(source)
        else:
            # Containment is checked on the normalized string only, before
            # the filesystem is touched.
            root = os.path.normpath(os.path.abspath(workspace_root))
            normalized = os.path.normpath(os.path.join(root, source))
            if not _is_within(normalized, root):
                raise PathTraversalError(source, normalized, root)

        path = Path(normalized)

        if not path.exists():
            raise ModuleResolutionError(f"Plugin path does not exist: {path}")

        if path.is_dir():
            if not (path / "__init__.py").is_file():
                raise ModuleResolutionError(f"Plugin directory '{path}' must contain an __init__.py entrypoint")
            kind = LocationKind.DIRECTORY
        elif path.suffix == ".py":
            kind = LocationKind.FILE
        else:
            raise ModuleResolutionError(f"Plugin file '{path}' must be a .py file")

        return ResolvedLocation(
            source=source,
            kind=kind,
            module_name=self._module_name_for(path),
            path=path,
        )

    def _resolve_package(self, source: str) -> ResolvedLocation:
        """Resolve an installed package or entry point by name."""
        if _is_module_path(source):
            try:
                spec = importlib.util.find_spec(source)
            except (ImportError, ValueError) as e:
                logger.debug("find_spec failed for %s: %s", source, e)
                spec = None

            if spec is not None:
                logger.debug("Resolved package %s to %s", source, spec.origin)
                return ResolvedLocation(source=source, kind=LocationKind.PACKAGE, module_name=source)

        for ep in entry_points(group=self.entry_point_group):
            if ep.name == source:
                logger.debug("Resolved %s to entry point %s", source, ep.value)
                return ResolvedLocation(
                    source=source,
                    kind=LocationKind.ENTRY_POINT,
                    module_name=ep.module,
                    entry_point=ep,
                )

        raise ModuleResolutionError(f"package '{source}' not found. Install it with: pip install {source}")

    def _module_name_for(self, path: Path) -> str:
        """Unique sys.modules name for a local plugin."""
        stem = path.name if path.is_dir() else path.stem
        digest = hashlib.sha1(str(path).encode()).hexdigest()[:8]
        return f"{self.MODULE_PREFIX}{re.sub(r'[^0-9a-zA-Z_]', '_', stem)}_{digest}"


def _is_within(path: str, root: str) -> bool:
    """Check that a normalized path lies inside root."""
    try:
        return os.path.commonpath([root, path]) == root
    except ValueError:
        # Different drives on Windows
        return False


def _is_module_path(name: str) -> bool:
    """Check that name is a dotted Python module path."""
    return all(part.isidentifier() for part in name.split("."))
