"""Load report produced by PluginLoader.load_all."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from .errors import PathTraversalError, PluginError
from .manifest import PluginDescriptor


class LoadStage(str, Enum):
    """Pipeline stage a descriptor finished in."""

    SKIPPED = "skipped"
    RESOLVING = "resolving"
    VALIDATING = "validating"
    INITIALIZING = "initializing"
    REGISTERING = "registering"
    LOADED = "loaded"


@dataclass(frozen=True)
class PluginLoadRecord:
    """A plugin that loaded, with the artifacts it contributed."""

    plugin_id: str
    source: str
    version: str
    templates: int = 0
    helpers: int = 0
    commands: int = 0


@dataclass(frozen=True)
class PluginLoadFailure:
    """A plugin that was excluded, and why."""

    descriptor: PluginDescriptor
    stage: LoadStage
    message: str
    error: PluginError | None = None
    plugin_id: str | None = None

    @property
    def is_security_violation(self) -> bool:
        return isinstance(self.error, PathTraversalError)

    @property
    def label(self) -> str:
        """Plugin id when known, else the descriptor source."""
        return self.plugin_id or self.descriptor.source


@dataclass
class LoadResult:
    """Outcome of loading a descriptor list."""

    loaded: list[PluginLoadRecord] = field(default_factory=list)
    failed: list[PluginLoadFailure] = field(default_factory=list)
    skipped: list[PluginDescriptor] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed

    def get(self, plugin_id: str) -> PluginLoadRecord | None:
        for record in self.loaded:
            if record.plugin_id == plugin_id:
                return record
        return None

    def summary(self) -> str:
        attempted = len(self.loaded) + len(self.failed)
        if self.failed:
            return f"Loaded {len(self.loaded)}/{attempted} plugins ({len(self.failed)} failed)"
        return f"All {len(self.loaded)} plugins loaded successfully"
