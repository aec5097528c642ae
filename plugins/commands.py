"""CLI command registrar.

Keeps one flat namespace of command names and aliases (built-in commands
first, then plugin commands) and forwards accepted plugin commands to the
host Typer application.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any

import typer

from .errors import PluginError, RegistrationConflictError
from .manifest import BUILT_IN, IDENTIFIER_PATTERN

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommandEntry:
    """A command a plugin asked to add."""

    name: str
    aliases: tuple[str, ...] = ()
    callback: Callable[..., Any] | None = field(default=None, compare=False)
    help: str | None = None


class PluginCommandApi:
    """Handed to a plugin's ``register_commands`` hook.

    Commands are buffered here and committed by the loader once the hook
    returns, so a conflict can never leave half a command registered.
    """

    def __init__(self, plugin_id: str):
        self.plugin_id = plugin_id
        self._entries: list[CommandEntry] = []

    def add_command(
        self,
        name: str,
        callback: Callable[..., Any],
        aliases: Sequence[str] = (),
        help: str | None = None,
    ) -> None:
        """Request a new CLI command.

        Args:
            name: Command name (letters, digits, hyphen, underscore)
            callback: Typer-style command function
            aliases: Alternative names for the command
            help: Help text (defaults to the callback docstring)
        """
        if isinstance(aliases, str):
            aliases = (aliases,)
        self._entries.append(CommandEntry(name=name, aliases=tuple(aliases), callback=callback, help=help))

    def command(
        self, name: str, aliases: Sequence[str] = (), help: str | None = None
    ) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
        """Decorator form of add_command."""

        def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
            self.add_command(name, fn, aliases=aliases, help=help)
            return fn

        return decorator

    @property
    def entries(self) -> list[CommandEntry]:
        return list(self._entries)


class CommandRegistrar:
    """Command namespace with conflict detection.

    Example:
        >>> registrar = CommandRegistrar(app)
        >>> registrar.seed_from_typer(app)
        >>> registrar.reserve("my-plugin", "deploy-vm", ["dvm"])
    """

    def __init__(self, host: typer.Typer | None = None):
        """Initialize registrar.

        Args:
            host: Typer app accepted commands are forwarded to (None = track only)
        """
        self.host = host
        self._commands: dict[str, str] = {}  # name -> owner
        self._aliases: dict[str, str] = {}  # alias -> owner

    def seed_from_typer(self, app: typer.Typer) -> None:
        """Track every command and sub-app already on a Typer app as built-in."""
        names: list[str] = []
        for info in app.registered_commands:
            if info.name:
                names.append(info.name)
            elif info.callback is not None:
                names.append(info.callback.__name__.lower().replace("_", "-"))

        for group in app.registered_groups:
            name = group.name or (group.typer_instance.info.name if group.typer_instance else None)
            if isinstance(name, str) and name:
                names.append(name)

        self.register_builtins(names)

    def register_builtins(self, names: Iterable[str], aliases: Iterable[str] = ()) -> None:
        """Track host commands. Must run before plugins load."""
        if self.plugin_command_count():
            raise PluginError("Built-in commands must be registered before plugins load")

        for name in names:
            self._commands[name] = BUILT_IN
            logger.debug("Tracked built-in command: %s", name)
        for alias in aliases:
            self._aliases[alias] = BUILT_IN

    def reserve(
        self,
        plugin_id: str,
        name: str,
        aliases: Sequence[str] = (),
        callback: Callable[..., Any] | None = None,
        help: str | None = None,
    ) -> CommandEntry:
        """Register one command and its aliases, all or nothing.

        Raises:
            RegistrationConflictError: If the name or any alias is invalid or
                already taken. Nothing is registered.
        """
        entry = CommandEntry(name=name, aliases=tuple(aliases), callback=callback, help=help)
        self.register_many(plugin_id, [entry])
        return entry

    def register_many(self, plugin_id: str, entries: Iterable[CommandEntry]) -> list[CommandEntry]:
        """Register a plugin's commands after checking all of them.

        Returns:
            The registered entries

        Raises:
            RegistrationConflictError: On the first invalid or taken name.
                Nothing from the batch is registered.
        """
        batch = list(entries)
        self._preflight(plugin_id, batch)

        for entry in batch:
            self._forward(entry)
            self._commands[entry.name] = plugin_id
            for alias in entry.aliases:
                self._aliases[alias] = plugin_id
            logger.debug("Registered command '%s' from plugin '%s'", entry.name, plugin_id)

        if batch:
            logger.info("Registered %d command(s) from plugin '%s'", len(batch), plugin_id)
        return batch

    def _preflight(self, plugin_id: str, batch: list[CommandEntry]) -> None:
        claimed: set[str] = set()

        for entry in batch:
            for token in (entry.name, *entry.aliases):
                if not isinstance(token, str) or not IDENTIFIER_PATTERN.match(token):
                    raise RegistrationConflictError(
                        "command", str(token), plugin_id, reason=f"must match pattern {IDENTIFIER_PATTERN.pattern}"
                    )
                existing = self.owner(token)
                if existing is not None:
                    raise RegistrationConflictError("command", token, plugin_id, existing)
                if token in claimed:
                    raise RegistrationConflictError(
                        "command", token, plugin_id, plugin_id, reason="declared more than once by this plugin"
                    )
                claimed.add(token)

    def _forward(self, entry: CommandEntry) -> None:
        """Add the command (and hidden alias commands) to the host app."""
        if self.host is None or entry.callback is None:
            return

        self.host.command(name=entry.name, help=entry.help)(entry.callback)
        for alias in entry.aliases:
            self.host.command(name=alias, help=entry.help, hidden=True)(entry.callback)

    def has_command(self, name: str) -> bool:
        return name in self._commands

    def has_alias(self, alias: str) -> bool:
        return alias in self._aliases

    def owner(self, name: str) -> str | None:
        """Owner of a command name or alias."""
        return self._commands.get(name) or self._aliases.get(name)

    def names(self) -> list[str]:
        return list(self._commands)

    def plugin_command_count(self) -> int:
        """Number of commands contributed by plugins."""
        return sum(1 for owner in self._commands.values() if owner != BUILT_IN)

    def clear(self) -> None:
        """Forget plugin commands, keeping built-ins.

        Commands already forwarded to the host app stay there.
        """
        self._commands = {k: v for k, v in self._commands.items() if v == BUILT_IN}
        self._aliases = {k: v for k, v in self._aliases.items() if v == BUILT_IN}
