"""Command registry: the host side of the command lifecycle.

The registry validates every command exactly once before it becomes
reachable, maps names and aliases to commands, and routes invocations.

Constants:
    COMMAND_NAME_PATTERN: Allowed shape of command names and aliases.
"""

from __future__ import annotations

import re
from typing import Dict, List, Optional

import structlog

from ..exceptions import CommandNotFoundError, CommandRegistrationError
from .base import Command
from .context import CommandContext

logger = structlog.get_logger("extbot.commands")

COMMAND_NAME_PATTERN = re.compile(r"^[a-z][a-z0-9_-]*$")


def _names_of(command: Command) -> List[str]:
    names = [command.name]
    names.extend(getattr(command, "aliases", ()))
    return names


class CommandRegistry:
    """Maps command names and aliases to validated commands.

    Lookups are case-insensitive. A command that fails validation or
    clashes with an existing name is rejected without touching the
    entries already registered.
    """

    def __init__(self):
        self._commands: Dict[str, Command] = {}
        self._aliases: Dict[str, str] = {}

    def register(self, command: Command) -> Command:
        """Validate a command and make it invocable.

        Args:
            command: Command to add. Its validate() is called here.

        Returns:
            The registered command.

        Raises:
            InvalidCommandError: From validate().
            CommandRegistrationError: On a malformed or taken name/alias.
        """
        was_validated = command.validated
        command.validate()

        names = [n.lower() for n in _names_of(command)]
        try:
            self._check_names(names)
        except CommandRegistrationError:
            # Never became reachable; keep it from looking callable
            if not was_validated:
                command.invalidate()
            raise

        primary = names[0]
        self._commands[primary] = command
        for alias in names[1:]:
            self._aliases[alias] = primary

        logger.info(
            "command_registered",
            command=primary,
            aliases=names[1:],
            locking=command.locking,
            extension=getattr(command.extension, "name", None),
        )
        return command

    def _check_names(self, names: List[str]) -> None:
        for name in names:
            if not COMMAND_NAME_PATTERN.match(name):
                raise CommandRegistrationError(
                    f"Invalid command name: {name!r}", command_name=name
                )
            if name in self._commands or name in self._aliases:
                raise CommandRegistrationError(
                    f"Command name already registered: {name!r}", command_name=name
                )
        if len(set(names)) != len(names):
            raise CommandRegistrationError(
                f"Duplicate names on command {names[0]!r}", command_name=names[0]
            )

    def unregister(self, name: str) -> Optional[Command]:
        """Remove a command by name or alias. Returns it, or None."""
        primary = self._resolve(name)
        if primary is None:
            return None
        command = self._commands.pop(primary)
        for alias in [a for a, p in self._aliases.items() if p == primary]:
            del self._aliases[alias]
        logger.info("command_unregistered", command=primary)
        return command

    def _resolve(self, name: str) -> Optional[str]:
        key = name.lower()
        if key in self._commands:
            return key
        return self._aliases.get(key)

    def get(self, name: str) -> Optional[Command]:
        """Look up a command by name or alias."""
        primary = self._resolve(name)
        if primary is None:
            return None
        return self._commands[primary]

    async def invoke(self, name: str, context: CommandContext) -> Optional[str]:
        """Invoke a registered command.

        Raises:
            CommandNotFoundError: If nothing is registered under ``name``.
        """
        command = self.get(name)
        if command is None:
            raise CommandNotFoundError(command_name=name)
        context.invoked_with = name.lower()
        logger.debug("command_routing", command=command.name, has_args=bool(context.args))
        return await command.call(context)

    def teardown(self) -> None:
        """Drop every registered command."""
        count = len(self._commands)
        self._commands.clear()
        self._aliases.clear()
        logger.info("command_registry_torn_down", commands=count)

    @property
    def command_names(self) -> frozenset:
        """All registered primary command names."""
        return frozenset(self._commands.keys())

    @property
    def commands(self) -> List[Command]:
        return list(self._commands.values())

    def __contains__(self, name: str) -> bool:
        return self._resolve(name) is not None

    def __len__(self) -> int:
        return len(self._commands)
