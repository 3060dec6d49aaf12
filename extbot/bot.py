"""Extensible bot host.

Owns the event bus and the command registry, loads extensions and
routes incoming chat messages to commands. The chat transport is not
part of this package: the bot is handed a ``send_message(recipient,
text)`` coroutine and is fed messages through process_message().

Key classes:
    ExtensibleBot: The host. Provides ``send(event)`` to commands.
    CoreExtension: Built-in extension carrying the help command.
"""

import asyncio
from typing import Awaitable, Callable, Dict, List, Optional, Type, Union

import structlog

from .commands.context import CommandContext
from .commands.registry import CommandRegistry
from .config import Config, get_config
from .events import Event, EventBus, ExtensionLoadedEvent, ExtensionUnloadedEvent
from .exceptions import (
    CommandNotFoundError,
    CommandRegistrationError,
    InvalidCommandError,
)
from .extensions import Extension, HelpSection

logger = structlog.get_logger("extbot.bot")

SendMessage = Callable[[str, str], Awaitable[None]]

COMMAND_FAILED_REPLY = "Something went wrong while running that command."


class CoreExtension(Extension):
    """Built-in commands every bot has."""

    name = "core"
    description = "Built-in commands"

    async def setup(self) -> None:
        self.chat_command(
            "help",
            self.handle_help,
            description="Show available commands",
            aliases=("commands",),
        )

    async def handle_help(self, ctx: CommandContext) -> str:
        prefix = self.bot.config.command_prefix
        lines = ["Available commands:"]
        for section in self.bot.help_sections():
            lines.append("")
            lines.append(f"{section.title}:")
            for cmd_name, description in sorted(section.commands.items()):
                if description:
                    lines.append(f"  {prefix}{cmd_name} - {description}")
                else:
                    lines.append(f"  {prefix}{cmd_name}")
        return "\n".join(lines)


class ExtensibleBot:
    """Host for extensions, commands and the event bus.

    Args:
        send_message: Transport coroutine (recipient, text).
        config: Config to use; defaults to the global instance.
    """

    def __init__(self, send_message: SendMessage, config: Optional[Config] = None):
        self.config = config or get_config()
        self.bus = EventBus()
        self.registry = CommandRegistry()
        self._send_message = send_message
        self.extensions: Dict[str, Extension] = {}
        # extension name -> primary names of the commands it registered
        self._extension_commands: Dict[str, List[str]] = {}
        self.running = False

    def send(self, event: Event) -> asyncio.Task:
        """Emit an event on the bus. Returns the delivery task immediately."""
        return self.bus.send(event)

    async def start(self) -> None:
        """Load the built-in extension and mark the bot running."""
        if self.running:
            return
        await self.add_extension(CoreExtension)
        self.running = True
        logger.info(
            "bot_started",
            extensions=list(self.extensions),
            commands=len(self.registry),
        )

    async def stop(self) -> None:
        """Unload extensions in reverse order, clear the registry, close the bus."""
        if not self.running:
            return
        self.running = False
        for name in reversed(list(self.extensions)):
            await self.remove_extension(name)
        self.registry.teardown()
        await self.bus.close()
        logger.info("bot_stopped")

    async def add_extension(
        self, extension: Union[Extension, Type[Extension]]
    ) -> Optional[Extension]:
        """Set up an extension and register its commands and handlers.

        A command that fails validation or clashes with an existing
        name is logged and skipped; the extension's other commands
        still register. An extension whose setup() raises is logged
        and not loaded.

        Args:
            extension: An Extension subclass (instantiated with this
                bot) or an instance already bound to it.

        Returns:
            The loaded extension, or None if it was not loaded.
        """
        if isinstance(extension, type):
            extension = extension(self)
        ext_name = extension.name or type(extension).__name__

        allowlist = self.config.extension_allowlist
        if allowlist is not None and ext_name != CoreExtension.name and ext_name not in allowlist:
            logger.warning(
                "extension_blocked_not_in_allowlist",
                extension=ext_name,
                allowlist=allowlist,
            )
            return None

        if ext_name in self.extensions:
            logger.warning("extension_already_loaded", extension=ext_name)
            return None

        try:
            await extension.setup()
        except Exception as e:
            logger.error(
                "extension_setup_failed",
                extension=ext_name,
                error=str(e),
                error_type=type(e).__name__,
            )
            return None

        registered: List[str] = []
        for command in extension.commands:
            if command.has_name:
                override = self.config.command_override(command.name)
                if not override.enabled:
                    logger.info("command_disabled_by_config", command=command.name)
                    continue
                if override.locking is not None:
                    command.locking = override.locking
            try:
                self.registry.register(command)
            except (InvalidCommandError, CommandRegistrationError) as e:
                logger.error(
                    "command_registration_failed",
                    extension=ext_name,
                    command=getattr(e, "command_name", None),
                    error=str(e),
                    error_type=type(e).__name__,
                )
                continue
            registered.append(command.name)

        for handler in extension.event_handlers:
            self.bus.subscribe(handler)

        self.extensions[ext_name] = extension
        self._extension_commands[ext_name] = registered

        logger.info(
            "extension_loaded",
            extension=ext_name,
            version=extension.version,
            commands=registered,
            event_handlers=len(extension.event_handlers),
        )
        self.send(ExtensionLoadedEvent(extension=extension))
        return extension

    async def remove_extension(self, name: str) -> bool:
        """Unregister an extension's commands and handlers, then unload it.

        Returns:
            False if no extension with that name is loaded.
        """
        extension = self.extensions.pop(name, None)
        if extension is None:
            return False

        for cmd_name in self._extension_commands.pop(name, []):
            self.registry.unregister(cmd_name)
        for handler in extension.event_handlers:
            self.bus.unsubscribe(handler)

        try:
            await extension.unload()
        except Exception as e:
            logger.error(
                "extension_unload_failed",
                extension=name,
                error=str(e),
                error_type=type(e).__name__,
            )

        logger.info("extension_unloaded", extension=name)
        self.send(ExtensionUnloadedEvent(extension=extension))
        return True

    def help_sections(self) -> List[HelpSection]:
        """Help sections of all loaded extensions, limited to registered commands."""
        sections: List[HelpSection] = []
        for extension in self.extensions.values():
            for section in extension.help_sections():
                listed = {
                    name: desc for name, desc in section.commands.items()
                    if name in self.registry
                }
                if listed:
                    sections.append(HelpSection(title=section.title, commands=listed))
        return sections

    def parse_command(self, message: str) -> Optional[tuple]:
        """Split ``<prefix><name> <args>`` into (name, args), or None."""
        prefix = self.config.command_prefix
        message = message.strip()
        if not message.startswith(prefix):
            return None
        parts = message[len(prefix):].split(maxsplit=1)
        if not parts:
            return None
        command = parts[0].lower()
        args = parts[1] if len(parts) > 1 else ""
        return command, args

    async def process_message(self, sender: str, message: str) -> Optional[str]:
        """Route an incoming message to a command and send the reply.

        Messages without the command prefix are ignored.

        Args:
            sender: Platform identifier of the sender.
            message: Raw message text.

        Returns:
            The reply that was sent, or None.
        """
        parsed = self.parse_command(message)
        if parsed is None:
            return None
        command, args = parsed

        logger.info("command_received", command=command, has_args=bool(args))

        ctx = CommandContext(
            sender=sender,
            args=args,
            send_message=self._send_message,
        )
        prefix = self.config.command_prefix
        try:
            response = await self.registry.invoke(command, ctx)
        except CommandNotFoundError:
            response = (
                f"Unknown command: {prefix}{command}\n"
                f"Use {prefix}help to see available commands."
            )
        except Exception as e:
            logger.error(
                "command_handling_error",
                command=command,
                error=str(e),
                error_type=type(e).__name__,
            )
            response = COMMAND_FAILED_REPLY

        if response is None:
            return None
        await self._send_message(sender, response)
        return response
