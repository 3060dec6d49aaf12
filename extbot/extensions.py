"""Extension base class for grouping commands and event handlers."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, Iterable, List, Optional, Type

import structlog

from .commands.chat import ChatCommand, Check, CommandBody
from .events import Event, EventCallback, EventHandler

if TYPE_CHECKING:
    from .bot import ExtensibleBot


@dataclass
class HelpSection:
    """A block of help text contributed by an extension.

    Attributes:
        title: Section heading (e.g. "Music Control").
        commands: Dict of command_name -> one-line description.
    """
    title: str
    commands: Dict[str, str] = field(default_factory=dict)


class Extension:
    """Base class for all extbot extensions.

    Subclass this, set ``name`` and declare commands in setup().
    The bot calls setup() once when the extension is added and
    unload() when it is removed.
    """

    name: str = ""
    description: str = ""
    version: str = "1.0.0"

    def __init__(self, bot: "ExtensibleBot"):
        self.bot = bot
        self.commands: List[ChatCommand] = []
        self.event_handlers: List[EventHandler] = []
        self.logger = structlog.get_logger(
            "extbot.extensions", extension=self.name or type(self).__name__
        )

    def chat_command(
        self,
        name: Optional[str] = None,
        body: Optional[CommandBody] = None,
        *,
        description: str = "",
        aliases: Iterable[str] = (),
        checks: Optional[List[Check]] = None,
        locking: bool = False,
    ) -> ChatCommand:
        """Create a ChatCommand owned by this extension and collect it.

        The command is not validated here; the bot validates it when
        the extension is added.
        """
        command = ChatCommand(
            self,
            name,
            body,
            description=description,
            aliases=aliases,
            checks=checks,
            locking=locking,
        )
        self.commands.append(command)
        return command

    def event_handler(
        self,
        event_type: Type[Event],
        callback: EventCallback,
        *,
        locking: bool = False,
    ) -> EventHandler:
        """Create an event subscription owned by this extension."""
        handler = EventHandler(event_type, callback, locking=locking)
        self.event_handlers.append(handler)
        return handler

    async def setup(self) -> None:
        """Declare commands and handlers. Override in subclasses."""
        pass

    async def unload(self) -> None:
        """Called when the extension is removed. Clean up resources."""
        pass

    def help_sections(self) -> List[HelpSection]:
        """Return help text entries for the help command.

        Defaults to one section listing this extension's commands.
        """
        listed = {
            c.name: c.description for c in self.commands if c.has_name
        }
        if not listed:
            return []
        return [HelpSection(title=self.name or type(self).__name__, commands=listed)]

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, commands={len(self.commands)})"
