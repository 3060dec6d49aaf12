"""extbot - extension framework for chat bots.

Extensions group commands and event handlers; the ExtensibleBot
validates and registers commands, routes messages to them and
broadcasts invocation events on an asynchronous bus.
"""

from .bot import CoreExtension, ExtensibleBot
from .commands import ChatCommand, Command, CommandContext, CommandRegistry
from .events import EventBus, EventHandler
from .exceptions import (
    CommandError,
    ConfigurationError,
    EventDispatchError,
    ExtBotError,
    InvalidCommandError,
)
from .extensions import Extension, HelpSection
from .locking import Lockable

__version__ = "0.1.0"

__all__ = [
    "ChatCommand",
    "Command",
    "CommandContext",
    "CommandError",
    "CommandRegistry",
    "ConfigurationError",
    "CoreExtension",
    "EventBus",
    "EventDispatchError",
    "EventHandler",
    "ExtBotError",
    "ExtensibleBot",
    "Extension",
    "HelpSection",
    "InvalidCommandError",
    "Lockable",
]
