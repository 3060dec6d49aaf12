"""Command framework for extbot.

Provides the Command base class, the ChatCommand kind, the per-call
CommandContext and the CommandRegistry that validates and routes them.
"""

from .base import Command
from .chat import ChatCommand
from .context import CommandContext
from .registry import COMMAND_NAME_PATTERN, CommandRegistry

__all__ = [
    "Command",
    "ChatCommand",
    "CommandContext",
    "CommandRegistry",
    "COMMAND_NAME_PATTERN",
]
