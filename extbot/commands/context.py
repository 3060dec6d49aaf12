"""Per-invocation context handed to command checks and bodies."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, List, Optional

if TYPE_CHECKING:
    from .base import Command

SendMessage = Callable[[str, str], Awaitable[None]]


@dataclass
class CommandContext:
    """Everything a command needs to know about one invocation.

    Attributes:
        sender: Platform identifier of the user who sent the command.
        args: Raw text following the command name.
        send_message: Transport coroutine (recipient, text).
        command: Resolved command, filled in by the registry.
        invoked_with: The name or alias the sender typed.
        extras: Free-form data for checks to share with the body.
    """
    sender: str
    args: str = ""
    send_message: Optional[SendMessage] = None
    command: Optional["Command"] = None
    invoked_with: str = ""
    extras: Dict[str, Any] = field(default_factory=dict)

    @property
    def argv(self) -> List[str]:
        """Whitespace-split arguments."""
        return self.args.split()

    async def respond(self, text: str) -> None:
        """Send a message back to the sender, if a transport is attached."""
        if self.send_message is None:
            return
        await self.send_message(self.sender, text)
