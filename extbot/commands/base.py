"""Base class shared by every command kind.

A Command is a named, invocable entry owned by an Extension. It is
built in two phases: constructed with its owner, then configured
(name, locking policy) and finally validated before a registry makes
it reachable. Validation is the only place a command's configuration
is rejected.

Key classes:
    Command: ABC combining identity, the Lockable capability and
        fire-and-forget event emission.
"""

from __future__ import annotations

import asyncio
import inspect
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Optional, Set

import structlog

from ..events import log_task_exception
from ..exceptions import InvalidCommandError
from ..locking import Lockable

if TYPE_CHECKING:
    from ..events import Event
    from ..extensions import Extension
    from .context import CommandContext

logger = structlog.get_logger("extbot.commands")


class Command(Lockable, ABC):
    """Abstract command entry.

    Subclass this only for command kinds unrelated to the existing
    ones; ChatCommand covers prefix-invoked chat commands.

    Args:
        extension: Extension this command belongs to. Read-only from
            the command's point of view; used to reach the bot's
            event bus.
    """

    def __init__(self, extension: "Extension"):
        self.extension = extension
        self._name: Optional[str] = None
        self._validated = False
        self.locking = False
        self.mutex = None
        self._pending_events: Set[asyncio.Task] = set()

    @property
    def name(self) -> str:
        """Name used to invoke the command.

        Raises:
            InvalidCommandError: If no name has been set yet.
        """
        if not self._name:
            raise InvalidCommandError(
                "No command name given.", reason=InvalidCommandError.MISSING_NAME
            )
        return self._name

    @name.setter
    def name(self, value: str) -> None:
        self._name = value
        self._validated = False

    @property
    def has_name(self) -> bool:
        return bool(self._name)

    @property
    def validated(self) -> bool:
        """True once validate() has succeeded for the current name."""
        return self._validated

    def validate(self) -> None:
        """Make sure the command is well-formed before registration.

        Creates the execution mutex when locking is enabled. Safe to
        call repeatedly.

        Raises:
            InvalidCommandError: If the name is missing or empty.
        """
        if not isinstance(self._name, str) or not self._name:
            raise InvalidCommandError(
                "No command name given.",
                command_name=self._name,
                reason=InvalidCommandError.MISSING_NAME,
            )

        self.ensure_mutex()
        if not self._validated:
            logger.debug("command_validated", command=self._name, locking=self.locking)
        self._validated = True

    def invalidate(self) -> None:
        """Mark the command as needing validate() again before use."""
        self._validated = False

    def emit_event_async(self, event: "Event") -> asyncio.Task:
        """Hand an event to the bot's bus without waiting for delivery.

        Returns the delivery task. Awaiting it surfaces handler
        failures; unawaited failures are logged. Cancelling it leaves
        this command untouched.
        """
        async def _emit() -> None:
            result = self.extension.bot.send(event)
            if inspect.isawaitable(result):
                await result

        task = asyncio.create_task(_emit())
        # The loop only keeps weak references to tasks
        self._pending_events.add(task)
        task.add_done_callback(self._pending_events.discard)
        task.add_done_callback(log_task_exception)
        return task

    @abstractmethod
    async def call(self, context: "CommandContext") -> Optional[str]:
        """Run the command for one invocation and return the reply text."""
        ...

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(name={self._name!r}, "
            f"locking={self.locking}, validated={self._validated})"
        )
