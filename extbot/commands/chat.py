"""Prefix-invoked chat commands.

ChatCommand is the command kind extensions declare most often: a
name, optional aliases, optional checks and an async body. Its call()
is the invocation path that honours the Lockable contract: when
locking is on, the body runs while holding the command's mutex and
the mutex is released however the body exits.
"""

from __future__ import annotations

import inspect
from typing import (
    TYPE_CHECKING,
    Awaitable,
    Callable,
    Iterable,
    List,
    Optional,
    Tuple,
    Union,
)

import structlog

from ..events import (
    CommandFailedChecksEvent,
    CommandFailedWithExceptionEvent,
    CommandInvocationEvent,
    CommandSucceededEvent,
)
from ..exceptions import CommandError, InvalidCommandError
from .base import Command
from .context import CommandContext

if TYPE_CHECKING:
    from ..extensions import Extension

logger = structlog.get_logger("extbot.commands")

# async (ctx) -> reply text, or None for no reply
CommandBody = Callable[[CommandContext], Awaitable[Optional[str]]]
# (ctx) -> bool, sync or async; may raise CommandError to give a reason
Check = Callable[[CommandContext], Union[bool, Awaitable[bool]]]

DEFAULT_CHECK_FAILURE = "You can't use this command right now."


class ChatCommand(Command):
    """A chat command invoked as ``<prefix><name> [args]``.

    Args:
        extension: Owning extension.
        name: Command name; may also be set later, before validate().
        body: Async handler returning the reply text.
        description: One-line summary for the help listing.
        aliases: Extra names that resolve to this command.
        checks: Predicates that must all pass before the body runs.
        locking: Serialize executions of the body.
    """

    def __init__(
        self,
        extension: "Extension",
        name: Optional[str] = None,
        body: Optional[CommandBody] = None,
        *,
        description: str = "",
        aliases: Iterable[str] = (),
        checks: Optional[List[Check]] = None,
        locking: bool = False,
    ):
        super().__init__(extension)
        if name is not None:
            self.name = name
        self.body = body
        self.description = description
        self.aliases: Tuple[str, ...] = tuple(aliases)
        self.checks: List[Check] = list(checks or [])
        self.locking = locking

    def check(self, predicate: Check) -> Check:
        """Add a check. Usable as a decorator."""
        self.checks.append(predicate)
        return predicate

    def validate(self) -> None:
        """Validate the name (see Command.validate), body and aliases.

        Raises:
            InvalidCommandError: On a missing name, missing body or a
                blank alias.
        """
        super().validate()

        if self.body is None:
            self._validated = False
            raise InvalidCommandError(
                f"Command {self._name!r} has no body.",
                command_name=self._name,
                reason="missing body",
            )

        for alias in self.aliases:
            if not isinstance(alias, str) or not alias.strip():
                self._validated = False
                raise InvalidCommandError(
                    f"Command {self._name!r} has an empty alias.",
                    command_name=self._name,
                    reason="empty alias",
                )

    @property
    def all_names(self) -> Tuple[str, ...]:
        return (self.name,) + self.aliases

    async def _run_checks(self, context: CommandContext) -> Optional[str]:
        """Return a refusal message, or None if every check passed."""
        for predicate in self.checks:
            try:
                passed = predicate(context)
                if inspect.isawaitable(passed):
                    passed = await passed
            except CommandError as e:
                return e.message or DEFAULT_CHECK_FAILURE
            if not passed:
                return DEFAULT_CHECK_FAILURE
        return None

    async def call(self, context: CommandContext) -> Optional[str]:
        """Invoke the command.

        Emits CommandInvocationEvent, then either
        CommandFailedChecksEvent, CommandFailedWithExceptionEvent or
        CommandSucceededEvent. Events are fire-and-forget.

        Returns:
            Reply text for the sender, or None.

        Raises:
            InvalidCommandError: If the command was never validated.
            Exception: Anything other than CommandError raised by the
                body, after the failure event has been emitted.
        """
        if not self.validated:
            raise InvalidCommandError(
                "Command must be validated before it can be called.",
                command_name=self._name,
                reason="not validated",
            )

        context.command = self
        self.emit_event_async(CommandInvocationEvent(command=self, context=context))

        refusal = await self._run_checks(context)
        if refusal is not None:
            logger.info("command_checks_failed", command=self.name, reason=refusal)
            self.emit_event_async(
                CommandFailedChecksEvent(command=self, context=context, reason=refusal)
            )
            return refusal

        try:
            async with self.guard():
                result = await self.body(context)
        except CommandError as e:
            logger.info("command_refused", command=self.name, error=e.message)
            self.emit_event_async(
                CommandFailedWithExceptionEvent(command=self, context=context, error=e)
            )
            return e.message
        except Exception as e:
            logger.error(
                "command_failed",
                command=self.name,
                error=str(e),
                error_type=type(e).__name__,
            )
            self.emit_event_async(
                CommandFailedWithExceptionEvent(command=self, context=context, error=e)
            )
            raise

        self.emit_event_async(
            CommandSucceededEvent(command=self, context=context, result=result)
        )
        return result
