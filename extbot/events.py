"""Event types and the asynchronous event bus.

The bus is the bot's shared event-emission facility. ``send()`` starts
delivery as an asyncio.Task and hands the task back immediately; the
caller may await it, cancel it or ignore it. Handler failures are
collected and surface as an EventDispatchError when the task is
awaited.

Key classes:
    Event: Base class for everything sent over the bus.
    CommandEvent and subclasses: Emitted around command invocations.
    EventHandler: A (possibly serialized) subscription.
    EventBus: Subscription table plus fire-and-forget delivery.

Key functions:
    log_task_exception: Done-callback that logs failed background tasks.
"""

from __future__ import annotations

import asyncio
import inspect
import time
from dataclasses import dataclass, field
from typing import (
    TYPE_CHECKING,
    Any,
    Awaitable,
    Callable,
    List,
    Optional,
    Set,
    Type,
    Union,
)

import structlog

from .exceptions import EventDispatchError
from .locking import Lockable

if TYPE_CHECKING:
    from .commands.base import Command
    from .commands.context import CommandContext
    from .extensions import Extension

logger = structlog.get_logger("extbot.events")

EventCallback = Callable[[Any], Union[Awaitable[None], None]]


def log_task_exception(task: asyncio.Task) -> None:
    """Log exceptions from fire-and-forget tasks instead of silently swallowing them."""
    if task.cancelled():
        return
    exc = task.exception()
    if exc:
        logger.error("background_task_failed", error=str(exc), exc_type=type(exc).__name__)


# ---------------------------------------------------------------------------
# Event types
# ---------------------------------------------------------------------------

@dataclass
class Event:
    """Base class for bus events.

    Attributes:
        created_at: Unix timestamp taken when the event was built.
    """
    created_at: float = field(default_factory=time.time, init=False)


@dataclass
class CommandEvent(Event):
    """Something happened while invoking a command."""
    command: Optional["Command"] = None
    context: Optional["CommandContext"] = None

    @property
    def command_name(self) -> str:
        if self.command is None:
            return ""
        return self.command.name


@dataclass
class CommandInvocationEvent(CommandEvent):
    """A command was invoked, before checks run."""


@dataclass
class CommandSucceededEvent(CommandEvent):
    """The command body returned normally."""
    result: Optional[str] = None


@dataclass
class CommandFailedChecksEvent(CommandEvent):
    """A check refused the invocation; the body never ran."""
    reason: str = ""


@dataclass
class CommandFailedWithExceptionEvent(CommandEvent):
    """The command body raised."""
    error: Optional[BaseException] = None


@dataclass
class ExtensionLoadedEvent(Event):
    extension: Optional["Extension"] = None


@dataclass
class ExtensionUnloadedEvent(Event):
    extension: Optional["Extension"] = None


# ---------------------------------------------------------------------------
# Subscriptions
# ---------------------------------------------------------------------------

class EventHandler(Lockable):
    """A subscription to one event type.

    Matching uses isinstance, so subscribing to CommandEvent receives
    every command event. Set ``locking`` to serialize deliveries to
    this handler.

    Args:
        event_type: Event class to listen for.
        callback: Sync or async callable taking the event.
        locking: Serialize deliveries to this handler.
        name: Label used in logs; defaults to the callback's name.
    """

    def __init__(
        self,
        event_type: Type[Event],
        callback: EventCallback,
        *,
        locking: bool = False,
        name: Optional[str] = None,
    ):
        self.event_type = event_type
        self.callback = callback
        self.locking = locking
        self.name = name or getattr(callback, "__name__", type(callback).__name__)

    def matches(self, event: Event) -> bool:
        return isinstance(event, self.event_type)

    async def handle(self, event: Event) -> None:
        """Deliver one event, under the guard when locking."""
        async with self.guard():
            result = self.callback(event)
            if inspect.isawaitable(result):
                await result

    def __repr__(self) -> str:
        return (
            f"EventHandler({self.event_type.__name__}, {self.name!r}, "
            f"locking={self.locking})"
        )


class EventBus:
    """Fire-and-forget event delivery to subscribed handlers.

    Handlers for one event run sequentially in subscription order.
    Separate ``send()`` calls are independent tasks and may interleave.
    """

    def __init__(self):
        self._handlers: List[EventHandler] = []
        self._in_flight: Set[asyncio.Task] = set()

    def subscribe(
        self,
        event_type: Union[Type[Event], EventHandler],
        callback: Optional[EventCallback] = None,
        *,
        locking: bool = False,
    ) -> EventHandler:
        """Register a handler and return its EventHandler.

        Accepts either a ready EventHandler or an event type plus callback.
        """
        if isinstance(event_type, EventHandler):
            handler = event_type
        else:
            if callback is None:
                raise TypeError("subscribe() needs a callback when given an event type")
            handler = EventHandler(event_type, callback, locking=locking)
        self._handlers.append(handler)
        logger.debug(
            "event_handler_subscribed",
            event_type=handler.event_type.__name__,
            handler=handler.name,
            locking=handler.locking,
        )
        return handler

    def unsubscribe(self, handler: EventHandler) -> bool:
        """Remove a handler. Returns False if it was not subscribed."""
        try:
            self._handlers.remove(handler)
        except ValueError:
            return False
        return True

    @property
    def handlers(self) -> List[EventHandler]:
        return list(self._handlers)

    @property
    def in_flight(self) -> int:
        """Number of deliveries not yet finished."""
        return len(self._in_flight)

    def send(self, event: Event) -> asyncio.Task:
        """Start delivering an event and return the delivery task.

        Must be called from a running event loop. Never waits for
        delivery; the returned task raises EventDispatchError when
        awaited if any handler failed.
        """
        task = asyncio.create_task(self._deliver(event))
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)
        task.add_done_callback(log_task_exception)
        return task

    async def _deliver(self, event: Event) -> None:
        # Snapshot so handlers may (un)subscribe during delivery
        targets = [h for h in self._handlers if h.matches(event)]
        event_type = type(event).__name__
        errors: List[BaseException] = []

        for handler in targets:
            try:
                await handler.handle(event)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning(
                    "event_handler_failed",
                    event_type=event_type,
                    handler=handler.name,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                errors.append(e)

        logger.debug("event_delivered", event_type=event_type, handlers=len(targets))

        if errors:
            raise EventDispatchError(
                f"{len(errors)} handler(s) failed for {event_type}",
                event_type=event_type,
                failures=len(errors),
            ) from errors[0]

    async def close(self) -> None:
        """Cancel deliveries still in flight and wait for them to settle."""
        pending = list(self._in_flight)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        logger.info("event_bus_closed", cancelled=len(pending))
