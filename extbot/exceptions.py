"""Exception hierarchy for extbot.

Every error raised by the framework derives from ExtBotError, so hosts
can catch broadly while still handling each subsystem precisely.

Key classes:
    ErrorCategory: Retry classification attached to every error.
    ExtBotError: Base class carrying message, category, module and
        structured logging context.
    ConfigurationError / InvalidCommandError: Bad settings or a badly
        formed command entry.
    CommandRegistrationError / CommandNotFoundError: Host registry.
    CommandError: User-facing failure raised from a command body.
    EventDispatchError: Delivery failure surfaced through a bus task.
"""

from enum import Enum
from typing import Any, Optional


class ErrorCategory(str, Enum):
    """Classification of errors for retry decisions."""
    TRANSIENT = "transient"          # Worth retrying
    PERMANENT = "permanent"          # Bad input, bad command definition
    INFRASTRUCTURE = "infrastructure"  # Environment or settings problems


class ExtBotError(Exception):
    """Base exception for all extbot errors.

    Attributes:
        message: Human-readable error description.
        category: Error classification for retry/escalation decisions.
        module: Originating module name (e.g. "commands.registry").
        context: Arbitrary key-value pairs for structured logging.
    """

    def __init__(
        self,
        message: str = "",
        *,
        category: ErrorCategory = ErrorCategory.PERMANENT,
        module: Optional[str] = None,
        **context: Any,
    ) -> None:
        self.message = message
        self.category = category
        self.module = module
        self.context = context
        super().__init__(message)

    @property
    def is_retryable(self) -> bool:
        """Whether this error is worth retrying."""
        return self.category == ErrorCategory.TRANSIENT

    def __str__(self) -> str:
        parts = [self.message or self.__class__.__name__]
        if self.module:
            parts.append(f"[module={self.module}]")
        if self.context:
            ctx = ", ".join(f"{k}={v}" for k, v in self.context.items())
            parts.append(f"({ctx})")
        return " ".join(parts)

    def __repr__(self) -> str:
        cls = self.__class__.__name__
        return (
            f"{cls}({self.message!r}, category={self.category.value!r}, "
            f"module={self.module!r})"
        )


# ---------------------------------------------------------------------------
# Configuration exceptions
# ---------------------------------------------------------------------------

class ConfigurationError(ExtBotError):
    """Invalid or missing configuration.

    Defaults to INFRASTRUCTURE because config issues are environmental
    and won't resolve by retrying.
    """

    def __init__(
        self,
        message: str = "",
        *,
        setting_name: Optional[str] = None,
        category: ErrorCategory = ErrorCategory.INFRASTRUCTURE,
        module: Optional[str] = None,
        **context: Any,
    ) -> None:
        self.setting_name = setting_name
        super().__init__(
            message, category=category, module=module or "config", **context
        )


class InvalidCommandError(ConfigurationError):
    """A command entry is not well-formed ("invalid command configuration").

    Raised by Command.validate(). The command must not become
    invocable; other commands in the same registry are unaffected.

    Attributes:
        command_name: The offending name, if one was set.
        reason: Short machine-friendly reason, e.g. "missing or empty name".
    """

    MISSING_NAME = "missing or empty name"

    def __init__(
        self,
        message: str = "",
        *,
        command_name: Optional[str] = None,
        reason: str = MISSING_NAME,
        category: ErrorCategory = ErrorCategory.PERMANENT,
        module: Optional[str] = None,
        **context: Any,
    ) -> None:
        self.command_name = command_name
        self.reason = reason
        super().__init__(
            message or "Invalid command configuration",
            category=category,
            module=module or "commands",
            reason=reason,
            **context,
        )


# ---------------------------------------------------------------------------
# Registry exceptions
# ---------------------------------------------------------------------------

class CommandRegistrationError(ExtBotError):
    """A validated command could not be added to the registry.

    Attributes:
        command_name: Name (or alias) that caused the conflict.
    """

    def __init__(
        self,
        message: str = "",
        *,
        command_name: Optional[str] = None,
        category: ErrorCategory = ErrorCategory.PERMANENT,
        module: Optional[str] = None,
        **context: Any,
    ) -> None:
        self.command_name = command_name
        super().__init__(
            message, category=category, module=module or "commands.registry", **context
        )


class CommandNotFoundError(ExtBotError):
    """No command is registered under the requested name."""

    def __init__(
        self,
        message: str = "",
        *,
        command_name: Optional[str] = None,
        category: ErrorCategory = ErrorCategory.PERMANENT,
        module: Optional[str] = None,
        **context: Any,
    ) -> None:
        self.command_name = command_name
        super().__init__(
            message or f"Unknown command: {command_name}",
            category=category,
            module=module or "commands.registry",
            **context,
        )


# ---------------------------------------------------------------------------
# Invocation exceptions
# ---------------------------------------------------------------------------

class CommandError(ExtBotError):
    """User-facing failure raised from inside a command body.

    The message is relayed back to the sender verbatim instead of
    being treated as a crash.
    """

    def __init__(
        self,
        message: str = "",
        *,
        category: ErrorCategory = ErrorCategory.PERMANENT,
        module: Optional[str] = None,
        **context: Any,
    ) -> None:
        super().__init__(
            message, category=category, module=module or "commands", **context
        )


# ---------------------------------------------------------------------------
# Event exceptions
# ---------------------------------------------------------------------------

class EventDispatchError(ExtBotError):
    """One or more event handlers failed while an event was delivered.

    Attributes:
        event_type: Class name of the event being delivered.
        failures: Number of handlers that raised.
    """

    def __init__(
        self,
        message: str = "",
        *,
        event_type: Optional[str] = None,
        failures: int = 0,
        category: ErrorCategory = ErrorCategory.TRANSIENT,
        module: Optional[str] = None,
        **context: Any,
    ) -> None:
        self.event_type = event_type
        self.failures = failures
        super().__init__(
            message, category=category, module=module or "events", **context
        )
