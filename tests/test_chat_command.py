"""Tests for ChatCommand invocation, checks and events."""

import asyncio
import gc

import pytest

from extbot.commands.chat import DEFAULT_CHECK_FAILURE, ChatCommand
from extbot.commands.context import CommandContext
from extbot.events import (
    CommandEvent,
    CommandFailedChecksEvent,
    CommandFailedWithExceptionEvent,
    CommandInvocationEvent,
    CommandSucceededEvent,
    EventBus,
)
from extbot.exceptions import CommandError, EventDispatchError, InvalidCommandError


class _FakeBot:
    def __init__(self):
        self.sent = []

    def send(self, event):
        self.sent.append(event)


class _FakeExtension:
    name = "fake"

    def __init__(self):
        self.bot = _FakeBot()


async def _settle():
    """Let fire-and-forget emission tasks run."""
    await asyncio.sleep(0.01)


def _event_types(ext):
    return [type(e) for e in ext.bot.sent]


async def _pong(ctx):
    return "pong"


class TestValidation:

    def test_missing_body_rejected(self):
        cmd = ChatCommand(_FakeExtension(), "ping")
        with pytest.raises(InvalidCommandError) as exc_info:
            cmd.validate()
        assert exc_info.value.reason == "missing body"
        assert cmd.validated is False

    def test_blank_alias_rejected(self):
        cmd = ChatCommand(_FakeExtension(), "ping", _pong, aliases=("p", " "))
        with pytest.raises(InvalidCommandError):
            cmd.validate()

    def test_name_checked_before_body(self):
        cmd = ChatCommand(_FakeExtension())
        with pytest.raises(InvalidCommandError) as exc_info:
            cmd.validate()
        assert exc_info.value.reason == InvalidCommandError.MISSING_NAME

    def test_all_names_includes_aliases(self):
        cmd = ChatCommand(_FakeExtension(), "ping", _pong, aliases=("p",))
        cmd.validate()
        assert cmd.all_names == ("ping", "p")


class TestCall:

    @pytest.mark.asyncio
    async def test_unvalidated_command_cannot_be_called(self):
        cmd = ChatCommand(_FakeExtension(), "ping", _pong)
        with pytest.raises(InvalidCommandError):
            await cmd.call(CommandContext(sender="alice"))

    @pytest.mark.asyncio
    async def test_success_emits_invocation_and_success(self):
        ext = _FakeExtension()
        cmd = ChatCommand(ext, "ping", _pong)
        cmd.validate()
        ctx = CommandContext(sender="alice")

        result = await cmd.call(ctx)
        await _settle()

        assert result == "pong"
        assert ctx.command is cmd
        assert _event_types(ext) == [CommandInvocationEvent, CommandSucceededEvent]
        assert ext.bot.sent[1].result == "pong"
        assert ext.bot.sent[1].command_name == "ping"

    @pytest.mark.asyncio
    async def test_failed_check_skips_body(self):
        ext = _FakeExtension()
        ran = []

        async def body(ctx):
            ran.append(ctx)
            return "ran"

        cmd = ChatCommand(ext, "admin", body, checks=[lambda ctx: False])
        cmd.validate()

        result = await cmd.call(CommandContext(sender="mallory"))
        await _settle()

        assert result == DEFAULT_CHECK_FAILURE
        assert ran == []
        assert _event_types(ext) == [CommandInvocationEvent, CommandFailedChecksEvent]

    @pytest.mark.asyncio
    async def test_async_check_can_give_reason(self):
        cmd = ChatCommand(_FakeExtension(), "admin", _pong)

        @cmd.check
        async def admins_only(ctx):
            raise CommandError("Admins only.")

        cmd.validate()
        assert await cmd.call(CommandContext(sender="bob")) == "Admins only."

    @pytest.mark.asyncio
    async def test_command_error_is_relayed(self):
        ext = _FakeExtension()

        async def body(ctx):
            raise CommandError("Nothing to roll.")

        cmd = ChatCommand(ext, "roll", body)
        cmd.validate()

        assert await cmd.call(CommandContext(sender="alice")) == "Nothing to roll."
        await _settle()
        assert isinstance(ext.bot.sent[-1], CommandFailedWithExceptionEvent)

    @pytest.mark.asyncio
    async def test_unexpected_error_propagates_and_releases_mutex(self):
        ext = _FakeExtension()

        async def body(ctx):
            raise RuntimeError("boom")

        cmd = ChatCommand(ext, "crash", body, locking=True)
        cmd.validate()

        with pytest.raises(RuntimeError):
            await cmd.call(CommandContext(sender="alice"))
        await _settle()

        assert cmd.mutex.locked() is False
        failed = ext.bot.sent[-1]
        assert isinstance(failed, CommandFailedWithExceptionEvent)
        assert isinstance(failed.error, RuntimeError)


class TestConcurrency:

    @staticmethod
    def _tracking_body(stats):
        async def body(ctx):
            stats["current"] += 1
            stats["peak"] = max(stats["peak"], stats["current"])
            await asyncio.sleep(0.02)
            stats["current"] -= 1
            stats["runs"] += 1
            return "done"
        return body

    @pytest.mark.asyncio
    async def test_locking_gives_non_overlapping_executions(self):
        stats = {"current": 0, "peak": 0, "runs": 0}
        cmd = ChatCommand(_FakeExtension(), "slow", self._tracking_body(stats), locking=True)
        cmd.validate()

        await asyncio.gather(
            cmd.call(CommandContext(sender="a")),
            cmd.call(CommandContext(sender="b")),
        )

        assert stats["runs"] == 2
        assert stats["peak"] == 1

    @pytest.mark.asyncio
    async def test_without_locking_both_invocations_run(self):
        stats = {"current": 0, "peak": 0, "runs": 0}
        cmd = ChatCommand(_FakeExtension(), "fast", self._tracking_body(stats))
        cmd.validate()

        results = await asyncio.gather(
            cmd.call(CommandContext(sender="a")),
            cmd.call(CommandContext(sender="b")),
        )

        assert results == ["done", "done"]
        assert stats["runs"] == 2
        assert cmd.mutex is None


class _BusBot:
    def __init__(self, bus):
        self.send = bus.send


class _BusExtension:
    name = "bus"

    def __init__(self, bus):
        self.bot = _BusBot(bus)


@pytest.mark.asyncio
async def test_failed_event_handler_not_reported_by_loop():
    loop = asyncio.get_running_loop()
    reported = []
    previous = loop.get_exception_handler()
    loop.set_exception_handler(lambda lp, context: reported.append(context["message"]))

    bus = EventBus()

    def broken(event):
        raise RuntimeError("listener broke")

    bus.subscribe(CommandEvent, broken)
    cmd = ChatCommand(_BusExtension(bus), "ping", _pong)
    cmd.validate()

    try:
        assert await cmd.call(CommandContext(sender="alice")) == "pong"
        await _settle()
        gc.collect()
        await asyncio.sleep(0)
    finally:
        loop.set_exception_handler(previous)

    assert reported == []


@pytest.mark.asyncio
async def test_awaited_emission_still_raises():
    bus = EventBus()

    def broken(event):
        raise RuntimeError("listener broke")

    bus.subscribe(CommandEvent, broken)
    cmd = ChatCommand(_BusExtension(bus), "ping", _pong)
    cmd.validate()

    with pytest.raises(EventDispatchError):
        await cmd.emit_event_async(CommandSucceededEvent(command=cmd))
