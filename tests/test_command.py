"""Tests for the Command base: validation, locking and event emission."""

import asyncio

import pytest

from extbot.commands.base import Command
from extbot.events import Event, EventBus
from extbot.exceptions import ConfigurationError, EventDispatchError, InvalidCommandError


class _FakeBot:
    """Records events; optionally delegates to a real bus."""

    def __init__(self, send=None):
        self.sent = []
        self._send = send

    def send(self, event):
        self.sent.append(event)
        if self._send is not None:
            return self._send(event)
        return None


class _FakeExtension:
    name = "fake"

    def __init__(self, bot=None):
        self.bot = bot or _FakeBot()


class _EchoCommand(Command):
    async def call(self, context):
        return "echo"


def _make_command(name=None, locking=False, bot=None):
    cmd = _EchoCommand(_FakeExtension(bot))
    if name is not None:
        cmd.name = name
    cmd.locking = locking
    return cmd


# -------------------------------------------------------------------
# validate()
# -------------------------------------------------------------------

class TestValidate:

    def test_unset_name_rejected(self):
        cmd = _make_command()
        with pytest.raises(InvalidCommandError) as exc_info:
            cmd.validate()
        assert exc_info.value.reason == InvalidCommandError.MISSING_NAME
        assert cmd.validated is False

    def test_empty_name_rejected(self):
        cmd = _make_command(name="")
        with pytest.raises(InvalidCommandError):
            cmd.validate()

    def test_invalid_command_is_configuration_error(self):
        cmd = _make_command()
        with pytest.raises(ConfigurationError):
            cmd.validate()

    def test_non_empty_name_accepted(self):
        cmd = _make_command(name="ping")
        assert cmd.validate() is None
        assert cmd.validated is True

    def test_ping_without_locking_leaves_mutex_unset(self):
        cmd = _make_command(name="ping", locking=False)
        cmd.validate()
        assert cmd.mutex is None

    def test_empty_name_with_locking_never_creates_mutex(self):
        cmd = _make_command(name="", locking=True)
        with pytest.raises(InvalidCommandError):
            cmd.validate()
        assert cmd.mutex is None

    def test_locking_allocates_mutex(self):
        cmd = _make_command(name="slow", locking=True)
        cmd.validate()
        assert isinstance(cmd.mutex, asyncio.Lock)

    def test_validate_is_idempotent(self):
        cmd = _make_command(name="slow", locking=True)
        cmd.validate()
        first = cmd.mutex
        cmd.validate()
        assert cmd.mutex is first
        assert cmd.validated is True

    def test_reading_unset_name_raises(self):
        cmd = _make_command()
        with pytest.raises(InvalidCommandError):
            _ = cmd.name
        assert cmd.has_name is False

    def test_renaming_requires_revalidation(self):
        cmd = _make_command(name="ping")
        cmd.validate()
        cmd.name = "pong"
        assert cmd.validated is False

    def test_mutexes_are_not_shared(self):
        a = _make_command(name="a", locking=True)
        b = _make_command(name="b", locking=True)
        a.validate()
        b.validate()
        assert a.mutex is not b.mutex


# -------------------------------------------------------------------
# emit_event_async()
# -------------------------------------------------------------------

class TestEmitEventAsync:

    @pytest.mark.asyncio
    async def test_returns_before_slow_delivery_completes(self):
        delivered = []

        async def slow_send(event):
            await asyncio.sleep(0.2)
            delivered.append(event)

        cmd = _make_command(name="ping", bot=_FakeBot(send=slow_send))
        event = Event()

        loop = asyncio.get_running_loop()
        started = loop.time()
        task = cmd.emit_event_async(event)
        elapsed = loop.time() - started

        assert elapsed < 0.1
        assert not task.done()
        assert delivered == []

        await task
        assert delivered == [event]

    @pytest.mark.asyncio
    async def test_handler_failure_surfaces_through_task(self):
        bus = EventBus()

        def boom(event):
            raise RuntimeError("handler broke")

        bus.subscribe(Event, boom)
        cmd = _make_command(name="ping", bot=_FakeBot(send=bus.send))

        task = cmd.emit_event_async(Event())
        with pytest.raises(EventDispatchError):
            await task

    @pytest.mark.asyncio
    async def test_cancelling_emission_leaves_mutex_free(self):
        async def slow_send(event):
            await asyncio.sleep(1)

        cmd = _make_command(name="slow", locking=True, bot=_FakeBot(send=slow_send))
        cmd.validate()

        task = cmd.emit_event_async(Event())
        await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert cmd.mutex.locked() is False
        async with cmd.guard():
            assert cmd.mutex.locked() is True
