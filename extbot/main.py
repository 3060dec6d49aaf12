"""Main entry point for extbot.

Initializes logging in two phases (defaults then config-driven),
loads the extensions named in settings.yaml and runs a console
session: every line typed on stdin is handled as a chat message from
the local user and replies are printed. SIGTERM/SIGINT or end of
input shuts the bot down.

Key functions:
    main: Async entry point -- logging, config, bot, extensions and
        signal handlers, then the console read loop.
    run: Synchronous wrapper that calls asyncio.run(main()).
    load_extension_class: Resolve ``package.module:ClassName``.
"""

import asyncio
import importlib
import os
import signal
import sys
from typing import AsyncIterator, List, Optional

import structlog

from . import __version__
from .exceptions import ConfigurationError
from .logging_config import setup_logging

logger = structlog.get_logger("extbot.extensions")

CONSOLE_SENDER = "console"


def load_extension_class(path: str) -> type:
    """Import an Extension subclass from ``package.module:ClassName``.

    The dotted form ``package.module.ClassName`` is accepted too.

    Raises:
        ConfigurationError: If the path is malformed, the module cannot
            be imported, or the attribute is not an Extension subclass.
    """
    from .extensions import Extension

    module_name, sep, attr = path.partition(":")
    if not sep:
        module_name, _, attr = path.rpartition(".")
    if not module_name or not attr:
        raise ConfigurationError(
            f"Invalid extension path: {path!r}", setting_name="extensions"
        )

    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigurationError(
            f"Cannot import {module_name!r}: {e}", setting_name="extensions"
        ) from e

    cls = getattr(module, attr, None)
    if not (isinstance(cls, type) and issubclass(cls, Extension)):
        raise ConfigurationError(
            f"{path!r} is not an Extension subclass", setting_name="extensions"
        )
    return cls


async def load_extensions(bot, paths: List[str]) -> List[str]:
    """Load extensions by path. One that fails to import is logged and skipped.

    Returns:
        Names of the extensions that were loaded.
    """
    loaded: List[str] = []
    for path in paths:
        try:
            cls = load_extension_class(path)
        except ConfigurationError as e:
            logger.error("extension_import_failed", path=path, error=str(e))
            continue
        extension = await bot.add_extension(cls)
        if extension is not None:
            loaded.append(extension.name)
    return loaded


async def console_send(recipient: str, text: str) -> None:
    """Transport for the console session: replies go to stdout."""
    print(text, flush=True)


async def stdin_lines(fd: Optional[int] = None) -> AsyncIterator[str]:
    """Yield lines from a file descriptor without blocking the loop.

    Stops at end of input. Unix only (uses loop.add_reader).
    """
    if fd is None:
        fd = sys.stdin.fileno()
    loop = asyncio.get_running_loop()
    chunks: asyncio.Queue = asyncio.Queue()
    loop.add_reader(fd, lambda: chunks.put_nowait(os.read(fd, 4096)))

    buffer = b""
    try:
        while True:
            chunk = await chunks.get()
            if not chunk:
                if buffer:
                    yield buffer.decode("utf-8", errors="replace")
                return
            buffer += chunk
            *lines, buffer = buffer.split(b"\n")
            for line in lines:
                yield line.decode("utf-8", errors="replace").rstrip("\r")
    finally:
        loop.remove_reader(fd)


async def read_console(bot, lines: AsyncIterator[str]) -> None:
    """Feed each input line to the bot as a message from the console user."""
    async for line in lines:
        if line.strip():
            await bot.process_message(CONSOLE_SENDER, line)


async def main():
    """Main async entry point."""
    # Phase 1: defaults, cache_logger_on_first_use=False
    setup_logging()
    main_logger = structlog.get_logger("extbot")

    main_logger.info("extbot_starting", version=__version__)

    # Import here to ensure logging is configured first
    from .bot import ExtensibleBot
    from .config import get_config

    config = get_config()
    config.validate()

    # Phase 2: reconfigure with real config, cache_logger_on_first_use=True
    setup_logging(config)

    bot = ExtensibleBot(send_message=console_send, config=config)

    loop = asyncio.get_running_loop()
    shutdown_event = asyncio.Event()

    def handle_shutdown(sig):
        main_logger.info("shutdown_signal_received", signal=sig.name)
        shutdown_event.set()

    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, handle_shutdown, sig)
        except NotImplementedError:
            # Windows: fall back to signal.signal for Ctrl+C
            if sig == signal.SIGINT:
                signal.signal(
                    signal.SIGINT,
                    lambda s, f: handle_shutdown(signal.SIGINT),
                )

    try:
        await bot.start()
        loaded = await load_extensions(bot, config.extension_paths)
        main_logger.info("extensions_ready", extensions=loaded)

        console_task = asyncio.create_task(read_console(bot, stdin_lines()))
        console_task.add_done_callback(lambda _: shutdown_event.set())

        await shutdown_event.wait()

        console_task.cancel()
        try:
            await console_task
        except asyncio.CancelledError:
            pass

    except Exception as e:
        main_logger.error("bot_error", error=str(e))
        raise
    finally:
        await bot.stop()
        main_logger.info("extbot_stopped")


def run():
    """Synchronous entry point for the ``extbot`` console script."""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
