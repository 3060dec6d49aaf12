"""Logging setup for extbot.

structlog renders events through stdlib logging. Every subsystem
logger writes its own rotating file and propagates to the combined
``extbot.log`` and the console:

    root                 stderr (console)
      extbot             extbot.log
        extbot.bot         bot.log
        extbot.commands    commands.log
        extbot.events      events.log
        extbot.extensions  extensions.log

The console goes to stderr because stdout carries the replies of the
``extbot`` console session.
"""

import logging
import logging.handlers
import re
import sys
from pathlib import Path
from typing import Any, Dict, Optional

import structlog

SUBSYSTEMS = ("bot", "commands", "events", "extensions")

LOGGER_PREFIX = "extbot"

DEFAULT_MAX_BYTES = 10 * 1024 * 1024
DEFAULT_BACKUP_COUNT = 5

_SECRET_PATTERNS = [
    # Chat platform bot tokens: three dot-separated base64 segments
    re.compile(r"[A-Za-z0-9_-]{24,}\.[A-Za-z0-9_-]{6}\.[A-Za-z0-9_-]{27,}"),
    re.compile(r"sk-[a-zA-Z0-9_-]{20,}"),
    re.compile(r"(?:Bearer|Bot)\s+[a-zA-Z0-9_./-]{20,}"),
]

_REDACTED = "***REDACTED***"


def _scrub(value: Any) -> Any:
    if not isinstance(value, str):
        return value
    for pattern in _SECRET_PATTERNS:
        value = pattern.sub(_REDACTED, value)
    return value


def sanitize_secrets(
    logger: Any, method_name: str, event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    """structlog processor replacing tokens and API keys with a placeholder.

    Strings are scrubbed at the top level and one level down in lists,
    tuples and dicts. Extension code logs command arguments, which is
    where pasted tokens usually show up.
    """
    for key, value in event_dict.items():
        if isinstance(value, (list, tuple)):
            event_dict[key] = type(value)(_scrub(v) for v in value)
        elif isinstance(value, dict):
            event_dict[key] = {k: _scrub(v) for k, v in value.items()}
        else:
            event_dict[key] = _scrub(value)
    return event_dict


def _level(name: Optional[str], default: int) -> int:
    if not name:
        return default
    level = logging.getLevelName(str(name).upper())
    return level if isinstance(level, int) else default


def _rotating_handler(
    path: Path, level: int, max_bytes: int, backup_count: int, formatter: logging.Formatter
) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
    )
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def _reset_logger(name: Optional[str], level: int) -> logging.Logger:
    target = logging.getLogger(name)
    target.setLevel(level)
    target.handlers.clear()
    return target


def setup_logging(config=None) -> None:
    """Configure structlog and the stdlib handler tree.

    Called twice by the entry point: first without a config so that
    anything logged while settings load is visible, then with the
    loaded Config. Loggers are cached only after the second call, so
    bound loggers created early pick up the final configuration.

    A log directory that cannot be created downgrades to console-only
    logging instead of failing startup.

    Args:
        config: Loaded Config, or None for defaults.
    """
    if config is not None:
        log_dir = config.log_dir
        root_level = _level(config.logging_level, logging.INFO)
        subsystem_levels = config.logging_subsystem_levels or {}
        max_bytes = config.logging_max_file_size_mb * 1024 * 1024
        backup_count = config.logging_backup_count
    else:
        log_dir = Path(__file__).parent.parent / "logs"
        root_level = logging.INFO
        subsystem_levels = {}
        max_bytes = DEFAULT_MAX_BYTES
        backup_count = DEFAULT_BACKUP_COUNT

    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        write_files = True
    except OSError as exc:
        write_files = False
        print(
            f"WARNING: Cannot create log directory {log_dir}: {exc}. "
            "Logging to the console only.",
            file=sys.stderr,
        )

    file_formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(colors=False),
        ],
    )

    # Handlers do the level filtering
    root = _reset_logger(None, logging.DEBUG)
    console = logging.StreamHandler(sys.stderr)
    console.setLevel(root_level)
    console.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s"))
    root.addHandler(console)

    package = _reset_logger(LOGGER_PREFIX, logging.DEBUG)
    package.propagate = True
    if write_files:
        package.addHandler(_rotating_handler(
            log_dir / f"{LOGGER_PREFIX}.log", root_level, max_bytes, backup_count, file_formatter
        ))

    for subsystem in SUBSYSTEMS:
        level = _level(subsystem_levels.get(subsystem), root_level)
        sub = _reset_logger(f"{LOGGER_PREFIX}.{subsystem}", level)
        sub.propagate = True
        if write_files:
            sub.addHandler(_rotating_handler(
                log_dir / f"{subsystem}.log", level, max_bytes, backup_count, file_formatter
            ))

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            sanitize_secrets,
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=config is not None,
    )
