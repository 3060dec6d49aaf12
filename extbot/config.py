"""Configuration management for extbot.

Loads YAML settings (settings.yaml) and environment variables (.env)
into a Config object. Property getters provide safe access with
sensible defaults for the command prefix, logging, extension
allowlist and per-command overrides.

Key classes:
    Config: Central configuration manager.
    CommandOverride: Validated per-command settings from
        ``commands.<name>``.

Key functions:
    get_config: Singleton accessor for the global Config instance.
"""

import os
from pathlib import Path
from typing import Dict, List, Optional

import structlog
import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, ValidationError

from .exceptions import ConfigurationError

logger = structlog.get_logger("extbot.bot")

DEFAULT_COMMAND_PREFIX = "!"


class CommandOverride(BaseModel):
    """Settings for one command under ``commands.<name>`` in settings.yaml.

    ``locking`` left unset keeps whatever the extension declared.
    """
    enabled: bool = True
    locking: Optional[bool] = None


class Config:
    """Central configuration manager for extbot.

    Args:
        config_dir: Path to the config directory. Defaults to
            ``<repo_root>/config/``.
        settings: Use this dict instead of reading settings.yaml.
    """

    def __init__(self, config_dir: Optional[Path] = None, settings: Optional[dict] = None):
        if config_dir is None:
            config_dir = Path(__file__).parent.parent / "config"
        self.config_dir = config_dir

        # Load environment variables
        env_file = config_dir / ".env"
        if env_file.exists():
            load_dotenv(env_file)

        if settings is not None:
            self.settings = settings
        else:
            self.settings = self._load_yaml("settings.yaml")

    def _load_yaml(self, filename: str) -> dict:
        """Load a YAML configuration file."""
        filepath = self.config_dir / filename
        if not filepath.exists():
            return {}
        try:
            with open(filepath, "r") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(
                f"Cannot parse {filename}: {e}", setting_name=filename
            ) from e
        if not isinstance(data, dict):
            raise ConfigurationError(
                f"{filename} must contain a mapping", setting_name=filename
            )
        return data

    def validate(self) -> None:
        """Validate settings at startup.

        Logs errors but does not raise -- the bot starts with defaults
        for anything it cannot use.
        """
        prefix = self.settings.get("command_prefix")
        if prefix is not None and (not isinstance(prefix, str) or not prefix.strip()):
            logger.error("config_invalid_value", key="command_prefix", value=prefix)

        allowlist = self.settings.get("extension_allowlist")
        if allowlist is not None and not isinstance(allowlist, list):
            logger.error(
                "extension_allowlist_invalid_type", type=type(allowlist).__name__
            )

        paths = self.settings.get("extensions")
        if paths is not None and not isinstance(paths, list):
            logger.error("config_invalid_value", key="extensions", value=type(paths).__name__)

        commands = self.settings.get("commands", {})
        if not isinstance(commands, dict):
            logger.error("config_invalid_value", key="commands", value=type(commands).__name__)
            return
        for name, raw in commands.items():
            try:
                CommandOverride.model_validate(raw or {})
            except ValidationError as e:
                logger.error(
                    "config_invalid_command_override",
                    command=name,
                    errors=e.error_count(),
                )

    @property
    def command_prefix(self) -> str:
        """Prefix that marks a message as a command. Env var EXTBOT_COMMAND_PREFIX wins."""
        env = os.environ.get("EXTBOT_COMMAND_PREFIX")
        if env:
            return env
        prefix = self.settings.get("command_prefix", DEFAULT_COMMAND_PREFIX)
        if not isinstance(prefix, str) or not prefix.strip():
            return DEFAULT_COMMAND_PREFIX
        return prefix

    @property
    def extension_allowlist(self) -> Optional[List[str]]:
        """Names of extensions allowed to load, or None for no restriction."""
        allowlist = self.settings.get("extension_allowlist")
        if allowlist is None or not isinstance(allowlist, list):
            return None
        return [str(name) for name in allowlist]

    @property
    def extension_paths(self) -> List[str]:
        """Extensions to load at startup, as ``package.module:ClassName``."""
        paths = self.settings.get("extensions")
        if not isinstance(paths, list):
            return []
        return [str(path) for path in paths]

    def command_override(self, name: str) -> CommandOverride:
        """Return the validated override for a command (defaults if absent or invalid).

        Names match case-insensitively, like command lookup.
        """
        commands = self.settings.get("commands", {})
        raw = None
        if isinstance(commands, dict):
            key = str(name).lower()
            raw = next(
                (v for k, v in commands.items() if str(k).lower() == key), None
            )
        if not raw:
            return CommandOverride()
        try:
            return CommandOverride.model_validate(raw)
        except ValidationError as e:
            logger.warning(
                "command_override_ignored", command=name, errors=e.error_count()
            )
            return CommandOverride()

    @property
    def command_overrides(self) -> Dict[str, CommandOverride]:
        commands = self.settings.get("commands", {})
        if not isinstance(commands, dict):
            return {}
        return {name: self.command_override(name) for name in commands}

    @property
    def log_dir(self) -> Path:
        """Get log directory path."""
        configured = self.settings.get("log_dir")
        if configured:
            return Path(configured).expanduser()
        return Path(__file__).parent.parent / "logs"

    @property
    def logging_level(self) -> str:
        """Global log level (default INFO). Controls console and combined file."""
        log_config = self.settings.get("logging", {})
        return log_config.get("level", "INFO")

    @property
    def logging_subsystem_levels(self) -> dict:
        """Per-subsystem log level overrides. E.g. {"events": "DEBUG"}."""
        log_config = self.settings.get("logging", {})
        return log_config.get("subsystem_levels", {})

    @property
    def logging_max_file_size_mb(self) -> int:
        """Max size per log file in MB before rotation (default 10)."""
        log_config = self.settings.get("logging", {})
        return log_config.get("max_file_size_mb", 10)

    @property
    def logging_backup_count(self) -> int:
        """Number of rotated log files to keep (default 5)."""
        log_config = self.settings.get("logging", {})
        return log_config.get("backup_count", 5)


# Global config instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get or create the global config instance."""
    global _config
    if _config is None:
        _config = Config()
    return _config
