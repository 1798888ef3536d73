#!/usr/bin/env python3
# -*- coding: utf-8 -*-
import json
import logging
import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import yaml

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = 'brb.yaml'
LOG_FORMAT = '[%(asctime).19s] [%(name)s] [%(levelname)s] %(message)s'

# Accent colors understood by name
COLOR_NAMES = (
    'black', 'red', 'green', 'yellow',
    'blue', 'magenta', 'cyan', 'white',
)

Color = Union[str, Tuple[int, int, int]]


class ConfigError(Exception):
    """Configuration file is missing required structure or has bad values."""
    pass


class RobustFileHandler(logging.FileHandler):
    """FileHandler that gracefully handles flush errors on Windows"""

    def flush(self):
        """Flush the stream, catching OSError on Windows file handles"""
        try:
            super().flush()
        except OSError as e:
            # Windows can fail to flush with "Invalid argument" when the
            # handle is in an inconsistent state
            if e.errno == 22:  # EINVAL
                pass
            else:
                raise


def configure_logger(logger,
                     log_file=None,
                     log_format=LOG_FORMAT,
                     log_level=logging.INFO):
    """Configure a logger with a file or stream handler

    Args:
        logger: Logger instance or logger name string
        log_file: File path string or file-like object (None for stderr)
        log_format: Format string for log messages
        log_level: Logging level (e.g., logging.INFO, logging.DEBUG)

    Returns:
        Configured logger instance
    """
    # Create file handler if path, otherwise stream handler
    if isinstance(log_file, (str, Path)):
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handler = RobustFileHandler(
            str(log_file),
            mode='a',
            encoding='utf-8',
            errors='replace'
        )
    else:
        handler = logging.StreamHandler(log_file)  # Default to stderr if None

    formatter = logging.Formatter(log_format)

    if isinstance(logger, str):
        logger = logging.getLogger(logger)

    handler.setFormatter(formatter)
    logger.addHandler(handler)
    logger.setLevel(log_level)

    return logger


def parse_log_level(name: str) -> int:
    """Turn 'info', 'DEBUG', ... into a logging constant."""
    level = getattr(logging, str(name).upper(), None)
    if not isinstance(level, int):
        raise ConfigError(f"Unknown log level '{name}'")
    return level


def config_dir() -> Path:
    """Return the per-user configuration directory for brb.

    Honors XDG_CONFIG_HOME (and APPDATA on Windows), falling back to
    ~/.config.
    """
    base = os.environ.get('XDG_CONFIG_HOME') or os.environ.get('APPDATA')
    root = Path(base) if base else Path.home() / '.config'
    return root / 'brb'


def default_config_path() -> Path:
    """Location of the configuration file when none is given."""
    return config_dir() / CONFIG_FILE_NAME


def parse_color(value: Any) -> Color:
    """Parse an accent color.

    Accepts a color name ('red'), an 'R,G,B' string, a [r, g, b] list or
    an {r, g, b} mapping.

    Returns:
        Lower-cased color name or an (r, g, b) tuple

    Raises:
        ValueError: If the value is not a valid color
    """
    if isinstance(value, dict):
        try:
            value = [value['r'], value['g'], value['b']]
        except KeyError as e:
            raise ValueError(f"RGB color mapping is missing {e}") from e

    if isinstance(value, (list, tuple)):
        return _rgb_tuple(value)

    if not isinstance(value, str):
        raise ValueError(f"Invalid color {value!r}")

    name = value.strip().lower()
    if name in COLOR_NAMES:
        return name

    if ',' not in name:
        raise ValueError(f"Invalid color name '{value}'")

    if name.startswith(',') or name.endswith(','):
        raise ValueError("Invalid RGB color format, must be 'R,G,B'")

    return _rgb_tuple(name.split(','))


def _rgb_tuple(values) -> Tuple[int, int, int]:
    """Validate three 0-255 components."""
    components = []
    for v in values:
        try:
            number = int(str(v).strip())
        except ValueError:
            raise ValueError(f"Invalid value '{v}', must be a number between 0 and 255")
        if not 0 <= number <= 255:
            raise ValueError(f"Invalid value '{v}', must be a number between 0 and 255")
        components.append(number)

    if len(components) != 3:
        raise ValueError(f"RGB colors need exactly 3 values, {len(components)} were provided")

    return tuple(components)  # type: ignore[return-value]


@dataclass
class Config:
    """Settings for one run.

    Built from defaults, then the configuration file, then CLI overrides.
    """
    text: str = 'Be right back'
    color: Color = 'white'
    twitch_channel: Optional[str] = None
    chat: bool = False
    hide_timer: bool = False
    progress_bar: bool = True
    padding: int = 0
    song_display: bool = False
    song_command: str = 'sc current'
    song_interval: float = 5.0
    start_commands: List[str] = field(default_factory=list)
    exit_commands: List[str] = field(default_factory=list)
    quit_key: str = 'q'
    chat_buffer_size: int = 200
    hook_timeout: float = 10.0
    log_file: Optional[str] = None
    log_level: str = 'info'

    @property
    def chat_enabled(self) -> bool:
        """Chat is shown only when enabled and a channel is configured."""
        return bool(self.chat and self.twitch_channel)

    @property
    def log_path(self) -> Path:
        """Log file path, defaulting to the config directory."""
        if self.log_file:
            return Path(self.log_file).expanduser()
        return config_dir() / 'brb.log'

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Config':
        """Build a Config from a parsed configuration document.

        Raises:
            ConfigError: If a value has the wrong type
        """
        if data is None:
            return cls()
        if not isinstance(data, dict):
            raise ConfigError('Configuration must be a mapping of settings')

        known = {f.name: f for f in fields(cls)}
        values: Dict[str, Any] = {}

        # Nested logging section, as in the bot configuration format
        logging_section = data.get('logging', {})
        if not isinstance(logging_section, dict):
            raise ConfigError("'logging' must be a mapping")
        if 'file' in logging_section:
            values['log_file'] = logging_section['file']
        if 'level' in logging_section:
            values['log_level'] = logging_section['level']

        for key, value in data.items():
            if key == 'logging':
                continue
            if key not in known:
                logger.warning("Ignoring unknown config key '%s'", key)
                continue
            values[key] = value

        if 'color' in values:
            try:
                values['color'] = parse_color(values['color'])
            except ValueError as e:
                logger.warning("Invalid color in config (%s), using default", e)
                del values['color']

        config = cls(**values)
        config.validate()
        return config

    def validate(self) -> None:
        """Check value types and ranges.

        Raises:
            ConfigError: On the first invalid value
        """
        for name in ('text', 'song_command', 'quit_key', 'log_level'):
            if not isinstance(getattr(self, name), str):
                raise ConfigError(f"'{name}' must be a string")

        for name in ('chat', 'hide_timer', 'progress_bar', 'song_display'):
            if not isinstance(getattr(self, name), bool):
                raise ConfigError(f"'{name}' must be true or false")

        if self.twitch_channel is not None and not isinstance(self.twitch_channel, str):
            raise ConfigError("'twitch_channel' must be a string")
        if self.log_file is not None and not isinstance(self.log_file, str):
            raise ConfigError("'logging.file' must be a string")

        for name in ('padding', 'chat_buffer_size'):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise ConfigError(f"'{name}' must be a non-negative integer")
        if self.chat_buffer_size < 1:
            raise ConfigError("'chat_buffer_size' must be at least 1")

        for name in ('song_interval', 'hook_timeout'):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
                raise ConfigError(f"'{name}' must be a positive number")

        for name in ('start_commands', 'exit_commands'):
            value = getattr(self, name)
            if not isinstance(value, list) or not all(isinstance(c, str) for c in value):
                raise ConfigError(f"'{name}' must be a list of command strings")

        if not self.quit_key:
            raise ConfigError("'quit_key' must not be empty")

        parse_log_level(self.log_level)

    def merge(self, **overrides) -> 'Config':
        """Return a copy with every non-None override applied."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **changes)


def load_config(config_file: Optional[Union[str, Path]] = None) -> Config:
    """Load configuration from a JSON or YAML file

    Args:
        config_file: Path to the file. None means the default location,
                     where a missing file yields the built-in defaults.

    Returns:
        Config instance

    Raises:
        ConfigError: If the file cannot be read or parsed, or holds bad values
    """
    explicit = config_file is not None
    path = Path(config_file).expanduser() if explicit else default_config_path()

    if not path.is_file():
        if explicit:
            raise ConfigError(f"Config file not found: {path}")
        return Config()

    try:
        with open(path, 'r', encoding='utf-8') as fp:
            if path.suffix in ('.yaml', '.yml'):
                data = yaml.safe_load(fp)
            else:
                data = json.load(fp)
    except (OSError, yaml.YAMLError, json.JSONDecodeError) as e:
        raise ConfigError(f"Failed to read config {path}: {e}") from e

    try:
        return Config.from_dict(data)
    except TypeError as e:
        raise ConfigError(f"Invalid config {path}: {e}") from e
    except ConfigError as e:
        raise ConfigError(f"Invalid config {path}: {e}") from e
