"""Common utilities for brb: configuration and logging."""
from .config import (
    Config,
    ConfigError,
    config_dir,
    configure_logger,
    load_config,
    parse_color,
)

__all__ = [
    'Config',
    'ConfigError',
    'config_dir',
    'configure_logger',
    'load_config',
    'parse_color',
]
