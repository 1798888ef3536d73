#!/usr/bin/env python3
"""Command line entry point for brb."""

import argparse
import asyncio
import logging
import sys
from datetime import timedelta
from typing import Any, Dict, List, Optional

from blessed import Terminal

from common.config import (
    Config,
    ConfigError,
    config_dir,
    configure_logger,
    load_config,
    parse_color,
    parse_log_level,
)
from lib.connection import TwitchConnection

from . import __version__
from .app import App
from .duration import parse_time_arg, total_duration
from .render import TerminalRenderer
from .sources import InputWatcher, SongPoller

logger = logging.getLogger(__name__)

TRUE_VALUES = ('true', 'yes', 'on', '1')
FALSE_VALUES = ('false', 'no', 'off', '0')


def bool_arg(value: str) -> bool:
    """argparse type for explicit booleans such as ``--chat true``."""
    lowered = value.strip().lower()
    if lowered in TRUE_VALUES:
        return True
    if lowered in FALSE_VALUES:
        return False
    raise argparse.ArgumentTypeError(f"expected true or false, got '{value}'")


def color_arg(value: str):
    try:
        return parse_color(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e))


def time_arg(value: str) -> str:
    try:
        parse_time_arg(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e))
    return value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='brb',
        description='Full-screen "be right back" screen with countdown and live chat.',
    )
    parser.add_argument('time', nargs='*', type=time_arg, metavar='TIME',
                        help="Countdown parts such as 1h 30m 15s (summed)")
    parser.add_argument('-t', '--text', help='Text shown below the countdown')
    parser.add_argument('--chat', type=bool_arg, metavar='BOOL',
                        help='Show the Twitch chat pane')
    parser.add_argument('--song-display', type=bool_arg, metavar='BOOL',
                        help='Show the current song line')
    parser.add_argument('--twitch', dest='twitch_channel', metavar='CHANNEL',
                        help='Twitch channel whose chat is shown')
    parser.add_argument('--color', type=color_arg, metavar='NAME|R,G,B',
                        help='Accent color')
    parser.add_argument('--hide-timer', type=bool_arg, metavar='BOOL',
                        help='Hide the timer once the countdown is over')
    parser.add_argument('--progress-bar', type=bool_arg, metavar='BOOL',
                        help='Show a progress bar under the countdown')
    parser.add_argument('--padding', type=int, metavar='N',
                        help='Blank cells around the screen edge')
    parser.add_argument('--config', metavar='PATH',
                        help='Configuration file (default: brb.yaml in the config directory)')
    parser.add_argument('--log-file', metavar='PATH', help='Log file')
    parser.add_argument('--log-level', metavar='LEVEL', help='Log level (debug, info, ...)')
    parser.add_argument('--dir', action='store_true',
                        help='Print the configuration directory and exit')
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    return parser


def overrides_from_args(args: argparse.Namespace) -> Dict[str, Any]:
    """CLI values that take precedence over the configuration file."""
    return {
        'text': args.text,
        'chat': args.chat,
        'song_display': args.song_display,
        'twitch_channel': args.twitch_channel,
        'color': args.color,
        'hide_timer': args.hide_timer,
        'progress_bar': args.progress_bar,
        'padding': args.padding,
        'log_file': args.log_file,
        'log_level': args.log_level,
    }


def resolve_config(args: argparse.Namespace) -> Config:
    """
    Load the configuration file and apply CLI overrides.

    Raises:
        ConfigError: If the file or the merged values are invalid
    """
    config = load_config(args.config).merge(**overrides_from_args(args))
    config.validate()
    return config


async def run_app(config: Config, duration: Optional[timedelta], term: Terminal) -> int:
    """Wire the sources to the App and run it inside an open renderer."""
    connection = TwitchConnection(config.twitch_channel) if config.chat_enabled else None
    song_poller = None
    if config.song_display:
        song_poller = SongPoller(config.song_command, config.song_interval, config.hook_timeout)

    with TerminalRenderer(term) as renderer:
        app = App(
            config,
            duration=duration,
            renderer=renderer,
            connection=connection,
            input_watcher=InputWatcher(term),
            song_poller=song_poller,
        )
        return await app.run()


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for brb

    Returns:
        0 on normal exit or interrupt
        1 on configuration errors
        2 on usage errors (raised by argparse as SystemExit)
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.dir:
        print(config_dir())
        return 0

    try:
        config = resolve_config(args)
    except ConfigError as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        return 1

    # The UI owns the terminal, so logs only go to the file
    configure_logger(
        logging.getLogger(),
        log_file=config.log_path,
        log_level=parse_log_level(config.log_level),
    )

    duration = total_duration(args.time) if args.time else None
    logger.info(f"Starting brb {__version__} (countdown: {duration}, chat: {config.chat_enabled})")

    try:
        return asyncio.run(run_app(config, duration, Terminal()))
    except KeyboardInterrupt:
        return 0


if __name__ == '__main__':
    sys.exit(main())
