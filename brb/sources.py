"""
Event sources feeding the application inbox.

Each source is an async iterator of typed events. The application runs
every source in its own task and pumps what it yields into one queue, so
sources never touch presentation state themselves.
"""

import asyncio
import logging
from typing import AsyncIterator, Callable, Optional

from lib.connection import ConnectionAdapter, ConnectionState
from lib.connection.errors import ConnectionError

from .events import (
    ChatReceived,
    ConnectionChanged,
    ConnectionFailed,
    KeyPressed,
    SongUpdated,
    Tick,
)
from .hooks import read_command_output
from .state import parse_provider_color

logger = logging.getLogger(__name__)

INITIAL_SONG_TEXT = 'Getting current song ...'


class CountdownTicker:
    """
    Periodic countdown ticks.

    Ticks are scheduled against the event loop clock rather than by
    sleeping a fixed amount after each tick, so slow consumers do not make
    the countdown drift.

    Args:
        is_active: Predicate telling whether a countdown is still running.
        interval: Seconds between ticks.
    """

    def __init__(self, is_active: Callable[[], bool], interval: float = 1.0):
        self.is_active = is_active
        self.interval = interval

    async def events(self) -> AsyncIterator[Tick]:
        loop = asyncio.get_running_loop()
        next_tick = loop.time() + self.interval

        while self.is_active():
            delay = next_tick - loop.time()
            if delay > 0:
                await asyncio.sleep(delay)
            if not self.is_active():
                break
            yield Tick(elapsed=self.interval)
            next_tick += self.interval

        logger.debug("Countdown ticker stopped")


class InputWatcher:
    """
    Terminal key presses.

    Polls blessed's ``inkey`` without blocking and yields to the event loop
    between empty reads. The terminal must already be in cbreak mode.

    ``inkey`` is synchronous and blocks the loop for ``esc_delay`` after a
    lone Escape, so the delay is kept short.

    Args:
        term: blessed Terminal instance
        poll_interval: Seconds to sleep when no key is waiting
        esc_delay: Seconds to wait for the rest of an escape sequence
    """

    def __init__(self, term, poll_interval: float = 0.05, esc_delay: float = 0.02):
        self.term = term
        self.poll_interval = poll_interval
        self.esc_delay = esc_delay

    async def events(self) -> AsyncIterator[KeyPressed]:
        while True:
            key = self.term.inkey(timeout=0, esc_delay=self.esc_delay)
            if not key:
                await asyncio.sleep(self.poll_interval)
                continue

            # Special keys carry a name such as KEY_ESCAPE
            name = getattr(key, 'name', None)
            if getattr(key, 'is_sequence', False) and name:
                yield KeyPressed(key=name)
            else:
                yield KeyPressed(key=str(key))


class SongPoller:
    """
    Song/status line read from an external command.

    Runs the command right away and then every ``interval`` seconds. A
    failing command produces an ``Error: ...`` line instead of stopping
    the poller.
    """

    def __init__(self, command: str, interval: float = 5.0, timeout: float = 10.0):
        self.command = command
        self.interval = interval
        self.timeout = timeout

    async def poll(self) -> str:
        """Run the command once and return the text to display."""
        try:
            output = await read_command_output(self.command, self.timeout)
        except asyncio.TimeoutError:
            return f"Error: '{self.command}' timed out"
        except (OSError, ValueError) as e:
            logger.warning(f"Song command failed: {e}")
            return f"Error: {e}"
        return output.strip()

    async def events(self) -> AsyncIterator[SongUpdated]:
        while True:
            yield SongUpdated(text=await self.poll())
            await asyncio.sleep(self.interval)


async def chat_events(connection: ConnectionAdapter,
                      log: Optional[logging.Logger] = None):
    """
    Turn a chat connection into application events.

    Yields ``ConnectionChanged`` for connecting and connected, one
    ``ChatReceived`` per chat line and, when the connection fails or ends,
    exactly one final ``ConnectionFailed``. Connection errors never
    propagate out of this generator.

    Args:
        connection: Unconnected ConnectionAdapter
        log: Logger instance (default: module logger)
    """
    log = log or logger

    yield ConnectionChanged(state=ConnectionState.CONNECTING)
    try:
        await connection.connect()
        yield ConnectionChanged(state=ConnectionState.CONNECTED)

        async for event, data in connection.recv_events():
            if event == 'message':
                sender = data.get('user')
                text = data.get('content')
                if not sender or text is None:
                    log.warning(f"Dropping malformed chat message: {data!r}")
                    continue
                yield ChatReceived(
                    sender=sender,
                    text=text,
                    color=parse_provider_color(data.get('color')),
                )
            elif event == 'notice':
                log.info(f"Chat notice: {data.get('content')}")
            else:
                log.debug(f"Ignoring chat event '{event}'")

    except ConnectionError as e:
        log.warning(f"Chat connection failed: {e}")
        yield ConnectionFailed(reason=str(e) or e.__class__.__name__)
        return
    except Exception as e:
        log.exception(f"Unexpected chat error: {e}")
        yield ConnectionFailed(reason=str(e) or e.__class__.__name__)
        return

    yield ConnectionFailed(reason='Connection closed')
