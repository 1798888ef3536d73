"""
Application state machine and event loop.

The App is the only writer of the presentation state. Sources (ticker,
chat, keyboard, song poller, signals) run as independent tasks and post
typed events into one inbox; the App drains the inbox, applies every
ready event in arrival order and then renders exactly once.
"""

import asyncio
import logging
import signal
from datetime import timedelta
from typing import AsyncIterator, Callable, Dict, List, Optional

from common.config import Config
from lib.connection import ConnectionAdapter, ConnectionState

from .events import (
    ChatReceived,
    ConnectionChanged,
    ConnectionFailed,
    KeyPressed,
    Resized,
    Shutdown,
    SongUpdated,
    Tick,
)
from .hooks import HookResult, HookRunner
from .sources import INITIAL_SONG_TEXT, CountdownTicker, SongPoller, chat_events
from .state import AppPhase, ChatBuffer, ConnectionStatus, PresentationState, Snapshot


class App:
    """
    The brb runtime.

    Args:
        config: Merged configuration
        duration: Countdown length, or None for no countdown
        renderer: Callable receiving one Snapshot per drained cycle
        connection: Chat connection, or None when chat is disabled
        hook_runner: Runs start and exit hooks (default: HookRunner with
                     the configured timeout)
        tick_interval: Seconds between countdown ticks
        input_watcher: Source of KeyPressed events (anything with an
                       ``events()`` async iterator)
        song_poller: Source of SongUpdated events
        install_signals: Hook SIGINT/SIGTERM/SIGWINCH into the inbox

    Example:
        >>> app = App(config, duration=timedelta(minutes=5), renderer=renderer)
        >>> exit_code = await app.run()
    """

    def __init__(self,
                 config: Config,
                 duration: Optional[timedelta] = None,
                 renderer: Optional[Callable[[Snapshot], None]] = None,
                 connection: Optional[ConnectionAdapter] = None,
                 hook_runner: Optional[HookRunner] = None,
                 tick_interval: float = 1.0,
                 input_watcher=None,
                 song_poller: Optional[SongPoller] = None,
                 install_signals: bool = True,
                 logger: Optional[logging.Logger] = None):
        self.config = config
        self.logger = logger or logging.getLogger(__name__)
        self.renderer = renderer
        self.connection = connection
        self.hook_runner = hook_runner or HookRunner(timeout=config.hook_timeout)
        self.tick_interval = tick_interval
        self.input_watcher = input_watcher
        self.song_poller = song_poller
        self.install_signals = install_signals

        self.phase = AppPhase.INITIALIZING
        self.state = PresentationState(
            text=config.text,
            color=config.color,
            remaining=duration,
            total=duration,
            chat_visible=connection is not None,
            channel=config.twitch_channel if connection is not None else None,
            chat=ChatBuffer(config.chat_buffer_size),
            song=INITIAL_SONG_TEXT if song_poller is not None else None,
            hide_timer=config.hide_timer,
            progress_bar=config.progress_bar,
            padding=config.padding,
        )

        self.inbox: asyncio.Queue = asyncio.Queue()
        self.hook_results: Dict[str, List[HookResult]] = {'start': [], 'exit': []}
        self.renders = 0
        self._tasks: List[asyncio.Task] = []
        self._signals: List[int] = []

    # Event intake

    def post(self, event) -> None:
        """Queue an event for the next drain cycle."""
        self.inbox.put_nowait(event)

    def dispatch(self, event) -> None:
        """Apply a single event to the state."""
        if self.phase is AppPhase.TERMINATED:
            return

        if isinstance(event, Tick):
            self.on_tick(event.elapsed)
        elif isinstance(event, ChatReceived):
            self.on_chat_message(event)
        elif isinstance(event, KeyPressed):
            self.on_key(event.key)
        elif isinstance(event, ConnectionChanged):
            self.on_connection_state(event.state)
        elif isinstance(event, ConnectionFailed):
            self.on_connection_error(event.reason)
        elif isinstance(event, SongUpdated):
            self.on_song(event.text)
        elif isinstance(event, Shutdown):
            self.terminate(event.reason)
        elif isinstance(event, Resized):
            pass  # redraw only
        else:
            self.logger.warning(f"Ignoring unknown event: {event!r}")

    # Transitions

    def on_tick(self, elapsed: float) -> None:
        """Count the remaining time down, never below zero."""
        if self.state.remaining is None:
            return
        remaining = self.state.remaining - timedelta(seconds=elapsed)
        self.state.remaining = max(remaining, timedelta(0))
        self._check_finished()

    def on_chat_message(self, message: ChatReceived) -> None:
        self.state.chat.append(message.sender, message.text, message.color)

    def on_key(self, key: str) -> None:
        """Quit on the configured key; every other key is ignored."""
        if key == self.config.quit_key:
            self.terminate(f"quit key '{key}'")

    def on_connection_state(self, state: ConnectionState) -> None:
        self.logger.info(f"Chat connection {state.value}")
        self.state.connection = ConnectionStatus(state=state)

    def on_connection_error(self, reason: str) -> None:
        """Record a chat failure; only the chat pane degrades."""
        self.logger.warning(f"Chat connection failed: {reason}")
        self.state.connection = ConnectionStatus(state=ConnectionState.ERRORED, reason=reason)

    def on_song(self, text: str) -> None:
        self.state.song = text

    def terminate(self, reason: str) -> None:
        if self.phase is not AppPhase.TERMINATED:
            self.logger.info(f"Terminating ({reason})")
        self.phase = AppPhase.TERMINATED

    def enter_running(self) -> None:
        self.phase = AppPhase.RUNNING
        self._check_finished()

    def _check_finished(self) -> None:
        """Move to Finishing once the countdown hits zero with hide_timer set."""
        if self.phase is not AppPhase.RUNNING or self.state.remaining is None:
            return
        if self.state.remaining <= timedelta(0) and self.state.hide_timer:
            self.logger.info("Countdown finished, hiding timer")
            self.phase = AppPhase.FINISHING

    # Rendering

    def render_snapshot(self) -> Snapshot:
        """Immutable copy of the current presentation state."""
        return self.state.snapshot(self.phase)

    def render(self) -> None:
        self.renders += 1
        if self.renderer is not None:
            self.renderer(self.render_snapshot())

    # Loop

    async def run_cycle(self) -> bool:
        """
        Wait for events, apply everything ready, render once.

        Returns:
            False once the app has terminated, True otherwise
        """
        batch = [await self.inbox.get()]
        while True:
            try:
                batch.append(self.inbox.get_nowait())
            except asyncio.QueueEmpty:
                break

        for event in batch:
            self.dispatch(event)
            if self.phase is AppPhase.TERMINATED:
                # Rest of the batch is dropped, nothing left to draw
                return False

        self.render()
        return True

    async def run(self) -> int:
        """
        Run until quit or interrupt.

        Returns:
            Process exit code
        """
        if self.install_signals:
            self._install_signal_handlers()

        try:
            await self.start()
            while self.phase is not AppPhase.TERMINATED:
                if not await self.run_cycle():
                    break
        finally:
            await self.stop()
            self._remove_signal_handlers()

        return 0

    async def start(self) -> None:
        """Run start hooks, start every source and draw the first frame."""
        self.hook_results['start'] = await self.hook_runner.run(
            'start', self.config.start_commands
        )

        if self.connection is not None:
            self._spawn('chat', chat_events(self.connection, self.logger))

        self.enter_running()

        if self.state.countdown_active:
            ticker = CountdownTicker(self._countdown_running, self.tick_interval)
            self._spawn('ticker', ticker.events())
        if self.input_watcher is not None:
            self._spawn('input', self.input_watcher.events())
        if self.song_poller is not None:
            self._spawn('song', self.song_poller.events())

        self.render()

    async def stop(self) -> None:
        """Stop sources, close chat and run exit hooks."""
        self.phase = AppPhase.TERMINATED

        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        if self.connection is not None:
            await self.connection.disconnect()

        self.hook_results['exit'] = await self.hook_runner.run(
            'exit', self.config.exit_commands
        )

    def _countdown_running(self) -> bool:
        return self.phase is not AppPhase.TERMINATED and self.state.countdown_active

    def _spawn(self, name: str, events: AsyncIterator) -> None:
        self._tasks.append(asyncio.create_task(self._pump(name, events)))

    async def _pump(self, name: str, events: AsyncIterator) -> None:
        """Forward a source's events into the inbox until it ends or fails."""
        try:
            async for event in events:
                self.post(event)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.logger.exception(f"Event source '{name}' failed: {e}")
        else:
            self.logger.debug(f"Event source '{name}' finished")
        finally:
            aclose = getattr(events, 'aclose', None)
            if aclose is not None:
                await aclose()

    # Signals

    def _install_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        handlers = [
            (signal.SIGINT, Shutdown(reason='SIGINT')),
            (signal.SIGTERM, Shutdown(reason='SIGTERM')),
        ]
        if hasattr(signal, 'SIGWINCH'):
            handlers.append((signal.SIGWINCH, Resized()))

        for signum, event in handlers:
            try:
                loop.add_signal_handler(signum, self.post, event)
            except (NotImplementedError, RuntimeError, ValueError):
                # Windows event loops and non-main threads
                self.logger.debug(f"Cannot handle signal {signum} here")
                continue
            self._signals.append(signum)

    def _remove_signal_handlers(self) -> None:
        if not self._signals:
            return
        loop = asyncio.get_running_loop()
        for signum in self._signals:
            loop.remove_signal_handler(signum)
        self._signals = []
