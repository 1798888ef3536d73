"""
Unit tests for the event sources: ticker, input watcher, song poller and
the chat event adapter.
"""

import asyncio
import sys
from unittest.mock import MagicMock

import pytest

from brb.events import (
    ChatReceived,
    ConnectionChanged,
    ConnectionFailed,
    KeyPressed,
    SongUpdated,
    Tick,
)
from brb.sources import INITIAL_SONG_TEXT, CountdownTicker, InputWatcher, SongPoller, chat_events
from lib.connection import AuthenticationError, ConnectionError, ConnectionState


async def collect(events, limit=None):
    """Gather events from an async iterator (optionally only the first few)."""
    items = []
    try:
        async for event in events:
            items.append(event)
            if limit is not None and len(items) >= limit:
                break
    finally:
        await events.aclose()
    return items


class TestCountdownTicker:
    """Test periodic countdown ticks."""

    @pytest.mark.asyncio
    async def test_ticks_while_active(self):
        remaining = [3]

        def is_active():
            return remaining[0] > 0

        ticks = []
        async for tick in CountdownTicker(is_active, interval=0.01).events():
            ticks.append(tick)
            remaining[0] -= 1

        assert ticks == [Tick(elapsed=0.01)] * 3

    @pytest.mark.asyncio
    async def test_inactive_yields_nothing(self):
        assert await collect(CountdownTicker(lambda: False, interval=0.01).events()) == []

    @pytest.mark.asyncio
    async def test_cadence_follows_loop_clock(self):
        loop = asyncio.get_running_loop()
        count = [0]

        def is_active():
            return count[0] < 5

        started = loop.time()
        async for _ in CountdownTicker(is_active, interval=0.02).events():
            count[0] += 1
        elapsed = loop.time() - started

        assert elapsed >= 0.1 - 0.005
        assert elapsed < 1.0


class FakeKey(str):
    """Minimal stand-in for blessed's Keystroke."""

    def __new__(cls, value='', name=None):
        key = super().__new__(cls, value)
        key.name = name
        key.is_sequence = name is not None
        return key


class TestInputWatcher:
    """Test key press polling."""

    @pytest.mark.asyncio
    async def test_yields_characters_and_key_names(self):
        term = MagicMock()
        term.inkey.side_effect = [
            FakeKey(''),
            FakeKey('a'),
            FakeKey('\x1b', name='KEY_ESCAPE'),
            FakeKey('q'),
        ]

        events = await collect(InputWatcher(term, poll_interval=0.001).events(), limit=3)

        assert events == [KeyPressed('a'), KeyPressed('KEY_ESCAPE'), KeyPressed('q')]
        term.inkey.assert_called_with(timeout=0, esc_delay=0.02)

    @pytest.mark.asyncio
    async def test_custom_escape_delay(self):
        term = MagicMock()
        term.inkey.side_effect = [FakeKey('\x1b', name='KEY_ESCAPE')]

        events = await collect(InputWatcher(term, esc_delay=0.005).events(), limit=1)

        assert events == [KeyPressed('KEY_ESCAPE')]
        term.inkey.assert_called_once_with(timeout=0, esc_delay=0.005)

    @pytest.mark.asyncio
    async def test_sleeps_between_empty_reads(self, monkeypatch):
        term = MagicMock()
        term.inkey.side_effect = [FakeKey(''), FakeKey(''), FakeKey('x')]
        sleeps = []
        real_sleep = asyncio.sleep

        async def fake_sleep(delay):
            sleeps.append(delay)
            await real_sleep(0)

        monkeypatch.setattr('brb.sources.asyncio.sleep', fake_sleep)
        events = await collect(InputWatcher(term, poll_interval=0.05).events(), limit=1)

        assert events == [KeyPressed('x')]
        assert sleeps == [0.05, 0.05]


@pytest.mark.skipif(sys.platform == 'win32', reason="uses POSIX commands")
class TestSongPoller:
    """Test the song/status line poller."""

    @pytest.mark.asyncio
    async def test_poll_strips_output(self):
        poller = SongPoller("echo '  Artist - Title  '", interval=0.01)
        assert await poller.poll() == 'Artist - Title'

    @pytest.mark.asyncio
    async def test_failure_becomes_error_text(self):
        poller = SongPoller('definitely-not-a-real-command-xyz', interval=0.01)
        text = await poller.poll()
        assert text.startswith('Error: ')

    @pytest.mark.asyncio
    async def test_timeout_becomes_error_text(self):
        poller = SongPoller('sleep 10', interval=0.01, timeout=0.1)
        assert 'timed out' in await poller.poll()

    @pytest.mark.asyncio
    async def test_events_repeat(self):
        poller = SongPoller('echo song', interval=0.01)
        events = await collect(poller.events(), limit=2)
        assert events == [SongUpdated('song'), SongUpdated('song')]

    @pytest.mark.asyncio
    async def test_cancelled_poll_kills_command(self, tmp_path):
        marker = tmp_path / 'song-ran'
        poller = SongPoller(f"sh -c 'sleep 0.5; touch {marker}'", timeout=5)

        task = asyncio.create_task(poller.poll())
        await asyncio.sleep(0.1)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        await asyncio.sleep(0.8)
        assert not marker.exists()

    def test_initial_text(self):
        assert INITIAL_SONG_TEXT == 'Getting current song ...'


class TestChatEvents:
    """Test conversion of connection events into app events."""

    @pytest.mark.asyncio
    async def test_messages_between_state_changes(self, mock_connection):
        mock_connection.push('message', {'user': 'Alice', 'content': 'hi', 'color': '#FF0000'})
        mock_connection.push('message', {'user': 'bob', 'content': 'yo', 'color': None})

        events = await collect(chat_events(mock_connection))

        assert events == [
            ConnectionChanged(ConnectionState.CONNECTING),
            ConnectionChanged(ConnectionState.CONNECTED),
            ChatReceived('Alice', 'hi', (255, 0, 0)),
            ChatReceived('bob', 'yo', None),
            ConnectionFailed('Connection closed'),
        ]

    @pytest.mark.asyncio
    async def test_connect_failure_yields_single_failure(self, failing_connection):
        events = await collect(chat_events(failing_connection))

        assert events == [
            ConnectionChanged(ConnectionState.CONNECTING),
            ConnectionFailed('Connection refused'),
        ]

    @pytest.mark.asyncio
    async def test_authentication_failure(self, mock_connection):
        mock_connection.fail_connect = AuthenticationError('Login rejected')
        events = await collect(chat_events(mock_connection))
        assert events[-1] == ConnectionFailed('Login rejected')

    @pytest.mark.asyncio
    async def test_stream_failure_after_messages(self, mock_connection):
        mock_connection.push('message', {'user': 'carol', 'content': 'first'})
        mock_connection.fail_with = ConnectionError('Connection closed: 1006')

        events = await collect(chat_events(mock_connection))

        assert events[-2] == ChatReceived('carol', 'first', None)
        assert events[-1] == ConnectionFailed('Connection closed: 1006')
        assert sum(isinstance(e, ConnectionFailed) for e in events) == 1

    @pytest.mark.asyncio
    async def test_malformed_and_notice_events_are_dropped(self, mock_connection, caplog):
        mock_connection.push('message', {'content': 'no sender'})
        mock_connection.push('notice', {'content': 'Welcome'})
        mock_connection.push('roomstate', {})
        mock_connection.push('message', {'user': 'dave', 'content': 'ok'})

        events = await collect(chat_events(mock_connection))

        chat = [e for e in events if isinstance(e, ChatReceived)]
        assert chat == [ChatReceived('dave', 'ok', None)]
        assert 'malformed' in caplog.text

    @pytest.mark.asyncio
    async def test_unexpected_stream_error_is_reported(self, mock_connection, caplog):
        mock_connection.push('message', {'user': 'erin', 'content': 'before'})
        mock_connection.fail_with = RuntimeError('bad frame')

        events = await collect(chat_events(mock_connection))

        assert events[-2] == ChatReceived('erin', 'before', None)
        assert events[-1] == ConnectionFailed('bad frame')
        assert sum(isinstance(e, ConnectionFailed) for e in events) == 1
        assert 'Unexpected chat error' in caplog.text
