"""
Twitch chat connection implementation using IRC over websockets.

This module provides a concrete, read-only implementation of
ConnectionAdapter for Twitch chat. It logs in anonymously (a
``justinfan`` nick), joins a single channel and normalizes PRIVMSG
lines into platform-agnostic 'message' events.
"""

import asyncio
import logging
import random
import re
import time
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Tuple

import websockets
from websockets.exceptions import ConnectionClosed

from .adapter import ConnectionAdapter, ConnectionState
from .errors import AuthenticationError, ConnectionError, NotConnectedError, ProtocolError

_TAG_ESCAPES = {
    ':': ';',
    's': ' ',
    '\\': '\\',
    'r': '\r',
    'n': '\n',
}


@dataclass
class IrcMessage:
    """A single parsed IRC line (IRCv3 tags included)."""
    command: str
    params: List[str] = field(default_factory=list)
    tags: Dict[str, str] = field(default_factory=dict)
    prefix: Optional[str] = None

    @property
    def nick(self) -> Optional[str]:
        """Nick part of the prefix (``nick!user@host``)."""
        if not self.prefix:
            return None
        return self.prefix.split('!', 1)[0]

    @property
    def trailing(self) -> Optional[str]:
        """Last parameter, which carries the message text for PRIVMSG."""
        return self.params[-1] if self.params else None


def _unescape_tag_value(value: str) -> str:
    """Undo IRCv3 tag value escaping (``\\s`` -> space, ``\\:`` -> ``;``...)."""
    if '\\' not in value:
        return value

    out = []
    chars = iter(value)
    for char in chars:
        if char != '\\':
            out.append(char)
            continue
        escaped = next(chars, '')
        out.append(_TAG_ESCAPES.get(escaped, escaped))
    return ''.join(out)


def parse_irc_line(line: str) -> Optional[IrcMessage]:
    """
    Parse a raw IRC line.

    Args:
        line: One line without the trailing CRLF

    Returns:
        IrcMessage, or None if the line is malformed
    """
    line = line.rstrip('\r\n')
    if not line:
        return None

    tags: Dict[str, str] = {}
    prefix = None

    if line.startswith('@'):
        raw_tags, sep, line = line[1:].partition(' ')
        if not sep:
            return None
        for item in raw_tags.split(';'):
            if not item:
                continue
            key, _, value = item.partition('=')
            tags[key] = _unescape_tag_value(value)
        line = line.lstrip(' ')

    if line.startswith(':'):
        prefix, sep, line = line[1:].partition(' ')
        if not sep:
            return None
        line = line.lstrip(' ')

    if not line:
        return None

    if ' :' in line:
        head, trailing = line.split(' :', 1)
        parts = head.split()
        parts.append(trailing)
    elif line.startswith(':'):
        return None
    else:
        parts = line.split()

    command, params = parts[0], parts[1:]
    return IrcMessage(command=command.upper(), params=params, tags=tags, prefix=prefix)


@dataclass
class ConnectionStats:
    """Statistics for monitoring connection health."""
    messages_received: int = 0
    lines_dropped: int = 0
    last_error: Optional[str] = None
    connected_since: Optional[float] = None


class TwitchConnection(ConnectionAdapter):
    """
    Anonymous, read-only Twitch chat connection.

    Attributes:
        channel_name: Channel to join (without '#', lower-cased)
        server_url: IRC websocket endpoint
        nick: Anonymous login nick
        socket: Websocket connection (None when disconnected)

    Example:
        >>> conn = TwitchConnection('somechannel')
        >>> await conn.connect()
        >>> async for event, data in conn.recv_events():
        ...     print(data['user'], data['content'])
    """

    SERVER_URL = 'wss://irc-ws.chat.twitch.tv:443'
    ANONYMOUS_PASSWORD = 'SCHMOOPIIE'
    CAPABILITIES = 'twitch.tv/tags twitch.tv/commands'
    LOGIN_FAILED = re.compile(r'(login authentication failed|improperly formatted auth)', re.I)

    def __init__(self,
                 channel: str,
                 server_url: Optional[str] = None,
                 response_timeout: float = 10.0,
                 nick: Optional[str] = None,
                 connect_func: Optional[Callable] = None,
                 logger: Optional[logging.Logger] = None):
        """
        Initialize Twitch connection.

        Args:
            channel: Channel name (a leading '#' is stripped)
            server_url: Websocket endpoint (default: Twitch IRC over TLS)
            response_timeout: Seconds to wait for the login welcome
            nick: Login nick (default: random ``justinfan`` nick)
            connect_func: Websocket connect coroutine (default: websockets.connect)
            logger: Logger instance
        """
        super().__init__(logger)

        self.channel_name = channel.lstrip('#').strip().lower()
        self.server_url = server_url or self.SERVER_URL
        self.response_timeout = response_timeout
        self.nick = nick or f'justinfan{random.randint(10000, 99999)}'

        # Dependency injection
        self.connect_func = connect_func or websockets.connect

        self.socket = None
        self.stats = ConnectionStats()

    async def connect(self) -> None:
        """
        Open the websocket, log in anonymously and join the channel.

        Raises:
            ConnectionError: If the socket cannot be opened or times out
            AuthenticationError: If the server rejects the login
        """
        if self.is_connected:
            self.logger.warning("Already connected")
            return

        self._set_state(ConnectionState.CONNECTING)

        try:
            self.logger.info(f"Connecting to {self.server_url}")
            self.socket = await self.connect_func(self.server_url)

            await self._send(f'CAP REQ :{self.CAPABILITIES}')
            await self._send(f'PASS {self.ANONYMOUS_PASSWORD}')
            await self._send(f'NICK {self.nick}')
            await self._await_welcome()
            await self._send(f'JOIN #{self.channel_name}')

        except ConnectionError as e:
            await self._fail(str(e))
            raise
        except asyncio.TimeoutError as e:
            error_msg = f"Login timeout after {self.response_timeout}s"
            await self._fail(error_msg)
            raise ConnectionError(error_msg) from e
        except Exception as e:
            error_msg = f"Failed to connect: {e}"
            self.logger.error(error_msg, exc_info=True)
            await self._fail(error_msg)
            raise ConnectionError(error_msg) from e

        self._set_state(ConnectionState.CONNECTED)
        self.stats.connected_since = time.time()
        self.logger.info(f"Joined #{self.channel_name} as {self.nick}")

    async def disconnect(self) -> None:
        """
        Close connection gracefully.

        Does not raise exceptions - makes best effort to clean up.
        """
        await self._close_socket()
        if self._state is not ConnectionState.ERRORED:
            self._set_state(ConnectionState.DISCONNECTED)
        self.stats.connected_since = None

    async def recv_events(self) -> AsyncIterator[Tuple[str, Dict[str, Any]]]:  # type: ignore[override]
        """
        Async iterator yielding normalized events.

        Yields:
            Tuple of (event_name, event_data); 'message' for chat lines
            and 'notice' for server notices.

        Raises:
            NotConnectedError: If not connected
            ConnectionError: When the socket closes or the server asks
                             the client to reconnect
        """
        self._ensure_connected()

        try:
            while self.is_connected:
                frame = await self.socket.recv()
                if isinstance(frame, bytes):
                    frame = frame.decode('utf-8', errors='replace')

                for line in frame.split('\r\n'):
                    if not line:
                        continue

                    message = parse_irc_line(line)
                    if message is None:
                        self.stats.lines_dropped += 1
                        self.logger.warning(f"Dropping malformed line: {line!r}")
                        continue

                    if message.command == 'PING':
                        await self._send(f'PONG :{message.trailing or "tmi.twitch.tv"}')
                        continue

                    if message.command == 'RECONNECT':
                        raise ConnectionError("Server requested a reconnect")

                    normalized = self._normalize(message)
                    if normalized:
                        self.stats.messages_received += 1
                        yield normalized

        except ConnectionError as e:
            await self._fail(str(e))
            raise
        except ConnectionClosed as e:
            error_msg = f"Connection closed: {e}"
            await self._fail(error_msg)
            raise ConnectionError(error_msg) from e

    # Private methods

    def _ensure_connected(self) -> None:
        """Validate connection state, raise if not connected."""
        if not self.is_connected or self.socket is None:
            raise NotConnectedError(
                f"Not connected to #{self.channel_name}. Call connect() first."
            )

    async def _send(self, line: str) -> None:
        """Send a single IRC line."""
        await self.socket.send(f'{line}\r\n')

    async def _await_welcome(self) -> None:
        """
        Read lines until the server welcomes us (numeric 001).

        Raises:
            AuthenticationError: If the server sends a login failure notice
            ProtocolError: If the socket answers with an unexpected frame type
            asyncio.TimeoutError: If no welcome arrives in time
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.response_timeout

        while True:
            remaining = deadline - loop.time()
            if remaining <= 0:
                raise asyncio.TimeoutError()

            frame = await asyncio.wait_for(self.socket.recv(), timeout=remaining)
            if isinstance(frame, bytes):
                frame = frame.decode('utf-8', errors='replace')
            if not isinstance(frame, str):
                raise ProtocolError(f"Unexpected frame during login: {frame!r}")

            for line in frame.split('\r\n'):
                message = parse_irc_line(line)
                if message is None:
                    continue
                if message.command == 'PING':
                    await self._send(f'PONG :{message.trailing or "tmi.twitch.tv"}')
                elif message.command == 'NOTICE' and self.LOGIN_FAILED.search(message.trailing or ''):
                    raise AuthenticationError(f"Login rejected: {message.trailing}")
                elif message.command == '001':
                    self.logger.debug("Received welcome")
                    return

    def _normalize(self, message: IrcMessage) -> Optional[Tuple[str, Dict[str, Any]]]:
        """
        Normalize an IRC message to a platform-agnostic event.

        Returns:
            Tuple of (normalized_event, normalized_data) or None to skip
        """
        if message.command == 'PRIVMSG':
            return self._normalize_message(message)
        if message.command == 'NOTICE':
            return ('notice', {
                'content': message.trailing or '',
                'msg_id': message.tags.get('msg-id'),
                'platform_data': message.tags,
            })
        return None

    def _normalize_message(self, message: IrcMessage) -> Optional[Tuple[str, Dict[str, Any]]]:
        """Normalize a PRIVMSG line."""
        if len(message.params) < 2 or message.nick is None:
            self.stats.lines_dropped += 1
            self.logger.warning(f"Dropping PRIVMSG without sender or text: {message!r}")
            return None

        content = message.params[-1]
        is_action = content.startswith('\x01ACTION ') and content.endswith('\x01')
        if is_action:
            content = content[len('\x01ACTION '):-1]

        try:
            timestamp = int(message.tags.get('tmi-sent-ts', '0')) // 1000
        except ValueError:
            timestamp = 0

        return ('message', {
            'user': message.tags.get('display-name') or message.nick,
            'login': message.nick,
            'content': content,
            'color': message.tags.get('color') or None,
            'action': is_action,
            'timestamp': timestamp,
            'platform_data': message.tags,
        })

    async def _fail(self, reason: str) -> None:
        """Record a failure and release the socket."""
        self.stats.last_error = reason
        self._set_state(ConnectionState.ERRORED, reason)
        await self._close_socket()

    async def _close_socket(self) -> None:
        """Close the websocket if open, never raising."""
        socket, self.socket = self.socket, None
        if socket is None:
            return
        try:
            await socket.close()
        except Exception as e:
            self.logger.warning(f"Error during disconnect: {e}")
