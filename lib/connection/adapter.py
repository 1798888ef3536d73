"""
Abstract connection adapter for chat platforms.

This module defines the ConnectionAdapter abstract base class that all
platform connection implementations must inherit from. Connections are
read-only: they join a channel and yield normalized events, nothing is
ever sent to the channel.
"""

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, AsyncIterator, Dict, Optional, Tuple


class ConnectionState(Enum):
    """Lifecycle of a chat connection."""
    DISCONNECTED = 'disconnected'
    CONNECTING = 'connecting'
    CONNECTED = 'connected'
    ERRORED = 'errored'


class ConnectionAdapter(ABC):
    """
    Abstract interface for read-only platform connections.

    The adapter pattern allows swapping connection implementations without
    changing the application, and makes it easy to test with mock
    connections.

    Attributes:
        logger: Logger instance for connection events
        state: Current ConnectionState
        last_error: Reason of the last failure, if any

    Example:
        >>> class MyConnection(ConnectionAdapter):
        ...     async def connect(self):
        ...         self._set_state(ConnectionState.CONNECTED)
        ...     # ... implement other methods
        >>> conn = MyConnection()
        >>> await conn.connect()
        >>> async for event, data in conn.recv_events():
        ...     print(event, data)
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        """
        Initialize connection adapter.

        Args:
            logger: Optional logger instance. If None, creates default logger
                    named after the class.
        """
        self.logger = logger or logging.getLogger(self.__class__.__name__)
        self._state = ConnectionState.DISCONNECTED
        self.last_error: Optional[str] = None

    @abstractmethod
    async def connect(self) -> None:
        """
        Establish connection to platform.

        This method should:
        1. Establish network connection
        2. Perform the (anonymous) login handshake
        3. Join channel
        4. Move state to CONNECTED

        Raises:
            ConnectionError: If connection fails
            AuthenticationError: If login is rejected
        """
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        """
        Close connection gracefully.

        This method should not raise exceptions - it should make best
        effort to clean up even if errors occur.
        """
        pass

    @abstractmethod
    async def recv_events(self) -> AsyncIterator[Tuple[str, Dict[str, Any]]]:
        """
        Async iterator yielding normalized events.

        Yields:
            Tuple of (event_name, event_data) where event_name is a
            normalized name such as 'message'.

        Raises:
            NotConnectedError: If not connected
            ConnectionError: If the connection drops while reading

        Example:
            >>> async for event, data in conn.recv_events():
            ...     if event == 'message':
            ...         print(f"{data['user']}: {data['content']}")
        """
        pass

    @property
    def state(self) -> ConnectionState:
        """Current connection state."""
        return self._state

    @property
    def is_connected(self) -> bool:
        """
        Check if connection is active.

        Returns:
            True if connected, False otherwise
        """
        return self._state is ConnectionState.CONNECTED

    def _set_state(self, state: ConnectionState, reason: Optional[str] = None) -> None:
        """Record a state transition (and the failure reason for ERRORED)."""
        if state is ConnectionState.ERRORED:
            self.last_error = reason
        if state is not self._state:
            self.logger.debug(f"Connection state {self._state.value} -> {state.value}")
        self._state = state

    async def __aenter__(self):
        """Async context manager entry."""
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.disconnect()
        return False
