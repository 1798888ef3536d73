"""
Connection adapters for chat platforms.

This module provides the abstract read-only connection interface and the
Twitch IRC implementation used to feed the chat pane.
"""

from .adapter import ConnectionAdapter, ConnectionState
from .errors import (
    AuthenticationError,
    ConnectionError,
    NotConnectedError,
    ProtocolError,
)
from .twitch import TwitchConnection

__all__ = [
    'ConnectionAdapter',
    'ConnectionState',
    'TwitchConnection',
    'ConnectionError',
    'AuthenticationError',
    'NotConnectedError',
    'ProtocolError',
]
