"""Typed events flowing from the sources into the application inbox."""

from dataclasses import dataclass
from typing import Optional, Tuple

from lib.connection import ConnectionState


@dataclass(frozen=True)
class Tick:
    """One countdown interval has passed."""
    elapsed: float = 1.0


@dataclass(frozen=True)
class ChatReceived:
    """A chat message arrived from the provider."""
    sender: str
    text: str
    color: Optional[Tuple[int, int, int]] = None


@dataclass(frozen=True)
class ConnectionChanged:
    """The chat connection moved to a new (non-error) state."""
    state: ConnectionState


@dataclass(frozen=True)
class ConnectionFailed:
    """The chat connection failed; no further chat events follow."""
    reason: str


@dataclass(frozen=True)
class KeyPressed:
    """A key was pressed in the terminal.

    ``key`` is the typed character, or a key name such as 'KEY_ESCAPE'
    for special keys.
    """
    key: str


@dataclass(frozen=True)
class SongUpdated:
    """New text for the song/status line."""
    text: str


@dataclass(frozen=True)
class Resized:
    """The terminal was resized; only forces a redraw."""


@dataclass(frozen=True)
class Shutdown:
    """An external interrupt asked the application to stop."""
    reason: str = 'signal'
