"""Presentation state owned by the application state machine.

The renderer never sees PresentationState directly; it receives a frozen
Snapshot built after every drained batch of events.
"""

import hashlib
from collections import deque
from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from typing import Deque, Optional, Tuple

from common.config import Color
from lib.connection import ConnectionState


# Color palette for senders without a provider color
USERNAME_COLORS = (
    'cyan', 'green', 'yellow', 'blue', 'magenta',
    'bright_cyan', 'bright_green', 'bright_yellow',
    'bright_blue', 'bright_magenta', 'bright_red',
)


class AppPhase(Enum):
    """Coarse lifecycle of the application."""
    INITIALIZING = 'initializing'
    RUNNING = 'running'
    FINISHING = 'finishing'
    TERMINATED = 'terminated'


def derive_color(sender: str) -> str:
    """Map a sender name onto the palette.

    Uses a content hash rather than hash() so a name keeps its color
    across runs too.
    """
    digest = hashlib.md5(sender.lower().encode('utf-8')).digest()
    return USERNAME_COLORS[int.from_bytes(digest[:4], 'big') % len(USERNAME_COLORS)]


def parse_provider_color(value: Optional[str]) -> Optional[Tuple[int, int, int]]:
    """Parse a '#RRGGBB' color tag; None when absent or malformed."""
    if not value or len(value) != 7 or not value.startswith('#'):
        return None
    try:
        return (int(value[1:3], 16), int(value[3:5], 16), int(value[5:7], 16))
    except ValueError:
        return None


@dataclass(frozen=True)
class ChatMessage:
    """A chat line as shown in the chat pane."""
    sender: str
    color: Color
    text: str
    seq: int


class ChatBuffer:
    """Bounded, arrival-ordered chat history.

    Holds at most ``capacity`` messages; appending to a full buffer drops
    the oldest one.
    """

    def __init__(self, capacity: int = 200):
        if capacity < 1:
            raise ValueError('capacity must be at least 1')
        self.capacity = capacity
        self._messages: Deque[ChatMessage] = deque(maxlen=capacity)
        self._next_seq = 0

    def append(self, sender: str, text: str, color: Optional[Color] = None) -> ChatMessage:
        """Store a message, deriving the sender color when none is given."""
        message = ChatMessage(
            sender=sender,
            color=color if color is not None else derive_color(sender),
            text=text,
            seq=self._next_seq,
        )
        self._next_seq += 1
        self._messages.append(message)
        return message

    def messages(self) -> Tuple[ChatMessage, ...]:
        """Messages oldest first."""
        return tuple(self._messages)

    def __len__(self):
        return len(self._messages)


@dataclass(frozen=True)
class ConnectionStatus:
    """Chat connection state as seen by the application."""
    state: ConnectionState = ConnectionState.DISCONNECTED
    reason: Optional[str] = None

    @property
    def errored(self) -> bool:
        return self.state is ConnectionState.ERRORED


@dataclass(frozen=True)
class Snapshot:
    """Read-only view of the presentation state for one frame."""
    phase: AppPhase
    remaining: Optional[timedelta]
    total: Optional[timedelta]
    progress: Optional[float]
    text: str
    color: Color
    chat_visible: bool
    channel: Optional[str]
    messages: Tuple[ChatMessage, ...]
    connection: ConnectionStatus
    song: Optional[str]
    hide_timer: bool
    progress_bar: bool
    padding: int

    @property
    def show_timer(self) -> bool:
        """Whether the countdown (and its progress bar) is drawn."""
        if self.remaining is None:
            return False
        return not (self.hide_timer and self.phase is AppPhase.FINISHING)


@dataclass
class PresentationState:
    """The single mutable record behind every frame.

    Only the application state machine writes to it.
    """
    text: str
    color: Color
    remaining: Optional[timedelta] = None
    total: Optional[timedelta] = None
    chat_visible: bool = False
    channel: Optional[str] = None
    chat: ChatBuffer = field(default_factory=ChatBuffer)
    connection: ConnectionStatus = field(default_factory=ConnectionStatus)
    song: Optional[str] = None
    hide_timer: bool = False
    progress_bar: bool = True
    padding: int = 0

    @property
    def countdown_active(self) -> bool:
        """A countdown is configured and has time left."""
        return self.remaining is not None and self.remaining > timedelta(0)

    @property
    def progress(self) -> Optional[float]:
        """Elapsed fraction of the countdown, 0.0 to 1.0."""
        if self.remaining is None or self.total is None:
            return None
        if self.total <= timedelta(0):
            return 1.0
        ratio = 1 - self.remaining / self.total
        return min(max(ratio, 0.0), 1.0)

    def snapshot(self, phase: AppPhase) -> Snapshot:
        return Snapshot(
            phase=phase,
            remaining=self.remaining,
            total=self.total,
            progress=self.progress,
            text=self.text,
            color=self.color,
            chat_visible=self.chat_visible,
            channel=self.channel,
            messages=self.chat.messages(),
            connection=self.connection,
            song=self.song,
            hide_timer=self.hide_timer,
            progress_bar=self.progress_bar,
            padding=self.padding,
        )
