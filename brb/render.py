"""
Terminal renderer built on blessed.

The renderer only reads Snapshots. Every frame is composed into a single
string (absolute cursor moves plus text) and written in one go.
"""

import textwrap
from contextlib import ExitStack
from typing import List, Optional, Tuple

from blessed import Terminal

from common.config import Color
from lib.connection import ConnectionState

from .duration import format_clock
from .state import ChatMessage, Snapshot

# 5-row block font for the clock, '#' marks a filled cell
_FONT = {
    '0': ('#####', '#   #', '#   #', '#   #', '#####'),
    '1': ('  #  ', ' ##  ', '  #  ', '  #  ', ' ### '),
    '2': ('#####', '    #', '#####', '#    ', '#####'),
    '3': ('#####', '    #', ' ####', '    #', '#####'),
    '4': ('#   #', '#   #', '#####', '    #', '    #'),
    '5': ('#####', '#    ', '#####', '    #', '#####'),
    '6': ('#####', '#    ', '#####', '#   #', '#####'),
    '7': ('#####', '    #', '   # ', '  #  ', '  #  '),
    '8': ('#####', '#   #', '#####', '#   #', '#####'),
    '9': ('#####', '#   #', '#####', '    #', '#####'),
    ':': ('   ', ' # ', '   ', ' # ', '   '),
}
FONT_HEIGHT = 5
BLOCK = '█'

BAR_FILLED = '█'
BAR_EMPTY = '░'

BOX = {
    'top_left': '╭', 'top_right': '╮',
    'bottom_left': '╰', 'bottom_right': '╯',
    'horizontal': '─', 'vertical': '│',
}


def big_text(text: str) -> List[str]:
    """Render digits and colons as rows of block characters."""
    rows = []
    for row in range(FONT_HEIGHT):
        glyphs = [_FONT[char][row] for char in text]
        rows.append(' '.join(glyphs).replace('#', BLOCK))
    return rows


def progress_bar(progress: float, width: int) -> str:
    """A bar of ``width`` cells followed by the percentage."""
    label = f' {int(progress * 100):3d}%'
    cells = max(width - len(label), 0)
    filled = int(round(cells * progress))
    return BAR_FILLED * filled + BAR_EMPTY * (cells - filled) + label


class TerminalRenderer:
    """
    Draws Snapshots on a full-screen terminal.

    Used as a context manager, it owns the terminal session: alternate
    screen, cbreak input and hidden cursor.

    Example:
        >>> with TerminalRenderer() as renderer:
        ...     renderer(app.render_snapshot())
    """

    def __init__(self, term: Optional[Terminal] = None):
        self.term = term or Terminal()
        self._stack: Optional[ExitStack] = None

    def __enter__(self):
        self._stack = ExitStack()
        self._stack.enter_context(self.term.fullscreen())
        self._stack.enter_context(self.term.cbreak())
        self._stack.enter_context(self.term.hidden_cursor())
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        stack, self._stack = self._stack, None
        if stack is not None:
            stack.close()
        return False

    def __call__(self, snapshot: Snapshot) -> None:
        self.term.stream.write(self.compose(snapshot))
        self.term.stream.flush()

    def compose(self, snapshot: Snapshot,
                width: Optional[int] = None,
                height: Optional[int] = None) -> str:
        """Build the full frame for a snapshot."""
        term = self.term
        width = term.width if width is None else width
        height = term.height if height is None else height

        pad = snapshot.padding
        x, y = pad, pad
        w, h = width - 2 * pad, height - 2 * pad

        out = [term.home, term.clear]
        if w < 4 or h < 3:
            return ''.join(out)

        main_w = w
        if snapshot.chat_visible:
            main_w = w * 2 // 3
            out.extend(self._chat_pane(snapshot, x + main_w, y, w - main_w, h))

        out.extend(self._main_column(snapshot, x, y, main_w, h))
        return ''.join(out)

    # Layout pieces

    def _main_column(self, snapshot: Snapshot, x: int, y: int, w: int, h: int) -> List[str]:
        out = []
        top, bottom = y, y + h

        if snapshot.song is not None:
            song = snapshot.song.splitlines()[0] if snapshot.song else ''
            out.append(self._put(x, top, self._fit(self._printable(song), w)))
            top += 1

        show_bar = snapshot.show_timer and snapshot.progress_bar and snapshot.progress is not None
        if show_bar:
            bottom -= 1
            bar = progress_bar(snapshot.progress, min(w, 60))
            out.append(self._put(x + (w - len(bar)) // 2, bottom, self._paint(snapshot.color, bar)))

        block: List[Tuple[str, bool]] = []
        if snapshot.show_timer:
            clock = format_clock(snapshot.remaining)
            rows = big_text(clock)
            if len(rows[0]) <= w and FONT_HEIGHT + 1 <= bottom - top:
                block.extend((row, True) for row in rows)
            else:
                block.append((clock, True))
            block.append(('', False))

        block.extend((line, True) for line in snapshot.text.split('\n'))

        available = bottom - top
        block = block[:available]
        start = top + max((available - len(block)) // 2, 0)
        for offset, (line, accent) in enumerate(block):
            line = self._fit(line, w)
            if not line:
                continue
            text = self._paint(snapshot.color, line) if accent else line
            out.append(self._put(x + (w - len(line)) // 2, start + offset, text))

        return out

    def _chat_pane(self, snapshot: Snapshot, x: int, y: int, w: int, h: int) -> List[str]:
        out = []
        inner = max(w - 4, 1)
        title = f'#{snapshot.channel}' if snapshot.channel else 'chat'

        out.append(self._put(x, y, self._border(title, w, BOX['top_left'], BOX['top_right'])))
        for row in range(1, h - 1):
            out.append(self._put(x, y + row, BOX['vertical']))
            out.append(self._put(x + w - 1, y + row, BOX['vertical']))
        out.append(self._put(x, y + h - 1, self._border('chat', w, BOX['bottom_left'], BOX['bottom_right'])))

        rows = h - 2
        if rows <= 0:
            return out

        lines = self._chat_lines(snapshot, inner)[-rows:]
        start = y + 1 + rows - len(lines)
        for offset, line in enumerate(lines):
            out.append(self._put(x + 2, start + offset, line))
        return out

    def _chat_lines(self, snapshot: Snapshot, width: int) -> List[str]:
        """Wrapped chat lines (placeholders when there is nothing to show)."""
        connection = snapshot.connection
        channel = f'#{snapshot.channel}' if snapshot.channel else 'chat'

        if connection.errored:
            reason = self._printable(connection.reason or '') or 'unknown error'
            lines = textwrap.wrap(f'Chat unavailable: {reason}', width)
            return [self.term.red(line) for line in lines]

        if not snapshot.messages:
            if connection.state is ConnectionState.CONNECTED:
                placeholder = f'Connected to {channel}, waiting for messages ...'
            else:
                placeholder = f'Connecting to {channel} ...'
            return [self.term.dim(line) for line in textwrap.wrap(placeholder, width)]

        lines = []
        for message in snapshot.messages:
            lines.extend(self._message_lines(message, width))
        return lines

    def _message_lines(self, message: ChatMessage, width: int) -> List[str]:
        sender = self._printable(message.sender)
        text = self._printable(message.text)
        wrapped = textwrap.wrap(f'{sender}: {text}', width) or [f'{sender}:']
        head = wrapped[0]
        if sender and head.startswith(sender):
            wrapped[0] = self._paint(message.color, sender) + head[len(sender):]
        return wrapped

    # Primitives

    def _border(self, title: str, width: int, left: str, right: str) -> str:
        label = f'{BOX["horizontal"]} {title} '
        if len(label) > width - 2:
            label = ''
        return left + label + BOX['horizontal'] * (width - 2 - len(label)) + right

    def _put(self, x: int, y: int, text: str) -> str:
        return self.term.move_xy(x, y) + text

    def _paint(self, color: Color, text: str) -> str:
        """Apply a color name or (r, g, b) tuple."""
        if not self.term.does_styling:
            return text
        if isinstance(color, tuple):
            return self.term.color_rgb(*color)(text)
        return getattr(self.term, color)(text)

    def _printable(self, text: str) -> str:
        """Drop terminal sequences and control characters from untrusted text."""
        text = self.term.strip_seqs(text.replace('\t', ' '))
        return ''.join(ch for ch in text if ch.isprintable())

    @staticmethod
    def _fit(text: str, width: int) -> str:
        return text if len(text) <= width else text[:max(width, 0)]
