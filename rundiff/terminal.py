"""
Terminal - Raw-mode keyboard input and full-screen output for the picker
"""

import fcntl
import io
import logging
import os
import select
import shutil
import signal
import struct
import sys
import termios
import threading
import tty
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple

from .errors import TerminalUnavailable

logger = logging.getLogger(__name__)

EXIT_INTERRUPTED = 130

ALT_SCREEN_ON = "\x1b[?1049h"
ALT_SCREEN_OFF = "\x1b[?1049l"
# no line wrap, hidden cursor
PREPARE_SCREEN = "\x1b[?7l\x1b[?25l"
RESTORE_SCREEN = "\x1b[?7h\x1b[?25h"
CLEAR_SCREEN = "\x1b[2J\x1b[H"
CLEAR_LINE_END = "\x1b[K"
REVERSE = "\x1b[7m"
RED = "\x1b[31m"
GREEN = "\x1b[32m"
DIM = "\x1b[90m"
RESET = "\x1b[0m"

# how long a lone ESC waits for the rest of an escape sequence
ESCAPE_TIMEOUT = 0.05


class Key(Enum):
    CHAR = "char"
    ENTER = "enter"
    ESCAPE = "escape"
    BACKSPACE = "backspace"
    DELETE = "delete"
    UP = "up"
    DOWN = "down"
    LEFT = "left"
    RIGHT = "right"
    PAGE_UP = "page_up"
    PAGE_DOWN = "page_down"
    HOME = "home"
    END = "end"
    TAB = "tab"
    BACKTAB = "backtab"
    CTRL_C = "ctrl_c"
    CTRL_D = "ctrl_d"
    CTRL_U = "ctrl_u"
    CTRL_W = "ctrl_w"
    CTRL_P = "ctrl_p"
    CTRL_N = "ctrl_n"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class KeyEvent:
    key: Key
    char: str = ""

    @classmethod
    def of(cls, char: str) -> "KeyEvent":
        return cls(Key.CHAR, char)


_CONTROL_BYTES = {
    0x03: Key.CTRL_C,
    0x04: Key.CTRL_D,
    0x08: Key.BACKSPACE,
    0x09: Key.TAB,
    0x0A: Key.ENTER,
    0x0D: Key.ENTER,
    0x0E: Key.CTRL_N,
    0x10: Key.CTRL_P,
    0x15: Key.CTRL_U,
    0x17: Key.CTRL_W,
    0x7F: Key.BACKSPACE,
}

_ESCAPE_SEQUENCES = {
    b"\x1b[A": Key.UP,
    b"\x1bOA": Key.UP,
    b"\x1b[B": Key.DOWN,
    b"\x1bOB": Key.DOWN,
    b"\x1b[C": Key.RIGHT,
    b"\x1bOC": Key.RIGHT,
    b"\x1b[D": Key.LEFT,
    b"\x1bOD": Key.LEFT,
    b"\x1b[Z": Key.BACKTAB,
    b"\x1b[5~": Key.PAGE_UP,
    b"\x1b[6~": Key.PAGE_DOWN,
    b"\x1b[H": Key.HOME,
    b"\x1bOH": Key.HOME,
    b"\x1b[1~": Key.HOME,
    b"\x1b[7~": Key.HOME,
    b"\x1b[F": Key.END,
    b"\x1bOF": Key.END,
    b"\x1b[4~": Key.END,
    b"\x1b[8~": Key.END,
    b"\x1b[3~": Key.DELETE,
}


def _utf8_length(lead: int) -> int:
    if lead >= 0xF0:
        return 4
    if lead >= 0xE0:
        return 3
    if lead >= 0xC0:
        return 2
    return 1


def decode_keys(data: bytes) -> List[KeyEvent]:
    """
    Split raw terminal input into key events.

    A lone ESC (not followed by ``[`` or ``O``) is the Escape key;
    unrecognised escape sequences decode as ``Key.UNKNOWN``.
    """
    events = []
    i = 0
    while i < len(data):
        byte = data[i]

        if byte == 0x1B:
            if i + 1 < len(data) and data[i + 1] in (ord("["), ord("O")):
                j = i + 2
                if data[i + 1] == ord("["):
                    # parameter bytes, then one final byte
                    while j < len(data) and not 0x40 <= data[j] <= 0x7E:
                        j += 1
                end = min(j + 1, len(data))
                events.append(KeyEvent(_ESCAPE_SEQUENCES.get(data[i:end], Key.UNKNOWN)))
                i = end
            else:
                events.append(KeyEvent(Key.ESCAPE))
                i += 1
            continue

        if byte in _CONTROL_BYTES:
            events.append(KeyEvent(_CONTROL_BYTES[byte]))
            i += 1
            continue

        if byte < 0x20:
            events.append(KeyEvent(Key.UNKNOWN))
            i += 1
            continue

        length = _utf8_length(byte)
        char = data[i:i + length].decode("utf-8", errors="replace")
        events.append(KeyEvent.of(char))
        i += length

    return events


# ----------------------------------------------------------------------
# Interrupt handling
# ----------------------------------------------------------------------

_active_terminal = None
_handler_installed = False


def exit_interrupted(terminal=None):
    """Restore ``terminal`` (if any) and leave the process with status 130."""
    if terminal is not None:
        terminal.restore()
    sys.exit(EXIT_INTERRUPTED)


def _on_interrupt(signum, frame):
    exit_interrupted(_active_terminal)


def install_interrupt_handler() -> bool:
    """
    Install the SIGINT handler once per process.

    The handler restores whichever terminal is in raw mode at the time and
    exits with status 130. It stays installed for the life of the process.
    Returns True only for the call that installed it.
    """
    global _handler_installed
    if _handler_installed:
        return False
    if threading.current_thread() is not threading.main_thread():
        # signal handlers can only be set from the main thread
        return False
    signal.signal(signal.SIGINT, _on_interrupt)
    _handler_installed = True
    return True


def _set_active(terminal):
    global _active_terminal
    _active_terminal = terminal


# ----------------------------------------------------------------------
# Raw terminal
# ----------------------------------------------------------------------

class RawTerminal:
    """
    Raw-mode session on the controlling terminal.

    Usage:
        with RawTerminal(alt_screen=True) as term:
            term.write(frame)
            event = term.read_key()

    ``enter`` raises TerminalUnavailable when stdin/stdout is not a TTY or
    raw mode cannot be set. ``restore`` is idempotent.
    """

    def __init__(self, alt_screen: bool = False, stdin=None, stdout=None):
        self.alt_screen = alt_screen
        self._in = stdin or sys.stdin
        self._out = stdout or sys.stdout
        self._fd: Optional[int] = None
        self._saved = None
        self._pending: deque = deque()
        self.active = False

    def __enter__(self) -> "RawTerminal":
        self.enter()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.restore()
        return False

    def enter(self):
        try:
            fd = self._in.fileno()
            out_fd = self._out.fileno()
        except (AttributeError, ValueError, io.UnsupportedOperation) as exc:
            raise TerminalUnavailable(f"no terminal file descriptor: {exc}") from exc
        if not (os.isatty(fd) and os.isatty(out_fd)):
            raise TerminalUnavailable("stdin/stdout is not a terminal")

        try:
            self._saved = termios.tcgetattr(fd)
            tty.setraw(fd)
        except termios.error as exc:
            raise TerminalUnavailable(f"cannot enable raw mode: {exc}") from exc

        self._fd = fd
        self.active = True
        _set_active(self)
        logger.debug("raw mode enabled on fd %d", fd)

        if self.alt_screen:
            self._out.write(ALT_SCREEN_ON)
        self._out.write(PREPARE_SCREEN)
        self._out.flush()

    def restore(self):
        if not self.active:
            return
        self.active = False
        _set_active(None)

        try:
            self._out.write(RESTORE_SCREEN)
            if self.alt_screen:
                self._out.write(ALT_SCREEN_OFF)
            self._out.flush()
        finally:
            termios.tcsetattr(self._fd, termios.TCSADRAIN, self._saved)

    def write(self, text: str):
        # raw mode does not translate newlines
        self._out.write(text.replace("\r\n", "\n").replace("\n", "\r\n"))

    def flush(self):
        self._out.flush()

    def size(self) -> Tuple[int, int]:
        """(rows, columns) of the terminal window."""
        try:
            packed = fcntl.ioctl(self._out.fileno(), termios.TIOCGWINSZ, b"\x00" * 8)
            rows, cols = struct.unpack_from("HH", packed)
            if rows > 0 and cols > 0:
                return rows, cols
        except (OSError, ValueError, AttributeError, io.UnsupportedOperation):
            pass
        fallback = shutil.get_terminal_size((80, 24))
        return fallback.lines, fallback.columns

    def read_key(self) -> KeyEvent:
        """Block until the next key press."""
        while not self._pending:
            self._pending.extend(decode_keys(self._read_chunk()))
        return self._pending.popleft()

    def _read_chunk(self) -> bytes:
        data = os.read(self._fd, 1)
        if not data:
            # EOF on the terminal behaves like Ctrl-D
            return b"\x04"

        if data == b"\x1b":
            while select.select([self._fd], [], [], ESCAPE_TIMEOUT)[0]:
                more = os.read(self._fd, 32)
                if not more:
                    break
                data += more
            return data

        missing = _utf8_length(data[0]) - 1
        while missing > 0:
            more = os.read(self._fd, missing)
            if not more:
                break
            data += more
            missing -= len(more)
        return data
