"""
Picker - Full-screen fuzzy picker over executions, command groups or files
"""

import logging
from enum import Enum
from typing import Callable, Generic, Hashable, List, Optional, Sequence, Tuple, TypeVar

from rich.cells import cell_len

from .fuzzy import FuzzyMatcher
from .i18n import I18n, MessageKey
from .terminal import (
    CLEAR_LINE_END,
    CLEAR_SCREEN,
    DIM,
    GREEN,
    RED,
    RESET,
    REVERSE,
    Key,
    KeyEvent,
    RawTerminal,
    exit_interrupted,
    install_interrupt_handler,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# title, prompt, filter, blank line, status line, one spare row
RESERVED_ROWS = 6
MIN_VIEWPORT = 5
MIN_MAX_SHOWN = 3

SELECTED_MARK = "✓ "
UNSELECTED_MARK = "  "

# split screen: list on the left third, output preview on the right
PREVIEW_MIN_WIDTH = 80
PREVIEW_LEFT_MIN_WIDTH = 24
PREVIEW_RIGHT_MIN_WIDTH = 30
PREVIEW_SEPARATOR = " │"
PREVIEW_TAB_SIZE = 4


class PreviewTarget(Enum):
    STDOUT = "stdout"
    STDERR = "stderr"

    def toggled(self) -> "PreviewTarget":
        return PreviewTarget.STDERR if self is PreviewTarget.STDOUT else PreviewTarget.STDOUT


def viewport_height(rows: int, max_shown: Optional[int] = None) -> int:
    """Rows available for items: the override (at least 3) or the window minus chrome (at least 5)."""
    if max_shown is not None:
        return max(max_shown, MIN_MAX_SHOWN)
    return max(rows - RESERVED_ROWS, MIN_VIEWPORT)


def preview_layout(cols: int) -> Optional[Tuple[int, int]]:
    """(list width, preview width) of the split screen, None when the window is too narrow."""
    if cols < PREVIEW_MIN_WIDTH:
        return None
    left = max(cols // 3, PREVIEW_LEFT_MIN_WIDTH)
    left = min(left, cols - PREVIEW_RIGHT_MIN_WIDTH)
    right = cols - left - len(PREVIEW_SEPARATOR)
    if right < PREVIEW_RIGHT_MIN_WIDTH:
        return None
    return left, right


def drop_last_word(text: str) -> str:
    """Ctrl-W: drop trailing spaces, then the word before them."""
    stripped = text.rstrip()
    cut = stripped.rfind(" ")
    return stripped[:cut + 1] if cut >= 0 else ""


def _take_cells(text: str, width: int) -> str:
    taken = []
    used = 0
    for ch in text:
        size = cell_len(ch)
        if used + size > width:
            break
        taken.append(ch)
        used += size
    return "".join(taken)


def fit(text: str, width: int) -> str:
    """Cut ``text`` to ``width`` terminal cells, marking the cut with an ellipsis."""
    if width <= 0 or cell_len(text) <= width:
        return text
    return _take_cells(text, width - 1) + "…"


def pad(text: str, width: int) -> str:
    return text + " " * max(width - cell_len(text), 0)


def wrap_cells(line: str, width: int) -> List[str]:
    """Split one output line into pieces of at most ``width`` cells."""
    line = line.expandtabs(PREVIEW_TAB_SIZE)
    if width <= 0 or not line:
        return [line]
    pieces = []
    while line:
        piece = _take_cells(line, width) or line[0]
        pieces.append(piece)
        line = line[len(piece):]
    return pieces


def paint(text: str, style: str) -> str:
    return f"{style}{text}{RESET}" if style else text


class Picker(Generic[T]):
    """
    Interactive selection of ``required`` distinct items.

    Usage:
        picker = Picker(
            executions,
            describe=lambda i, e: ...,
            search_text=lambda i, e: ...,
            ident=lambda e: e.record.record_id,
            loader=lambda: store.find_executions(command_hash),
            preview=execution_preview,
        )
        chosen = picker.run()

    With ``required`` above one, Tab/Space mark or unmark the row under the
    cursor (BackTab also moves down) and Enter confirms once enough rows are
    marked. A ``preview`` callable adds an output pane beside the list on
    wide windows; o and Left/Right switch it between stdout and stderr.

    ``run`` raises TerminalUnavailable when raw mode cannot be entered;
    callers fall back to line-oriented selection.
    """

    def __init__(
        self,
        items: Sequence[T],
        describe: Callable[[int, T], str],
        search_text: Callable[[int, T], str],
        ident: Callable[[T], Hashable],
        i18n: Optional[I18n] = None,
        loader: Optional[Callable[[], Sequence[T]]] = None,
        required: int = 2,
        title: str = "",
        prompts: Optional[Sequence[str]] = None,
        max_shown: Optional[int] = None,
        sort_key: Optional[Callable[[T], object]] = None,
        escape_returns_empty: bool = False,
        terminal=None,
        alt_screen: bool = False,
        preview: Optional[Callable[[T, PreviewTarget], Tuple[str, Optional[str]]]] = None,
    ):
        """
        Args:
            items: Initial collection, also the source of the Esc fallback
            describe: Row text for an item and its position in the collection
            search_text: Text the filter is matched against
            ident: Identity used for selection marks
            loader: Reloads the collection whenever the filter changes
            required: Number of distinct items to collect
            title: First line of every frame
            prompts: Prompt per number of items already selected
            max_shown: Fixed viewport height instead of the window height
            sort_key: Order of the returned items (selection order if None)
            escape_returns_empty: Esc returns [] instead of the fallback
            terminal: Terminal object (defaults to a RawTerminal)
            alt_screen: Use the alternate screen with the default terminal
            preview: (content, path) of an item's stdout or stderr
        """
        self.i18n = i18n or I18n()
        self.original = list(items)
        self.items = list(items)
        self.describe = describe
        self.search_text = search_text
        self.ident = ident
        self.loader = loader
        self.required = required
        self.title = title
        self.prompts = list(prompts or [])
        self.max_shown = max_shown
        self.sort_key = sort_key
        self.escape_returns_empty = escape_returns_empty
        self.terminal = terminal
        self.alt_screen = alt_screen
        self.preview = preview
        self.marking = required > 1

        self.filter_text = ""
        self.cursor = 0
        self.scroll_offset = 0
        self.preview_target = PreviewTarget.STDOUT
        self.selected_ids: List[Hashable] = []
        self._selected: List[T] = []
        self.completed = False
        self._matcher = FuzzyMatcher()

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def visible(self) -> List[Tuple[int, T]]:
        """(position, item) pairs in display order, ranked when a filter is set."""
        entries = list(enumerate(self.items))
        if not self.filter_text:
            return entries
        ranked = self._matcher.match_and_sort(
            self.filter_text,
            [(entry, self.search_text(*entry)) for entry in entries],
        )
        return [entry for entry, _, _ in ranked]

    def current(self) -> Optional[T]:
        visible = self.visible()
        if not visible:
            return None
        return visible[min(self.cursor, len(visible) - 1)][1]

    def handle_key(self, event: KeyEvent, rows: int = 24) -> Optional[List[T]]:
        """
        Apply one key press.

        Returns the final selection when the session is over, None otherwise.
        Ctrl-C and Ctrl-D restore the terminal and exit with status 130.
        """
        key = event.key

        if key in (Key.CTRL_C, Key.CTRL_D):
            exit_interrupted(self.terminal)

        if key == Key.ESCAPE:
            if self.escape_returns_empty:
                return []
            return self.original[:self.required]

        if key == Key.ENTER:
            return self._select_current()

        if key == Key.CHAR:
            if event.char in ("j", "J"):
                self._move(1)
            elif event.char in ("k", "K"):
                self._move(-1)
            elif event.char == " " and self.marking:
                self._toggle_current()
            elif event.char in ("o", "O") and self.preview is not None:
                self.preview_target = self.preview_target.toggled()
            elif event.char.isprintable():
                self._set_filter(self.filter_text + event.char)
        elif key in (Key.TAB, Key.BACKTAB):
            if self.marking:
                self._toggle_current(step_down=key == Key.BACKTAB)
        elif key in (Key.LEFT, Key.RIGHT):
            if self.preview is not None:
                self.preview_target = self.preview_target.toggled()
        elif key == Key.BACKSPACE:
            self._set_filter(self.filter_text[:-1])
        elif key in (Key.DELETE, Key.CTRL_U):
            self._set_filter("")
        elif key == Key.CTRL_W:
            self._set_filter(drop_last_word(self.filter_text))
        elif key in (Key.UP, Key.CTRL_P):
            self._move(-1)
        elif key in (Key.DOWN, Key.CTRL_N):
            self._move(1)
        elif key == Key.PAGE_UP:
            self._move(-viewport_height(rows, self.max_shown))
        elif key == Key.PAGE_DOWN:
            self._move(viewport_height(rows, self.max_shown))
        elif key == Key.HOME:
            self.cursor = 0
        elif key == Key.END:
            self.cursor = max(len(self.visible()) - 1, 0)

        return None

    def _set_filter(self, text: str):
        self.filter_text = text
        self.cursor = 0
        self.scroll_offset = 0
        if self.loader is not None:
            self.items = list(self.loader())

    def _move(self, step: int):
        last = max(len(self.visible()) - 1, 0)
        self.cursor = min(max(self.cursor + step, 0), last)

    def _toggle_current(self, step_down: bool = False):
        """Mark or unmark the row under the cursor; at most ``required`` rows stay marked."""
        item = self.current()
        if item is None:
            return

        item_id = self.ident(item)
        if item_id in self.selected_ids:
            pos = self.selected_ids.index(item_id)
            del self.selected_ids[pos]
            del self._selected[pos]
        elif len(self.selected_ids) < self.required:
            self.selected_ids.append(item_id)
            self._selected.append(item)

        if step_down:
            self._move(1)

    def _select_current(self) -> Optional[List[T]]:
        if len(self.selected_ids) < self.required:
            item = self.current()
            if item is None:
                return None
            item_id = self.ident(item)
            if item_id not in self.selected_ids:
                self.selected_ids.append(item_id)
                self._selected.append(item)

        if len(self.selected_ids) < self.required:
            return None

        self.completed = True
        result = list(self._selected)
        if self.sort_key is not None:
            result.sort(key=self.sort_key)
        return result

    def _scroll_to_cursor(self, height: int):
        if self.cursor < self.scroll_offset:
            self.scroll_offset = self.cursor
        elif self.cursor >= self.scroll_offset + height:
            self.scroll_offset = self.cursor + 1 - height

    # ------------------------------------------------------------------
    # Drawing
    # ------------------------------------------------------------------

    def prompt(self) -> str:
        if self.marking and len(self.selected_ids) >= self.required:
            return self.i18n.t(MessageKey.SELECTION_COMPLETE)
        if not self.prompts:
            return ""
        return self.prompts[min(len(self.selected_ids), len(self.prompts) - 1)]

    def status(self, count: int) -> str:
        t = self.i18n.t
        parts = [
            f"{len(self.selected_ids)}/{self.required}",
            f"{t(MessageKey.COUNT_LABEL)}: {count}",
            t(MessageKey.NAVIGATE_HINT),
        ]
        if self.marking:
            parts.append(t(MessageKey.MARK_HINT))
        if self.preview is not None:
            parts.append(t(MessageKey.PREVIEW_TOGGLE_SHORT))
        return " | ".join(parts)

    def list_column(self, rows: int) -> List[Tuple[str, str]]:
        """(text, style) lines of the list: header, visible rows and status."""
        t = self.i18n.t
        visible = self.visible()
        column = [
            (self.title, ""),
            (self.prompt(), ""),
            (f"{t(MessageKey.STATUS_FILTER)}: {self.filter_text}", ""),
        ]

        if not visible:
            column.append((t(MessageKey.NO_MATCHES), RED))
        else:
            self.cursor = min(self.cursor, len(visible) - 1)
            height = viewport_height(rows, self.max_shown)
            self._scroll_to_cursor(height)

            end = min(self.scroll_offset + height, len(visible))
            for pos in range(self.scroll_offset, end):
                index, item = visible[pos]
                mark = SELECTED_MARK if self.ident(item) in self.selected_ids else UNSELECTED_MARK
                column.append((mark + self.describe(index, item), REVERSE if pos == self.cursor else ""))

        column.append(("", ""))
        column.append((self.status(len(visible)), DIM))
        return column

    def preview_panel(self, height: int, width: int) -> List[str]:
        """Path line, header and as much of the current item's output as fits in ``height`` rows."""
        t = self.i18n.t
        item = self.current()
        if item is None:
            return [fit(t(MessageKey.PREVIEW_PATH_MISSING), width), "", fit(t(MessageKey.PREVIEW_NO_SELECTION), width)]

        content, path = self.preview(item, self.preview_target)
        header = (
            MessageKey.PREVIEW_STDOUT_HEADER if self.preview_target is PreviewTarget.STDOUT
            else MessageKey.PREVIEW_STDERR_HEADER
        )
        path_line = t(MessageKey.PREVIEW_PATH_LABEL, path) if path else t(MessageKey.PREVIEW_PATH_MISSING)
        panel = [fit(path_line, width), paint(fit(t(header), width), REVERSE)]

        if not content:
            panel.append(paint(fit(t(MessageKey.PREVIEW_EMPTY), width), DIM))
            return panel

        body = [piece for line in content.splitlines() for piece in wrap_cells(line, width)]
        if len(panel) + len(body) <= height:
            return panel + body
        # the last row holds the truncation notice
        panel.extend(body[:max(height - len(panel) - 1, 1)])
        panel.append(paint(fit(t(MessageKey.PREVIEW_TRUNCATED_HINT), width), DIM))
        return panel

    def render(self, rows: int, cols: int) -> str:
        """One full frame, starting with a screen clear."""
        column = self.list_column(rows)
        layout = preview_layout(cols) if self.preview is not None else None

        if layout is None:
            if self.preview is not None:
                column.insert(0, (self.i18n.t(MessageKey.PREVIEW_SINGLE_COLUMN_NOTICE), DIM))
            lines = [paint(fit(text, cols), style) + CLEAR_LINE_END for text, style in column]
            return CLEAR_SCREEN + "\n".join(lines)

        left, right = layout
        panel = self.preview_panel(rows - 1, right)
        lines = []
        for i in range(max(len(column), len(panel))):
            text, style = column[i] if i < len(column) else ("", "")
            cell = paint(pad(fit(text, left - 1), left), style)
            side = panel[i] if i < len(panel) else ""
            lines.append(f"{cell}{PREVIEW_SEPARATOR}{side}{CLEAR_LINE_END}")
        return CLEAR_SCREEN + "\n".join(lines)

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------

    def run(self) -> List[T]:
        """
        Run the picker until a selection is made or Esc is pressed.

        Raises:
            TerminalUnavailable: raw mode could not be entered
        """
        install_interrupt_handler()

        if self.terminal is None:
            self.terminal = RawTerminal(alt_screen=self.alt_screen)
        terminal = self.terminal
        terminal.enter()

        try:
            while True:
                rows, cols = terminal.size()
                terminal.write(self.render(rows, cols))
                terminal.flush()

                result = self.handle_key(terminal.read_key(), rows)
                if result is not None:
                    terminal.write(CLEAR_SCREEN)
                    if self.marking and self.completed:
                        terminal.write(f"{GREEN}{self.i18n.t(MessageKey.SELECTION_COMPLETE)}{RESET}\n")
                    terminal.flush()
                    logger.debug("picker returned %d items", len(result))
                    return result
        finally:
            terminal.restore()
