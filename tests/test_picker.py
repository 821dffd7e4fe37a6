"""
Unit tests for the interactive Picker and key decoding.

The picker is driven through a FakeTerminal replaying scripted keys.
"""

from datetime import timedelta

import pytest

from rundiff import terminal
from rundiff.errors import TerminalUnavailable
from rundiff.i18n import I18n
from rundiff.picker import Picker, PreviewTarget, drop_last_word, fit, preview_layout, viewport_height, wrap_cells
from rundiff.selection import execution_line, execution_preview, execution_search_text
from rundiff.terminal import Key, KeyEvent, decode_keys, exit_interrupted, install_interrupt_handler
from tests.conftest import NOW, FakeTerminal, UnavailableTerminal, build_execution, keys

FRUITS = ["apple", "banana", "cherry", "date", "elderberry"]


def fruit_picker(events=(), items=FRUITS, **kwargs):
    kwargs.setdefault("required", 1)
    return Picker(
        items,
        describe=lambda i, s: s,
        search_text=lambda i, s: s,
        ident=lambda s: s,
        i18n=I18n("en"),
        terminal=FakeTerminal(events),
        **kwargs,
    )


def executions(count=4):
    return [
        build_execution("make", NOW + timedelta(minutes=i), short_code="abcdefgh"[i])
        for i in range(count)
    ]


def execution_picker(items, events=(), **kwargs):
    i18n = I18n("en")
    return Picker(
        items,
        describe=lambda i, e: execution_line(i18n, i, e),
        search_text=execution_search_text,
        ident=lambda e: e.record.record_id,
        i18n=i18n,
        sort_key=lambda e: e.record.timestamp,
        terminal=FakeTerminal(events),
        **kwargs,
    )


class TestSelection:
    """Test Enter/Esc outcomes"""

    def test_two_enters_return_sorted(self):
        items = executions()
        picker = execution_picker(items, keys(Key.DOWN, Key.DOWN, Key.ENTER, Key.UP, Key.UP, Key.ENTER))
        result = picker.run()
        assert result == [items[0], items[2]]
        assert picker.terminal.entered
        assert picker.terminal.restored

    def test_repeated_enter_ignored(self):
        items = executions()
        picker = execution_picker(items, keys(Key.ENTER, Key.ENTER, "j", Key.ENTER))
        assert picker.run() == [items[0], items[1]]

    def test_selected_ids_append_only(self):
        items = executions()
        picker = execution_picker(items)
        picker.handle_key(KeyEvent(Key.DOWN))
        picker.handle_key(KeyEvent(Key.ENTER))
        assert picker.selected_ids == [items[1].record.record_id]

    def test_escape_returns_first_two_of_original(self):
        items = executions()
        picker = execution_picker(items, keys("x", Key.ESCAPE))
        assert picker.run() == items[:2]
        assert picker.terminal.restored

    def test_escape_means_back(self):
        picker = execution_picker(executions(), keys(Key.ESCAPE), escape_returns_empty=True)
        assert picker.run() == []

    def test_single_selection(self):
        picker = fruit_picker(keys("ch", Key.ENTER))
        assert picker.run() == ["cherry"]

    def test_enter_with_no_matches_does_nothing(self):
        picker = fruit_picker()
        for event in keys("zzz"):
            picker.handle_key(event)
        assert picker.visible() == []
        assert picker.handle_key(KeyEvent(Key.ENTER)) is None


class TestFilter:
    """Test filter editing and reloads"""

    def test_typing_filters_and_resets_cursor(self):
        picker = fruit_picker()
        picker.handle_key(KeyEvent(Key.END))
        picker.handle_key(KeyEvent.of("b"))
        assert picker.filter_text == "b"
        assert picker.cursor == 0
        assert picker.scroll_offset == 0
        assert picker.visible()[0] == (1, "banana")

    def test_editing_keys(self):
        picker = fruit_picker()
        for event in keys("foo bar"):
            picker.handle_key(event)
        picker.handle_key(KeyEvent(Key.BACKSPACE))
        assert picker.filter_text == "foo ba"
        picker.handle_key(KeyEvent(Key.CTRL_W))
        assert picker.filter_text == "foo "
        picker.handle_key(KeyEvent(Key.DELETE))
        assert picker.filter_text == ""
        for event in keys("xy"):
            picker.handle_key(event)
        picker.handle_key(KeyEvent(Key.CTRL_U))
        assert picker.filter_text == ""

    def test_loader_called_on_every_filter_change(self):
        calls = []

        def loader():
            calls.append(1)
            return FRUITS + ["fig"]

        picker = fruit_picker(loader=loader)
        picker.handle_key(KeyEvent.of("f"))
        picker.handle_key(KeyEvent(Key.BACKSPACE))
        picker.handle_key(KeyEvent(Key.DELETE))
        picker.handle_key(KeyEvent(Key.DOWN))
        assert len(calls) == 3
        assert "fig" in picker.items

    def test_escape_fallback_uses_original_after_reload(self):
        picker = fruit_picker(loader=lambda: ["fig", "grape"], required=2)
        picker.handle_key(KeyEvent.of("g"))
        assert picker.handle_key(KeyEvent(Key.ESCAPE)) == ["apple", "banana"]

    def test_rows_with_expanding_lowercase(self):
        picker = fruit_picker(items=["ls İstanbul/x"])
        for event in keys("ix"):
            picker.handle_key(event)
        assert picker.visible() == [(0, "ls İstanbul/x")]
        assert "ls İstanbul/x" in picker.render(24, 80)

    def test_drop_last_word(self):
        assert drop_last_word("git log --oneline") == "git log "
        assert drop_last_word("git log  ") == "git "
        assert drop_last_word("git") == ""
        assert drop_last_word("") == ""


class TestNavigation:
    """Test cursor movement and scrolling"""

    def test_cursor_clamped(self):
        picker = fruit_picker()
        picker.handle_key(KeyEvent(Key.UP))
        assert picker.cursor == 0
        for _ in range(10):
            picker.handle_key(KeyEvent(Key.DOWN))
        assert picker.cursor == len(FRUITS) - 1

    def test_vim_and_emacs_keys(self):
        picker = fruit_picker()
        picker.handle_key(KeyEvent.of("j"))
        picker.handle_key(KeyEvent(Key.CTRL_N))
        assert picker.cursor == 2
        picker.handle_key(KeyEvent.of("k"))
        picker.handle_key(KeyEvent(Key.CTRL_P))
        assert picker.cursor == 0
        assert picker.filter_text == ""

    def test_home_end_and_pages(self):
        items = [f"item {n}" for n in range(20)]
        picker = fruit_picker(items=items, max_shown=3)
        picker.handle_key(KeyEvent(Key.PAGE_DOWN))
        assert picker.cursor == 3
        picker.handle_key(KeyEvent(Key.END))
        assert picker.cursor == 19
        picker.handle_key(KeyEvent(Key.PAGE_UP))
        assert picker.cursor == 16
        picker.handle_key(KeyEvent(Key.HOME))
        assert picker.cursor == 0

    def test_scroll_keeps_cursor_visible(self):
        items = [f"item {n}" for n in range(20)]
        picker = fruit_picker(items=items, max_shown=3)
        for _ in range(5):
            picker.handle_key(KeyEvent(Key.DOWN))
        frame = picker.render(24, 80)
        assert picker.scroll_offset == 3
        assert "item 3" in frame
        assert "item 5" in frame
        assert "item 2" not in frame
        assert "item 6" not in frame

        for _ in range(5):
            picker.handle_key(KeyEvent(Key.UP))
        picker.render(24, 80)
        assert picker.scroll_offset == 0

    @pytest.mark.parametrize("rows,max_shown,expected", [
        (24, None, 18),
        (8, None, 5),
        (24, 1, 3),
        (24, 10, 10),
    ])
    def test_viewport_height(self, rows, max_shown, expected):
        assert viewport_height(rows, max_shown) == expected


class TestRender:
    """Test frame contents"""

    def test_frame_layout(self):
        picker = fruit_picker(title="Pick a fruit", prompts=["first", "second"], required=2)
        picker.handle_key(KeyEvent(Key.ENTER))
        frame = picker.render(24, 80)
        assert frame.startswith(terminal.CLEAR_SCREEN)
        assert "Pick a fruit" in frame
        assert "second" in frame
        assert "Filter: " in frame
        assert "✓ apple" in frame
        assert "  banana" in frame
        assert f"{terminal.REVERSE}✓ apple{terminal.RESET}" in frame

    def test_no_matches_message(self):
        picker = fruit_picker()
        for event in keys("qqq"):
            picker.handle_key(event)
        assert "No matches found" in picker.render(24, 80)

    def test_long_rows_truncated(self):
        assert fit("abcdef", 4) == "abc…"
        assert fit("abc", 4) == "abc"

    def test_execution_rows(self):
        items = executions(2)
        frame = execution_picker(items).render(24, 120)
        assert f"1: code:a time: {items[0].record.local_time}" in frame


class TestInterrupt:
    """Test Ctrl-C handling and terminal restoration"""

    @pytest.mark.parametrize("key", [Key.CTRL_C, Key.CTRL_D])
    def test_ctrl_keys_exit_130(self, key):
        picker = fruit_picker(keys(key))
        with pytest.raises(SystemExit) as excinfo:
            picker.run()
        assert excinfo.value.code == 130
        assert picker.terminal.restored

    def test_exit_interrupted_restores(self):
        fake = FakeTerminal([])
        fake.enter()
        with pytest.raises(SystemExit) as excinfo:
            exit_interrupted(fake)
        assert excinfo.value.code == 130
        assert fake.restored

    def test_handler_installed_once(self, monkeypatch):
        installed = []
        monkeypatch.setattr(terminal, "_handler_installed", False)
        monkeypatch.setattr(terminal.signal, "signal", lambda sig, handler: installed.append(sig))

        assert install_interrupt_handler() is True
        assert install_interrupt_handler() is False
        assert installed == [terminal.signal.SIGINT]

    def test_unavailable_terminal_raises(self):
        picker = Picker(
            FRUITS,
            describe=lambda i, s: s,
            search_text=lambda i, s: s,
            ident=lambda s: s,
            terminal=UnavailableTerminal(),
        )
        with pytest.raises(TerminalUnavailable):
            picker.run()


class TestDecodeKeys:
    """Test raw byte decoding"""

    @pytest.mark.parametrize("data,key", [
        (b"\x1b[A", Key.UP),
        (b"\x1bOB", Key.DOWN),
        (b"\x1b[C", Key.RIGHT),
        (b"\x1bOD", Key.LEFT),
        (b"\t", Key.TAB),
        (b"\x1b[Z", Key.BACKTAB),
        (b"\x1b[5~", Key.PAGE_UP),
        (b"\x1b[6~", Key.PAGE_DOWN),
        (b"\x1b[H", Key.HOME),
        (b"\x1b[4~", Key.END),
        (b"\x1b[3~", Key.DELETE),
        (b"\x1b", Key.ESCAPE),
        (b"\r", Key.ENTER),
        (b"\x7f", Key.BACKSPACE),
        (b"\x03", Key.CTRL_C),
        (b"\x04", Key.CTRL_D),
        (b"\x15", Key.CTRL_U),
        (b"\x17", Key.CTRL_W),
        (b"\x10", Key.CTRL_P),
        (b"\x0e", Key.CTRL_N),
        (b"\x1b[99~", Key.UNKNOWN),
    ])
    def test_single_keys(self, data, key):
        assert decode_keys(data) == [KeyEvent(key)]

    def test_characters(self):
        assert decode_keys("aé界".encode()) == [KeyEvent.of("a"), KeyEvent.of("é"), KeyEvent.of("界")]

    def test_mixed_stream(self):
        assert decode_keys(b"x\x1b[Ay") == [KeyEvent.of("x"), KeyEvent(Key.UP), KeyEvent.of("y")]


class TestMarks:
    """Test marking and unmarking rows in the two-record picker"""

    def ids(self, items, *positions):
        return [items[p].record.record_id for p in positions]

    def test_tab_marks_and_unmarks(self):
        items = executions()
        picker = execution_picker(items)
        picker.handle_key(KeyEvent(Key.TAB))
        assert picker.selected_ids == self.ids(items, 0)
        picker.handle_key(KeyEvent(Key.TAB))
        assert picker.selected_ids == []
        assert picker.cursor == 0

    def test_backtab_marks_and_moves_down(self):
        items = executions()
        picker = execution_picker(items)
        picker.handle_key(KeyEvent(Key.BACKTAB))
        picker.handle_key(KeyEvent(Key.BACKTAB))
        assert picker.selected_ids == self.ids(items, 0, 1)
        assert picker.cursor == 2

    def test_marks_capped_at_required(self):
        items = executions()
        picker = execution_picker(items)
        for event in keys(Key.BACKTAB, Key.BACKTAB, Key.BACKTAB):
            picker.handle_key(event)
        assert picker.selected_ids == self.ids(items, 0, 1)
        assert picker.cursor == 3

    def test_space_marks_then_enter_confirms(self):
        items = executions()
        picker = execution_picker(items, keys(Key.END, " ", Key.HOME, " ", "j", Key.ENTER))
        assert picker.run() == [items[0], items[3]]
        assert picker.filter_text == ""

    def test_unmarked_row_is_replaced(self):
        items = executions()
        picker = execution_picker(items, keys(" ", " ", "j", " ", "j", Key.ENTER))
        assert picker.run() == [items[1], items[2]]

    def test_single_choice_keeps_space_in_filter(self):
        picker = fruit_picker()
        for event in keys("a b", Key.TAB):
            picker.handle_key(event)
        assert picker.filter_text == "a b"
        assert picker.selected_ids == []

    def test_prompt_reports_completion(self):
        picker = execution_picker(executions(), prompts=["first", "second"])
        picker.handle_key(KeyEvent(Key.TAB))
        assert picker.prompt() == "second"
        picker.handle_key(KeyEvent(Key.DOWN))
        picker.handle_key(KeyEvent(Key.TAB))
        assert picker.prompt() == "Selected two records."

    def test_completion_message_after_selection(self):
        picker = execution_picker(executions(), keys(Key.ENTER, "j", Key.ENTER))
        picker.run()
        assert "Selected two records." in picker.terminal.frames[-1]
        assert picker.completed

    def test_no_completion_message_on_escape(self):
        picker = execution_picker(executions(), keys(Key.ESCAPE))
        picker.run()
        assert not any("Selected two records." in frame for frame in picker.terminal.frames)


def previewed(stdout="built\n", **kwargs):
    items = [
        build_execution("make", NOW + timedelta(minutes=i), stdout=stdout, stderr=f"warning {i}\n", short_code="abc"[i])
        for i in range(3)
    ]
    items[0].stdout_path = "/data/a.stdout"
    return items, execution_picker(items, preview=execution_preview, **kwargs)


class TestPreview:
    """Test the split-screen output preview"""

    @pytest.mark.parametrize("cols,expected", [
        (60, None),
        (79, None),
        (80, (26, 52)),
        (90, (30, 58)),
        (120, (40, 78)),
    ])
    def test_layout(self, cols, expected):
        assert preview_layout(cols) == expected

    def test_split_frame(self):
        _, picker = previewed()
        lines = picker.render(24, 120).split("\n")
        assert lines[0] == terminal.CLEAR_SCREEN + " " * 40 + " │Path: /data/a.stdout" + terminal.CLEAR_LINE_END
        assert "Preview: stdout" in lines[1]
        assert lines[2].endswith(" │built" + terminal.CLEAR_LINE_END)

    def test_toggle_stream(self):
        _, picker = previewed()
        picker.handle_key(KeyEvent.of("o"))
        assert picker.preview_target is PreviewTarget.STDERR
        assert picker.filter_text == ""
        frame = picker.render(24, 120)
        assert "Preview: stderr" in frame
        assert "warning 0" in frame
        assert "Path: unavailable" in frame

        picker.handle_key(KeyEvent(Key.LEFT))
        assert picker.preview_target is PreviewTarget.STDOUT
        picker.handle_key(KeyEvent(Key.RIGHT))
        assert picker.preview_target is PreviewTarget.STDERR

    def test_preview_follows_cursor(self):
        _, picker = previewed()
        picker.handle_key(KeyEvent(Key.DOWN))
        picker.handle_key(KeyEvent.of("o"))
        assert "warning 1" in picker.render(24, 120)

    def test_narrow_window_single_column(self):
        _, picker = previewed()
        frame = picker.render(24, 60)
        assert "Terminal too narrow, using single-column view" in frame
        assert "Preview: stdout" not in frame

    def test_long_output_truncated(self):
        stdout = "".join(f"line {n}\n" for n in range(50))
        _, picker = previewed(stdout=stdout)
        frame = picker.render(10, 120)
        assert "line 5" in frame
        assert "line 6" not in frame
        assert "… truncated" in frame

    def test_empty_output(self):
        _, picker = previewed(stdout="")
        assert "Output is empty" in picker.render(24, 120)

    def test_nothing_under_cursor(self):
        _, picker = previewed()
        for event in keys("zzz"):
            picker.handle_key(event)
        assert "Select a record to preview output" in picker.render(24, 120)

    def test_no_preview_keeps_o_as_filter(self):
        picker = execution_picker(executions())
        picker.handle_key(KeyEvent.of("o"))
        assert picker.filter_text == "o"

    def test_wrap_cells(self):
        assert wrap_cells("ab界cd", 3) == ["ab", "界c", "d"]
        assert wrap_cells("", 5) == [""]
        assert wrap_cells("\tx", 10) == ["    x"]
        assert fit("界界界", 4) == "界…"
