"""
Selection - Choosing executions, commands and files for diff and clean
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from .errors import TerminalUnavailable
from .i18n import I18n, MessageKey
from .picker import Picker, PreviewTarget
from .records import CommandExecution, CommandRecord
from .terminal import RawTerminal

logger = logging.getLogger(__name__)

LOCAL_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"

ENGLISH_MONTHS = (
    "jan", "feb", "mar", "apr", "may", "jun",
    "jul", "aug", "sep", "oct", "nov", "dec",
)

_DATE_PATTERNS = (
    re.compile(r"\d{4}-\d{2}"),       # YYYY-MM
    re.compile(r"\d{2}-\d{2}"),       # MM-DD
    re.compile(r"\d{4}"),             # YYYY
    re.compile(r"\d{1,2}/\d{1,2}"),   # MM/DD
    re.compile(r"\d{4}/\d{1,2}"),     # YYYY/MM
)

_CODE_TOKEN_RE = re.compile(r"[A-Za-z0-9]+")
_TOKEN_SPLIT_RE = re.compile(r"[\s,]+")


# ----------------------------------------------------------------------
# Row text
# ----------------------------------------------------------------------

def execution_line(i18n: I18n, index: int, execution: CommandExecution) -> str:
    record = execution.record
    time_part = f"{i18n.t(MessageKey.TIME_LABEL)}: {record.local_time}"
    if record.short_code:
        return f"{index + 1}: {i18n.t(MessageKey.SHORT_CODE_LABEL)}:{record.short_code} {time_part}"
    return f"{index + 1}: {time_part}"


def execution_search_text(index: int, execution: CommandExecution) -> str:
    record = execution.record
    text = f"{index + 1} {record.local_time} {record.command}"
    if record.short_code:
        text += f" {record.short_code}"
    return text


def execution_preview(execution: CommandExecution, target: PreviewTarget) -> Tuple[str, Optional[str]]:
    """Captured text and payload path of one stream, for the picker preview."""
    if target is PreviewTarget.STDERR:
        return execution.stderr, execution.stderr_path
    return execution.stdout, execution.stdout_path


@dataclass
class CommandGroup:
    """All records of one command hash."""
    command_hash: str
    command: str
    count: int
    latest: datetime

    @property
    def latest_local(self) -> str:
        return self.latest.astimezone().strftime(LOCAL_TIME_FORMAT)


def build_command_groups(records: Sequence[CommandRecord]) -> List[CommandGroup]:
    """Group records by hash; the newest record names the group. Newest group first."""
    groups: Dict[str, CommandGroup] = {}
    for record in records:
        group = groups.get(record.command_hash)
        if group is None:
            groups[record.command_hash] = CommandGroup(
                record.command_hash, record.command, 1, record.timestamp
            )
            continue
        group.count += 1
        if record.timestamp > group.latest:
            group.latest = record.timestamp
            group.command = record.command
    return sorted(groups.values(), key=lambda g: g.latest, reverse=True)


def group_line(i18n: I18n, index: int, group: CommandGroup) -> str:
    return (
        f"{index + 1}: {group.command} "
        f"({i18n.t(MessageKey.COUNT_LABEL)}: {group.count}, "
        f"{i18n.t(MessageKey.LATEST_LABEL)}: {group.latest_local})"
    )


def group_search_text(index: int, group: CommandGroup) -> str:
    return f"{group.command} {group.count} {group.latest_local} {index + 1}"


# ----------------------------------------------------------------------
# Line-oriented fallback rules
# ----------------------------------------------------------------------

def is_code_filter_input(text: str, executions: Sequence[CommandExecution]) -> Optional[List[str]]:
    """
    Short codes typed as ``ab`` or ``ab cd`` (comma also separates).

    Returns the tokens that name existing codes, or None when the input is
    not a code selection.
    """
    tokens = [t for t in _TOKEN_SPLIT_RE.split(text.strip()) if t]
    if not tokens or len(tokens) > 2:
        return None

    available = {e.record.short_code for e in executions if e.record.short_code}
    picked = []
    for token in tokens:
        if not _CODE_TOKEN_RE.fullmatch(token):
            return None
        if token in available:
            picked.append(token)
    return picked or None


def filter_by_code(executions: Sequence[CommandExecution], codes: Sequence[str]) -> List[CommandExecution]:
    """
    Executions named by ``codes``, oldest first.

    A single (or repeated) code is paired with the newest other execution.
    """
    by_code = {e.record.short_code: e for e in executions if e.record.short_code}
    selected: List[CommandExecution] = []
    for code in codes[:2]:
        execution = by_code.get(code)
        if execution is not None and all(s.record.record_id != execution.record.record_id for s in selected):
            selected.append(execution)

    if len(selected) < 2:
        taken = {s.record.record_id for s in selected}
        newest_first = sorted(executions, key=lambda e: e.record.timestamp, reverse=True)
        for execution in newest_first:
            if execution.record.record_id not in taken:
                selected.append(execution)
                break

    if len(selected) < 2:
        return list(executions[:2])
    return sorted(selected, key=lambda e: e.record.timestamp)


def _month_names(i18n: I18n):
    """(name, month number) pairs, longest names first so 十一月 wins over 一月."""
    names = [(name.lower(), i + 1) for i, name in enumerate(ENGLISH_MONTHS)]
    names += [(name.lower(), i + 1) for i, name in enumerate(i18n.month_names())]
    return sorted(names, key=lambda pair: len(pair[0]), reverse=True)


def is_date_filter_input(text: str, i18n: I18n) -> bool:
    if any(p.search(text) for p in _DATE_PATTERNS):
        return True
    lowered = text.lower()
    return any(name in lowered for name, _ in _month_names(i18n))


def matches_date_filter(timestamp: datetime, text: str, i18n: I18n) -> bool:
    """
    Date rule of the fallback picker, evaluated in local time.

    ``/`` is accepted wherever ``-`` is.
    """
    local = timestamp.astimezone()
    query = text.strip().lower().replace("/", "-")

    if re.fullmatch(r"\d{4}", query):
        return local.year == int(query)

    match = re.fullmatch(r"(\d{4})-(\d{1,2})", query)
    if match:
        return local.year == int(match.group(1)) and local.month == int(match.group(2))

    match = re.fullmatch(r"(\d{1,2})-(\d{1,2})", query)
    if match:
        return local.month == int(match.group(1)) and local.day == int(match.group(2))

    for name, month in _month_names(i18n):
        if name in query:
            return local.month == month

    return query in local.strftime(LOCAL_TIME_FORMAT).lower()


def _newest_two(executions: Sequence[CommandExecution]) -> List[CommandExecution]:
    newest = sorted(executions, key=lambda e: e.record.timestamp, reverse=True)[:2]
    return sorted(newest, key=lambda e: e.record.timestamp)


def filter_by_date(
    executions: Sequence[CommandExecution], text: str, i18n: I18n, out: Callable = print
) -> List[CommandExecution]:
    """
    The two newest executions matching the date filter, oldest first.

    With fewer than two matches the two newest executions overall are used.
    """
    matched = [e for e in executions if matches_date_filter(e.record.timestamp, text, i18n)]
    if len(matched) < 2:
        out(i18n.t(MessageKey.FEW_RECORDS_FALLBACK))
        return _newest_two(executions)

    chosen = _newest_two(matched)

    out(i18n.t(MessageKey.USING_FILTERED_RECORDS))
    for execution in chosen:
        out(f"  - {execution.record.local_time}")
    return chosen


def _read_line(input_fn: Callable[[], str]) -> Optional[str]:
    try:
        return input_fn().strip()
    except EOFError:
        return None


def _read_index(input_fn: Callable[[], str], size: int) -> Optional[int]:
    """A 1-based index typed by the user, as a 0-based position."""
    line = _read_line(input_fn)
    if not line or not line.isdigit():
        return None
    index = int(line)
    if 1 <= index <= size:
        return index - 1
    return None


def simple_select_executions(
    executions: Sequence[CommandExecution],
    i18n: I18n,
    input_fn: Callable[[], str] = input,
    out: Callable = print,
) -> List[CommandExecution]:
    """
    Line-oriented selection of two executions.

    Accepts short codes, a date filter, or two 1-based indices; anything
    else selects the first two.
    """
    if len(executions) <= 2:
        return list(executions)

    out(i18n.t(MessageKey.SELECT_EXECUTIONS, len(executions)))
    for index, execution in enumerate(executions):
        out(execution_line(i18n, index, execution))
    out(i18n.t(MessageKey.INPUT_NUMBERS))

    line = _read_line(input_fn) or ""

    codes = is_code_filter_input(line, executions)
    if codes:
        return filter_by_code(executions, codes)

    if is_date_filter_input(line, i18n):
        return filter_by_date(executions, line, i18n, out)

    parts = line.split()
    indices = [int(p) for p in parts if p.isdigit() and 1 <= int(p) <= len(executions)]
    if len(parts) != 2 or len(indices) != 2:
        out(i18n.t(MessageKey.INVALID_INPUT))
        return list(executions[:2])

    selected = [executions[i - 1] for i in indices]
    return sorted(selected, key=lambda e: e.record.timestamp)


# ----------------------------------------------------------------------
# Flows
# ----------------------------------------------------------------------

class Selector:
    """
    Picks what to diff or clean, interactively or line by line.

    Usage:
        selector = Selector(i18n, simple=config.simple_tui, alt_screen=config.alt_screen)
        pair = selector.select_executions(executions)
    """

    def __init__(
        self,
        i18n: Optional[I18n] = None,
        simple: bool = False,
        alt_screen: bool = False,
        max_shown: Optional[int] = None,
        terminal_factory: Optional[Callable[[], object]] = None,
        input_fn: Callable[[], str] = input,
        out: Callable = print,
    ):
        self.i18n = i18n or I18n()
        self.simple = simple
        self.alt_screen = alt_screen
        self.max_shown = max_shown
        self.terminal_factory = terminal_factory or (lambda: RawTerminal(alt_screen=self.alt_screen))
        self.input_fn = input_fn
        self.out = out

    def _pick(self, items, **kwargs):
        """Run a picker; None when the terminal cannot be used."""
        picker = Picker(
            items,
            i18n=self.i18n,
            max_shown=self.max_shown,
            terminal=self.terminal_factory(),
            **kwargs,
        )
        try:
            return picker.run()
        except TerminalUnavailable as exc:
            logger.warning("interactive picker unavailable: %s", exc)
            self.out(self.i18n.t(MessageKey.WARNING_INTERACTIVE_FAILED))
            return None

    def select_executions(
        self,
        executions: Sequence[CommandExecution],
        loader: Optional[Callable[[], Sequence[CommandExecution]]] = None,
        escape_returns_empty: bool = False,
    ) -> List[CommandExecution]:
        """Two executions to compare, oldest first."""
        if len(executions) <= 2:
            return list(executions)

        if not self.simple:
            t = self.i18n.t
            chosen = self._pick(
                executions,
                describe=lambda i, e: execution_line(self.i18n, i, e),
                search_text=execution_search_text,
                ident=lambda e: e.record.record_id,
                loader=loader,
                required=2,
                title=t(MessageKey.SELECT_EXECUTIONS, len(executions)),
                prompts=[t(MessageKey.STATUS_SELECT_FIRST), t(MessageKey.STATUS_SELECT_SECOND)],
                sort_key=lambda e: e.record.timestamp,
                escape_returns_empty=escape_returns_empty,
                preview=execution_preview,
            )
            if chosen is not None:
                return chosen

        return simple_select_executions(executions, self.i18n, self.input_fn, self.out)

    def select_group(self, groups: Sequence[CommandGroup], title: MessageKey) -> Optional[CommandGroup]:
        """One command group, or None when the user backs out."""
        if not groups:
            return None

        if not self.simple:
            chosen = self._pick(
                groups,
                describe=lambda i, g: group_line(self.i18n, i, g),
                search_text=group_search_text,
                ident=lambda g: g.command_hash,
                required=1,
                title=self.i18n.t(title),
                escape_returns_empty=True,
            )
            if chosen is not None:
                return chosen[0] if chosen else None

        self.out(self.i18n.t(title))
        for index, group in enumerate(groups):
            self.out(group_line(self.i18n, index, group))
        self.out(self.i18n.t(MessageKey.INPUT_NUMBER))
        index = _read_index(self.input_fn, len(groups))
        return groups[index] if index is not None else None

    def select_command(self, records: Sequence[CommandRecord]) -> Optional[CommandGroup]:
        return self.select_group(build_command_groups(records), MessageKey.SELECT_COMMAND)

    def select_query_for_clean(self, records: Sequence[CommandRecord]) -> Optional[str]:
        """Command text of the chosen group, used as a ``clean search`` query."""
        group = self.select_group(build_command_groups(records), MessageKey.SELECT_CLEAN_COMMAND)
        return group.command if group else None

    def select_file_for_clean(self, files: Sequence[str]) -> Optional[str]:
        if not files:
            return None

        if not self.simple:
            chosen = self._pick(
                files,
                describe=lambda i, f: f"{i + 1}: {f}",
                search_text=lambda i, f: f,
                ident=lambda f: f,
                required=1,
                title=self.i18n.t(MessageKey.SELECT_CLEAN_FILE),
                escape_returns_empty=True,
            )
            if chosen is not None:
                return chosen[0] if chosen else None

        self.out(self.i18n.t(MessageKey.SELECT_CLEAN_FILE))
        for index, path in enumerate(files):
            self.out(f"{index + 1}: {path}")
        self.out(self.i18n.t(MessageKey.INPUT_NUMBER))
        index = _read_index(self.input_fn, len(files))
        return files[index] if index is not None else None

    def command_then_diff_flow(self, store) -> List[CommandExecution]:
        """
        Pick a command, then two of its executions.

        Esc in the execution picker returns to the command list; an empty
        result means the user quit.
        """
        records = store.get_all_records()
        if not records:
            self.out(self.i18n.t(MessageKey.NO_RECORDS))
            return []

        while True:
            group = self.select_command(records)
            if group is None:
                return []

            executions = store.find_executions(group.command_hash)
            if len(executions) < 2:
                self.out(self.i18n.t(MessageKey.NEED_AT_LEAST_TWO))
                continue

            chosen = self.select_executions(
                executions,
                loader=lambda: store.find_executions(group.command_hash),
                escape_returns_empty=True,
            )
            if chosen:
                return chosen
