"""
Differ - Comparison report for two executions of one command
"""

import difflib
from itertools import zip_longest
from typing import List, Optional, Sequence

from rich.text import Text

from .i18n import I18n, MessageKey
from .records import CommandExecution

STYLE_HEADER = "bold cyan"
STYLE_EARLIER = "red"
STYLE_LATER = "green"
STYLE_DELETE = "red"
STYLE_INSERT = "green"
STYLE_STDOUT_TITLE = "bold yellow"
STYLE_STDERR_TITLE = "bold red"
STYLE_IDENTICAL = "bold green"


def _lines(text: str) -> List[str]:
    return text.splitlines(keepends=True)


def _terminated(line: str) -> str:
    return line if line.endswith("\n") else line + "\n"


def diff_lines(old: str, new: str, linewise: bool = False) -> List[tuple]:
    """
    Line diff of two texts as ``(tag, line)`` pairs.

    Tags are ``" "`` (equal), ``"-"`` (only in old) and ``"+"`` (only in
    new). The default aligns lines with ``difflib.SequenceMatcher``;
    ``linewise`` compares line N with line N and never realigns.
    """
    old_lines, new_lines = _lines(old), _lines(new)
    changes = []

    if linewise:
        for a, b in zip_longest(old_lines, new_lines):
            if a == b:
                changes.append((" ", a))
                continue
            if a is not None:
                changes.append(("-", a))
            if b is not None:
                changes.append(("+", b))
        return changes

    matcher = difflib.SequenceMatcher(None, old_lines, new_lines, autojunk=False)
    for op, i1, i2, j1, j2 in matcher.get_opcodes():
        if op == "equal":
            changes.extend((" ", line) for line in old_lines[i1:i2])
            continue
        if op in ("delete", "replace"):
            changes.extend(("-", line) for line in old_lines[i1:i2])
        if op in ("insert", "replace"):
            changes.extend(("+", line) for line in new_lines[j1:j2])
    return changes


class Differ:
    """
    Renders the comparison report for two executions.

    The caller passes executions already ordered earlier, later.
    """

    def __init__(self, i18n: Optional[I18n] = None):
        self.i18n = i18n or I18n()

    def diff_executions(
        self, executions: Sequence[CommandExecution], linewise: bool = False
    ) -> Optional[Text]:
        """
        Build the report for the first two executions.

        Returns None when fewer than two are given.
        """
        if len(executions) < 2:
            return None

        t = self.i18n.t
        earlier, later = executions[0], executions[1]
        report = Text()

        report.append(t(MessageKey.DIFF_COMMAND, later.record.command) + "\n", style=STYLE_HEADER)

        earlier_label = t(MessageKey.DIFF_EARLIER_LABEL)
        later_label = t(MessageKey.DIFF_LATER_LABEL)
        width = max(len(earlier_label), len(later_label))
        report.append(self._time_line("-", earlier_label, width, earlier) + "\n", style=STYLE_EARLIER)
        report.append(self._time_line("+", later_label, width, later) + "\n", style=STYLE_LATER)

        if earlier.record.exit_code != later.record.exit_code:
            report.append(
                t(MessageKey.DIFF_EXIT_CODE, earlier.record.exit_code, later.record.exit_code) + "\n"
            )

        report.append(
            t(MessageKey.DIFF_EXECUTION_TIME, earlier.record.duration_ms, later.record.duration_ms) + "\n"
        )
        report.append("\n")

        if earlier.stdout != later.stdout:
            report.append(t(MessageKey.STDOUT_DIFF) + "\n", style=STYLE_STDOUT_TITLE)
            self._append_changes(report, diff_lines(earlier.stdout, later.stdout, linewise))
            report.append("\n")

        if earlier.stderr != later.stderr:
            report.append(t(MessageKey.STDERR_DIFF) + "\n", style=STYLE_STDERR_TITLE)
            self._append_changes(report, diff_lines(earlier.stderr, later.stderr, linewise))
            report.append("\n")

        if earlier.stdout == later.stdout and earlier.stderr == later.stderr:
            report.append(t(MessageKey.OUTPUT_IDENTICAL) + "\n", style=STYLE_IDENTICAL)

        return report

    def _time_line(self, sign: str, label: str, width: int, execution: CommandExecution) -> str:
        line = f"{sign} {label:<{width}}: {execution.record.local_time}"
        code = execution.record.short_code
        if code:
            line += f" [{self.i18n.t(MessageKey.SHORT_CODE_LABEL)}: {code}]"
        return line

    @staticmethod
    def _append_changes(report: Text, changes):
        for tag, line in changes:
            if tag == "-":
                report.append("-" + _terminated(line), style=STYLE_DELETE)
            elif tag == "+":
                report.append("+" + _terminated(line), style=STYLE_INSERT)
            else:
                report.append(" " + _terminated(line))
