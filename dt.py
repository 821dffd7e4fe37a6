#!/usr/bin/env python3
"""
dt - Record command executions and compare their output over time

Every run is captured (stdout, stderr, exit code, duration) into a
content-addressed store under ~/.dt, keyed by the normalized command text.
Two runs of the same command can then be diffed.

Usage:
    # As a command wrapper
    dt run go build ./...
    dt run -d a make test        # run, then diff against the run coded "a"
    dt diff make test            # pick two runs of "make test" and diff them
    dt diff                      # pick a command, then two of its runs

    # As a module
    from dt import DtSession
    session = DtSession()
    execution = session.run("go test ./...")
"""

import argparse
import json
import logging
import re
import sys
from typing import Callable, List, Optional

from rich.console import Console
from rich.text import Text

from rundiff import __version__
from rundiff.config import DEFAULT_CONFIG_YAML, DtConfig, default_config_path
from rundiff.differ import Differ
from rundiff.errors import RundiffError
from rundiff.executor import CommandExecutor
from rundiff.i18n import I18n, MessageKey, resolve_language
from rundiff.records import CommandExecution, hash_command
from rundiff.selection import Selector, build_command_groups
from rundiff.storage import StoreManager

logger = logging.getLogger("dt")

EXIT_OK = 0
EXIT_ERROR = 1

_SAFE_ARG_RE = re.compile(r"[A-Za-z0-9_\-./:,@+%=]+")


def shell_quote(arg: str) -> str:
    """Quote one argument for ``sh``; safe arguments stay bare."""
    if arg == "":
        return "''"
    if _SAFE_ARG_RE.fullmatch(arg):
        return arg
    return "'" + arg.replace("'", "'\\''") + "'"


def join_args_for_shell(args: List[str]) -> str:
    """
    Turn CLI arguments back into one command line.

    A single argument is taken as a complete command line and passed
    through verbatim (``dt run "ls | wc -l"``).
    """
    if len(args) == 1:
        return args[0]
    return " ".join(shell_quote(a) for a in args)


class DtSession:
    """
    Main dt session that combines all components.

    This is the primary interface for using dt:
    - Executes commands, echoing and capturing their output
    - Stores executions with a per-command short code
    - Selects and diffs executions
    - Lists and cleans stored records
    """

    def __init__(
        self,
        config: Optional[DtConfig] = None,
        data_dir: Optional[str] = None,
        console: Optional[Console] = None,
        input_fn: Callable[[], str] = input,
        max_shown: Optional[int] = None,
        terminal_factory: Optional[Callable[[], object]] = None,
    ):
        """
        Initialize a dt session.

        Args:
            config: Optional DtConfig (loads ~/.dt/config.yaml if not provided)
            data_dir: Store root override (defaults to DT_DATA_DIR or ~/.dt)
            console: rich Console for output
            input_fn: Line reader for prompts and the simple picker
            max_shown: Fixed picker viewport height
            terminal_factory: Builds the terminal used by interactive pickers
        """
        self.config = config or DtConfig.load()
        self.i18n = I18n(self.config.effective_language)
        self.store = StoreManager(base_dir=data_dir, config=self.config, i18n=self.i18n)
        self.differ = Differ(self.i18n)
        self.console = console or Console(highlight=False)
        self.input_fn = input_fn
        self.selector = Selector(
            self.i18n,
            simple=self.config.simple_tui,
            alt_screen=self.config.alt_screen,
            max_shown=max_shown,
            terminal_factory=terminal_factory,
            input_fn=input_fn,
            out=self.say,
        )
        # set once the user answers ALL to a deletion prompt
        self._confirm_all = False

    def say(self, message: str = "", style: Optional[str] = None):
        """Print plain text; user-controlled text is never parsed as markup."""
        self.console.print(Text(message, style=style or ""))

    # ------------------------------------------------------------------
    # run
    # ------------------------------------------------------------------

    def run(
        self,
        command: str,
        diff_code: Optional[str] = None,
        echo: bool = True,
        cwd: Optional[str] = None,
    ) -> CommandExecution:
        """
        Execute a command, store it and report its short code.

        Args:
            command: Shell command line
            diff_code: Short code of an earlier run to diff against
            echo: Stream output live (otherwise it is printed afterwards)
            cwd: Working directory override

        Returns:
            The stored CommandExecution
        """
        t = self.i18n.t
        executor = CommandExecutor(self.i18n, echo=echo, cwd=cwd)
        execution = executor.execute(command)
        code = self.store.assign_short_code(execution)
        record = execution.record

        self.say(t(MessageKey.COMMAND_COMPLETED, record.exit_code), "bold green")
        self.say(f"{t(MessageKey.EXECUTION_TIME)}: {record.duration_ms}ms", "yellow")

        if not echo:
            if execution.stdout:
                self.say(t(MessageKey.STDOUT), "bold cyan")
                self.say(execution.stdout.rstrip("\n"))
            if execution.stderr:
                self.say(t(MessageKey.STDERR), "bold red")
                self.say(execution.stderr.rstrip("\n"), "red")

        self.store.save_execution(execution)
        self.say(t(MessageKey.RESULT_SAVED), "bold green")
        self.say(t(MessageKey.ASSIGNED_SHORT_CODE, code), "yellow")
        self.say(t(MessageKey.HINT_DIFF_WITH_CODE, code), "dim")

        if diff_code:
            self._diff_with_code(execution, diff_code)

        return execution

    def _diff_with_code(self, execution: CommandExecution, code: str):
        record = execution.record
        target = next(
            (
                e for e in self.store.find_executions(record.command_hash)
                if e.record.record_id != record.record_id and e.record.short_code == code
            ),
            None,
        )
        if target is None:
            self.say(self.i18n.t(MessageKey.DIFF_CODE_NOT_FOUND, code), "yellow")
            return
        pair = sorted([target, execution], key=lambda e: e.record.timestamp)
        self.show_diff(pair)

    # ------------------------------------------------------------------
    # diff
    # ------------------------------------------------------------------

    def diff(self, command: Optional[str] = None, linewise: bool = False) -> List[CommandExecution]:
        """
        Diff two executions of ``command``, or pick the command first.

        Returns the compared pair (empty when nothing was compared).
        """
        if not command:
            pair = self.selector.command_then_diff_flow(self.store)
        else:
            command_hash = hash_command(command)
            executions = self.store.find_executions(command_hash)
            if len(executions) < 2:
                self.say(self.i18n.t(MessageKey.NEED_AT_LEAST_TWO), "bold red")
                return []
            pair = self.selector.select_executions(
                executions, loader=lambda: self.store.find_executions(command_hash)
            )

        if len(pair) >= 2:
            self.show_diff(pair, linewise)
        return pair

    def show_diff(self, pair: List[CommandExecution], linewise: bool = False):
        report = self.differ.diff_executions(pair, linewise)
        if report is not None:
            self.console.print(report, end="")

    # ------------------------------------------------------------------
    # ls
    # ------------------------------------------------------------------

    def list_records(self, query: str = "", as_json: bool = False, limit: Optional[int] = None):
        """
        Print records newest first, optionally filtered by ``query``.

        ``limit`` defaults to ``max_history_shown``; 0 lists everything.
        """
        if query.strip():
            records = self.store.records_matching(query)
        else:
            records = self.store.get_all_records()

        if limit is None:
            limit = self.config.max_history_shown
        if limit > 0:
            records = records[:limit]

        if as_json:
            # plain write so JSON stays machine-readable
            self.console.file.write(json.dumps([r.to_dict() for r in records], indent=2, ensure_ascii=False) + "\n")
            return

        if not records:
            self.say(self.i18n.t(MessageKey.NO_RECORDS), "yellow")
            return

        for record in records:
            code = f" [code:{record.short_code}]" if record.short_code else ""
            self.say(
                f"{record.local_time} exit={record.exit_code} dur={record.duration_ms}ms{code} {record.command}"
            )

    # ------------------------------------------------------------------
    # clean
    # ------------------------------------------------------------------

    def confirm_delete(self) -> bool:
        """YES confirms once, ALL confirms every further deletion in this session."""
        if self._confirm_all:
            return True
        self.console.print(Text(self.i18n.t(MessageKey.CONFIRM_DELETE_PROMPT), style="yellow"), end="")
        try:
            answer = self.input_fn().strip().lower()
        except EOFError:
            return False
        if answer == "all":
            self._confirm_all = True
            return True
        return answer == "yes"

    def clean_search(self, query: Optional[str] = None, dry_run: bool = False) -> int:
        """Delete records whose command matches ``query`` (picked interactively if None)."""
        if query is None:
            records = self.store.get_all_records()
            if not records:
                self.say(self.i18n.t(MessageKey.NO_RECORDS), "yellow")
                return 0
            query = self.selector.select_query_for_clean(records)
            if query is None:
                return 0

        count = len(self.store.records_matching(query))
        summary = self.i18n.t(MessageKey.DELETE_SUMMARY_QUERY, count, query)
        return self._clean(count, dry_run, summary, lambda: self.store.clean_by_query(query))

    def clean_file(self, file_path: Optional[str] = None, dry_run: bool = False) -> int:
        """Delete records related to ``file_path`` (picked from related files if None)."""
        if file_path is None:
            files = self.store.get_related_files()
            if not files:
                self.say(self.i18n.t(MessageKey.NO_RELATED_FILES), "yellow")
                return 0
            file_path = self.selector.select_file_for_clean(files)
            if file_path is None:
                return 0

        records = self.store.records_for_file(file_path)
        summary = self.i18n.t(MessageKey.DELETE_SUMMARY_FILE, len(records), file_path)

        def delete() -> int:
            for record in records:
                self.say(self.i18n.t(MessageKey.CLEAN_RECORD, record.command, record.local_time))
            return self.store.clean_by_file(file_path)

        return self._clean(len(records), dry_run, summary, delete)

    def _clean(self, count: int, dry_run: bool, summary: str, delete: Callable[[], int]) -> int:
        t = self.i18n.t
        if count == 0:
            self.say(t(MessageKey.DELETE_NOTHING), "yellow")
            return 0
        if dry_run:
            self.say(t(MessageKey.DRY_RUN_TOTAL, count))
            return 0

        self.say(summary)
        if not self.confirm_delete():
            self.say(t(MessageKey.CONFIRM_CLEAN_ALL_ABORTED), "yellow")
            return 0

        cleaned = delete()
        self.say(t(MessageKey.CLEANED_RECORDS, cleaned), "green")
        return cleaned

    def clean_all(self) -> int:
        t = self.i18n.t
        records = self.store.get_all_records()
        self.say(t(MessageKey.CONFIRM_CLEAN_ALL_TITLE), "bold red")
        self.say(t(MessageKey.CLEAN_ALL_SUMMARY, len(build_command_groups(records)), len(records)))

        if not self.confirm_delete():
            self.say(t(MessageKey.CONFIRM_CLEAN_ALL_ABORTED), "yellow")
            return 0

        cleaned = self.store.clean_all()
        self.say(t(MessageKey.CLEANED_ALL), "green")
        return cleaned


# ----------------------------------------------------------------------
# CLI
# ----------------------------------------------------------------------

def _command_args(args: List[str]) -> List[str]:
    if args and args[0] == "--":
        return args[1:]
    return args


def _session(args) -> DtSession:
    return DtSession(data_dir=args.data_dir, max_shown=getattr(args, "max_shown", None))


def run_command(args) -> int:
    """CLI: Run a command and record it."""
    command = _command_args(args.command_args)
    if not command:
        args.parser.error("run requires a command")
    session = _session(args)
    session.run(join_args_for_shell(command), diff_code=args.diff_code, echo=not args.no_echo)
    return EXIT_OK


def run_diff(args) -> int:
    """CLI: Diff two executions of a command."""
    command = _command_args(args.command_args)
    session = _session(args)
    session.diff(join_args_for_shell(command) if command else None, linewise=args.linewise)
    return EXIT_OK


def run_ls(args) -> int:
    """CLI: List recorded executions."""
    session = _session(args)
    session.list_records(args.query or "", as_json=args.json, limit=args.limit)
    return EXIT_OK


def run_clean_search(args) -> int:
    _session(args).clean_search(args.query, dry_run=args.dry_run)
    return EXIT_OK


def run_clean_file(args) -> int:
    _session(args).clean_file(args.file, dry_run=args.dry_run)
    return EXIT_OK


def run_clean_all(args) -> int:
    _session(args).clean_all()
    return EXIT_OK


def run_init(args) -> int:
    """CLI: Write the default configuration file."""
    console = Console(highlight=False)
    i18n = I18n(resolve_language("auto"))
    config_path = default_config_path()

    if config_path.exists() and not args.force:
        console.print(Text(i18n.t(MessageKey.CONFIG_EXISTS, config_path), style="yellow"))
        return EXIT_ERROR

    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(DEFAULT_CONFIG_YAML, encoding="utf-8")
    console.print(Text(i18n.t(MessageKey.CONFIG_CREATED, config_path), style="green"))
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dt",
        description="dt - Record command executions and compare their output over time",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  dt run go build ./...          Run and record a command
  dt run -d a make test          Run, then diff against the run coded "a"
  dt diff make test              Pick two runs of a command and diff them
  dt ls build                    List records matching "build"
  dt clean search build          Delete records matching "build"
  dt init                        Write ~/.dt/config.yaml

Environment:
  DT_TUI=simple                  Line-oriented pickers
  DT_ALT_SCREEN=1                Use the alternate screen for pickers
  DT_DATA_DIR=PATH               Store root (default ~/.dt)
        """,
    )

    parser.add_argument("--data-dir", help="Store root (default: DT_DATA_DIR or ~/.dt)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    subparsers = parser.add_subparsers(dest="subcommand", help="Command to run")

    # run command
    run_parser = subparsers.add_parser("run", help="Run and record a command")
    run_parser.add_argument("--diff-code", "-d", metavar="CODE", help="Diff against the run with this short code")
    run_parser.add_argument("--no-echo", action="store_true", help="Print output after the run instead of live")
    run_parser.add_argument("command_args", nargs=argparse.REMAINDER, metavar="COMMAND")
    run_parser.set_defaults(func=run_command, parser=run_parser)

    # diff command
    diff_parser = subparsers.add_parser("diff", help="Diff two runs of a command")
    diff_parser.add_argument("--max-shown", type=int, metavar="N", help="Picker viewport height")
    diff_parser.add_argument("--linewise", action="store_true", help="Compare line N with line N")
    diff_parser.add_argument("command_args", nargs=argparse.REMAINDER, metavar="COMMAND")
    diff_parser.set_defaults(func=run_diff)

    # ls command
    ls_parser = subparsers.add_parser("ls", help="List recorded executions")
    ls_parser.add_argument("query", nargs="?", help="Substring or subsequence of the command")
    ls_parser.add_argument("--json", action="store_true", help="Print JSON")
    ls_parser.add_argument("--limit", "-n", type=int, help="Maximum rows (0 = all; default from config)")
    ls_parser.set_defaults(func=run_ls)

    # clean command
    clean_parser = subparsers.add_parser("clean", help="Delete recorded executions")
    clean_sub = clean_parser.add_subparsers(dest="mode")

    search_parser = clean_sub.add_parser("search", help="Delete records matching a query")
    search_parser.add_argument("query", nargs="?")
    search_parser.add_argument("--dry-run", action="store_true", help="Only print the count")
    search_parser.set_defaults(func=run_clean_search)

    file_parser = clean_sub.add_parser("file", help="Delete records related to a file")
    file_parser.add_argument("file", nargs="?")
    file_parser.add_argument("--dry-run", action="store_true", help="Only print the count")
    file_parser.set_defaults(func=run_clean_file)

    all_parser = clean_sub.add_parser("all", help="Delete every record")
    all_parser.set_defaults(func=run_clean_all)

    # init command
    init_parser = subparsers.add_parser("init", help="Write the default configuration")
    init_parser.add_argument("--force", "-f", action="store_true", help="Overwrite existing config")
    init_parser.set_defaults(func=run_init)

    return parser


def setup_logging(verbose: bool = False):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if getattr(args, "func", None) is None:
        parser.print_help()
        return EXIT_ERROR

    setup_logging(args.verbose)

    try:
        return args.func(args)
    except (RundiffError, ValueError) as exc:
        message = str(exc)
        if isinstance(exc, RundiffError) and exc.__cause__ is not None:
            message = f"{message}: {exc.__cause__}"
        logger.debug("command failed", exc_info=True)
        Console(stderr=True, highlight=False).print(Text(message, style="bold red"))
        return EXIT_ERROR


if __name__ == "__main__":
    sys.exit(main())
