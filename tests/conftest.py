"""
Shared fixtures: isolated stores, execution builders and a scripted terminal.
"""

from datetime import datetime, timedelta, timezone
from typing import List, Optional

import pytest

from rundiff.config import DtConfig
from rundiff.errors import TerminalUnavailable
from rundiff.i18n import I18n
from rundiff.records import (
    CommandExecution,
    CommandRecord,
    hash_command,
    make_record_id,
    normalize_command,
)
from rundiff.storage import StoreManager
from rundiff.terminal import Key, KeyEvent

NOW = datetime(2025, 6, 15, 12, 0, 0, tzinfo=timezone.utc)


def build_execution(
    command: str = "echo hi",
    timestamp: datetime = NOW,
    stdout: str = "",
    stderr: str = "",
    exit_code: int = 0,
    duration_ms: int = 5,
    working_dir: str = "/tmp",
    short_code: Optional[str] = None,
) -> CommandExecution:
    normalized = normalize_command(command)
    command_hash = hash_command(normalized)
    record = CommandRecord(
        command=normalized,
        command_hash=command_hash,
        timestamp=timestamp,
        working_dir=working_dir,
        exit_code=exit_code,
        duration_ms=duration_ms,
        record_id=make_record_id(command_hash, timestamp),
        short_code=short_code,
    )
    return CommandExecution(record=record, stdout=stdout, stderr=stderr)


def keys(*items) -> List[KeyEvent]:
    """Strings become one CHAR event per character; Key members become that key."""
    events = []
    for item in items:
        if isinstance(item, Key):
            events.append(KeyEvent(item))
        else:
            events.extend(KeyEvent.of(ch) for ch in item)
    return events


class FakeTerminal:
    """Terminal double that replays scripted keys and records frames."""

    def __init__(self, events, rows: int = 24, cols: int = 80):
        self.events = list(events)
        self.rows = rows
        self.cols = cols
        self.frames: List[str] = []
        self.entered = False
        self.restored = False
        self.active = False

    def enter(self):
        self.entered = True
        self.active = True

    def restore(self):
        self.restored = True
        self.active = False

    def write(self, text: str):
        self.frames.append(text)

    def flush(self):
        pass

    def size(self):
        return self.rows, self.cols

    def read_key(self) -> KeyEvent:
        if not self.events:
            raise AssertionError("picker read more keys than were scripted")
        return self.events.pop(0)


class UnavailableTerminal(FakeTerminal):
    def __init__(self):
        super().__init__([])

    def enter(self):
        raise TerminalUnavailable("not a tty")


@pytest.fixture(autouse=True)
def no_signal_handler(monkeypatch):
    """Keep pickers from replacing the test process's SIGINT handler."""
    monkeypatch.setattr("rundiff.picker.install_interrupt_handler", lambda: False)


@pytest.fixture(autouse=True)
def isolated_home(tmp_path_factory, monkeypatch):
    """Point HOME and the environment overrides away from the real user."""
    home = tmp_path_factory.mktemp("home")
    monkeypatch.setenv("HOME", str(home))
    for name in ("DT_TUI", "DT_ALT_SCREEN", "DT_DATA_DIR"):
        monkeypatch.delenv(name, raising=False)
    return home


@pytest.fixture
def i18n():
    return I18n("en")


@pytest.fixture
def config():
    return DtConfig(language="en")


@pytest.fixture
def clock():
    """Mutable clock: set ``clock.now`` to move time."""
    class Clock:
        now = NOW + timedelta(minutes=5)

        def __call__(self):
            return self.now

    return Clock()


@pytest.fixture
def store(tmp_path, config, i18n, clock):
    return StoreManager(base_dir=str(tmp_path / "dt"), config=config, i18n=i18n, clock=clock)
