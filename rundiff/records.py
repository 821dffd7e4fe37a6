"""
Records - Execution metadata and command identity
"""

import hashlib
import re
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Optional

_FRACTION_RE = re.compile(r"\.(\d+)")
_WS_RUN_RE = re.compile(r"\s+")
_PIPE_RE = re.compile(r"\s*\|\s*")


def normalize_command(command: str) -> str:
    """
    Canonical form of a command line used for identity.

    Runs of whitespace collapse to one space and whitespace around pipe
    symbols is dropped, so ``echo 1   |   grep 1`` becomes ``echo 1|grep 1``.
    """
    collapsed = _WS_RUN_RE.sub(" ", command.strip())
    return _PIPE_RE.sub("|", collapsed).strip()


def hash_command(command: str) -> str:
    """SHA-256 hex digest of the normalized command."""
    return hashlib.sha256(normalize_command(command).encode("utf-8")).hexdigest()


def make_record_id(command_hash: str, timestamp: datetime) -> str:
    return f"{command_hash}_{epoch_seconds(timestamp)}"


def epoch_seconds(timestamp: datetime) -> int:
    return int(timestamp.timestamp())


def format_timestamp(timestamp: datetime) -> str:
    """RFC 3339 in UTC with a ``Z`` suffix."""
    utc = timestamp.astimezone(timezone.utc)
    return utc.strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def parse_timestamp(value: str) -> datetime:
    """
    Parse an RFC 3339 timestamp.

    Fractions longer than microseconds (nanosecond stores) are truncated.
    """
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    text = _FRACTION_RE.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


@dataclass(frozen=True)
class CommandRecord:
    """Metadata of one execution."""
    command: str
    command_hash: str
    timestamp: datetime
    working_dir: str
    exit_code: int
    duration_ms: int
    record_id: str
    short_code: Optional[str] = None

    @property
    def epoch(self) -> int:
        return epoch_seconds(self.timestamp)

    @property
    def local_time(self) -> str:
        return self.timestamp.astimezone().strftime("%Y-%m-%d %H:%M:%S")

    def with_short_code(self, code: str) -> "CommandRecord":
        return replace(self, short_code=code)

    def with_timestamp(self, timestamp: datetime) -> "CommandRecord":
        return replace(
            self,
            timestamp=timestamp,
            record_id=make_record_id(self.command_hash, timestamp),
        )

    def to_dict(self) -> dict:
        return {
            "command": self.command,
            "command_hash": self.command_hash,
            "timestamp": format_timestamp(self.timestamp),
            "working_dir": self.working_dir,
            "exit_code": self.exit_code,
            "duration_ms": self.duration_ms,
            "record_id": self.record_id,
            "short_code": self.short_code,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CommandRecord":
        """Build a record from its JSON form; raises KeyError/ValueError/TypeError when malformed."""
        return cls(
            command=str(data["command"]),
            command_hash=str(data["command_hash"]),
            timestamp=parse_timestamp(data["timestamp"]),
            working_dir=str(data["working_dir"]),
            exit_code=int(data["exit_code"]),
            duration_ms=int(data["duration_ms"]),
            record_id=str(data["record_id"]),
            short_code=data.get("short_code"),
        )


@dataclass
class CommandExecution:
    """A record together with the output it produced."""
    record: CommandRecord
    stdout: str
    stderr: str
    stdout_path: Optional[str] = None
    stderr_path: Optional[str] = None
    _code_attached: bool = field(default=False, init=False, repr=False, compare=False)

    @property
    def success(self) -> bool:
        return self.record.exit_code == 0

    def attach_short_code(self, code: str):
        """Attach the short code; allowed once, before the execution is saved."""
        if self._code_attached:
            raise ValueError("short code already attached")
        self.record = self.record.with_short_code(code)
        self._code_attached = True
