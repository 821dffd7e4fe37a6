"""
Store Manager - Content-addressed execution log with index, archive and cleanup

Layout under the store root (``~/.dt`` by default):

    records/<command_hash>/meta_<epoch>.json    one CommandRecord
    records/<command_hash>/stdout_<epoch>.txt   captured stdout
    records/<command_hash>/stderr_<epoch>.txt   captured stderr
    index                                       live records, newest first
    index_<year>.json                           archived records of that year
"""

import json
import logging
import os
import shutil
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set

from .config import DtConfig, default_data_dir
from .errors import StorageError
from .fuzzy import is_subsequence
from .i18n import I18n, MessageKey
from .records import CommandExecution, CommandRecord

logger = logging.getLogger(__name__)

SHORT_CODE_ALPHABET = (
    "abcdefghijklmnopqrstuvwxyz"
    "ABCDEFGHIJKLMNOPQRSTUVWXYZ"
    "0123456789"
)

# Bare command names whose arguments are paths; the name itself is kept too.
PATH_COMMANDS = frozenset({"ls", "cat"})


def encode_short_code(n: int) -> str:
    """
    Bijective base-62 encoding of a positive integer.

    1 -> "a", 62 -> "9", 63 -> "aa". There is no zero digit, so every
    positive integer has exactly one code and no code has a leading zero.
    """
    if n <= 0:
        raise ValueError(f"short codes start at 1, got {n}")

    base = len(SHORT_CODE_ALPHABET)
    chars = []
    while n > 0:
        n, rem = divmod(n, base)
        if rem == 0:
            # remainder 0 means "last symbol", borrowing one from the next digit
            rem = base
            n -= 1
        chars.append(SHORT_CODE_ALPHABET[rem - 1])
    return "".join(reversed(chars))


def matches_query(record: CommandRecord, query: str) -> bool:
    """
    Text query rule used by ``ls`` and ``clean search``.

    Case-insensitive substring first, then case-insensitive subsequence.
    An empty query matches nothing.
    """
    needle = query.strip().lower()
    if not needle:
        return False
    command = record.command.lower()
    if needle in command:
        return True
    return is_subsequence(needle, command)


def canonical_path(path: str) -> str:
    """Absolute, symlink-resolved form of ``path``; the input itself if it cannot be resolved."""
    try:
        return str(Path(path).expanduser().resolve(strict=True))
    except (OSError, RuntimeError):
        return str(path)


def matches_file(record: CommandRecord, file_path: str, target: Optional[str] = None) -> bool:
    """
    File rule used by ``clean file``.

    A record matches when it ran inside the target directory, or when its
    command mentions the target literally, canonically, or relative to the
    record's own working directory.
    """
    if not file_path:
        return False
    target = target or canonical_path(file_path)

    if record.working_dir == target:
        return True

    if file_path in record.command or target in record.command:
        return True

    if os.path.isabs(target) and os.path.isabs(record.working_dir):
        try:
            relative = os.path.relpath(target, record.working_dir)
        except ValueError:
            relative = None
        if relative and relative != "." and relative in record.command:
            return True

    return False


class StoreManager:
    """
    File-backed store for command executions.

    Usage:
        store = StoreManager(config=config, i18n=i18n)
        store.assign_short_code(execution)
        store.save_execution(execution)
        store.find_executions(execution.record.command_hash)
    """

    INDEX_NAME = "index"

    def __init__(
        self,
        base_dir: Optional[str] = None,
        config: Optional[DtConfig] = None,
        i18n: Optional[I18n] = None,
        clock=None,
    ):
        """
        Args:
            base_dir: Store root (defaults to DT_DATA_DIR or ~/.dt)
            config: Retention settings
            i18n: Message lookup for error contexts and placeholders
            clock: Callable returning the current aware datetime (tests)
        """
        self.base_dir = Path(base_dir) if base_dir else default_data_dir()
        self.config = config or DtConfig()
        self.i18n = i18n or I18n()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

        self._mkdir(self.base_dir, MessageKey.ERROR_CREATE_DT_DIR)
        self._mkdir(self.records_dir, MessageKey.ERROR_CREATE_RECORDS_DIR)

    @property
    def records_dir(self) -> Path:
        return self.base_dir / "records"

    @property
    def index_path(self) -> Path:
        return self.base_dir / self.INDEX_NAME

    def archive_path(self, year: int) -> Path:
        return self.base_dir / f"index_{year}.json"

    def bucket_dir(self, command_hash: str) -> Path:
        return self.records_dir / command_hash

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------

    def assign_short_code(self, execution: CommandExecution) -> str:
        """
        Give ``execution`` the smallest short code unused in its bucket.

        Must be called before ``save_execution`` so the code is persisted.
        """
        used = {
            record.short_code
            for record in self._bucket_records(execution.record.command_hash)
            if record.short_code
        }
        n = 1
        while encode_short_code(n) in used:
            n += 1
        code = encode_short_code(n)
        execution.attach_short_code(code)
        return code

    def save_execution(self, execution: CommandExecution):
        """Write metadata and both payloads, then update the index."""
        record_dir = self.bucket_dir(execution.record.command_hash)
        self._mkdir(record_dir, MessageKey.ERROR_CREATE_RECORD_DIR)

        record = self._claim_second(record_dir, execution.record)
        execution.record = record
        meta_path, stdout_path, stderr_path = self._record_paths(record)

        self._write_json(meta_path, record.to_dict(), MessageKey.ERROR_SAVE_METADATA)
        self._write_text(stdout_path, execution.stdout, MessageKey.ERROR_SAVE_STDOUT)
        self._write_text(stderr_path, execution.stderr, MessageKey.ERROR_SAVE_STDERR)
        execution.stdout_path = str(stdout_path)
        execution.stderr_path = str(stderr_path)

        logger.debug("saved %s", record.record_id)
        self.update_index(record)

    def update_index(self, record: CommandRecord):
        """Add ``record`` to the index after applying the retention sweep."""
        entries = [r for r in self._read_index() if r.record_id != record.record_id]
        cutoff = self._clock() - timedelta(days=self.config.max_retention_days)

        if self.config.auto_archive:
            entries = self.archive_older_than(entries, cutoff)

        entries.append(record)
        entries = [r for r in entries if r.timestamp > cutoff]

        self._write_index(entries, MessageKey.ERROR_UPDATE_INDEX)

    def archive_older_than(
        self, entries: List[CommandRecord], cutoff: datetime
    ) -> List[CommandRecord]:
        """
        Move records at or before ``cutoff`` into their yearly archives.

        Returns the records that stay in the live index.
        """
        by_year: Dict[int, List[CommandRecord]] = defaultdict(list)
        keep = []
        for record in entries:
            if record.timestamp <= cutoff:
                by_year[record.timestamp.year].append(record)
            else:
                keep.append(record)

        for year, records in sorted(by_year.items()):
            path = self.archive_path(year)
            merged = {r.record_id: r for r in self._read_records_file(path)}
            for record in records:
                merged.setdefault(record.record_id, record)
            self._write_records_file(
                path,
                self._newest_first(merged.values()),
                self.i18n.t(MessageKey.ERROR_SAVE_ARCHIVE, year),
            )
            logger.debug("archived %d records into %s", len(records), path.name)

        return keep

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    def find_executions(self, command_hash: str) -> List[CommandExecution]:
        """All executions of one command, oldest first."""
        bucket = self.bucket_dir(command_hash)
        if not bucket.is_dir():
            return []

        executions = []
        for meta_path in self._meta_files(bucket):
            record = self._load_record(meta_path)
            if record is not None:
                executions.append(self._load_execution(record))

        executions.sort(key=lambda e: e.record.timestamp)
        return executions

    def get_all_records(self) -> List[CommandRecord]:
        """The live index, newest first."""
        if not self.index_path.exists():
            return []
        try:
            return self._parse_records(self.index_path.read_text(encoding="utf-8"))
        except (OSError, ValueError, KeyError, TypeError) as exc:
            logger.warning("index unreadable (%s); rebuilding from record files", exc)
            return self.rebuild_index()

    def get_archived_records(self, year: int) -> List[CommandRecord]:
        return self._read_records_file(self.archive_path(year))

    def records_matching(self, query: str) -> List[CommandRecord]:
        return [r for r in self.get_all_records() if matches_query(r, query)]

    def records_for_file(self, file_path: str) -> List[CommandRecord]:
        target = canonical_path(file_path)
        return [r for r in self.get_all_records() if matches_file(r, file_path, target)]

    def get_related_files(self) -> List[str]:
        """Working directories and path-like command arguments of all records."""
        files: Set[str] = set()
        for record in self.get_all_records():
            files.add(record.working_dir)
            files.update(self._paths_in_command(record.command))
        return sorted(files)

    # ------------------------------------------------------------------
    # Cleaning
    # ------------------------------------------------------------------

    def clean_by_query(self, query: str) -> int:
        return self._clean(self.records_matching(query))

    def clean_by_file(self, file_path: str) -> int:
        return self._clean(self.records_for_file(file_path))

    def clean_all(self) -> int:
        """Remove every record and the live index; archives are kept."""
        count = len(self.get_all_records())
        try:
            if self.records_dir.exists():
                shutil.rmtree(self.records_dir)
            if self.index_path.exists():
                self.index_path.unlink()
        except OSError as exc:
            raise StorageError(self.i18n.t(MessageKey.ERROR_DELETE_RECORD, self.records_dir)) from exc
        self._mkdir(self.records_dir, MessageKey.ERROR_CREATE_RECORDS_DIR)
        self.rebuild_index()
        return count

    def rebuild_index(self) -> List[CommandRecord]:
        """Regenerate the index from the metadata files alone."""
        records = []
        for bucket in self._buckets():
            for meta_path in self._meta_files(bucket):
                record = self._load_record(meta_path)
                if record is not None:
                    records.append(record)

        records = self._newest_first(records)
        self._write_index(records, MessageKey.ERROR_REBUILD_INDEX)
        logger.debug("rebuilt index with %d records", len(records))
        return records

    def _clean(self, records: List[CommandRecord]) -> int:
        for record in records:
            self._delete_record_files(record)
        self.rebuild_index()
        return len(records)

    def _delete_record_files(self, record: CommandRecord):
        bucket = self.bucket_dir(record.command_hash)
        try:
            for path in self._record_paths(record):
                path.unlink(missing_ok=True)
            if bucket.is_dir() and not any(bucket.iterdir()):
                bucket.rmdir()
        except OSError as exc:
            raise StorageError(self.i18n.t(MessageKey.ERROR_DELETE_RECORD, record.record_id)) from exc

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _record_paths(self, record: CommandRecord):
        bucket = self.bucket_dir(record.command_hash)
        ts = record.epoch
        return (
            bucket / f"meta_{ts}.json",
            bucket / f"stdout_{ts}.txt",
            bucket / f"stderr_{ts}.txt",
        )

    def _claim_second(self, record_dir: Path, record: CommandRecord) -> CommandRecord:
        """Move the record to the next free second if its files would overwrite another run."""
        while (record_dir / f"meta_{record.epoch}.json").exists():
            record = record.with_timestamp(record.timestamp + timedelta(seconds=1))
        return record

    def _bucket_records(self, command_hash: str) -> List[CommandRecord]:
        bucket = self.bucket_dir(command_hash)
        if not bucket.is_dir():
            return []
        records = []
        for meta_path in self._meta_files(bucket):
            record = self._load_record(meta_path)
            if record is not None:
                records.append(record)
        return records

    def _buckets(self) -> List[Path]:
        if not self.records_dir.is_dir():
            return []
        try:
            return sorted(p for p in self.records_dir.iterdir() if p.is_dir())
        except OSError as exc:
            raise StorageError(self.i18n.t(MessageKey.ERROR_REBUILD_INDEX)) from exc

    def _meta_files(self, bucket: Path) -> List[Path]:
        try:
            return sorted(
                p for p in bucket.iterdir()
                if p.name.startswith("meta_") and p.suffix == ".json"
            )
        except OSError as exc:
            raise StorageError(self.i18n.t(MessageKey.ERROR_READ_BUCKET, bucket)) from exc

    def _load_record(self, meta_path: Path) -> Optional[CommandRecord]:
        try:
            data = json.loads(meta_path.read_text(encoding="utf-8"))
            return CommandRecord.from_dict(data)
        except (OSError, ValueError, KeyError, TypeError) as exc:
            logger.warning("skipping unreadable metadata %s: %s", meta_path, exc)
            return None

    def _load_execution(self, record: CommandRecord) -> CommandExecution:
        _, stdout_path, stderr_path = self._record_paths(record)
        return CommandExecution(
            record=record,
            stdout=self._read_payload(stdout_path, MessageKey.ERROR_READ_STDOUT),
            stderr=self._read_payload(stderr_path, MessageKey.ERROR_READ_STDERR),
            stdout_path=str(stdout_path),
            stderr_path=str(stderr_path),
        )

    def _read_payload(self, path: Path, placeholder: MessageKey) -> str:
        try:
            return path.read_text(encoding="utf-8", errors="replace")
        except OSError as exc:
            logger.warning("payload %s unavailable: %s", path, exc)
            return self.i18n.t(placeholder)

    def _read_index(self) -> List[CommandRecord]:
        return self._read_records_file(self.index_path)

    def _read_records_file(self, path: Path) -> List[CommandRecord]:
        """Records of an index or archive file; a missing or malformed file reads as empty."""
        if not path.exists():
            return []
        try:
            return self._parse_records(path.read_text(encoding="utf-8"))
        except (OSError, ValueError, KeyError, TypeError) as exc:
            logger.warning("ignoring malformed %s: %s", path, exc)
            return []

    @staticmethod
    def _parse_records(content: str) -> List[CommandRecord]:
        data = json.loads(content)
        if not isinstance(data, list):
            raise ValueError("expected a JSON array of records")
        return [CommandRecord.from_dict(item) for item in data]

    @staticmethod
    def _newest_first(records: Iterable[CommandRecord]) -> List[CommandRecord]:
        return sorted(records, key=lambda r: r.timestamp, reverse=True)

    def _write_index(self, records: List[CommandRecord], context: MessageKey):
        self._write_records_file(
            self.index_path, self._newest_first(records), self.i18n.t(context)
        )

    def _write_records_file(self, path: Path, records: List[CommandRecord], context: str):
        try:
            path.write_text(
                json.dumps([r.to_dict() for r in records], indent=2, ensure_ascii=False),
                encoding="utf-8",
            )
        except (OSError, TypeError, ValueError) as exc:
            raise StorageError(context) from exc

    def _write_json(self, path: Path, data: dict, context: MessageKey):
        try:
            path.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
        except (OSError, TypeError, ValueError) as exc:
            raise StorageError(self.i18n.t(context)) from exc

    def _write_text(self, path: Path, text: str, context: MessageKey):
        try:
            path.write_text(text, encoding="utf-8")
        except OSError as exc:
            raise StorageError(self.i18n.t(context)) from exc

    def _mkdir(self, path: Path, context: MessageKey):
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageError(self.i18n.t(context)) from exc

    @staticmethod
    def _paths_in_command(command: str) -> Set[str]:
        found = set()
        for token in command.split():
            looks_like_path = (
                "/" in token
                or Path(token).suffix != ""
                or token in PATH_COMMANDS
            )
            if not looks_like_path:
                continue
            if os.path.exists(token):
                found.add(canonical_path(token))
            else:
                found.add(token)
        return found
