"""
Command Executor - Core execution and capture logic
"""

import io
import logging
import os
import subprocess
import sys
import threading
import time
from datetime import datetime, timezone
from typing import BinaryIO, Optional, TextIO, Union

from .errors import ExecutionError
from .i18n import I18n, MessageKey
from .records import (
    CommandExecution,
    CommandRecord,
    hash_command,
    make_record_id,
    normalize_command,
)

logger = logging.getLogger(__name__)

CHUNK_SIZE = 4096

Sink = Union[BinaryIO, TextIO]


def _binary_sink(stream) -> Optional[BinaryIO]:
    """The byte-level stream behind ``stream``, or None when it only takes text."""
    if stream is None:
        return None
    if isinstance(stream, (io.RawIOBase, io.BufferedIOBase)):
        return stream
    return getattr(stream, "buffer", None)


class StreamTee(threading.Thread):
    """
    Drains one child pipe: every chunk is echoed to ``sink`` at once and kept.

    Each tee owns its pipe and its buffer, so a slow console on one stream
    never stalls the other pipe.
    """

    def __init__(self, name: str, pipe: BinaryIO, sink: Optional[Sink] = None):
        super().__init__(name=f"tee-{name}", daemon=True)
        self.pipe = pipe
        self.sink = sink
        self._binary = _binary_sink(sink)
        self._buffer = bytearray()
        self.error: Optional[BaseException] = None

    def run(self):
        try:
            fd = self.pipe.fileno()
            while True:
                chunk = os.read(fd, CHUNK_SIZE)
                if not chunk:
                    break
                self._buffer.extend(chunk)
                self._echo(chunk)
        except BaseException as exc:  # surfaced by join_output()
            self.error = exc
        finally:
            self.pipe.close()

    def _echo(self, chunk: bytes):
        if self.sink is None:
            return
        if self._binary is not None:
            self._binary.write(chunk)
            self._binary.flush()
        else:
            self.sink.write(chunk.decode("utf-8", errors="replace"))
            self.sink.flush()

    def join_output(self) -> str:
        """Wait for the pipe to close and return everything it produced."""
        self.join()
        if self.error is not None:
            raise self.error
        return bytes(self._buffer).decode("utf-8", errors="replace")


class CommandExecutor:
    """
    Runs one command through the host shell and records what it did.

    Usage:
        executor = CommandExecutor(i18n)
        execution = executor.execute("go build ./...")
        # output was echoed live and is also in execution.stdout/stderr
    """

    def __init__(
        self,
        i18n: Optional[I18n] = None,
        shell: str = "sh",
        echo: bool = True,
        stdout: Optional[Sink] = None,
        stderr: Optional[Sink] = None,
        cwd: Optional[str] = None,
    ):
        self.i18n = i18n or I18n()
        self.shell = shell
        self.echo = echo
        self._stdout = stdout
        self._stderr = stderr
        self.cwd = cwd

    def execute(self, command: str) -> CommandExecution:
        """
        Execute a command, echoing and capturing both output streams.

        Args:
            command: Shell command to execute, passed verbatim to ``sh -c``

        Returns:
            CommandExecution with captured output (no short code yet)

        Raises:
            ExecutionError: the shell could not be started or the output
                could not be drained
        """
        working_dir = os.path.realpath(self.cwd or os.getcwd())

        # pending text must reach the console before raw chunks do
        for stream in (sys.stdout, sys.stderr):
            stream.flush()

        start_time = time.monotonic()

        try:
            proc = subprocess.Popen(
                [self.shell, "-c", command],
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                cwd=working_dir,
            )
        except OSError as exc:
            raise ExecutionError(
                f"{self.i18n.t(MessageKey.ERROR_EXECUTE_COMMAND)}: {exc}"
            ) from exc

        if proc.stdout is None or proc.stderr is None:
            proc.kill()
            proc.wait()
            raise ExecutionError(self.i18n.t(MessageKey.ERROR_CAPTURE_OUTPUT))

        out_tee = StreamTee("stdout", proc.stdout, self._sink(self._stdout, sys.stdout))
        err_tee = StreamTee("stderr", proc.stderr, self._sink(self._stderr, sys.stderr))
        out_tee.start()
        err_tee.start()

        returncode = proc.wait()
        duration_ms = int((time.monotonic() - start_time) * 1000)

        try:
            stdout = out_tee.join_output()
            stderr = err_tee.join_output()
        except Exception as exc:
            raise ExecutionError(
                f"{self.i18n.t(MessageKey.ERROR_CAPTURE_OUTPUT)}: {exc}"
            ) from exc

        # negative return codes mean the child died from a signal
        exit_code = returncode if returncode is not None and returncode >= 0 else -1

        normalized = normalize_command(command)
        command_hash = hash_command(normalized)
        timestamp = datetime.now(timezone.utc)

        record = CommandRecord(
            command=normalized,
            command_hash=command_hash,
            timestamp=timestamp,
            working_dir=working_dir,
            exit_code=exit_code,
            duration_ms=duration_ms,
            record_id=make_record_id(command_hash, timestamp),
        )
        logger.debug("executed %r exit=%s in %sms", normalized, exit_code, duration_ms)

        return CommandExecution(record=record, stdout=stdout, stderr=stderr)

    def _sink(self, explicit: Optional[Sink], default) -> Optional[Sink]:
        if not self.echo:
            return None
        return explicit if explicit is not None else default
