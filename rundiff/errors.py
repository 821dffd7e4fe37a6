"""
Errors - Exception types raised by the recorder
"""


class RundiffError(Exception):
    """Base class for errors that end the current invocation."""


class ExecutionError(RundiffError):
    """The child command could not be spawned, drained or joined."""


class StorageError(RundiffError):
    """A store directory or file could not be created, read or written."""


class TerminalUnavailable(Exception):
    """Raw terminal mode could not be entered; callers fall back to line input."""
