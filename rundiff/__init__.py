"""
rundiff - Command execution recorder

Captures the output, exit code and duration of shell commands into a
content-addressed store and compares two executions of the same command.
"""

__version__ = "1.0.0"

from .config import DtConfig
from .differ import Differ
from .errors import ExecutionError, RundiffError, StorageError, TerminalUnavailable
from .executor import CommandExecutor
from .fuzzy import FuzzyMatcher, MatchResult
from .i18n import I18n, MessageKey
from .picker import Picker
from .records import CommandExecution, CommandRecord
from .selection import Selector
from .storage import StoreManager

__all__ = [
    "CommandExecution",
    "CommandExecutor",
    "CommandRecord",
    "Differ",
    "DtConfig",
    "ExecutionError",
    "FuzzyMatcher",
    "I18n",
    "MatchResult",
    "MessageKey",
    "Picker",
    "RundiffError",
    "Selector",
    "StorageError",
    "StoreManager",
    "TerminalUnavailable",
]
