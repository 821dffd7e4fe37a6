"""
Configuration - Recorder configuration management
"""

import os
import json
import yaml
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Optional

from .i18n import resolve_language

TUI_INTERACTIVE = "interactive"
TUI_SIMPLE = "simple"

_FALSE_VALUES = ("0", "false")


def as_bool(value) -> bool:
    """YAML booleans as given; strings are false only for "0" or "false"."""
    if isinstance(value, str):
        return value.strip().lower() not in _FALSE_VALUES
    return bool(value)


def default_data_dir() -> Path:
    """Store root: ``DT_DATA_DIR`` or ``~/.dt``."""
    override = os.getenv("DT_DATA_DIR")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".dt"


def default_config_path() -> Path:
    return Path.home() / ".dt" / "config.yaml"


@dataclass
class DtConfig:
    """
    Configuration for the recorder.

    Can be loaded from:
    - YAML file (~/.dt/config.yaml)
    - JSON file (any *.json path)
    - Environment variables (DT_TUI, DT_ALT_SCREEN) applied on top
    - Programmatic defaults
    """

    # Storage settings
    max_retention_days: int = 365
    auto_archive: bool = True

    # Display settings
    max_history_shown: int = 10
    language: str = "auto"
    tui_mode: str = TUI_INTERACTIVE  # interactive, simple
    alt_screen: bool = False

    @classmethod
    def from_file(cls, path: str) -> "DtConfig":
        """Load configuration from YAML or JSON file."""
        path = Path(path)

        if not path.exists():
            return cls()

        content = path.read_text(encoding="utf-8")

        if path.suffix in ('.yaml', '.yml'):
            try:
                data = yaml.safe_load(content)
            except yaml.YAMLError as exc:
                raise ValueError(f"Invalid config file {path}: {exc}") from exc
        elif path.suffix == '.json':
            data = json.loads(content)
        else:
            raise ValueError(f"Unsupported config format: {path.suffix}")

        if data is None:
            return cls()
        if not isinstance(data, dict):
            raise ValueError(f"Config must be a mapping: {path}")

        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: dict) -> "DtConfig":
        """Create config from dictionary."""
        # Flatten nested structure
        flat = {}

        if 'storage' in data:
            storage = data['storage'] or {}
            flat['max_retention_days'] = int(storage.get('max_retention_days', 365))
            flat['auto_archive'] = as_bool(storage.get('auto_archive', True))

        if 'display' in data:
            display = data['display'] or {}
            flat['max_history_shown'] = int(display.get('max_history_shown', 10))
            flat['language'] = str(display.get('language', 'auto'))
            flat['tui_mode'] = str(display.get('tui_mode', TUI_INTERACTIVE)).lower()
            flat['alt_screen'] = as_bool(display.get('alt_screen', False))

        return cls(**flat)

    @classmethod
    def load(cls, path: Optional[str] = None) -> "DtConfig":
        """
        Load the user configuration, writing defaults on first use.

        Environment overrides are applied to the result.
        """
        config_path = Path(path) if path else default_config_path()
        if config_path.exists():
            config = cls.from_file(str(config_path))
        else:
            config = cls()
            config.save(str(config_path))
        return config.with_env()

    def with_env(self) -> "DtConfig":
        """Apply DT_TUI and DT_ALT_SCREEN, which take precedence over the file."""
        updates = {}

        tui = os.getenv('DT_TUI')
        if tui is not None:
            simple = tui.strip().lower() in _FALSE_VALUES + (TUI_SIMPLE,)
            updates['tui_mode'] = TUI_SIMPLE if simple else TUI_INTERACTIVE

        alt = os.getenv('DT_ALT_SCREEN')
        if alt is not None:
            updates['alt_screen'] = as_bool(alt)

        return replace(self, **updates) if updates else self

    def to_dict(self) -> dict:
        """Convert config to dictionary."""
        return {
            'storage': {
                'max_retention_days': self.max_retention_days,
                'auto_archive': self.auto_archive,
            },
            'display': {
                'max_history_shown': self.max_history_shown,
                'language': self.language,
                'tui_mode': self.tui_mode,
                'alt_screen': self.alt_screen,
            },
        }

    def save(self, path: str):
        """Save configuration to file."""
        path = Path(path)
        data = self.to_dict()

        if path.suffix in ('.yaml', '.yml'):
            content = yaml.safe_dump(data, default_flow_style=False, sort_keys=False)
        else:
            content = json.dumps(data, indent=2)

        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")

    @property
    def simple_tui(self) -> bool:
        return self.tui_mode.lower() == TUI_SIMPLE

    @property
    def effective_language(self) -> str:
        return resolve_language(self.language)


# Default config file template
DEFAULT_CONFIG_YAML = """# dt configuration

storage:
  max_retention_days: 365
  auto_archive: true

display:
  max_history_shown: 10
  language: "auto"
  tui_mode: "interactive"   # interactive | simple
  alt_screen: false
"""
