"""ScratchConfig: project-local config for the scratch document store.

Default layout (all relative to the project root):

    scratch.toml          # project config
    .scratch/
        scratchpads/      # one <id>.json per document
        history/          # one <id>.json per document: entries, newest first
        session/
            session-state.json
            backups.json

scratch.toml example:

    [scratch]
    name = "my-project"
    # storage_dir = ".scratch"   # default
    default_language = "markdown"
    auto_save = true
    auto_save_delay = 1000       # milliseconds

    [history]
    max_entries = 100
    retention_days = 30

    [session]
    recovery_enabled = true
    backup_interval = 30         # seconds
    max_backups = 50
"""

from __future__ import annotations

import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from scratchspace.errors import ConfigError

_CONFIG_FILENAME = "scratch.toml"
_DEFAULT_STORAGE_DIR = ".scratch"


@dataclass
class HistoryConfig:
    max_entries: int = 100
    retention_days: int = 30


@dataclass
class SessionConfig:
    recovery_enabled: bool = True
    backup_interval: float = 30.0      # seconds between auto-backups
    max_backups: int = 50


@dataclass
class ScratchConfig:
    """Resolved configuration for a scratch store."""

    root: Path                         # directory that contains scratch.toml
    name: str = ""
    storage_dir: Path = field(default_factory=Path)
    default_language: str = "plaintext"
    auto_save: bool = True
    auto_save_delay: int = 1000        # milliseconds
    history: HistoryConfig = field(default_factory=HistoryConfig)
    session: SessionConfig = field(default_factory=SessionConfig)

    @property
    def documents_dir(self) -> Path:
        return self.storage_dir / "scratchpads"

    @property
    def history_dir(self) -> Path:
        return self.storage_dir / "history"

    @property
    def session_dir(self) -> Path:
        return self.storage_dir / "session"

    @property
    def config_path(self) -> Path:
        return self.root / _CONFIG_FILENAME

    def ensure_dirs(self) -> None:
        """Create the storage directories if they don't exist."""
        for directory in (self.documents_dir, self.history_dir, self.session_dir):
            directory.mkdir(parents=True, exist_ok=True)


def _positive(section: str, key: str, value: Any, cast: type) -> Any:
    try:
        result = cast(value)
    except (TypeError, ValueError) as exc:
        msg = f"[{section}] {key} must be a number, got {value!r}"
        raise ConfigError(msg) from exc
    if result <= 0:
        msg = f"[{section}] {key} must be positive, got {value!r}"
        raise ConfigError(msg)
    return result


def load_config(root: Path | str | None = None) -> ScratchConfig:
    """Load scratch.toml from root (or search upward from cwd if root is None)."""
    root_path = _find_root(Path(root) if root else Path.cwd())
    config_path = root_path / _CONFIG_FILENAME

    raw: dict[str, Any] = {}
    if config_path.exists():
        try:
            with config_path.open("rb") as f:
                raw = tomllib.load(f)
        except tomllib.TOMLDecodeError as exc:
            msg = f"Invalid {config_path}: {exc}"
            raise ConfigError(msg) from exc

    section = raw.get("scratch", {})
    hist_section = raw.get("history", {})
    sess_section = raw.get("session", {})

    storage_rel = section.get("storage_dir", _DEFAULT_STORAGE_DIR)

    return ScratchConfig(
        root=root_path,
        name=section.get("name", root_path.name),
        storage_dir=root_path / storage_rel,
        default_language=str(section.get("default_language", "plaintext")) or "plaintext",
        auto_save=bool(section.get("auto_save", True)),
        auto_save_delay=_positive("scratch", "auto_save_delay", section.get("auto_save_delay", 1000), int),
        history=HistoryConfig(
            max_entries=_positive("history", "max_entries", hist_section.get("max_entries", 100), int),
            retention_days=_positive("history", "retention_days", hist_section.get("retention_days", 30), int),
        ),
        session=SessionConfig(
            recovery_enabled=bool(sess_section.get("recovery_enabled", True)),
            backup_interval=_positive("session", "backup_interval", sess_section.get("backup_interval", 30), float),
            max_backups=_positive("session", "max_backups", sess_section.get("max_backups", 50), int),
        ),
    )


def _find_root(start: Path) -> Path:
    """Walk upward from start looking for scratch.toml."""
    for directory in (start, *start.parents):
        if (directory / _CONFIG_FILENAME).exists():
            return directory
    return start


def init_config(root: Path, name: str | None = None) -> Path:
    """Write a default scratch.toml at root. Raises if already exists."""
    config_path = root / _CONFIG_FILENAME
    if config_path.exists():
        msg = f"scratch.toml already exists at {config_path}"
        raise FileExistsError(msg)

    project_name = name or root.name
    content = f"""\
[scratch]
name = "{project_name}"
# storage_dir = ".scratch"      # default
# default_language = "plaintext"
# auto_save = true              # debounce document writes
# auto_save_delay = 1000        # milliseconds

# [history]
# max_entries = 100             # per document
# retention_days = 30

# [session]
# recovery_enabled = true       # periodic backups of the focused document
# backup_interval = 30          # seconds
# max_backups = 50
"""
    config_path.write_text(content)
    return config_path
