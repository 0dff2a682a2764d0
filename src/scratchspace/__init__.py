"""Local scratch document store: JSON files as source of truth, in-memory index.

Layout (under the storage root, default .scratch/):
    scratchpads/<id>.json          # one document
    history/<id>.json              # that document's history, newest first
    session/session-state.json     # open/active documents + view state
    session/backups.json           # latest backup per document

Document record:
    {"id":..., "name":..., "content":..., "language":..., "createdAt":..., "updatedAt":...,
     "pinned":false, "tags":[...], "color":"#FF6B6B", "sortOrder":0}

Single process, single event loop: mutations are coroutines, debounced
document writes and the backup timer run on the same loop.
"""

from scratchspace.config import ScratchConfig, init_config, load_config
from scratchspace.errors import (
    NotFoundError,
    ScratchError,
    StorageIOError,
    ValidationError,
)
from scratchspace.history import HistoryLog
from scratchspace.kv import JsonFileStore, KeyValueStore, MemoryStore
from scratchspace.models import (
    BackupEntry,
    ChangeEvent,
    Document,
    DocumentFilter,
    HistoryEntry,
    SessionState,
    ViewState,
)
from scratchspace.session import SessionRecovery
from scratchspace.store import DocumentStore
from scratchspace.vfs import VirtualFileBridge
from scratchspace.workspace import ScratchSpace

__all__ = [
    "BackupEntry",
    "ChangeEvent",
    "Document",
    "DocumentFilter",
    "DocumentStore",
    "HistoryEntry",
    "HistoryLog",
    "JsonFileStore",
    "KeyValueStore",
    "MemoryStore",
    "NotFoundError",
    "ScratchConfig",
    "ScratchError",
    "ScratchSpace",
    "SessionRecovery",
    "SessionState",
    "StorageIOError",
    "ValidationError",
    "ViewState",
    "VirtualFileBridge",
    "init_config",
    "load_config",
]
