"""Data models for documents, history entries, session state and backups.

All records serialise to the camelCase JSON layout used on disk:

    scratchpads/<id>.json   {"id", "name", "content", "language", "createdAt", ...}
    history/<id>.json       [{"id", "documentId", "content", "timestamp", "changeType", "metadata"}, ...]
    session/session-state.json
    session/backups.json
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, ClassVar

CHANGE_TYPES = ("create", "update", "delete", "rename", "language-change")
SORT_KEYS = ("name", "created", "updated", "custom")
SORT_DIRECTIONS = ("asc", "desc")

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def _base36(n: int) -> str:
    out = ""
    while n:
        n, r = divmod(n, 36)
        out = _BASE36[r] + out
    return out or "0"


def new_id() -> str:
    """Generate a time-ordered unique id: <base36 millis><8 hex chars>."""
    return _base36(int(time.time() * 1000)) + uuid.uuid4().hex[:8]


def utcnow() -> datetime:
    return datetime.now(UTC)


def parse_timestamp(value: str | None) -> datetime:
    """Parse an ISO timestamp, treating naive values as UTC."""
    if not value:
        return utcnow()
    ts = datetime.fromisoformat(value)
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=UTC)
    return ts


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------


@dataclass
class Document:
    """A named scratch text buffer."""

    id: str
    name: str
    content: str = ""
    language: str = "plaintext"
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    pinned: bool = False
    tags: list[str] = field(default_factory=list)
    color: str | None = None
    sort_order: int = 0

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Document:
        tags: list[str] = []
        for tag in d.get("tags") or []:
            if tag not in tags:
                tags.append(str(tag))
        return cls(
            id=d["id"],
            name=d.get("name", ""),
            content=d.get("content", ""),
            language=d.get("language", "plaintext"),
            created_at=parse_timestamp(d.get("createdAt")),
            updated_at=parse_timestamp(d.get("updatedAt")),
            pinned=bool(d.get("pinned", False)),
            tags=tags,
            color=d.get("color"),
            sort_order=int(d.get("sortOrder") or 0),
        )

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "content": self.content,
            "language": self.language,
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
            "pinned": self.pinned,
            "tags": list(self.tags),
            "sortOrder": self.sort_order,
        }
        if self.color:
            d["color"] = self.color
        return d

    def copy(self) -> Document:
        return Document.from_dict(self.to_dict())


@dataclass
class DocumentFilter:
    """Query for DocumentStore.get_filtered. None fields do not filter."""

    tags: list[str] | None = None      # any-match
    language: str | None = None
    pinned: bool | None = None
    sort_by: str = "custom"            # name | created | updated | custom
    direction: str = "asc"             # asc | desc


@dataclass(frozen=True)
class ChangeEvent:
    """Broadcast after every store mutation. Subscribers should re-query."""

    kind: str                          # create | update | delete | clear | reorder
    document_id: str | None = None


# ---------------------------------------------------------------------------
# History metadata: one variant per kind of change
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ContentChange:
    """Content edit: carries the content before and after."""

    old_value: str
    new_value: str

    kind: ClassVar[str] = "content"

    @property
    def description(self) -> str | None:
        return None

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "oldValue": self.old_value, "newValue": self.new_value}


@dataclass(frozen=True)
class RenameChange:
    old_value: str
    new_value: str

    kind: ClassVar[str] = "rename"

    @property
    def description(self) -> str:
        return f'Renamed from "{self.old_value}" to "{self.new_value}"'

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "oldValue": self.old_value,
            "newValue": self.new_value,
            "description": self.description,
        }


@dataclass(frozen=True)
class LanguageChange:
    old_value: str
    new_value: str

    kind: ClassVar[str] = "language"

    @property
    def description(self) -> str:
        return f"Changed language from {self.old_value} to {self.new_value}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "oldValue": self.old_value,
            "newValue": self.new_value,
            "description": self.description,
        }


@dataclass(frozen=True)
class Note:
    """Free-text description for create/delete/pin/tag/colour changes."""

    description: str

    kind: ClassVar[str] = "note"
    old_value: ClassVar[None] = None
    new_value: ClassVar[None] = None

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "description": self.description}


ChangeMetadata = ContentChange | RenameChange | LanguageChange | Note

_METADATA_KINDS: dict[str, type] = {
    "content": ContentChange,
    "rename": RenameChange,
    "language": LanguageChange,
}


def metadata_from_dict(d: dict[str, Any] | None, change_type: str) -> ChangeMetadata | None:
    """Load a metadata variant. Untagged records are classified by change_type."""
    if not d:
        return None
    if not isinstance(d, dict):
        msg = f"metadata must be an object, got {type(d).__name__}"
        raise TypeError(msg)
    kind = d.get("kind")
    if kind is None:
        # older records: {oldValue?, newValue?, description?}
        if change_type == "rename":
            kind = "rename"
        elif change_type == "language-change":
            kind = "language"
        elif "oldValue" in d or "newValue" in d:
            kind = "content"
        else:
            kind = "note"
    cls = _METADATA_KINDS.get(kind)
    if cls is None:
        return Note(description=str(d.get("description", "")))
    return cls(old_value=str(d.get("oldValue", "")), new_value=str(d.get("newValue", "")))


@dataclass(frozen=True)
class HistoryEntry:
    """Immutable full-content snapshot of a document."""

    id: str
    document_id: str
    content: str
    timestamp: datetime
    change_type: str                   # create | update | delete | rename | language-change
    metadata: ChangeMetadata | None = None

    @property
    def description(self) -> str | None:
        return self.metadata.description if self.metadata is not None else None

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> HistoryEntry:
        change_type = d.get("changeType", "update")
        return cls(
            id=d["id"],
            document_id=d.get("documentId") or d.get("scratchpadId", ""),
            content=d.get("content", ""),
            timestamp=parse_timestamp(d.get("timestamp")),
            change_type=change_type,
            metadata=metadata_from_dict(d.get("metadata"), change_type),
        )

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "id": self.id,
            "documentId": self.document_id,
            "content": self.content,
            "timestamp": self.timestamp.isoformat(),
            "changeType": self.change_type,
        }
        if self.metadata is not None:
            d["metadata"] = self.metadata.to_dict()
        return d


@dataclass(frozen=True)
class SearchResult:
    entry: HistoryEntry
    score: int
    context: str


# ---------------------------------------------------------------------------
# Session and backups
# ---------------------------------------------------------------------------


@dataclass
class ViewState:
    """Editor view state. Selection and ranges are opaque JSON values."""

    selection: Any = None
    visible_ranges: list[Any] | None = None
    scroll_position: float | None = None

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> ViewState:
        scroll = d.get("scrollPosition", d.get("scrollTop"))
        return cls(
            selection=d.get("selection"),
            visible_ranges=d.get("visibleRanges"),
            scroll_position=float(scroll) if scroll is not None else None,
        )

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {}
        if self.selection is not None:
            d["selection"] = self.selection
        if self.visible_ranges is not None:
            d["visibleRanges"] = self.visible_ranges
        if self.scroll_position is not None:
            d["scrollPosition"] = self.scroll_position
        return d


@dataclass
class SessionState:
    active_document_id: str | None = None
    open_document_ids: list[str] = field(default_factory=list)
    view_state: dict[str, ViewState] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=utcnow)

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> SessionState:
        open_ids: list[str] = []
        for doc_id in d.get("openDocumentIds", d.get("openScratchpadIds")) or []:
            if doc_id not in open_ids:
                open_ids.append(doc_id)
        return cls(
            active_document_id=d.get("activeDocumentId", d.get("activeScratchpadId")),
            open_document_ids=open_ids,
            view_state={k: ViewState.from_dict(v) for k, v in (d.get("viewState") or {}).items()},
            timestamp=parse_timestamp(d.get("timestamp")),
        )

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "openDocumentIds": list(self.open_document_ids),
            "viewState": {k: v.to_dict() for k, v in self.view_state.items()},
            "timestamp": self.timestamp.isoformat(),
        }
        if self.active_document_id is not None:
            d["activeDocumentId"] = self.active_document_id
        return d

    def copy(self) -> SessionState:
        return SessionState.from_dict(self.to_dict())


@dataclass(frozen=True)
class RestoredSession:
    active_document_id: str | None
    open_document_ids: list[str]
    view_state: dict[str, ViewState]


@dataclass(frozen=True)
class BackupEntry:
    document_id: str
    content: str
    timestamp: datetime
    auto_backup: bool

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> BackupEntry:
        return cls(
            document_id=d.get("documentId") or d["scratchpadId"],
            content=d.get("content", ""),
            timestamp=parse_timestamp(d.get("timestamp")),
            auto_backup=bool(d.get("autoBackup", False)),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "documentId": self.document_id,
            "content": self.content,
            "timestamp": self.timestamp.isoformat(),
            "autoBackup": self.auto_backup,
        }
