"""DocumentStore: in-memory document index kept in step with scratchpads/<id>.json.

    store = DocumentStore(JsonFileStore(root / "scratchpads"), history)
    await store.init()
    doc = await store.create("Notes", "markdown")
    await store.update(doc.id, content="# Title")   # debounced when auto_save is on
    store.dispose()                                 # pending debounced writes are dropped

Every mutation broadcasts a ChangeEvent to subscribers. Content, rename,
language, pin, tag and colour changes are recorded in the HistoryLog.
"""

from __future__ import annotations

import contextlib
import dataclasses
import logging
from datetime import timedelta
from typing import TYPE_CHECKING, Any

from scratchspace.debounce import TimerRegistry
from scratchspace.errors import NotFoundError, StorageIOError, ValidationError
from scratchspace.models import (
    SORT_DIRECTIONS,
    SORT_KEYS,
    ChangeEvent,
    ContentChange,
    Document,
    DocumentFilter,
    LanguageChange,
    Note,
    RenameChange,
    new_id,
    utcnow,
)

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable, Iterable

    from scratchspace.history import HistoryLog
    from scratchspace.kv import KeyValueStore
    from scratchspace.models import ChangeMetadata, HistoryEntry

logger = logging.getLogger("scratchspace.store")

# Fields update() accepts, mapped to Document attributes.
_UPDATABLE = ("name", "content", "language", "pinned", "tags", "color", "sort_order")

_SORT_KEYS: dict[str, Callable[[Document], Any]] = {
    "name": lambda d: d.name.casefold(),
    "created": lambda d: d.created_at,
    "updated": lambda d: d.updated_at,
    "custom": lambda d: d.sort_order,
}


def _require_text(value: str | None, what: str) -> str:
    if value is None or not value.strip():
        msg = f"{what} must not be empty"
        raise ValidationError(msg)
    return value.strip()


def _check_tag(tag: str) -> str:
    tag = _require_text(tag, "Tag")
    if any(ch.isspace() for ch in tag):
        msg = f"Tag must not contain whitespace: {tag!r}"
        raise ValidationError(msg)
    return tag


class DocumentStore:
    """Owns the document index, its persistence and debounced auto-save."""

    def __init__(
        self,
        kv: KeyValueStore,
        history: HistoryLog,
        *,
        default_language: str = "plaintext",
        auto_save: bool = True,
        auto_save_delay: float = 1.0,
    ) -> None:
        self._kv = kv
        self._history = history
        self.default_language = default_language
        self.auto_save = auto_save
        self._docs: dict[str, Document] = {}
        self._timers = TimerRegistry(auto_save_delay)
        self._subscribers: list[Callable[[ChangeEvent], None]] = []

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def init(self) -> None:
        """Load persisted documents. Malformed records are logged and skipped."""
        self._docs.clear()
        for key, raw in self._kv.iter_records():
            try:
                doc = Document.from_dict(raw)
            except (KeyError, TypeError, ValueError, AttributeError) as exc:
                logger.warning("store: skipping malformed document %s: %s", key, exc)
                continue
            self._docs[doc.id] = doc
        logger.info("store: loaded %d documents", len(self._docs))

    def dispose(self) -> None:
        """Drop pending debounced writes without flushing them."""
        if len(self._timers):
            logger.info("store: dropping %d pending saves", len(self._timers))
        self._timers.cancel_all()
        self._subscribers.clear()

    # ------------------------------------------------------------------
    # Change notification
    # ------------------------------------------------------------------

    def subscribe(self, callback: Callable[[ChangeEvent], None]) -> Callable[[], None]:
        """Register a change listener. Returns a function that unsubscribes it."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _emit(self, kind: str, document_id: str | None = None) -> None:
        event = ChangeEvent(kind=kind, document_id=document_id)
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception:
                logger.exception("store: change listener failed")

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._docs)

    def __contains__(self, document_id: str) -> bool:
        return document_id in self._docs

    def get(self, document_id: str) -> Document:
        doc = self._docs.get(document_id)
        if doc is None:
            raise NotFoundError("document", document_id)
        return doc

    def get_all_scratchpads(self) -> list[Document]:
        """All documents, most recently updated first."""
        return sorted(self._docs.values(), key=lambda d: d.updated_at, reverse=True)

    def get_all_tags(self) -> list[str]:
        return sorted({tag for doc in self._docs.values() for tag in doc.tags})

    def get_filtered(self, flt: DocumentFilter | None = None) -> list[Document]:
        """Filter and sort. Pinned documents always come before unpinned ones."""
        flt = flt or DocumentFilter()
        if flt.sort_by not in SORT_KEYS:
            msg = f"Unknown sort key: {flt.sort_by!r}"
            raise ValidationError(msg)
        if flt.direction not in SORT_DIRECTIONS:
            msg = f"Unknown sort direction: {flt.direction!r}"
            raise ValidationError(msg)

        docs = list(self._docs.values())
        if flt.tags:
            wanted = set(flt.tags)
            docs = [d for d in docs if wanted.intersection(d.tags)]
        if flt.language is not None:
            docs = [d for d in docs if d.language == flt.language]
        if flt.pinned is not None:
            docs = [d for d in docs if d.pinned == flt.pinned]

        key = _SORT_KEYS[flt.sort_by]
        reverse = flt.direction == "desc"
        pinned = sorted((d for d in docs if d.pinned), key=key, reverse=reverse)
        unpinned = sorted((d for d in docs if not d.pinned), key=key, reverse=reverse)
        return pinned + unpinned

    def pending_saves(self) -> list[str]:
        """Ids with a debounced write still scheduled."""
        return self._timers.keys()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _touch(self, doc: Document) -> None:
        # updated_at must strictly increase even when the clock has not ticked
        now = utcnow()
        if now <= doc.updated_at:
            now = doc.updated_at + timedelta(microseconds=1)
        doc.updated_at = now

    async def _save(self, doc: Document) -> None:
        self._kv.put(doc.id, doc.to_dict())

    async def _flush(self, document_id: str) -> None:
        doc = self._docs.get(document_id)
        if doc is None:
            return
        await self._save(doc)
        logger.debug("store: auto-saved %s", document_id)

    async def flush(self) -> None:
        """Write every pending debounced document now."""
        for document_id in self._timers.keys():
            self._timers.cancel(document_id)
            await self._flush(document_id)
        await self._timers.wait_idle()

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    async def create(self, name: str | None = None, language: str | None = None) -> Document:
        now = utcnow()
        doc = Document(
            id=new_id(),
            name=name.strip() if name and name.strip() else f"Scratch {len(self._docs) + 1}",
            content="",
            language=language or self.default_language,
            created_at=now,
            updated_at=now,
            sort_order=len(self._docs),
        )
        while doc.id in self._docs:
            doc.id = new_id()

        await self._save(doc)
        try:
            await self._history.append(doc.id, "", "create", Note(f'Created "{doc.name}"'))
        except Exception:
            self._kv.delete(doc.id)
            raise
        self._docs[doc.id] = doc
        logger.info("store: created %s (%s)", doc.id, doc.name)
        self._emit("create", doc.id)
        return doc

    async def update(self, document_id: str, **fields: Any) -> Document:
        """Merge fields over the document.

        Content changes are recorded in history. With auto_save on the
        disk write is debounced per document; otherwise it happens now.
        If the history append or the write fails, the document is left as it was.
        """
        doc = self.get(document_id)
        unknown = set(fields) - set(_UPDATABLE)
        if unknown:
            msg = f"Cannot update fields: {', '.join(sorted(unknown))}"
            raise ValidationError(msg)
        if "name" in fields:
            fields["name"] = _require_text(fields["name"], "Name")
        if "language" in fields:
            fields["language"] = _require_text(fields["language"], "Language")
        if "tags" in fields:
            tags: list[str] = []
            for tag in fields["tags"] or []:
                tag = _check_tag(tag)
                if tag not in tags:
                    tags.append(tag)
            fields["tags"] = tags

        old_content = doc.content
        async with self._rollback(doc):
            for name, value in fields.items():
                setattr(doc, name, value)
            self._touch(doc)
            if not self.auto_save:
                self._timers.cancel(doc.id)
                await self._save(doc)
            if "content" in fields and fields["content"] != old_content:
                await self._history.append(
                    doc.id, doc.content, "update", ContentChange(old_content, doc.content)
                )

        if self.auto_save:
            self._timers.schedule(doc.id, lambda: self._flush(document_id))
        self._emit("update", doc.id)
        return doc

    @contextlib.asynccontextmanager
    async def _rollback(self, doc: Document) -> AsyncIterator[None]:
        """Undo in-memory changes to doc, and rewrite its record, if the body raises."""
        snapshot = doc.copy()
        try:
            yield
        except Exception:
            for f in dataclasses.fields(snapshot):
                setattr(doc, f.name, getattr(snapshot, f.name))
            try:
                await self._save(doc)
            except StorageIOError as exc:
                logger.warning("store: could not restore record %s: %s", doc.id, exc)
            raise

    async def _commit(self, doc: Document, change_type: str, metadata: ChangeMetadata) -> None:
        """Immediate save plus history entry; supersedes any pending debounce.

        Call inside _rollback so a failed write or append leaves no trace.
        """
        self._timers.cancel(doc.id)
        await self._save(doc)
        await self._history.append(doc.id, doc.content, change_type, metadata)

    async def rename(self, document_id: str, new_name: str) -> Document:
        doc = self.get(document_id)
        new_name = _require_text(new_name, "Name")
        async with self._rollback(doc):
            old_name = doc.name
            doc.name = new_name
            self._touch(doc)
            await self._commit(doc, "rename", RenameChange(old_name, new_name))
        self._emit("update", doc.id)
        return doc

    async def change_language(self, document_id: str, new_language: str) -> Document:
        doc = self.get(document_id)
        new_language = _require_text(new_language, "Language")
        async with self._rollback(doc):
            old_language = doc.language
            doc.language = new_language
            self._touch(doc)
            await self._commit(doc, "language-change", LanguageChange(old_language, new_language))
        self._emit("update", doc.id)
        return doc

    async def duplicate(self, document_id: str) -> Document:
        original = self.get(document_id)
        now = utcnow()
        copy = Document(
            id=new_id(),
            name=f"{original.name} (Copy)",
            content=original.content,
            language=original.language,
            created_at=now,
            updated_at=now,
            tags=list(original.tags),
            color=original.color,
            sort_order=len(self._docs),
        )
        while copy.id in self._docs:
            copy.id = new_id()
        await self._save(copy)
        self._docs[copy.id] = copy
        self._emit("create", copy.id)
        return copy

    async def delete(self, document_id: str) -> None:
        doc = self.get(document_id)
        await self._history.append(doc.id, doc.content, "delete", Note(f'Deleted "{doc.name}"'))
        self._timers.cancel(document_id)
        self._kv.delete(document_id)
        del self._docs[document_id]
        logger.info("store: deleted %s", document_id)
        self._emit("delete", document_id)

    async def toggle_pin(self, document_id: str) -> Document:
        doc = self.get(document_id)
        async with self._rollback(doc):
            doc.pinned = not doc.pinned
            self._touch(doc)
            await self._commit(doc, "update", Note("Pinned" if doc.pinned else "Unpinned"))
        self._emit("update", doc.id)
        return doc

    async def add_tag(self, document_id: str, tag: str) -> Document:
        doc = self.get(document_id)
        tag = _check_tag(tag)
        if tag in doc.tags:
            return doc
        async with self._rollback(doc):
            doc.tags.append(tag)
            self._touch(doc)
            await self._commit(doc, "update", Note(f'Added tag "{tag}"'))
        self._emit("update", doc.id)
        return doc

    async def remove_tag(self, document_id: str, tag: str) -> Document:
        doc = self.get(document_id)
        if tag not in doc.tags:
            return doc
        async with self._rollback(doc):
            doc.tags.remove(tag)
            self._touch(doc)
            await self._commit(doc, "update", Note(f'Removed tag "{tag}"'))
        self._emit("update", doc.id)
        return doc

    async def set_color(self, document_id: str, color: str | None) -> Document:
        doc = self.get(document_id)
        async with self._rollback(doc):
            doc.color = color or None
            self._touch(doc)
            note = f"Color set to {doc.color}" if doc.color else "Color cleared"
            await self._commit(doc, "update", Note(note))
        self._emit("update", doc.id)
        return doc

    async def update_sort_order(self, document_id: str, sort_order: int) -> Document:
        doc = self.get(document_id)
        sort_order = int(sort_order)
        async with self._rollback(doc):
            doc.sort_order = sort_order
            self._touch(doc)
            self._timers.cancel(doc.id)
            await self._save(doc)
        self._emit("update", doc.id)
        return doc

    async def reorder(self, ids_in_order: Iterable[str]) -> None:
        """Assign sort_order = position for each id. Unknown ids fail before any change."""
        ids = list(ids_in_order)
        docs = [self.get(document_id) for document_id in ids]
        for index, doc in enumerate(docs):
            doc.sort_order = index
            self._touch(doc)
            self._timers.cancel(doc.id)
            await self._save(doc)
        self._emit("reorder")

    async def restore_from_history(self, entry_id: str) -> Document:
        """Write a history entry's content back into its document."""
        entry: HistoryEntry = self._history.find_entry(entry_id)
        return await self.update(entry.document_id, content=entry.content)

    async def clear_all(self) -> None:
        """Delete every document and its file. Pending saves are cancelled first."""
        self._timers.cancel_all()
        self._kv.clear()
        count = len(self._docs)
        self._docs.clear()
        logger.info("store: cleared %d documents", count)
        self._emit("clear")
