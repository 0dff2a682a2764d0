"""Append-only per-document history log with retention and relevance search.

Each document's entries live in one record, history/<document_id>.json,
newest first. Retention runs on every append: entries older than
``retention_days`` are dropped, then the list is cut to ``max_entries``.

Search scoring (case-insensitive):
    +100  content contains the whole query
    +50   per query word (len > 2) found in content
    +30   metadata description contains the query
    +20   entry younger than a day, else +10 if younger than a week
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import TYPE_CHECKING

from scratchspace.errors import NotFoundError, ValidationError
from scratchspace.models import CHANGE_TYPES, HistoryEntry, SearchResult, new_id, utcnow

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime

    from scratchspace.kv import KeyValueStore
    from scratchspace.models import ChangeMetadata

logger = logging.getLogger("scratchspace.history")

_CONTEXT_LIMIT = 200
_CONTEXT_SEPARATOR = "\n...\n"
_ELLIPSIS = "..."


class HistoryLog:
    def __init__(
        self,
        kv: KeyValueStore,
        *,
        max_entries: int = 100,
        retention_days: int = 30,
    ) -> None:
        self._kv = kv
        self.max_entries = max_entries
        self.retention_days = retention_days
        self._entries: dict[str, list[HistoryEntry]] = {}

    async def init(self) -> None:
        """Load every history record; unreadable records are skipped."""
        self._entries.clear()
        for document_id, raw in self._kv.iter_records():
            if not isinstance(raw, list) or not all(isinstance(item, dict) for item in raw):
                logger.warning("history: skipping malformed record %s: not a list of entries", document_id)
                continue
            try:
                entries = [HistoryEntry.from_dict(item) for item in raw]
            except (KeyError, TypeError, ValueError, AttributeError) as exc:
                logger.warning("history: skipping malformed record %s: %s", document_id, exc)
                continue
            entries.sort(key=lambda e: e.timestamp, reverse=True)
            self._entries[document_id] = entries
        logger.info("history: loaded %d documents", len(self._entries))

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    async def append(
        self,
        document_id: str,
        content: str,
        change_type: str,
        metadata: ChangeMetadata | None = None,
    ) -> HistoryEntry:
        """Record a snapshot at the front of the document's list, then apply retention."""
        if change_type not in CHANGE_TYPES:
            msg = f"Unknown change type: {change_type!r}"
            raise ValidationError(msg)

        entry = HistoryEntry(
            id=new_id(),
            document_id=document_id,
            content=content,
            timestamp=utcnow(),
            change_type=change_type,
            metadata=metadata,
        )
        entries = [entry, *self._entries.get(document_id, [])]
        entries = self._apply_retention(entries)
        self._kv.put(document_id, [e.to_dict() for e in entries])
        self._entries[document_id] = entries
        return entry

    def _apply_retention(self, entries: list[HistoryEntry]) -> list[HistoryEntry]:
        cutoff = utcnow() - timedelta(days=self.retention_days)
        kept = [e for e in entries if e.timestamp > cutoff]
        return kept[: self.max_entries]

    async def clear(self, document_id: str) -> None:
        self._entries.pop(document_id, None)
        self._kv.delete(document_id)

    async def clear_all(self) -> None:
        self._entries.clear()
        self._kv.clear()

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def get_history(self, document_id: str) -> list[HistoryEntry]:
        return list(self._entries.get(document_id, []))

    def get_all_history(self) -> list[HistoryEntry]:
        merged = [e for entries in self._entries.values() for e in entries]
        merged.sort(key=lambda e: e.timestamp, reverse=True)
        return merged

    def find_entry(self, entry_id: str) -> HistoryEntry:
        for entries in self._entries.values():
            for entry in entries:
                if entry.id == entry_id:
                    return entry
        raise NotFoundError("history entry", entry_id)

    def search(self, query: str, document_id: str | None = None) -> list[SearchResult]:
        """Score entries against query; zero-score entries are left out."""
        needle = query.strip().lower()
        if not needle:
            msg = "Search query must not be empty"
            raise ValidationError(msg)

        candidates = self.get_history(document_id) if document_id else self.get_all_history()
        words = [w for w in needle.split() if len(w) > 2]
        now = utcnow()

        results: list[SearchResult] = []
        for entry in candidates:
            score = _score(entry, needle, words, now)
            if score > 0:
                context = _matching_context(entry.content, needle, words)
                results.append(SearchResult(entry=entry, score=score, context=context))

        results.sort(key=lambda r: r.score, reverse=True)
        return results


def _score(entry: HistoryEntry, needle: str, words: list[str], now: datetime) -> int:
    score = 0
    content = entry.content.lower()
    if needle in content:
        score += 100
    for word in words:
        if word in content:
            score += 50
    description = entry.description
    if description and needle in description.lower():
        score += 30
    age = now - entry.timestamp
    if age < timedelta(days=1):
        score += 20
    elif age < timedelta(days=7):
        score += 10
    return score


def _matching_context(content: str, needle: str, words: list[str]) -> str:
    """Each matching line with its neighbours, joined, cut to 200 chars."""
    lines = content.split("\n")
    windows = _windows(lines, lambda line: needle in line)
    if not windows and words:
        windows = _windows(lines, lambda line: any(w in line for w in words))
    joined = _CONTEXT_SEPARATOR.join(windows)
    if len(joined) > _CONTEXT_LIMIT:
        return joined[:_CONTEXT_LIMIT] + _ELLIPSIS
    return joined


def _windows(lines: list[str], matches: Callable[[str], bool]) -> list[str]:
    out = []
    for i, line in enumerate(lines):
        if matches(line.lower()):
            start = max(0, i - 1)
            out.append("\n".join(lines[start : i + 2]))
    return out
