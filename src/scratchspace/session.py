"""Session tracking, crash-recovery detection and periodic content backups.

Persisted under session/:
    session-state.json   {"activeDocumentId", "openDocumentIds", "viewState", "timestamp"}
    backups.json         [{"documentId", "content", "timestamp", "autoBackup"}, ...]

The session timestamp is refreshed on every save. A persisted timestamp more
than five minutes old with documents still listed as open means the last
process did not shut down cleanly; the caller decides whether to restore.

Backups hold one slot per document (latest snapshot wins). Before every
write the set is pruned: entries older than seven days go, then the oldest
are evicted down to ``max_backups``.

The backup timer snapshots whatever the ``focus`` accessor reports as the
focused document. dispose() stops it without a final flush, so edits made
within the last interval can be lost.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import timedelta
from typing import TYPE_CHECKING

from scratchspace.errors import StorageIOError
from scratchspace.models import BackupEntry, RestoredSession, SessionState, ViewState, utcnow

if TYPE_CHECKING:
    from collections.abc import Callable

    from scratchspace.kv import KeyValueStore

    FocusAccessor = Callable[[], tuple[str, str] | None]

logger = logging.getLogger("scratchspace.session")

CRASH_THRESHOLD = timedelta(minutes=5)
BACKUP_RETENTION = timedelta(days=7)

_STATE_KEY = "session-state"
_BACKUPS_KEY = "backups"


class SessionRecovery:
    def __init__(
        self,
        kv: KeyValueStore,
        *,
        focus: FocusAccessor | None = None,
        backup_interval: float = 30.0,
        max_backups: int = 50,
        recovery_enabled: bool = True,
    ) -> None:
        self._kv = kv
        self._focus = focus
        self.backup_interval = backup_interval
        self.max_backups = max_backups
        self.recovery_enabled = recovery_enabled
        self._state = SessionState()
        self._backups: dict[str, BackupEntry] = {}
        self._timer: asyncio.Task[None] | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def init(self) -> None:
        """Load the previous session and backups, then start the backup timer."""
        self._state = self._load_state()
        self._backups = self._load_backups()
        if self.recovery_enabled:
            self.start()

    def _load_state(self) -> SessionState:
        try:
            raw = self._kv.get(_STATE_KEY)
            if raw is not None:
                return SessionState.from_dict(raw)
        except (StorageIOError, KeyError, TypeError, ValueError, AttributeError) as exc:
            logger.warning("session: no usable previous session: %s", exc)
        return SessionState()

    def _load_backups(self) -> dict[str, BackupEntry]:
        backups: dict[str, BackupEntry] = {}
        try:
            raw = self._kv.get(_BACKUPS_KEY) or []
        except StorageIOError as exc:
            logger.warning("session: no usable backups: %s", exc)
            return backups
        if not isinstance(raw, list):
            logger.warning("session: no usable backups: expected a list, got %s", type(raw).__name__)
            return backups
        for item in raw:
            try:
                entry = BackupEntry.from_dict(item)
            except (KeyError, TypeError, ValueError, AttributeError) as exc:
                logger.warning("session: skipping malformed backup: %s", exc)
                continue
            current = backups.get(entry.document_id)
            if current is None or entry.timestamp > current.timestamp:
                backups[entry.document_id] = entry
        return backups

    def start(self) -> None:
        """Start the recurring auto-backup timer (no-op if already running)."""
        if self.running:
            return
        self._timer = asyncio.get_running_loop().create_task(self._backup_loop())

    @property
    def running(self) -> bool:
        return self._timer is not None and not self._timer.done()

    def dispose(self) -> None:
        """Stop the backup timer. Nothing is flushed."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    async def _backup_loop(self) -> None:
        while True:
            await asyncio.sleep(self.backup_interval)
            try:
                await self.create_auto_backup()
            except Exception:
                logger.exception("session: auto-backup failed")

    # ------------------------------------------------------------------
    # Session state
    # ------------------------------------------------------------------

    def get_session_state(self) -> SessionState:
        return self._state.copy()

    async def _save_state(self) -> None:
        self._state.timestamp = utcnow()
        self._kv.put(_STATE_KEY, self._state.to_dict())

    async def update_session_state(
        self,
        active_document_id: str | None = None,
        open_document_ids: list[str] | None = None,
        view_state: dict[str, ViewState] | None = None,
    ) -> None:
        """Merge the parts that were given (None means leave as is) and persist."""
        if active_document_id is not None:
            self._state.active_document_id = active_document_id
        if open_document_ids is not None:
            self._state.open_document_ids = list(dict.fromkeys(open_document_ids))
        if view_state is not None:
            self._state.view_state.update(view_state)
        await self._save_state()

    async def document_opened(self, document_id: str) -> None:
        if document_id not in self._state.open_document_ids:
            self._state.open_document_ids.append(document_id)
        await self._save_state()

    async def document_closed(self, document_id: str) -> None:
        if document_id in self._state.open_document_ids:
            self._state.open_document_ids.remove(document_id)
        if self._state.active_document_id == document_id:
            self._state.active_document_id = None
        await self._save_state()

    async def document_focused(self, document_id: str) -> None:
        self._state.active_document_id = document_id
        if document_id not in self._state.open_document_ids:
            self._state.open_document_ids.append(document_id)
        await self._save_state()

    async def save_view_state(self, document_id: str, view_state: ViewState) -> None:
        self._state.view_state[document_id] = view_state
        await self._save_state()

    def check_for_crash_recovery(self) -> bool:
        """True when the last session is stale and still had documents open."""
        stale = utcnow() - self._state.timestamp > CRASH_THRESHOLD
        return stale and bool(self._state.open_document_ids)

    def restore_session(self) -> RestoredSession:
        state = self._state.copy()
        return RestoredSession(
            active_document_id=state.active_document_id,
            open_document_ids=state.open_document_ids,
            view_state=state.view_state,
        )

    async def clear_session(self) -> None:
        self._state = SessionState()
        await self._save_state()

    # ------------------------------------------------------------------
    # Backups
    # ------------------------------------------------------------------

    def get_backups(self) -> list[BackupEntry]:
        return sorted(self._backups.values(), key=lambda b: b.timestamp, reverse=True)

    def get_backup(self, document_id: str) -> BackupEntry | None:
        return self._backups.get(document_id)

    def restore_from_backup(self, document_id: str) -> str | None:
        backup = self._backups.get(document_id)
        return backup.content if backup is not None else None

    async def create_auto_backup(self) -> BackupEntry | None:
        """Snapshot the focused document, if any."""
        if self._focus is None:
            return None
        focused = self._focus()
        if focused is None:
            return None
        document_id, content = focused
        return await self._store_backup(document_id, content, auto_backup=True)

    async def create_manual_backup(self, document_id: str, content: str) -> BackupEntry:
        return await self._store_backup(document_id, content, auto_backup=False)

    async def _store_backup(self, document_id: str, content: str, *, auto_backup: bool) -> BackupEntry:
        entry = BackupEntry(
            document_id=document_id,
            content=content,
            timestamp=utcnow(),
            auto_backup=auto_backup,
        )
        self._backups[document_id] = entry
        await self._save_backups()
        logger.debug("session: backed up %s (auto=%s)", document_id, auto_backup)
        return entry

    def _prune_backups(self) -> None:
        cutoff = utcnow() - BACKUP_RETENTION
        kept = [b for b in self.get_backups() if b.timestamp > cutoff][: self.max_backups]
        self._backups = {b.document_id: b for b in kept}

    async def _save_backups(self) -> None:
        self._prune_backups()
        self._kv.put(_BACKUPS_KEY, [b.to_dict() for b in self.get_backups()])

    async def clear_backups(self) -> None:
        self._backups.clear()
        self._kv.delete(_BACKUPS_KEY)
