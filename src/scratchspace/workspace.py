"""ScratchSpace: wires the stores and components for one storage root.

    async with ScratchSpace(load_config()) as space:
        doc = await space.store.create("Notes", "markdown")
        path = space.files.path_for(doc.id)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from scratchspace.history import HistoryLog
from scratchspace.kv import JsonFileStore
from scratchspace.session import SessionRecovery
from scratchspace.store import DocumentStore
from scratchspace.vfs import VirtualFileBridge

if TYPE_CHECKING:
    from types import TracebackType

    from scratchspace.config import ScratchConfig
    from scratchspace.session import FocusAccessor

logger = logging.getLogger("scratchspace.workspace")


class ScratchSpace:
    def __init__(
        self,
        cfg: ScratchConfig,
        *,
        focus: FocusAccessor | None = None,
        auto_save: bool | None = None,
        recovery_enabled: bool | None = None,
    ) -> None:
        self.cfg = cfg
        self.history = HistoryLog(
            JsonFileStore(cfg.history_dir),
            max_entries=cfg.history.max_entries,
            retention_days=cfg.history.retention_days,
        )
        self.store = DocumentStore(
            JsonFileStore(cfg.documents_dir),
            self.history,
            default_language=cfg.default_language,
            auto_save=cfg.auto_save if auto_save is None else auto_save,
            auto_save_delay=cfg.auto_save_delay / 1000,
        )
        self.session = SessionRecovery(
            JsonFileStore(cfg.session_dir),
            focus=focus if focus is not None else self._focused_document,
            backup_interval=cfg.session.backup_interval,
            max_backups=cfg.session.max_backups,
            recovery_enabled=(
                cfg.session.recovery_enabled if recovery_enabled is None else recovery_enabled
            ),
        )
        self.files = VirtualFileBridge(self.store)

    def _focused_document(self) -> tuple[str, str] | None:
        """Id and content of the session's active document, if it still exists."""
        document_id = self.session.get_session_state().active_document_id
        if document_id is None or document_id not in self.store:
            return None
        return document_id, self.store.get(document_id).content

    async def init(self) -> None:
        self.cfg.ensure_dirs()
        await self.history.init()
        await self.store.init()
        await self.session.init()
        logger.info("workspace: ready at %s", self.cfg.storage_dir)

    def dispose(self) -> None:
        self.session.dispose()
        self.store.dispose()

    async def __aenter__(self) -> ScratchSpace:
        await self.init()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.dispose()
