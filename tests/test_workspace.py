from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING

from scratchspace.config import init_config, load_config
from scratchspace.kv import JsonFileStore
from scratchspace.models import SessionState, utcnow
from scratchspace.workspace import ScratchSpace

if TYPE_CHECKING:
    from pathlib import Path


async def test_documents_and_history_survive_reopen(tmp_path: Path) -> None:
    init_config(tmp_path)
    cfg = load_config(tmp_path)

    async with ScratchSpace(cfg, recovery_enabled=False) as space:
        doc = await space.store.create("Notes", "markdown")
        await space.store.update(doc.id, content="# hello")
        await space.store.add_tag(doc.id, "work")
        await space.session.document_focused(doc.id)
        await space.store.flush()

    async with ScratchSpace(cfg, recovery_enabled=False) as space:
        reopened = space.store.get(doc.id)
        assert reopened.content == "# hello"
        assert reopened.tags == ["work"]
        assert space.history.get_history(doc.id)[0].content == "# hello"
        assert space.session.get_session_state().active_document_id == doc.id
        assert space.files.read(space.files.path_for(doc.id)) == b"# hello"

    assert (cfg.documents_dir / f"{doc.id}.json").exists()


async def test_stale_session_detected_on_open(tmp_path: Path) -> None:
    cfg = load_config(tmp_path)
    cfg.ensure_dirs()
    state = SessionState(open_document_ids=["A", "B"], timestamp=utcnow() - timedelta(minutes=10))
    JsonFileStore(cfg.session_dir).put("session-state", state.to_dict())

    async with ScratchSpace(cfg, recovery_enabled=False) as space:
        assert space.session.check_for_crash_recovery() is True
        assert space.session.restore_session().open_document_ids == ["A", "B"]


async def test_backup_timer_uses_focus_accessor(tmp_path: Path) -> None:
    cfg = load_config(tmp_path)
    cfg.session.backup_interval = 0.01
    async with ScratchSpace(cfg, focus=lambda: ("A", "draft")) as space:
        assert space.session.running
        entry = await space.session.create_auto_backup()
        assert entry is not None
    assert not space.session.running


async def test_default_auto_backup_follows_focused_document(tmp_path: Path) -> None:
    cfg = load_config(tmp_path)
    async with ScratchSpace(cfg, recovery_enabled=False) as space:
        assert await space.session.create_auto_backup() is None

        doc = await space.store.create("Draft")
        await space.store.update(doc.id, content="unsaved thoughts")
        await space.session.document_focused(doc.id)

        entry = await space.session.create_auto_backup()
        assert entry is not None
        assert entry.auto_backup is True
        assert space.session.restore_from_backup(doc.id) == "unsaved thoughts"

        await space.store.delete(doc.id)
        await space.session.clear_backups()
        assert await space.session.create_auto_backup() is None
