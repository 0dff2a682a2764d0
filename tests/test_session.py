from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest

from scratchspace.kv import MemoryStore
from scratchspace.models import BackupEntry, SessionState, ViewState, utcnow
from scratchspace.session import SessionRecovery


@pytest.fixture
def session_kv() -> MemoryStore:
    return MemoryStore("session")


async def _recovery(kv: MemoryStore, **kwargs: object) -> SessionRecovery:
    kwargs.setdefault("recovery_enabled", False)
    recovery = SessionRecovery(kv, **kwargs)  # type: ignore[arg-type]
    await recovery.init()
    return recovery


def _stale_state(open_ids: list[str], minutes: int = 10, active: str | None = None) -> dict:
    state = SessionState(
        active_document_id=active,
        open_document_ids=open_ids,
        timestamp=utcnow() - timedelta(minutes=minutes),
    )
    return state.to_dict()


# ---------------------------------------------------------------------------
# Session state / crash detection
# ---------------------------------------------------------------------------


async def test_no_recovery_right_after_update(session_kv: MemoryStore) -> None:
    recovery = await _recovery(session_kv)
    await recovery.update_session_state(None, ["A", "B"])
    assert recovery.check_for_crash_recovery() is False
    assert session_kv.get("session-state")["openDocumentIds"] == ["A", "B"]


async def test_stale_session_with_open_documents_needs_recovery(session_kv: MemoryStore) -> None:
    session_kv.put("session-state", _stale_state(["A", "B"], active="B"))
    recovery = await _recovery(session_kv)

    assert recovery.check_for_crash_recovery() is True
    restored = recovery.restore_session()
    assert restored.open_document_ids == ["A", "B"]
    assert restored.active_document_id == "B"


async def test_stale_session_without_open_documents(session_kv: MemoryStore) -> None:
    session_kv.put("session-state", _stale_state([]))
    recovery = await _recovery(session_kv)
    assert recovery.check_for_crash_recovery() is False


async def test_recent_session_is_not_a_crash(session_kv: MemoryStore) -> None:
    session_kv.put("session-state", _stale_state(["A"], minutes=2))
    recovery = await _recovery(session_kv)
    assert recovery.check_for_crash_recovery() is False


async def test_clear_session_on_decline(session_kv: MemoryStore) -> None:
    session_kv.put("session-state", _stale_state(["A"]))
    recovery = await _recovery(session_kv)

    await recovery.clear_session()

    assert recovery.check_for_crash_recovery() is False
    assert recovery.get_session_state().open_document_ids == []
    assert session_kv.get("session-state")["openDocumentIds"] == []


async def test_corrupt_session_means_no_prior_session(session_kv: MemoryStore) -> None:
    session_kv.put_raw("session-state", "{oops")
    session_kv.put_raw("backups", "[")
    recovery = await _recovery(session_kv)

    assert recovery.get_session_state().open_document_ids == []
    assert recovery.get_backups() == []
    assert recovery.check_for_crash_recovery() is False


@pytest.mark.parametrize("raw", [5, True, "text", {"documentId": "A"}])
async def test_wrongly_shaped_records_mean_no_prior_session(session_kv: MemoryStore, raw: object) -> None:
    session_kv.put("session-state", raw)
    session_kv.put("backups", raw)
    recovery = await _recovery(session_kv)

    assert recovery.get_backups() == []
    assert recovery.get_session_state().open_document_ids == []
    assert recovery.check_for_crash_recovery() is False


async def test_malformed_backup_items_skipped(session_kv: MemoryStore) -> None:
    good = BackupEntry("A", "kept", utcnow(), auto_backup=False)
    session_kv.put("backups", [None, "x", {"content": "no id"}, good.to_dict()])
    recovery = await _recovery(session_kv)

    assert [b.document_id for b in recovery.get_backups()] == ["A"]


async def test_update_merges_only_given_parts(session_kv: MemoryStore) -> None:
    recovery = await _recovery(session_kv)
    await recovery.update_session_state("A", ["A", "B", "A"], {"A": ViewState(scroll_position=3)})
    await recovery.update_session_state(view_state={"B": ViewState(selection={"line": 1})})
    await recovery.update_session_state(active_document_id="B")

    state = recovery.get_session_state()
    assert state.active_document_id == "B"
    assert state.open_document_ids == ["A", "B"]
    assert state.view_state["A"].scroll_position == 3
    assert state.view_state["B"].selection == {"line": 1}


async def test_open_close_focus_tracking(session_kv: MemoryStore) -> None:
    recovery = await _recovery(session_kv)
    await recovery.document_opened("A")
    await recovery.document_opened("B")
    await recovery.document_opened("A")
    await recovery.document_focused("C")
    await recovery.document_closed("A")
    await recovery.save_view_state("B", ViewState(visible_ranges=[[0, 10]]))

    state = recovery.get_session_state()
    assert state.open_document_ids == ["B", "C"]
    assert state.active_document_id == "C"
    assert state.view_state["B"].visible_ranges == [[0, 10]]

    await recovery.document_closed("C")
    assert recovery.get_session_state().active_document_id is None


async def test_get_session_state_is_a_copy(session_kv: MemoryStore) -> None:
    recovery = await _recovery(session_kv)
    await recovery.document_opened("A")
    recovery.get_session_state().open_document_ids.append("X")
    assert recovery.get_session_state().open_document_ids == ["A"]


# ---------------------------------------------------------------------------
# Backups
# ---------------------------------------------------------------------------


async def test_manual_backup_keeps_one_slot_per_document(session_kv: MemoryStore) -> None:
    recovery = await _recovery(session_kv)
    await recovery.create_manual_backup("A", "first")
    await recovery.create_manual_backup("A", "second")

    backups = recovery.get_backups()
    assert len(backups) == 1
    assert backups[0].content == "second"
    assert backups[0].auto_backup is False
    assert recovery.restore_from_backup("A") == "second"
    assert recovery.restore_from_backup("missing") is None
    assert [b["content"] for b in session_kv.get("backups")] == ["second"]


async def test_auto_backup_snapshots_focused_document(session_kv: MemoryStore) -> None:
    focused: list[tuple[str, str] | None] = [None]
    recovery = await _recovery(session_kv, focus=lambda: focused[0])

    assert await recovery.create_auto_backup() is None

    focused[0] = ("A", "draft")
    entry = await recovery.create_auto_backup()
    assert entry is not None
    assert entry.auto_backup is True
    assert recovery.get_backup("A").content == "draft"


async def test_backups_pruned_by_age_and_count(session_kv: MemoryStore) -> None:
    old = BackupEntry("old", "x", utcnow() - timedelta(days=8), auto_backup=True)
    session_kv.put("backups", [old.to_dict()])
    recovery = await _recovery(session_kv, max_backups=2)

    await recovery.create_manual_backup("A", "a")
    assert recovery.get_backup("old") is None

    await recovery.create_manual_backup("B", "b")
    await recovery.create_manual_backup("C", "c")

    assert [b.document_id for b in recovery.get_backups()] == ["C", "B"]
    assert len(session_kv.get("backups")) == 2


async def test_clear_backups(session_kv: MemoryStore) -> None:
    recovery = await _recovery(session_kv)
    await recovery.create_manual_backup("A", "a")
    await recovery.clear_backups()
    assert recovery.get_backups() == []
    assert session_kv.get("backups") is None


async def test_legacy_backup_records_load(session_kv: MemoryStore) -> None:
    ts = utcnow().isoformat()
    session_kv.put("backups", [
        {"scratchpadId": "A", "content": "old", "timestamp": ts, "autoBackup": True},
    ])
    recovery = await _recovery(session_kv)
    assert recovery.restore_from_backup("A") == "old"


# ---------------------------------------------------------------------------
# Timer
# ---------------------------------------------------------------------------


async def test_backup_timer_runs_and_stops(session_kv: MemoryStore) -> None:
    recovery = await _recovery(
        session_kv,
        focus=lambda: ("A", "live"),
        backup_interval=0.01,
        recovery_enabled=True,
    )
    assert recovery.running

    await asyncio.sleep(0.08)
    assert recovery.get_backup("A").content == "live"

    recovery.dispose()
    assert not recovery.running


async def test_backup_timer_survives_failures(session_kv: MemoryStore) -> None:
    calls: list[int] = []

    def flaky() -> tuple[str, str]:
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("editor went away")
        return ("A", "recovered")

    recovery = await _recovery(session_kv, focus=flaky, backup_interval=0.01, recovery_enabled=True)
    await asyncio.sleep(0.1)
    recovery.dispose()

    assert len(calls) >= 2
    assert recovery.get_backup("A").content == "recovered"


async def test_dispose_does_not_flush(session_kv: MemoryStore) -> None:
    recovery = await _recovery(session_kv, focus=lambda: ("A", "x"), backup_interval=10, recovery_enabled=True)
    recovery.dispose()
    await asyncio.sleep(0.01)
    assert session_kv.get("backups") is None
