from __future__ import annotations

import json
from typing import TYPE_CHECKING

import pytest

from scratchspace.errors import StorageIOError, ValidationError
from scratchspace.kv import JsonFileStore, MemoryStore

if TYPE_CHECKING:
    from pathlib import Path


def test_file_store_put_get_roundtrip(tmp_path: Path) -> None:
    kv = JsonFileStore(tmp_path / "scratchpads")
    kv.put("abc", {"id": "abc", "content": "héllo"})

    assert (tmp_path / "scratchpads" / "abc.json").exists()
    assert kv.get("abc") == {"id": "abc", "content": "héllo"}
    assert kv.list_keys() == ["abc"]
    assert not list((tmp_path / "scratchpads").glob("*.tmp"))


def test_file_store_missing_key_is_none(tmp_path: Path) -> None:
    kv = JsonFileStore(tmp_path / "nothing-here")
    assert kv.get("abc") is None
    assert kv.list_keys() == []


def test_file_store_delete_missing_is_noop(tmp_path: Path) -> None:
    kv = JsonFileStore(tmp_path)
    kv.delete("never-written")
    kv.put("a", 1)
    kv.delete("a")
    assert kv.get("a") is None


def test_file_store_corrupt_record_raises(tmp_path: Path) -> None:
    (tmp_path / "bad.json").write_text("{not json")
    kv = JsonFileStore(tmp_path)
    with pytest.raises(StorageIOError):
        kv.get("bad")


def test_iter_records_skips_corrupt_files(tmp_path: Path) -> None:
    kv = JsonFileStore(tmp_path)
    kv.put("good", {"id": "good"})
    (tmp_path / "bad.json").write_text("{not json")
    (tmp_path / "notes.txt").write_text("ignored")

    assert list(kv.iter_records()) == [("good", {"id": "good"})]


def test_clear_removes_every_record(tmp_path: Path) -> None:
    kv = JsonFileStore(tmp_path)
    for key in ("a", "b", "c"):
        kv.put(key, {"k": key})
    kv.clear()
    assert kv.list_keys() == []


@pytest.mark.parametrize("key", ["", "../escape", "a/b", ".."])
def test_invalid_keys_rejected(tmp_path: Path, key: str) -> None:
    kv = JsonFileStore(tmp_path)
    with pytest.raises(ValidationError):
        kv.put(key, {})


def test_memory_store_matches_json_semantics() -> None:
    kv = MemoryStore()
    value = {"tags": ["a"], "n": 1}
    kv.put("x", value)
    value["tags"].append("mutated")

    assert kv.get("x") == {"tags": ["a"], "n": 1}
    with pytest.raises(StorageIOError):
        kv.put("y", {"bad": object()})


def test_memory_store_corrupt_record_skipped() -> None:
    kv = MemoryStore()
    kv.put("ok", {"id": "ok"})
    kv.put_raw("broken", "{")

    with pytest.raises(StorageIOError):
        kv.get("broken")
    assert dict(kv.iter_records()) == {"ok": {"id": "ok"}}


def test_written_file_is_pretty_json(tmp_path: Path) -> None:
    kv = JsonFileStore(tmp_path)
    kv.put("a", {"x": 1})
    assert json.loads((tmp_path / "a.json").read_text()) == {"x": 1}
    assert "\n" in (tmp_path / "a.json").read_text()


def test_non_ascii_written_as_utf8(tmp_path: Path) -> None:
    kv = JsonFileStore(tmp_path)
    kv.put("a", {"content": "héllo ✓ 日本"})

    raw = (tmp_path / "a.json").read_bytes()
    assert "héllo ✓ 日本".encode() in raw
    assert kv.get("a") == {"content": "héllo ✓ 日本"}
