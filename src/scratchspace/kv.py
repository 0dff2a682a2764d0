"""Key-value persistence: one JSON record per key.

    store = JsonFileStore("/path/to/.scratch/scratchpads")
    store.put("abc123", {"id": "abc123", ...})   # -> scratchpads/abc123.json
    store.get("abc123")
    for key, value in store.iter_records():       # corrupt files are logged and skipped
        ...

Writes go to <key>.json.tmp under flock and are renamed into place, so a
reader never sees a half-written record.
"""

from __future__ import annotations

import contextlib
import fcntl
import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

from scratchspace.errors import StorageIOError, ValidationError

if TYPE_CHECKING:
    from collections.abc import Iterator

logger = logging.getLogger("scratchspace.kv")

_SUFFIX = ".json"


def _check_key(key: str) -> str:
    if not key or "/" in key or "\\" in key or key in (".", ".."):
        msg = f"Invalid storage key: {key!r}"
        raise ValidationError(msg)
    return key


class KeyValueStore:
    """Interface shared by the file-backed and in-memory stores."""

    name = "store"

    def get(self, key: str) -> Any | None:
        raise NotImplementedError

    def put(self, key: str, value: Any) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError

    def list_keys(self) -> list[str]:
        raise NotImplementedError

    def clear(self) -> None:
        for key in self.list_keys():
            self.delete(key)

    def iter_records(self) -> Iterator[tuple[str, Any]]:
        """Yield every loadable record. Unreadable records are logged and skipped."""
        try:
            keys = self.list_keys()
        except StorageIOError:
            logger.warning("%s: cannot list records", self.name, exc_info=True)
            return
        for key in keys:
            try:
                value = self.get(key)
            except StorageIOError as exc:
                logger.warning("%s: skipping %s: %s", self.name, key, exc)
                continue
            if value is not None:
                yield key, value


class JsonFileStore(KeyValueStore):
    """Directory of <key>.json files."""

    def __init__(self, directory: Path | str) -> None:
        self.directory = Path(directory)
        self.name = self.directory.name

    def _path(self, key: str) -> Path:
        return self.directory / f"{_check_key(key)}{_SUFFIX}"

    def ensure_dir(self) -> None:
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            msg = f"Cannot create {self.directory}: {exc}"
            raise StorageIOError(msg) from exc

    def get(self, key: str) -> Any | None:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            with path.open(encoding="utf-8") as f:
                fcntl.flock(f, fcntl.LOCK_SH)
                return json.load(f)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            msg = f"Corrupt record {path}: {exc}"
            raise StorageIOError(msg) from exc
        except OSError as exc:
            msg = f"Cannot read {path}: {exc}"
            raise StorageIOError(msg) from exc

    def put(self, key: str, value: Any) -> None:
        path = self._path(key)
        self.ensure_dir()
        tmp = path.with_suffix(".json.tmp")
        try:
            with tmp.open("w", encoding="utf-8") as f:
                fcntl.flock(f, fcntl.LOCK_EX)
                json.dump(value, f, indent=2, ensure_ascii=False)
            tmp.replace(path)
        except (OSError, TypeError, ValueError) as exc:
            with contextlib.suppress(OSError):
                tmp.unlink(missing_ok=True)
            msg = f"Cannot write {path}: {exc}"
            raise StorageIOError(msg) from exc

    def delete(self, key: str) -> None:
        path = self._path(key)
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            msg = f"Cannot delete {path}: {exc}"
            raise StorageIOError(msg) from exc

    def list_keys(self) -> list[str]:
        if not self.directory.exists():
            return []
        try:
            return sorted(
                p.name[: -len(_SUFFIX)] for p in self.directory.iterdir()
                if p.is_file() and p.name.endswith(_SUFFIX)
            )
        except OSError as exc:
            msg = f"Cannot list {self.directory}: {exc}"
            raise StorageIOError(msg) from exc


class MemoryStore(KeyValueStore):
    """Dict-backed store. Values round-trip through JSON like the file store."""

    def __init__(self, name: str = "memory") -> None:
        self.name = name
        self._data: dict[str, str] = {}

    def get(self, key: str) -> Any | None:
        raw = self._data.get(_check_key(key))
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as exc:
            msg = f"Corrupt record {self.name}/{key}: {exc}"
            raise StorageIOError(msg) from exc

    def put(self, key: str, value: Any) -> None:
        try:
            self._data[_check_key(key)] = json.dumps(value)
        except (TypeError, ValueError) as exc:
            msg = f"Cannot serialise {self.name}/{key}: {exc}"
            raise StorageIOError(msg) from exc

    def put_raw(self, key: str, raw: str) -> None:
        """Store raw text as-is (used to simulate corrupt records)."""
        self._data[_check_key(key)] = raw

    def delete(self, key: str) -> None:
        self._data.pop(_check_key(key), None)

    def list_keys(self) -> list[str]:
        return sorted(self._data)
