"""Virtual file bridge: documents exposed as flat, individually addressable files.

Paths look like ``scratchpad:///<id>/<sanitized-name>.<ext>``; only the id
segment is significant. Reads and writes go straight to the shared
DocumentStore record, so a read after a write sees the written content and
every consumer of an id sees the same document. There are no directories.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

from scratchspace.errors import (
    FileExistsInBridgeError,
    FileNotADirectoryError,
    NoPermissionsError,
    NotFoundError,
    ValidationError,
)
from scratchspace.languages import extension_for

if TYPE_CHECKING:
    from datetime import datetime

    from scratchspace.models import Document
    from scratchspace.store import DocumentStore

SCHEME = "scratchpad"
_PREFIX = f"{SCHEME}://"
_UNSAFE = re.compile(r"[^a-zA-Z0-9\-_ ]")


@dataclass(frozen=True)
class FileStat:
    type: str          # always "file"
    size: int          # utf-8 byte length of the content
    created: datetime
    modified: datetime


def sanitize_name(name: str) -> str:
    return _UNSAFE.sub("", name).strip() or "scratchpad"


def path_for(doc: Document) -> str:
    return f"{_PREFIX}/{doc.id}/{sanitize_name(doc.name)}.{extension_for(doc.language)}"


def document_id_from_path(path: str) -> str:
    """Return the id segment of a scratchpad path."""
    if not path.startswith(_PREFIX):
        msg = f"Not a {SCHEME} path: {path!r}"
        raise ValidationError(msg)
    parts = path[len(_PREFIX):].split("/")
    # "scratchpad:///<id>/<name>" -> ["", "<id>", "<name>"]
    if len(parts) < 2 or parts[0] or not parts[1]:
        msg = f"Invalid {SCHEME} path: {path!r}"
        raise ValidationError(msg)
    return parts[1]


class VirtualFileBridge:
    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    def path_for(self, document_id: str) -> str:
        return path_for(self._store.get(document_id))

    def _resolve(self, path: str) -> Document:
        document_id = document_id_from_path(path)
        if document_id not in self._store:
            raise NotFoundError("file", path)
        return self._store.get(document_id)

    def stat(self, path: str) -> FileStat:
        doc = self._resolve(path)
        return FileStat(
            type="file",
            size=len(doc.content.encode("utf-8")),
            created=doc.created_at,
            modified=doc.updated_at,
        )

    def read(self, path: str) -> bytes:
        return self._resolve(path).content.encode("utf-8")

    async def write(
        self,
        path: str,
        data: bytes,
        *,
        create: bool = True,  # noqa: ARG002
        overwrite: bool = True,
    ) -> None:
        """Replace the document's content through DocumentStore.update.

        Documents are only created through the store, so ``create`` never
        brings a new id into existence. ``overwrite=False`` on an existing
        document raises FileExistsInBridgeError.
        """
        doc = self._resolve(path)
        if not overwrite:
            msg = f"File exists: {path}"
            raise FileExistsInBridgeError(msg)
        try:
            text = data.decode("utf-8")
        except UnicodeDecodeError as exc:
            msg = f"Content of {path} is not UTF-8 text"
            raise ValidationError(msg) from exc
        await self._store.update(doc.id, content=text)

    async def delete(self, path: str, *, recursive: bool = False) -> None:  # noqa: ARG002
        doc = self._resolve(path)
        await self._store.delete(doc.id)

    def rename(self, old_path: str, new_path: str, *, overwrite: bool = False) -> None:  # noqa: ARG002
        msg = "Renaming through the file bridge is not supported; rename the document instead"
        raise NoPermissionsError(msg)

    def read_directory(self, path: str) -> list[tuple[str, str]]:
        raise FileNotADirectoryError(path)

    def create_directory(self, path: str) -> None:
        msg = f"Cannot create directories in the {SCHEME} filesystem: {path}"
        raise NoPermissionsError(msg)
