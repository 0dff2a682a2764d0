"""Exception taxonomy shared by every scratchspace component."""

from __future__ import annotations


class ScratchError(Exception):
    """Base class for all scratchspace errors."""


class NotFoundError(ScratchError, LookupError):
    """An id-addressed operation referenced an unknown document or entry."""

    def __init__(self, kind: str, key: str) -> None:
        self.kind = kind
        self.key = key
        super().__init__(f"{kind} not found: {key}")


class ValidationError(ScratchError, ValueError):
    """Input rejected before any state was touched."""


class StorageIOError(ScratchError, OSError):
    """A persistence read, write or delete failed."""


class ConfigError(ScratchError, ValueError):
    """scratch.toml holds a value that cannot be used."""


class NoPermissionsError(ScratchError, PermissionError):
    """The virtual file bridge does not support this operation."""


class FileNotADirectoryError(ScratchError, NotADirectoryError):
    """Directory operations are never supported by the virtual file bridge."""


class FileExistsInBridgeError(ScratchError, FileExistsError):
    """A bridge write with overwrite disabled targeted an existing document."""
