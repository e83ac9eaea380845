"""Exception taxonomy for the proof store.

    StoreError
    ├── InvalidInputError (ValueError)       bad id / base path / entity; no fs access happened
    │   └── InvalidNodeIDError
    ├── EntityNotFoundError (FileNotFoundError)  missing file or dir, or a rejected identifier
    └── FormatError                          empty file, bad JSON, wrong document shape
        ├── ContentHashMismatchError         node parses but its hash no longer matches
        └── SchemaError                      schema.json references unknown names

Environmental failures (permissions, ENOSPC, ENAMETOOLONG, ELOOP, ...) are not
wrapped: the original OSError reaches the caller.
"""

from __future__ import annotations

import errno
import os


class StoreError(Exception):
    """Base class for every error raised by proofstore itself."""


class InvalidInputError(StoreError, ValueError):
    """Caller passed something unusable; nothing on disk was touched."""


class InvalidNodeIDError(InvalidInputError):
    """Text that is not a dotted node identifier rooted at 1."""


class EntityNotFoundError(StoreError, FileNotFoundError):
    """Entity file (or its required directory) does not exist.

    Identifier-gate rejections are reported with this same type so that a
    probe for ``../etc/passwd`` is indistinguishable from a probe for an
    ordinary missing entity.
    """

    def __init__(self, path: str | os.PathLike[str] | None = None, message: str = "not found") -> None:
        super().__init__(errno.ENOENT, message, os.fspath(path) if path is not None else None)


class FormatError(StoreError):
    """File exists but does not hold a usable document."""

    def __init__(self, message: str, path: str | os.PathLike[str] | None = None) -> None:
        self.path = os.fspath(path) if path is not None else None
        super().__init__(f"{message}: {self.path}" if self.path else message)


class ContentHashMismatchError(FormatError):
    """Stored node hash disagrees with the hash of its canonical fields."""

    def __init__(self, node_id: str, stored: str, computed: str, path: str | os.PathLike[str] | None = None) -> None:
        self.node_id = node_id
        self.stored = stored
        self.computed = computed
        super().__init__(
            f"content hash mismatch for node {node_id}: stored={stored}, computed={computed}",
            path,
        )


class SchemaError(FormatError):
    """schema.json is valid JSON but not a valid schema."""
