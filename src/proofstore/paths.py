"""Proof workspace layout and identifier-to-path hardening.

Layout under a workspace root:

    ledger/              # event files (owned by the ledger, not this package)
    locks/               # node claim locks (owned by the lock manager)
    nodes/1_2_3.json
    defs/<id>.json
    assumptions/<id>.json
    externals/<id>.json
    lemmas/<id>.json
    .af/pending_defs/<node-id>.json
    schema.json
    meta.json

Every caller-supplied identifier passes two gates before a path is built from
it: a cheap string check (contains_path_traversal), then jail_path(), which
re-checks that the normalized absolute result is still inside its directory.
"""

from __future__ import annotations

import os
import re
from pathlib import Path

from proofstore.errors import EntityNotFoundError, InvalidInputError

JSON_SUFFIX = ".json"

NODES_DIR = "nodes"
DEFS_DIR = "defs"
ASSUMPTIONS_DIR = "assumptions"
EXTERNALS_DIR = "externals"
LEMMAS_DIR = "lemmas"
PENDING_DEFS_DIR = ".af/pending_defs"
LEDGER_DIR = "ledger"
LOCKS_DIR = "locks"
SCHEMA_FILE = "schema.json"
META_FILE = "meta.json"

_ENCODED_SLASH_RE = re.compile(r"%2f", re.IGNORECASE)


def validate_base_path(base: Path | str) -> None:
    """Reject empty, whitespace-only or NUL-containing base directories."""
    text = os.fspath(base)
    if text == "":
        msg = "path cannot be empty"
        raise InvalidInputError(msg)
    if text.strip() == "":
        msg = "path cannot be whitespace-only"
        raise InvalidInputError(msg)
    if "\x00" in text:
        msg = "path cannot contain null byte"
        raise InvalidInputError(msg)


def validate_id(entity_id: object, label: str = "ID") -> str:
    if not isinstance(entity_id, str) or entity_id.strip() == "":
        msg = f"{label} cannot be empty"
        raise InvalidInputError(msg)
    return entity_id


def contains_path_traversal(entity_id: str) -> bool:
    """True for ids that could steer a path out of its directory."""
    return (
        ".." in entity_id
        or "/" in entity_id
        or "\\" in entity_id
        or "\x00" in entity_id
        or _ENCODED_SLASH_RE.search(entity_id) is not None
    )


def _clean(path: Path | str) -> str:
    return os.path.normpath(os.path.abspath(path))


def jail_path(directory: Path | str, filename: str, *, resolve_symlinks: bool = False) -> Path:
    """Join directory/filename and verify the result stays inside directory.

    With resolve_symlinks=True both sides are resolved with realpath, so a
    symlinked file or subdirectory pointing elsewhere also fails the check.
    Escapes raise EntityNotFoundError, never a distinct "forbidden" error.
    """
    candidate = os.path.join(directory, filename)
    if resolve_symlinks:
        clean_dir = os.path.realpath(directory)
        clean_path = os.path.realpath(candidate)
    else:
        clean_dir = _clean(directory)
        clean_path = _clean(candidate)
    if not clean_path.startswith(clean_dir + os.sep):
        raise EntityNotFoundError(candidate)
    return Path(candidate)


def flat_filename(entity_id: str) -> str:
    return entity_id + JSON_SUFFIX


def is_listable(entry: os.DirEntry[str]) -> bool:
    """Regular, non-hidden, .json-suffixed file (the listing filter)."""
    name = entry.name
    if name.startswith(".") or not name.endswith(JSON_SUFFIX):
        return False
    try:
        return entry.is_file()
    except OSError:
        return False


class ProofPaths:
    """Standard locations inside one proof workspace."""

    def __init__(self, base: Path | str) -> None:
        validate_base_path(base)
        self.base = Path(base)

    def __repr__(self) -> str:
        return f"ProofPaths({str(self.base)!r})"

    @property
    def ledger(self) -> Path:
        return self.base / LEDGER_DIR

    @property
    def locks(self) -> Path:
        return self.base / LOCKS_DIR

    @property
    def nodes(self) -> Path:
        return self.base / NODES_DIR

    @property
    def defs(self) -> Path:
        return self.base / DEFS_DIR

    @property
    def assumptions(self) -> Path:
        return self.base / ASSUMPTIONS_DIR

    @property
    def externals(self) -> Path:
        return self.base / EXTERNALS_DIR

    @property
    def lemmas(self) -> Path:
        return self.base / LEMMAS_DIR

    @property
    def pending_defs(self) -> Path:
        return self.base / PENDING_DEFS_DIR

    @property
    def schema(self) -> Path:
        return self.base / SCHEMA_FILE

    @property
    def meta(self) -> Path:
        return self.base / META_FILE

    def workspace_dirs(self) -> list[Path]:
        """Directories created by `proofstore init` (pending_defs is created lazily)."""
        return [self.ledger, self.nodes, self.defs, self.assumptions, self.externals, self.lemmas, self.locks]
