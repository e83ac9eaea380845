"""Durable JSON write / read.

write_json() is the only way entity files reach disk:

    1. serialize (fails before anything on disk changes)
    2. mkdir -p the parent
    3. write the bytes to .<name>.<random>.tmp in the same directory
    4. os.replace() the temp onto the final name

Step 4 is the single point where a reader's view changes, so a reader sees the
old file, the new file, or (for an instant during a racing replace on some
filesystems) no file. Never a truncated one. Concurrent writers each get their
own temp file; the last replace wins.

Symlinks are followed unless the caller passes follow_symlinks=False. Keeping
entity paths inside their directory is the job of proofstore.paths, not this
module.
"""

from __future__ import annotations

import contextlib
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

from proofstore.errors import EntityNotFoundError, FormatError, InvalidInputError

logger = logging.getLogger("proofstore.jsonio")

TMP_SUFFIX = ".tmp"
_INDENT = 2


def dumps(value: Any) -> str:
    """Serialize value the way every entity file is laid out on disk."""
    if hasattr(value, "to_dict"):
        value = value.to_dict()
    return json.dumps(value, indent=_INDENT, ensure_ascii=False, allow_nan=False) + "\n"


def write_json(
    path: Path | str,
    value: Any,
    *,
    fsync: bool = False,
    follow_symlinks: bool = True,
) -> None:
    """Atomically replace path with the JSON encoding of value.

    Overwrites unconditionally. Raises TypeError/ValueError for values that
    cannot be encoded, before touching the filesystem.
    """
    path = Path(path)
    data = dumps(value).encode("utf-8")

    if not follow_symlinks and path.is_symlink():
        msg = f"refusing to write through symlink: {path}"
        raise InvalidInputError(msg)

    path.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=TMP_SUFFIX)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            if fsync:
                f.flush()
                os.fsync(f.fileno())
        os.chmod(tmp_name, 0o644)
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except OSError:
            logger.warning("could not remove temp file %s", tmp_name)
        raise

    logger.debug("wrote %s (%d bytes)", path, len(data))


def read_json(path: Path | str, *, follow_symlinks: bool = True) -> Any:
    """Read and decode path.

    EntityNotFoundError if absent, FormatError if empty / not JSON / a
    directory. Any other OSError propagates as-is.
    """
    path = Path(path)
    if not follow_symlinks and path.is_symlink():
        raise EntityNotFoundError(path)
    try:
        raw = path.read_bytes()
    except FileNotFoundError as exc:
        raise EntityNotFoundError(path) from exc
    except IsADirectoryError as exc:
        raise FormatError("is a directory", path) from exc

    if not raw.strip():
        raise FormatError("empty file", path)
    try:
        return json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise FormatError(f"invalid JSON ({exc})", path) from exc


def remove(path: Path | str, *, missing_ok: bool = False) -> None:
    """Unlink an entity file. EntityNotFoundError unless missing_ok."""
    path = Path(path)
    try:
        path.unlink()
    except FileNotFoundError as exc:
        if missing_ok:
            return
        raise EntityNotFoundError(path) from exc
    logger.debug("removed %s", path)


def stray_temp_files(directory: Path | str) -> list[Path]:
    """Temp files left in directory by writers that were killed mid-write."""
    directory = Path(directory)
    with contextlib.suppress(FileNotFoundError):
        return sorted(p for p in directory.iterdir() if p.name.endswith(TMP_SUFFIX))
    return []
