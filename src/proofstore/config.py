"""StoreConfig: project-local config for a proof workspace.

Default layout (relative to the project root):

    af.toml               # project config (optional)
    proof/                # workspace: nodes/, defs/, ..., schema.json, meta.json

af.toml example:

    [workspace]
    dir = "proof"            # default

    [store]
    follow_symlinks = true   # false: refuse entity paths that traverse a symlink
    fsync = false            # true: fsync temp files before the rename

Environment overrides (useful for one-off runs and CI):

    AF_FOLLOW_SYMLINKS=0|1
    AF_FSYNC=0|1
"""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from proofstore.errors import InvalidInputError

_CONFIG_FILENAME = "af.toml"
_DEFAULT_WORKSPACE_DIR = "proof"

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


@dataclass
class StoreConfig:
    """Resolved configuration for one proof workspace."""

    root: Path                       # directory that contains af.toml
    workspace_dir: Path
    follow_symlinks: bool = True
    fsync: bool = False

    @property
    def config_path(self) -> Path:
        return self.root / _CONFIG_FILENAME


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    msg = f"{name} must be a boolean (0/1/true/false), got {raw!r}"
    raise InvalidInputError(msg)


def _toml_bool(section: dict[str, Any], key: str, default: bool) -> bool:
    value = section.get(key, default)
    if not isinstance(value, bool):
        msg = f"[store] {key} must be true or false, got {value!r}"
        raise InvalidInputError(msg)
    return value


def load_config(root: Path | str | None = None) -> StoreConfig:
    """Load af.toml from root (or search upward from cwd if root is None)."""
    root_path = _find_root(Path(root) if root else Path.cwd())
    config_path = root_path / _CONFIG_FILENAME

    raw: dict[str, Any] = {}
    if config_path.exists():
        with config_path.open("rb") as f:
            raw = tomllib.load(f)

    ws_section = raw.get("workspace", {})
    store_section = raw.get("store", {})

    workspace = Path(ws_section.get("dir", _DEFAULT_WORKSPACE_DIR))
    if not workspace.is_absolute():
        workspace = root_path / workspace

    return StoreConfig(
        root=root_path,
        workspace_dir=workspace,
        follow_symlinks=_env_bool("AF_FOLLOW_SYMLINKS", _toml_bool(store_section, "follow_symlinks", True)),
        fsync=_env_bool("AF_FSYNC", _toml_bool(store_section, "fsync", False)),
    )


def _find_root(start: Path) -> Path:
    """Walk upward from start looking for af.toml."""
    for directory in (start, *start.parents):
        if (directory / _CONFIG_FILENAME).exists():
            return directory
    return start


def init_config(root: Path, workspace: str = _DEFAULT_WORKSPACE_DIR) -> Path:
    """Write a default af.toml at root. Raises if already exists."""
    config_path = root / _CONFIG_FILENAME
    if config_path.exists():
        msg = f"af.toml already exists at {config_path}"
        raise FileExistsError(msg)

    content = f"""\
[workspace]
dir = "{workspace}"

[store]
# follow_symlinks = true   # false: entity paths may not pass through symlinks
# fsync = false            # true: fsync before rename (slower, survives power loss)
"""
    config_path.write_text(content)
    return config_path
