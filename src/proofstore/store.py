"""Entity stores: one generic store, eight entity kinds.

    store = ProofStore("/path/to/proof")
    store.nodes.write(node)
    node = store.nodes.read("1.2")          # verifies content_hash
    ids = store.nodes.list()                # [NodeID('1'), NodeID('1.2'), ...]
    store.pending_defs.delete("1.2")        # idempotent

or the free functions, which take the workspace path first:

    write_node(base, node); read_node(base, "1.2"); list_nodes(base); delete_node(base, "1.2")

The directory is the index: nothing is cached between calls, so any number of
processes may share one workspace. Writes are last-writer-wins; callers that
need read-modify-write exclusivity take a lock from locks/ first.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from proofstore import jsonio
from proofstore.errors import (
    ContentHashMismatchError,
    EntityNotFoundError,
    FormatError,
    InvalidInputError,
    InvalidNodeIDError,
)
from proofstore.ids import NodeID
from proofstore.models import Assumption, Definition, External, Lemma, Meta, Node, PendingDef
from proofstore.paths import (
    ASSUMPTIONS_DIR,
    DEFS_DIR,
    EXTERNALS_DIR,
    JSON_SUFFIX,
    LEMMAS_DIR,
    META_FILE,
    NODES_DIR,
    PENDING_DEFS_DIR,
    SCHEMA_FILE,
    ProofPaths,
    contains_path_traversal,
    flat_filename,
    is_listable,
    jail_path,
    validate_base_path,
    validate_id,
)
from proofstore.schema import Schema

if TYPE_CHECKING:
    from collections.abc import Callable

    from proofstore.config import StoreConfig

logger = logging.getLogger("proofstore.store")

E = TypeVar("E")
K = TypeVar("K")


# ---------------------------------------------------------------------------
# Keys: how an identifier becomes a filename and back
# ---------------------------------------------------------------------------

class FlatKey:
    """Free-form string ids: <id>.json."""

    def parse(self, raw: Any, label: str) -> str:
        """Gate for read/delete: blank is invalid input, hostile is not-found."""
        entity_id = validate_id(raw, label)
        if contains_path_traversal(entity_id):
            raise EntityNotFoundError(entity_id)
        return entity_id

    def parse_for_write(self, raw: Any, label: str) -> str:
        entity_id = validate_id(raw, label)
        if contains_path_traversal(entity_id):
            msg = f"{label} contains path traversal: {entity_id!r}"
            raise InvalidInputError(msg)
        return entity_id

    def filename(self, key: str) -> str:
        return flat_filename(key)

    def from_filename(self, name: str) -> str | None:
        key = name[: -len(JSON_SUFFIX)]
        if not key.strip() or contains_path_traversal(key):
            return None
        return key


class NodeKey:
    """Dotted node ids: 1_2.json, or 1.2.json with dotted_filenames (pending defs)."""

    def __init__(self, *, dotted_filenames: bool = False) -> None:
        self.dotted_filenames = dotted_filenames

    def parse(self, raw: Any, label: str) -> NodeID:
        if isinstance(raw, NodeID):
            return raw
        text = validate_id(raw, label)
        if contains_path_traversal(text):
            raise EntityNotFoundError(text)
        return NodeID.parse(text)

    def parse_for_write(self, raw: Any, label: str) -> NodeID:
        if isinstance(raw, NodeID):
            return raw
        return NodeID.parse(validate_id(raw, label))

    def filename(self, key: NodeID) -> str:
        if self.dotted_filenames:
            return str(key) + JSON_SUFFIX
        return key.to_filename()

    def from_filename(self, name: str) -> NodeID | None:
        if not self.dotted_filenames:
            return NodeID.from_filename(name)
        try:
            node_id = NodeID.parse(name[: -len(JSON_SUFFIX)])
        except InvalidNodeIDError:
            return None
        return node_id if self.filename(node_id) == name else None


# ---------------------------------------------------------------------------
# Entity kinds
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class EntityKind(Generic[E]):
    """Everything that differs between entity kinds.

    label:          used in error messages ("node", "assumption", ...)
    subdir:         jail directory relative to the workspace root
    model:          dataclass with to_dict()/from_dict()
    key:            FlatKey or NodeKey
    key_of:         entity -> its identifier
    validate:       extra write-time checks (beyond a usable id)
    verify:         post-read integrity check
    optional_dir:   missing directory lists as empty instead of raising
    idempotent_delete: deleting a missing entity succeeds
    """

    label: str
    subdir: str
    model: type[E]
    key: FlatKey | NodeKey
    key_of: Callable[[E], Any]
    validate: Callable[[E], None] | None = None
    verify: Callable[[E, Any, Path], None] | None = None
    optional_dir: bool = False
    idempotent_delete: bool = False


def _validate_node(node: Node) -> None:
    node.validate()
    if not node.verify_content_hash():
        msg = f"node {node.id} content_hash does not match its content; call refresh_content_hash() first"
        raise InvalidInputError(msg)


def _validate_model(entity: Any) -> None:
    entity.validate()


def _verify_node(node: Node, key: NodeID, path: Path) -> None:
    computed = node.compute_content_hash()
    if node.content_hash != computed:
        logger.warning("content hash mismatch: %s", path)
        raise ContentHashMismatchError(str(key), node.content_hash, computed, path)
    _verify_identity(node.id, key, path)


def _verify_identity(declared: Any, key: Any, path: Path) -> None:
    if declared != key:
        msg = f"document declares id {str(declared)!r} but is stored as {str(key)!r}"
        raise FormatError(msg, path)


def _verify_flat(entity: Any, key: str, path: Path) -> None:
    _verify_identity(entity.id, key, path)


def _verify_pending_def(pd: PendingDef, key: NodeID, path: Path) -> None:
    _verify_identity(pd.requested_by, key, path)


NODE_KIND: EntityKind[Node] = EntityKind(
    label="node",
    subdir=NODES_DIR,
    model=Node,
    key=NodeKey(),
    key_of=lambda n: n.id,
    validate=_validate_node,
    verify=_verify_node,
)
ASSUMPTION_KIND: EntityKind[Assumption] = EntityKind(
    label="assumption",
    subdir=ASSUMPTIONS_DIR,
    model=Assumption,
    key=FlatKey(),
    key_of=lambda a: a.id,
    validate=_validate_model,
    verify=_verify_flat,
)
DEFINITION_KIND: EntityKind[Definition] = EntityKind(
    label="definition",
    subdir=DEFS_DIR,
    model=Definition,
    key=FlatKey(),
    key_of=lambda d: d.id,
    validate=_validate_model,
    verify=_verify_flat,
)
LEMMA_KIND: EntityKind[Lemma] = EntityKind(
    label="lemma",
    subdir=LEMMAS_DIR,
    model=Lemma,
    key=FlatKey(),
    key_of=lambda lem: lem.id,
    verify=_verify_flat,
)
EXTERNAL_KIND: EntityKind[External] = EntityKind(
    label="external",
    subdir=EXTERNALS_DIR,
    model=External,
    key=FlatKey(),
    key_of=lambda e: e.id,
    validate=_validate_model,
    verify=_verify_flat,
)
PENDING_DEF_KIND: EntityKind[PendingDef] = EntityKind(
    label="pending def",
    subdir=PENDING_DEFS_DIR,
    model=PendingDef,
    key=NodeKey(dotted_filenames=True),
    key_of=lambda pd: pd.requested_by,
    verify=_verify_pending_def,
    optional_dir=True,
    idempotent_delete=True,
)

KINDS: dict[str, EntityKind[Any]] = {
    "nodes": NODE_KIND,
    "assumptions": ASSUMPTION_KIND,
    "defs": DEFINITION_KIND,
    "lemmas": LEMMA_KIND,
    "externals": EXTERNAL_KIND,
    "pending-defs": PENDING_DEF_KIND,
}


# ---------------------------------------------------------------------------
# Shared guards
# ---------------------------------------------------------------------------

def _check_base_for_write(base: Path) -> None:
    if base.exists() and not base.is_dir():
        msg = f"base path is a file, not a directory: {base}"
        raise InvalidInputError(msg)


def _inside(path: Path | str, directory: Path | str) -> bool:
    return os.path.realpath(path).startswith(os.path.realpath(directory) + os.sep)


# ---------------------------------------------------------------------------
# EntityStore
# ---------------------------------------------------------------------------

class EntityStore(Generic[E]):
    """Write / Read / List / Delete for one entity kind.

    Holds only options, never entity state; every call goes to disk.
    """

    def __init__(self, kind: EntityKind[E], *, follow_symlinks: bool = True, fsync: bool = False) -> None:
        self.kind = kind
        self.follow_symlinks = follow_symlinks
        self.fsync = fsync

    def __repr__(self) -> str:
        return f"EntityStore({self.kind.label!r}, follow_symlinks={self.follow_symlinks})"

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    def directory(self, base: Path | str) -> Path:
        validate_base_path(base)
        return Path(base) / self.kind.subdir

    def _path(self, base: Path | str, key: Any) -> Path:
        """Jailed path for key. EntityNotFoundError if it would escape."""
        directory = self.directory(base)
        path = jail_path(directory, self.kind.key.filename(key), resolve_symlinks=not self.follow_symlinks)
        if not self.follow_symlinks and directory.exists() and not _inside(directory, base):
            # entity directory itself is a symlink out of the workspace
            raise EntityNotFoundError(path)
        return path

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def write(self, base: Path | str, entity: E) -> Path:
        """Create or fully replace entity. Returns the file written."""
        kind = self.kind
        validate_base_path(base)
        if entity is None:
            msg = f"{kind.label} cannot be None"
            raise InvalidInputError(msg)
        if not isinstance(entity, kind.model):
            msg = f"expected {kind.model.__name__}, got {type(entity).__name__}"
            raise InvalidInputError(msg)
        key = kind.key.parse_for_write(kind.key_of(entity), f"{kind.label} ID")
        if kind.validate is not None:
            kind.validate(entity)
        base = Path(base)
        _check_base_for_write(base)
        try:
            path = self._path(base, key)
        except EntityNotFoundError as exc:
            msg = f"{kind.label} ID {str(key)!r} resolves outside {kind.subdir}/"
            raise InvalidInputError(msg) from exc

        jsonio.write_json(path, entity, fsync=self.fsync, follow_symlinks=self.follow_symlinks)
        logger.debug("%s written: %s", kind.label, key)
        return path

    def read(self, base: Path | str, entity_id: Any) -> E:
        kind = self.kind
        validate_base_path(base)
        key = kind.key.parse(entity_id, f"{kind.label} ID")
        path = self._path(base, key)
        data = jsonio.read_json(path, follow_symlinks=self.follow_symlinks)
        try:
            entity = kind.model.from_dict(data)  # type: ignore[attr-defined]
        except FormatError as exc:
            raise FormatError(str(exc), path) from exc
        if kind.verify is not None:
            kind.verify(entity, key, path)
        return entity  # type: ignore[no-any-return]

    def exists(self, base: Path | str, entity_id: Any) -> bool:
        try:
            key = self.kind.key.parse(entity_id, f"{self.kind.label} ID")
            path = self._path(base, key)
        except (EntityNotFoundError, InvalidInputError):
            return False
        if not self.follow_symlinks and path.is_symlink():
            return False
        return path.is_file()

    def list(self, base: Path | str) -> list[Any]:
        """Sorted identifiers of every well-formed entity file.

        Hidden files, non-.json files, directories and names that do not
        parse as identifiers are skipped.
        """
        directory = self.directory(base)
        if not self.follow_symlinks and directory.exists() and not _inside(directory, base):
            raise EntityNotFoundError(directory)
        try:
            entries = list(os.scandir(directory))
        except FileNotFoundError as exc:
            if self.kind.optional_dir:
                return []
            raise EntityNotFoundError(directory) from exc

        keys = []
        for entry in entries:
            if not is_listable(entry):
                continue
            if not self.follow_symlinks and entry.is_symlink():
                continue
            key = self.kind.key.from_filename(entry.name)
            if key is None:
                logger.warning("skipping malformed %s filename: %s", self.kind.label, entry.path)
                continue
            keys.append(key)
        return sorted(keys)

    def delete(self, base: Path | str, entity_id: Any) -> None:
        kind = self.kind
        validate_base_path(base)
        try:
            key = kind.key.parse(entity_id, f"{kind.label} ID")
            path = self._path(base, key)
        except EntityNotFoundError:
            if kind.idempotent_delete:
                return
            raise
        jsonio.remove(path, missing_ok=kind.idempotent_delete)
        logger.debug("%s deleted: %s", kind.label, key)


# ---------------------------------------------------------------------------
# Singletons: schema.json and meta.json
# ---------------------------------------------------------------------------

class SingletonStore(Generic[E]):
    """A single fixed-name file directly under the workspace root."""

    def __init__(
        self,
        filename: str,
        label: str,
        load: Callable[[Any], E],
        validate: Callable[[E], None] | None = None,
        *,
        follow_symlinks: bool = True,
        fsync: bool = False,
    ) -> None:
        self.filename = filename
        self.label = label
        self._load = load
        self._validate = validate
        self.follow_symlinks = follow_symlinks
        self.fsync = fsync

    def path(self, base: Path | str) -> Path:
        validate_base_path(base)
        return Path(base) / self.filename

    def write(self, base: Path | str, value: E) -> Path:
        validate_base_path(base)
        if value is None:
            msg = f"{self.label} cannot be None"
            raise InvalidInputError(msg)
        if self._validate is not None:
            self._validate(value)
        _check_base_for_write(Path(base))
        path = self.path(base)
        jsonio.write_json(path, value, fsync=self.fsync, follow_symlinks=self.follow_symlinks)
        logger.debug("%s written: %s", self.label, path)
        return path

    def read(self, base: Path | str) -> E:
        path = self.path(base)
        data = jsonio.read_json(path, follow_symlinks=self.follow_symlinks)
        try:
            return self._load(data)
        except FormatError as exc:
            raise type(exc)(str(exc), path) from exc


def _validate_schema(s: Schema) -> None:
    if not isinstance(s, Schema):
        msg = f"expected Schema, got {type(s).__name__}"
        raise InvalidInputError(msg)


def _validate_meta(m: Meta) -> None:
    if not isinstance(m, Meta):
        msg = f"expected Meta, got {type(m).__name__}"
        raise InvalidInputError(msg)
    m.validate()


def schema_store(*, follow_symlinks: bool = True, fsync: bool = False) -> SingletonStore[Schema]:
    return SingletonStore(
        SCHEMA_FILE, "schema", Schema.load, _validate_schema, follow_symlinks=follow_symlinks, fsync=fsync
    )


def meta_store(*, follow_symlinks: bool = True, fsync: bool = False) -> SingletonStore[Meta]:
    return SingletonStore(META_FILE, "meta", Meta.from_dict, _validate_meta, follow_symlinks=follow_symlinks, fsync=fsync)


# ---------------------------------------------------------------------------
# ProofStore facade
# ---------------------------------------------------------------------------

class BoundStore(Generic[E]):
    """An EntityStore with the workspace path filled in."""

    def __init__(self, store: EntityStore[E], base: Path) -> None:
        self.store = store
        self.base = base

    def write(self, entity: E) -> Path:
        return self.store.write(self.base, entity)

    def read(self, entity_id: Any) -> E:
        return self.store.read(self.base, entity_id)

    def exists(self, entity_id: Any) -> bool:
        return self.store.exists(self.base, entity_id)

    def list(self) -> list[Any]:
        return self.store.list(self.base)

    def delete(self, entity_id: Any) -> None:
        self.store.delete(self.base, entity_id)

    @property
    def directory(self) -> Path:
        return self.store.directory(self.base)


class ProofStore:
    """All entity stores of one proof workspace. Holds only the path and options."""

    def __init__(self, base: Path | str, *, follow_symlinks: bool = True, fsync: bool = False) -> None:
        self.paths = ProofPaths(base)
        self.base = self.paths.base
        self.follow_symlinks = follow_symlinks
        self.fsync = fsync

        def bind(kind: EntityKind[Any]) -> BoundStore[Any]:
            return BoundStore(EntityStore(kind, follow_symlinks=follow_symlinks, fsync=fsync), self.base)

        self.nodes: BoundStore[Node] = bind(NODE_KIND)
        self.assumptions: BoundStore[Assumption] = bind(ASSUMPTION_KIND)
        self.definitions: BoundStore[Definition] = bind(DEFINITION_KIND)
        self.lemmas: BoundStore[Lemma] = bind(LEMMA_KIND)
        self.externals: BoundStore[External] = bind(EXTERNAL_KIND)
        self.pending_defs: BoundStore[PendingDef] = bind(PENDING_DEF_KIND)
        self._schema = schema_store(follow_symlinks=follow_symlinks, fsync=fsync)
        self._meta = meta_store(follow_symlinks=follow_symlinks, fsync=fsync)

    @classmethod
    def from_config(cls, cfg: StoreConfig) -> ProofStore:
        return cls(cfg.workspace_dir, follow_symlinks=cfg.follow_symlinks, fsync=cfg.fsync)

    def __repr__(self) -> str:
        return f"ProofStore({str(self.base)!r})"

    def by_name(self, name: str) -> BoundStore[Any]:
        """Store for a CLI-style kind name (nodes, defs, pending-defs, ...)."""
        attr = {"defs": "definitions", "pending-defs": "pending_defs"}.get(name, name)
        if name not in KINDS:
            msg = f"unknown entity kind {name!r}; expected one of {', '.join(KINDS)}"
            raise InvalidInputError(msg)
        return getattr(self, attr)  # type: ignore[no-any-return]

    def read_schema(self) -> Schema:
        return self._schema.read(self.base)

    def write_schema(self, s: Schema) -> Path:
        return self._schema.write(self.base, s)

    def read_meta(self) -> Meta:
        return self._meta.read(self.base)

    def write_meta(self, m: Meta) -> Path:
        return self._meta.write(self.base, m)

    def init(self) -> None:
        """Create the workspace directories. Idempotent; existing files are kept."""
        _check_base_for_write(self.base)
        for d in self.paths.workspace_dirs():
            d.mkdir(parents=True, exist_ok=True)
        logger.info("workspace initialised: %s", self.base)


def init_workspace(base: Path | str) -> ProofStore:
    store = ProofStore(base)
    store.init()
    return store


# ---------------------------------------------------------------------------
# Free functions (default options: follow symlinks, no fsync)
# ---------------------------------------------------------------------------

_nodes = EntityStore(NODE_KIND)
_assumptions = EntityStore(ASSUMPTION_KIND)
_definitions = EntityStore(DEFINITION_KIND)
_lemmas = EntityStore(LEMMA_KIND)
_externals = EntityStore(EXTERNAL_KIND)
_pending_defs = EntityStore(PENDING_DEF_KIND)
_schema = schema_store()
_meta = meta_store()

write_node = _nodes.write
read_node = _nodes.read
list_nodes = _nodes.list
delete_node = _nodes.delete

write_assumption = _assumptions.write
read_assumption = _assumptions.read
list_assumptions = _assumptions.list
delete_assumption = _assumptions.delete

write_definition = _definitions.write
read_definition = _definitions.read
list_definitions = _definitions.list
delete_definition = _definitions.delete

write_lemma = _lemmas.write
read_lemma = _lemmas.read
list_lemmas = _lemmas.list
delete_lemma = _lemmas.delete

write_external = _externals.write
read_external = _externals.read
list_externals = _externals.list
delete_external = _externals.delete

write_pending_def = _pending_defs.write
read_pending_def = _pending_defs.read
list_pending_defs = _pending_defs.list
delete_pending_def = _pending_defs.delete

write_schema = _schema.write
read_schema = _schema.read
write_meta = _meta.write
read_meta = _meta.read
