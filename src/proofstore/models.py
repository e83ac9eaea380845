"""Entity models persisted by the proof store.

Each model round-trips through to_dict()/from_dict(); to_dict() fixes the
field order written to disk. from_dict() raises FormatError for documents that
are not objects or lack required fields, so "[]" in a node file is a format
error, not an empty node.
"""

from __future__ import annotations

import hashlib
import re
import secrets
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from proofstore import schema as sch
from proofstore.errors import FormatError, InvalidInputError, InvalidNodeIDError
from proofstore.ids import NodeID

TAINT_CLEAN = "clean"
TAINT_SELF_ADMITTED = "self_admitted"
TAINT_TAINTED = "tainted"
TAINT_UNRESOLVED = "unresolved"
TAINT_STATES = (TAINT_CLEAN, TAINT_SELF_ADMITTED, TAINT_TAINTED, TAINT_UNRESOLVED)

PENDING_DEF_PENDING = "pending"
PENDING_DEF_RESOLVED = "resolved"
PENDING_DEF_CANCELLED = "cancelled"

LEMMA_ID_PREFIX = "LEM-"

# Nanosecond fractions (written by other tools) are cut to microseconds.
_FRACTION_RE = re.compile(r"(\.\d{6})\d+")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def now_utc() -> datetime:
    return datetime.now(UTC)


def format_ts(ts: datetime) -> str:
    """RFC 3339 UTC with microseconds and a Z suffix."""
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=UTC)
    return ts.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def parse_ts(text: str) -> datetime:
    try:
        ts = datetime.fromisoformat(_FRACTION_RE.sub(r"\1", text))
    except (TypeError, ValueError) as exc:
        msg = f"invalid timestamp {text!r}"
        raise FormatError(msg) from exc
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=UTC)
    return ts.astimezone(UTC)


def sha256_hex(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def random_id() -> str:
    """16 hex chars; used for assumptions, definitions, externals, pending defs."""
    return secrets.token_hex(8)


def _require(d: Any, key: str, kind: str) -> Any:
    if key not in d:
        msg = f"invalid {kind} document: missing {key!r}"
        raise FormatError(msg)
    return d[key]


def _as_object(d: Any, kind: str) -> dict[str, Any]:
    if not isinstance(d, dict):
        msg = f"invalid {kind} document: expected a JSON object, got {type(d).__name__}"
        raise FormatError(msg)
    return d


def _str(d: dict[str, Any], key: str, kind: str, default: str | None = None) -> str:
    value = _require(d, key, kind) if default is None else d.get(key, default)
    if not isinstance(value, str):
        msg = f"invalid {kind} document: {key!r} must be a string"
        raise FormatError(msg)
    return value


def _str_list(d: dict[str, Any], key: str, kind: str) -> list[str]:
    value = d.get(key) or []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        msg = f"invalid {kind} document: {key!r} must be a list of strings"
        raise FormatError(msg)
    return list(value)


def _node_id(text: Any, kind: str, key: str) -> NodeID:
    try:
        return NodeID.parse(text)
    except InvalidNodeIDError as exc:
        msg = f"invalid {kind} document: {key!r} is not a node ID ({exc})"
        raise FormatError(msg) from exc


def _opt_ts(d: dict[str, Any], key: str) -> datetime | None:
    value = d.get(key)
    if value in (None, ""):
        return None
    return parse_ts(value)


def _put_ts(out: dict[str, Any], key: str, ts: datetime | None) -> None:
    out[key] = format_ts(ts) if ts is not None else None


def _utc(ts: datetime | None) -> datetime | None:
    """Aware UTC; naive values are taken to be UTC already."""
    if ts is None:
        return None
    if ts.tzinfo is None:
        return ts.replace(tzinfo=UTC)
    return ts.astimezone(UTC)


def _as_node_id(value: Any) -> Any:
    return NodeID.parse(value) if isinstance(value, str) else value


# ---------------------------------------------------------------------------
# Node
# ---------------------------------------------------------------------------

@dataclass
class Node:
    """One step of the proof tree. The only entity whose hash the store verifies."""

    id: NodeID
    type: str
    statement: str
    inference: str
    latex: str = ""
    context: list[str] = field(default_factory=list)
    dependencies: list[NodeID] = field(default_factory=list)
    workflow_state: str = sch.WORKFLOW_AVAILABLE
    epistemic_state: str = sch.EPISTEMIC_PENDING
    taint_state: str = TAINT_UNRESOLVED
    content_hash: str = ""
    created: datetime | None = field(default_factory=now_utc)
    scope: list[str] = field(default_factory=list)
    claimed_by: str = ""
    claimed_at: datetime | None = None

    def __post_init__(self) -> None:
        self.id = _as_node_id(self.id)
        self.dependencies = [_as_node_id(dep) for dep in self.dependencies]
        self.created = _utc(self.created)
        self.claimed_at = _utc(self.claimed_at)

    @classmethod
    def new(
        cls,
        node_id: NodeID | str,
        node_type: str,
        statement: str,
        inference: str,
        *,
        latex: str = "",
        context: list[str] | None = None,
        dependencies: list[NodeID] | None = None,
        scope: list[str] | None = None,
    ) -> Node:
        """Fresh node: available / pending / unresolved, hash computed."""
        node = cls(
            id=NodeID.coerce(node_id),
            type=node_type,
            statement=statement,
            inference=inference,
            latex=latex,
            context=list(context or []),
            dependencies=list(dependencies or []),
            scope=list(scope or []),
        )
        node.validate()
        node.content_hash = node.compute_content_hash()
        return node

    def compute_content_hash(self) -> str:
        """SHA-256 over type, statement, latex, inference, context and dependencies.

        Context and dependencies are sorted first, so their order never
        changes the hash. State fields (workflow, epistemic, taint, claims) are
        deliberately outside the hash: they change during normal operation.
        """
        parts = [f"type:{self.type}", f"|statement:{self.statement}"]
        if self.latex:
            parts.append(f"|latex:{self.latex}")
        parts.append(f"|inference:{self.inference}")
        if self.context:
            parts.append("|context:" + ",".join(sorted(self.context)))
        if self.dependencies:
            parts.append("|dependencies:" + ",".join(sorted(str(d) for d in self.dependencies)))
        return sha256_hex("".join(parts))

    def verify_content_hash(self) -> bool:
        return self.content_hash == self.compute_content_hash()

    def refresh_content_hash(self) -> None:
        self.content_hash = self.compute_content_hash()

    def validate(self) -> None:
        if not self.statement.strip():
            msg = "node statement cannot be empty"
            raise InvalidInputError(msg)
        if self.type not in sch.NODE_TYPES:
            msg = f"invalid node type: {self.type!r}"
            raise InvalidInputError(msg)
        if self.inference not in sch.INFERENCE_TYPES:
            msg = f"invalid inference type: {self.inference!r}"
            raise InvalidInputError(msg)
        if self.workflow_state not in sch.WORKFLOW_STATES:
            msg = f"invalid workflow state: {self.workflow_state!r}"
            raise InvalidInputError(msg)
        if self.epistemic_state not in sch.EPISTEMIC_STATES:
            msg = f"invalid epistemic state: {self.epistemic_state!r}"
            raise InvalidInputError(msg)

    @property
    def is_root(self) -> bool:
        return self.id.is_root

    @property
    def depth(self) -> int:
        return self.id.depth

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "id": str(self.id),
            "type": self.type,
            "statement": self.statement,
        }
        if self.latex:
            d["latex"] = self.latex
        d["inference"] = self.inference
        if self.context:
            d["context"] = list(self.context)
        if self.dependencies:
            d["dependencies"] = [str(dep) for dep in self.dependencies]
        d["workflow_state"] = self.workflow_state
        d["epistemic_state"] = self.epistemic_state
        d["taint_state"] = self.taint_state
        d["content_hash"] = self.content_hash
        _put_ts(d, "created", self.created)
        if self.scope:
            d["scope"] = list(self.scope)
        if self.claimed_by:
            d["claimed_by"] = self.claimed_by
        if self.claimed_at is not None:
            d["claimed_at"] = format_ts(self.claimed_at)
        return d

    @classmethod
    def from_dict(cls, d: Any) -> Node:
        d = _as_object(d, "node")
        deps = d.get("dependencies") or []
        if not isinstance(deps, list):
            msg = "invalid node document: 'dependencies' must be a list"
            raise FormatError(msg)
        return cls(
            id=_node_id(_require(d, "id", "node"), "node", "id"),
            type=_str(d, "type", "node"),
            statement=_str(d, "statement", "node"),
            inference=_str(d, "inference", "node"),
            latex=_str(d, "latex", "node", ""),
            context=_str_list(d, "context", "node"),
            dependencies=[_node_id(dep, "node", "dependencies") for dep in deps],
            workflow_state=_str(d, "workflow_state", "node", ""),
            epistemic_state=_str(d, "epistemic_state", "node", ""),
            taint_state=_str(d, "taint_state", "node", ""),
            content_hash=_str(d, "content_hash", "node"),
            created=_opt_ts(d, "created"),
            scope=_str_list(d, "scope", "node"),
            claimed_by=_str(d, "claimed_by", "node", ""),
            claimed_at=_opt_ts(d, "claimed_at"),
        )


# ---------------------------------------------------------------------------
# Assumption / Definition / Lemma / External
# ---------------------------------------------------------------------------

@dataclass
class Assumption:
    id: str
    statement: str
    content_hash: str = ""
    created: datetime | None = field(default_factory=now_utc)
    justification: str = ""

    def __post_init__(self) -> None:
        self.created = _utc(self.created)

    @classmethod
    def new(cls, statement: str, justification: str = "") -> Assumption:
        return cls(
            id=random_id(),
            statement=statement,
            content_hash=sha256_hex(statement),
            justification=justification,
        )

    def validate(self) -> None:
        if not self.statement.strip():
            msg = "assumption statement cannot be empty"
            raise InvalidInputError(msg)

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "id": self.id,
            "statement": self.statement,
            "content_hash": self.content_hash,
        }
        _put_ts(d, "created", self.created)
        if self.justification:
            d["justification"] = self.justification
        return d

    @classmethod
    def from_dict(cls, d: Any) -> Assumption:
        d = _as_object(d, "assumption")
        entity_id = _str(d, "id", "assumption")
        if not entity_id:
            msg = "invalid assumption file: missing ID field"
            raise FormatError(msg)
        return cls(
            id=entity_id,
            statement=_str(d, "statement", "assumption", ""),
            content_hash=_str(d, "content_hash", "assumption", ""),
            created=_opt_ts(d, "created"),
            justification=_str(d, "justification", "assumption", ""),
        )


@dataclass
class Definition:
    id: str
    name: str
    content: str
    content_hash: str = ""
    created: datetime | None = field(default_factory=now_utc)

    def __post_init__(self) -> None:
        self.created = _utc(self.created)

    @classmethod
    def new(cls, name: str, content: str) -> Definition:
        defn = cls(id=random_id(), name=name, content=content, content_hash=sha256_hex(content))
        defn.validate()
        return defn

    def validate(self) -> None:
        if not self.name.strip():
            msg = "definition name cannot be empty"
            raise InvalidInputError(msg)
        if not self.content.strip():
            msg = "definition content cannot be empty"
            raise InvalidInputError(msg)

    def same_content(self, other: Definition | None) -> bool:
        return other is not None and self.content_hash == other.content_hash

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "content": self.content,
            "content_hash": self.content_hash,
        }
        _put_ts(d, "created", self.created)
        return d

    @classmethod
    def from_dict(cls, d: Any) -> Definition:
        d = _as_object(d, "definition")
        return cls(
            id=_str(d, "id", "definition"),
            name=_str(d, "name", "definition", ""),
            content=_str(d, "content", "definition", ""),
            content_hash=_str(d, "content_hash", "definition", ""),
            created=_opt_ts(d, "created"),
        )


@dataclass
class Lemma:
    id: str
    statement: str
    source_node_id: NodeID
    content_hash: str = ""
    created: datetime | None = field(default_factory=now_utc)
    proof: str = ""

    def __post_init__(self) -> None:
        self.source_node_id = _as_node_id(self.source_node_id)
        self.created = _utc(self.created)

    @classmethod
    def new(cls, statement: str, source_node_id: NodeID | str) -> Lemma:
        if not statement.strip():
            msg = "lemma statement cannot be empty"
            raise InvalidInputError(msg)
        return cls(
            id=LEMMA_ID_PREFIX + random_id(),
            statement=statement,
            source_node_id=NodeID.coerce(source_node_id),
            content_hash=sha256_hex(statement),
        )

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "id": self.id,
            "statement": self.statement,
            "source_node_id": str(self.source_node_id),
            "content_hash": self.content_hash,
        }
        _put_ts(d, "created", self.created)
        if self.proof:
            d["proof"] = self.proof
        return d

    @classmethod
    def from_dict(cls, d: Any) -> Lemma:
        d = _as_object(d, "lemma")
        return cls(
            id=_str(d, "id", "lemma"),
            statement=_str(d, "statement", "lemma", ""),
            source_node_id=_node_id(_require(d, "source_node_id", "lemma"), "lemma", "source_node_id"),
            content_hash=_str(d, "content_hash", "lemma", ""),
            created=_opt_ts(d, "created"),
            proof=_str(d, "proof", "lemma", ""),
        )


@dataclass
class External:
    """Citation of a result proved outside this workspace."""

    id: str
    name: str
    source: str
    content_hash: str = ""
    created: datetime | None = field(default_factory=now_utc)
    notes: str = ""

    def __post_init__(self) -> None:
        self.created = _utc(self.created)

    @classmethod
    def new(cls, name: str, source: str, notes: str = "") -> External:
        return cls(id=random_id(), name=name, source=source, content_hash=sha256_hex(source), notes=notes)

    def validate(self) -> None:
        if not self.name.strip():
            msg = "external reference name cannot be empty"
            raise InvalidInputError(msg)
        if not self.source.strip():
            msg = "external reference source cannot be empty"
            raise InvalidInputError(msg)

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "source": self.source,
            "content_hash": self.content_hash,
        }
        _put_ts(d, "created", self.created)
        d["notes"] = self.notes
        return d

    @classmethod
    def from_dict(cls, d: Any) -> External:
        d = _as_object(d, "external")
        return cls(
            id=_str(d, "id", "external"),
            name=_str(d, "name", "external", ""),
            source=_str(d, "source", "external", ""),
            content_hash=_str(d, "content_hash", "external", ""),
            created=_opt_ts(d, "created"),
            notes=_str(d, "notes", "external", ""),
        )


# ---------------------------------------------------------------------------
# PendingDef
# ---------------------------------------------------------------------------

@dataclass
class PendingDef:
    """A node's request for a definition that does not exist yet.

    Stored under .af/pending_defs/ keyed by the requesting node's ID.
    """

    id: str
    term: str
    requested_by: NodeID
    created: datetime | None = field(default_factory=now_utc)
    resolved_by: str = ""
    status: str = PENDING_DEF_PENDING

    def __post_init__(self) -> None:
        self.requested_by = _as_node_id(self.requested_by)
        self.created = _utc(self.created)

    @classmethod
    def new(cls, term: str, requested_by: NodeID | str) -> PendingDef:
        if not term.strip():
            msg = "term cannot be empty or whitespace"
            raise InvalidInputError(msg)
        return cls(id=random_id(), term=term, requested_by=NodeID.coerce(requested_by))

    @property
    def is_pending(self) -> bool:
        return self.status == PENDING_DEF_PENDING

    def resolve(self, definition_id: str) -> None:
        if not definition_id:
            msg = "definition ID cannot be empty"
            raise InvalidInputError(msg)
        if not self.is_pending:
            msg = "cannot resolve: not in pending status"
            raise InvalidInputError(msg)
        self.status = PENDING_DEF_RESOLVED
        self.resolved_by = definition_id

    def cancel(self) -> None:
        if not self.is_pending:
            msg = "cannot cancel: not in pending status"
            raise InvalidInputError(msg)
        self.status = PENDING_DEF_CANCELLED

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "id": self.id,
            "term": self.term,
            "requested_by": str(self.requested_by),
        }
        _put_ts(d, "created", self.created)
        d["resolved_by"] = self.resolved_by
        d["status"] = self.status
        return d

    @classmethod
    def from_dict(cls, d: Any) -> PendingDef:
        d = _as_object(d, "pending def")
        return cls(
            id=_str(d, "id", "pending def", ""),
            term=_str(d, "term", "pending def", ""),
            requested_by=_node_id(_require(d, "requested_by", "pending def"), "pending def", "requested_by"),
            created=_opt_ts(d, "created"),
            resolved_by=_str(d, "resolved_by", "pending def", ""),
            status=_str(d, "status", "pending def", PENDING_DEF_PENDING),
        )


# ---------------------------------------------------------------------------
# Meta
# ---------------------------------------------------------------------------

@dataclass
class Meta:
    """meta.json: what is being proved and by which format version."""

    conjecture: str
    created_at: datetime | None
    version: str

    def __post_init__(self) -> None:
        self.created_at = _utc(self.created_at)

    def validate(self) -> None:
        if not self.conjecture.strip():
            msg = "conjecture cannot be empty"
            raise InvalidInputError(msg)
        if not self.version.strip():
            msg = "version cannot be empty"
            raise InvalidInputError(msg)
        if self.created_at is None:
            msg = "created_at cannot be zero"
            raise InvalidInputError(msg)

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"conjecture": self.conjecture}
        _put_ts(d, "created_at", self.created_at)
        d["version"] = self.version
        return d

    @classmethod
    def from_dict(cls, d: Any) -> Meta:
        d = _as_object(d, "meta")
        return cls(
            conjecture=_str(d, "conjecture", "meta", ""),
            created_at=_opt_ts(d, "created_at"),
            version=_str(d, "version", "meta", ""),
        )
