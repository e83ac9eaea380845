"""Proof schema: the allowed vocabularies for nodes and challenges.

schema.json holds one object:

    {
      "version": "1.0",
      "inference_types": ["modus_ponens", ...],
      "node_types": ["claim", ...],
      "challenge_targets": ["statement", ...],
      "workflow_states": ["available", ...],
      "epistemic_states": ["pending", ...]
    }

A workspace may narrow a vocabulary but never name something outside it.
Schema.load() enforces that and rebuilds the lookup sets, so a schema that
parses but mentions an unknown name fails to load.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from proofstore.errors import SchemaError

SCHEMA_VERSION = "1.0"

# Node types
NODE_CLAIM = "claim"
NODE_LOCAL_ASSUME = "local_assume"
NODE_LOCAL_DISCHARGE = "local_discharge"
NODE_CASE = "case"
NODE_QED = "qed"
NODE_TYPES = (NODE_CLAIM, NODE_LOCAL_ASSUME, NODE_LOCAL_DISCHARGE, NODE_CASE, NODE_QED)

# Inference types
INFERENCE_TYPES = (
    "modus_ponens",
    "modus_tollens",
    "universal_instantiation",
    "existential_instantiation",
    "universal_generalization",
    "existential_generalization",
    "by_definition",
    "assumption",
    "local_assume",
    "local_discharge",
    "contradiction",
)

# Workflow states
WORKFLOW_AVAILABLE = "available"
WORKFLOW_CLAIMED = "claimed"
WORKFLOW_BLOCKED = "blocked"
WORKFLOW_STATES = (WORKFLOW_AVAILABLE, WORKFLOW_CLAIMED, WORKFLOW_BLOCKED)

# Epistemic states
EPISTEMIC_PENDING = "pending"
EPISTEMIC_VALIDATED = "validated"
EPISTEMIC_ADMITTED = "admitted"
EPISTEMIC_REFUTED = "refuted"
EPISTEMIC_ARCHIVED = "archived"
EPISTEMIC_NEEDS_REFINEMENT = "needs_refinement"
EPISTEMIC_STATES = (
    EPISTEMIC_PENDING,
    EPISTEMIC_VALIDATED,
    EPISTEMIC_ADMITTED,
    EPISTEMIC_REFUTED,
    EPISTEMIC_ARCHIVED,
    EPISTEMIC_NEEDS_REFINEMENT,
)

CHALLENGE_TARGETS = (
    "statement",
    "inference",
    "context",
    "dependencies",
    "scope",
    "gap",
    "type_error",
    "domain",
    "completeness",
)

# (json key, known vocabulary, label used in errors)
_CATEGORIES: tuple[tuple[str, tuple[str, ...], str], ...] = (
    ("inference_types", INFERENCE_TYPES, "inference type"),
    ("node_types", NODE_TYPES, "node type"),
    ("challenge_targets", CHALLENGE_TARGETS, "challenge target"),
    ("workflow_states", WORKFLOW_STATES, "workflow state"),
    ("epistemic_states", EPISTEMIC_STATES, "epistemic state"),
)


@dataclass
class Schema:
    version: str = SCHEMA_VERSION
    inference_types: list[str] = field(default_factory=list)
    node_types: list[str] = field(default_factory=list)
    challenge_targets: list[str] = field(default_factory=list)
    workflow_states: list[str] = field(default_factory=list)
    epistemic_states: list[str] = field(default_factory=list)

    # Derived lookup sets, rebuilt by build_caches(); never serialized.
    _lookup: dict[str, frozenset[str]] = field(default_factory=dict, init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        self.build_caches()

    @classmethod
    def default(cls) -> Schema:
        """The full vocabulary, minus needs_refinement (opt-in per workspace)."""
        return cls(
            version=SCHEMA_VERSION,
            inference_types=list(INFERENCE_TYPES),
            node_types=list(NODE_TYPES),
            challenge_targets=list(CHALLENGE_TARGETS),
            workflow_states=list(WORKFLOW_STATES),
            epistemic_states=[s for s in EPISTEMIC_STATES if s != EPISTEMIC_NEEDS_REFINEMENT],
        )

    @classmethod
    def load(cls, data: Any) -> Schema:
        """Build a schema from a decoded schema.json document and validate it."""
        if not isinstance(data, dict):
            msg = "schema must be a JSON object"
            raise SchemaError(msg)
        version = data.get("version", "")
        if not isinstance(version, str):
            msg = "version must be a string"
            raise SchemaError(msg)
        lists: dict[str, list[str]] = {}
        for key, _known, _label in _CATEGORIES:
            value = data.get(key, [])
            if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
                msg = f"{key} must be a list of strings"
                raise SchemaError(msg)
            lists[key] = list(value)
        schema = cls(version=version, **lists)
        schema.validate()
        return schema

    def validate(self) -> None:
        if not self.version:
            msg = "version is required"
            raise SchemaError(msg)
        for key, known, label in _CATEGORIES:
            values: list[str] = getattr(self, key)
            if not values:
                msg = f"{key} cannot be empty"
                raise SchemaError(msg)
            for v in values:
                if v not in known:
                    msg = f"invalid {label}: {v!r}"
                    raise SchemaError(msg)

    def build_caches(self) -> None:
        self._lookup = {key: frozenset(getattr(self, key)) for key, _, _ in _CATEGORIES}

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "inference_types": list(self.inference_types),
            "node_types": list(self.node_types),
            "challenge_targets": list(self.challenge_targets),
            "workflow_states": list(self.workflow_states),
            "epistemic_states": list(self.epistemic_states),
        }

    def clone(self) -> Schema:
        return Schema(**self.to_dict())

    def has_inference_type(self, t: str) -> bool:
        return t in self._lookup["inference_types"]

    def has_node_type(self, t: str) -> bool:
        return t in self._lookup["node_types"]

    def has_challenge_target(self, t: str) -> bool:
        return t in self._lookup["challenge_targets"]

    def has_workflow_state(self, s: str) -> bool:
        return s in self._lookup["workflow_states"]

    def has_epistemic_state(self, s: str) -> bool:
        return s in self._lookup["epistemic_states"]
