"""Durable, file-per-entity store for proof workspaces.

Layout:
    proof/
        nodes/1_2_3.json          # proof nodes, content hash verified on read
        assumptions/<id>.json
        defs/<id>.json
        lemmas/<id>.json
        externals/<id>.json
        .af/pending_defs/1.2.json # definition requests, keyed by requesting node
        schema.json               # allowed vocabularies, validated on read
        meta.json                 # conjecture, created_at, version
        ledger/  locks/           # owned by the ledger and lock manager

Every write is write-temp-then-rename, so readers in any process see a whole
old file or a whole new one. There is no in-memory index: the directory is the
index, and last writer wins.
"""

from proofstore.config import StoreConfig, init_config, load_config
from proofstore.errors import (
    ContentHashMismatchError,
    EntityNotFoundError,
    FormatError,
    InvalidInputError,
    InvalidNodeIDError,
    SchemaError,
    StoreError,
)
from proofstore.ids import NodeID
from proofstore.models import Assumption, Definition, External, Lemma, Meta, Node, PendingDef
from proofstore.schema import Schema
from proofstore.store import EntityStore, ProofStore, init_workspace

__all__ = [
    "Assumption",
    "ContentHashMismatchError",
    "Definition",
    "EntityNotFoundError",
    "EntityStore",
    "External",
    "FormatError",
    "InvalidInputError",
    "InvalidNodeIDError",
    "Lemma",
    "Meta",
    "Node",
    "NodeID",
    "PendingDef",
    "ProofStore",
    "Schema",
    "SchemaError",
    "StoreConfig",
    "StoreError",
    "init_config",
    "init_workspace",
    "load_config",
]
