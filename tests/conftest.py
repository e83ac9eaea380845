"""Shared fixtures for proofstore tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from proofstore.ids import NodeID
from proofstore.models import Node
from proofstore.store import ProofStore, init_workspace


def make_node(node_id: str = "1", statement: str = "For all n, n + 0 = n", **kwargs) -> Node:
    return Node.new(NodeID.parse(node_id), "claim", statement, "modus_ponens", **kwargs)


def tmp_files(directory: Path) -> list[Path]:
    return sorted(p for p in directory.rglob("*") if p.name.endswith(".tmp"))


@pytest.fixture
def base(tmp_path: Path) -> Path:
    """An initialised, empty proof workspace."""
    root = tmp_path / "proof"
    init_workspace(root)
    return root


@pytest.fixture
def store(base: Path) -> ProofStore:
    return ProofStore(base)
