"""Tests for the entity stores."""

from __future__ import annotations

import json
import os
from datetime import UTC, datetime
from pathlib import Path

import pytest

from proofstore import jsonio, store as st
from proofstore.errors import (
    ContentHashMismatchError,
    EntityNotFoundError,
    FormatError,
    InvalidInputError,
    InvalidNodeIDError,
    SchemaError,
)
from proofstore.ids import NodeID
from proofstore.models import Assumption, Definition, External, Lemma, Meta, Node, PendingDef
from proofstore.schema import Schema
from proofstore.store import ProofStore, init_workspace

from conftest import make_node, tmp_files


def _flat_entities():
    return [
        ("assumptions", Assumption.new("Every set can be well-ordered")),
        ("defs", Definition.new("even", "n = 2k for some k")),
        ("lemmas", Lemma.new("n^2 >= n", "1.2")),
        ("externals", External.new("Zorn", "https://example.org/zorn")),
    ]


# =============================================================================
# ROUND TRIP
# =============================================================================

class TestRoundTrip:
    def test_node(self, base):
        node = make_node("1.2.3", context=["def-1"], dependencies=[NodeID.parse("1.2.1")])
        path = st.write_node(base, node)
        assert path == base / "nodes" / "1_2_3.json"
        assert st.read_node(base, "1.2.3") == node
        assert st.read_node(base, NodeID.parse("1.2.3")) == node

    @pytest.mark.parametrize("kind", ["assumptions", "defs", "lemmas", "externals"])
    def test_flat_entities(self, store, kind):
        entity = dict(_flat_entities())[kind]
        bound = store.by_name(kind)
        path = bound.write(entity)
        assert path == bound.directory / f"{entity.id}.json"
        assert bound.read(entity.id) == entity

    def test_pending_def(self, base):
        pd = PendingDef.new("group", "1.2")
        path = st.write_pending_def(base, pd)
        assert path == base / ".af" / "pending_defs" / "1.2.json"
        assert st.read_pending_def(base, "1.2") == pd

    def test_string_node_ids_round_trip(self, base):
        template = make_node("1.2", dependencies=[NodeID.parse("1.1")])
        node = Node(
            id="1.2",
            type=template.type,
            statement=template.statement,
            inference=template.inference,
            dependencies=["1.1"],
            content_hash=template.content_hash,
            created=datetime(2026, 1, 2, 3, 4, 5),
        )
        st.write_node(base, node)
        assert st.read_node(base, "1.2") == node

        lem = Lemma(id="LEM-1", statement="s", source_node_id="1.3")
        st.write_lemma(base, lem)
        assert st.read_lemma(base, "LEM-1") == lem

        pd = PendingDef(id="p", term="ring", requested_by="1.4")
        st.write_pending_def(base, pd)
        assert st.read_pending_def(base, "1.4") == pd

    def test_unicode_and_large_statement(self, base):
        statement = "∀ε>0 ∃δ>0 — «über» 数学 🧮 " + "x" * 100_000
        node = make_node("1", statement=statement)
        st.write_node(base, node)
        got = st.read_node(base, "1")
        assert got.statement == statement
        assert got.content_hash == node.content_hash

    def test_files_are_readable_json(self, base):
        node = make_node("1.4")
        st.write_node(base, node)
        doc = json.loads((base / "nodes" / "1_4.json").read_text(encoding="utf-8"))
        assert doc["id"] == "1.4"
        assert doc["content_hash"] == node.content_hash

    def test_overwrite_is_full_replace(self, base):
        a = Assumption.new("first", justification="because")
        st.write_assumption(base, a)
        replacement = Assumption(id=a.id, statement="second", content_hash="h")
        st.write_assumption(base, replacement)
        got = st.read_assumption(base, a.id)
        assert got.statement == "second"
        assert got.justification == ""

    def test_write_creates_missing_directory(self, tmp_path):
        base = tmp_path / "fresh"
        st.write_definition(base, Definition.new("x", "y"))
        assert (base / "defs").is_dir()


# =============================================================================
# WRITE VALIDATION
# =============================================================================

class TestWriteValidation:
    @pytest.mark.parametrize("bad_base", ["", "  ", "a\x00b"])
    def test_bad_base_path(self, bad_base):
        with pytest.raises(InvalidInputError):
            st.write_node(bad_base, make_node())

    def test_none_entity(self, base):
        with pytest.raises(InvalidInputError):
            st.write_assumption(base, None)

    def test_wrong_entity_type(self, base):
        with pytest.raises(InvalidInputError):
            st.write_definition(base, Assumption.new("x"))

    @pytest.mark.parametrize("bad_id", ["", "   "])
    def test_blank_id(self, base, bad_id):
        d = Definition.new("x", "y")
        d.id = bad_id
        with pytest.raises(InvalidInputError):
            st.write_definition(base, d)

    @pytest.mark.parametrize("hostile", ["../escape", "a/b", "a\\b", "x%2fy", ".."])
    def test_hostile_id_is_hard_error(self, base, hostile):
        e = External.new("n", "s")
        e.id = hostile
        with pytest.raises(InvalidInputError):
            st.write_external(base, e)
        assert not (base.parent / "escape.json").exists()
        assert os.listdir(base / "externals") == []

    @pytest.mark.parametrize(
        ("kind", "entity"),
        [
            ("externals", External.new("", "")),
            ("assumptions", Assumption.new("   ")),
            ("defs", Definition(id="d1", name="", content="x")),
        ],
    )
    def test_blank_content_rejected(self, store, kind, entity):
        bound = store.by_name(kind)
        with pytest.raises(InvalidInputError):
            bound.write(entity)
        assert bound.list() == []

    def test_node_with_stale_hash_rejected(self, base):
        node = make_node("1.3")
        node.content_hash = ""
        with pytest.raises(InvalidInputError, match="content_hash"):
            st.write_node(base, node)
        node.statement = "changed"
        node.content_hash = make_node("1.3").content_hash
        with pytest.raises(InvalidInputError):
            st.write_node(base, node)
        assert st.list_nodes(base) == []
        node.refresh_content_hash()
        st.write_node(base, node)
        assert st.read_node(base, "1.3") == node

    def test_invalid_node_type_rejected(self, base):
        node = make_node("1.5")
        node.type = "lemma"
        node.refresh_content_hash()
        with pytest.raises(InvalidInputError):
            st.write_node(base, node)
        assert not (base / "nodes" / "1_5.json").exists()

    def test_base_is_a_file(self, tmp_path):
        f = tmp_path / "file"
        f.write_text("x")
        with pytest.raises(InvalidInputError, match="not a directory"):
            st.write_assumption(f, Assumption.new("x"))

    def test_meta_validated(self, base):
        with pytest.raises(InvalidInputError):
            st.write_meta(base, Meta("", datetime.now(UTC), "1.0"))
        with pytest.raises(InvalidInputError):
            st.write_meta(base, Meta("x", None, "1.0"))
        assert not (base / "meta.json").exists()

    def test_node_ids_are_parsed(self, base):
        with pytest.raises(InvalidNodeIDError):
            st.read_node(base, "2.1")


# =============================================================================
# CORRUPTION
# =============================================================================

class TestCorruption:
    def test_tampered_hash_detected(self, base):
        st.write_node(base, make_node("1.2"))
        path = base / "nodes" / "1_2.json"
        doc = json.loads(path.read_text())
        doc["content_hash"] = "0" * 64
        path.write_text(json.dumps(doc))
        with pytest.raises(ContentHashMismatchError) as excinfo:
            st.read_node(base, "1.2")
        assert excinfo.value.node_id == "1.2"
        assert excinfo.value.stored == "0" * 64

    def test_tampered_statement_detected(self, base):
        st.write_node(base, make_node("1"))
        path = base / "nodes" / "1.json"
        doc = json.loads(path.read_text())
        doc["statement"] = "1 = 2"
        path.write_text(json.dumps(doc))
        with pytest.raises(ContentHashMismatchError):
            st.read_node(base, "1")

    def test_hash_mismatch_is_distinct_from_garbage(self, base):
        (base / "nodes" / "1.json").write_text("{garbage")
        with pytest.raises(FormatError) as excinfo:
            st.read_node(base, "1")
        assert not isinstance(excinfo.value, ContentHashMismatchError)

    @pytest.mark.parametrize("content", ["", "[]", "42", '{"id": "1"}'])
    def test_unusable_documents(self, base, content):
        (base / "defs" / "d.json").write_text(content)
        with pytest.raises(FormatError):
            st.read_definition(base, "d")

    def test_other_kinds_do_not_verify_hash(self, base):
        a = Assumption.new("x")
        a.content_hash = "not-a-hash"
        st.write_assumption(base, a)
        assert st.read_assumption(base, a.id).content_hash == "not-a-hash"

    def test_identity_must_match_filename(self, base):
        st.write_node(base, make_node("1.2"))
        os.rename(base / "nodes" / "1_2.json", base / "nodes" / "1_3.json")
        with pytest.raises(FormatError, match="declares id"):
            st.read_node(base, "1.3")

    def test_schema_with_unknown_name_fails_read(self, base):
        doc = Schema.default().to_dict()
        doc["inference_types"].append("wishful_thinking")
        (base / "schema.json").write_text(json.dumps(doc))
        with pytest.raises(SchemaError):
            st.read_schema(base)

    def test_schema_directory(self, base):
        (base / "schema.json").mkdir()
        with pytest.raises(FormatError):
            st.read_schema(base)


# =============================================================================
# TRAVERSAL
# =============================================================================

HOSTILE = ["../x", "..\\x", "a/../../b", "id%2f..%2fetc%2fpasswd", "..", "x/"]


class TestTraversal:
    @pytest.fixture
    def bait(self, base: Path) -> Path:
        """A valid definition file planted outside defs/."""
        target = base / "x.json"
        target.write_text(json.dumps(Definition.new("bait", "bait").to_dict()))
        (base.parent / "x.json").write_text("{}")
        return target

    @pytest.mark.parametrize("hostile", HOSTILE)
    @pytest.mark.parametrize(
        ("read", "delete"),
        [
            (st.read_definition, st.delete_definition),
            (st.read_assumption, st.delete_assumption),
            (st.read_lemma, st.delete_lemma),
            (st.read_external, st.delete_external),
        ],
    )
    def test_flat_stores(self, base, bait, hostile, read, delete):
        with pytest.raises(EntityNotFoundError):
            read(base, hostile)
        with pytest.raises(EntityNotFoundError):
            delete(base, hostile)
        assert bait.exists()
        assert (base.parent / "x.json").exists()

    @pytest.mark.parametrize("hostile", HOSTILE)
    def test_node_store(self, base, bait, hostile):
        with pytest.raises((EntityNotFoundError, InvalidNodeIDError)):
            st.read_node(base, hostile)
        with pytest.raises((EntityNotFoundError, InvalidNodeIDError)):
            st.delete_node(base, hostile)
        assert bait.exists()

    @pytest.mark.parametrize("hostile", HOSTILE)
    def test_pending_def_delete_is_silent_but_harmless(self, base, bait, hostile):
        st.delete_pending_def(base, hostile)
        assert bait.exists()

    def test_rejection_looks_like_missing_entity(self, base):
        with pytest.raises(EntityNotFoundError) as hostile:
            st.read_definition(base, "../x")
        with pytest.raises(EntityNotFoundError) as missing:
            st.read_definition(base, "nope")
        assert type(hostile.value) is type(missing.value)


# =============================================================================
# LISTING
# =============================================================================

class TestListing:
    def test_node_listing_hygiene(self, base):
        st.write_node(base, make_node("1.2"))
        nodes = base / "nodes"
        (nodes / ".hidden.json").write_text("{}")
        (nodes / "notes.txt").write_text("x")
        (nodes / "1_3.json").mkdir()
        (nodes / "2_1.json").write_text("{}")
        (nodes / "1_0.json").write_text("{}")
        (nodes / "garbage.json").write_text("{}")
        assert st.list_nodes(base) == [NodeID.parse("1.2")]

    def test_flat_listing_hygiene(self, base):
        d = Definition.new("a", "b")
        st.write_definition(base, d)
        defs = base / "defs"
        (defs / ".hidden.json").write_text("{}")
        (defs / "README").write_text("x")
        (defs / "sub.json").mkdir()
        assert st.list_definitions(base) == [d.id]

    def test_stray_temp_files_not_listed(self, base):
        st.write_node(base, make_node("1"))
        (base / "nodes" / ".1_1.json.abc.tmp").write_text("{")
        (base / "nodes" / "1_1.json.tmp").write_text("{")
        assert st.list_nodes(base) == [NodeID.root()]

    def test_sorted_numerically(self, base):
        for s in ["1.10", "1.2", "1", "1.2.1"]:
            st.write_node(base, make_node(s))
        assert [str(i) for i in st.list_nodes(base)] == ["1", "1.2", "1.2.1", "1.10"]

    @pytest.mark.parametrize(
        "lister", [st.list_nodes, st.list_assumptions, st.list_definitions, st.list_lemmas, st.list_externals]
    )
    def test_empty_directory_is_empty_list(self, base, lister):
        assert lister(base) == []

    @pytest.mark.parametrize(
        "lister", [st.list_nodes, st.list_assumptions, st.list_definitions, st.list_lemmas, st.list_externals]
    )
    def test_missing_directory_is_error(self, tmp_path, lister):
        with pytest.raises(EntityNotFoundError):
            lister(tmp_path)

    def test_missing_pending_def_directory_is_empty(self, tmp_path):
        assert st.list_pending_defs(tmp_path) == []

    def test_pending_def_listing(self, base):
        for requester in ["1.3", "1.1"]:
            st.write_pending_def(base, PendingDef.new("term", requester))
        (base / ".af" / "pending_defs" / "1_2.json").write_text("{}")
        assert st.list_pending_defs(base) == [NodeID.parse("1.1"), NodeID.parse("1.3")]


# =============================================================================
# DELETE
# =============================================================================

class TestDelete:
    def test_delete_then_read(self, base):
        st.write_node(base, make_node("1.2"))
        st.delete_node(base, "1.2")
        with pytest.raises(EntityNotFoundError):
            st.read_node(base, "1.2")

    @pytest.mark.parametrize(
        ("delete", "entity_id"),
        [
            (st.delete_node, "1.9"),
            (st.delete_assumption, "nope"),
            (st.delete_definition, "nope"),
            (st.delete_lemma, "nope"),
            (st.delete_external, "nope"),
        ],
    )
    def test_missing_is_error_every_time(self, base, delete, entity_id):
        for _ in range(2):
            with pytest.raises(EntityNotFoundError):
                delete(base, entity_id)

    def test_pending_def_delete_idempotent(self, base, tmp_path):
        st.delete_pending_def(base, "1.5")
        st.delete_pending_def(base, "1.5")
        st.delete_pending_def(tmp_path / "never-initialised", "1.5")

    def test_pending_def_delete_removes(self, base):
        st.write_pending_def(base, PendingDef.new("t", "1.5"))
        st.delete_pending_def(base, NodeID.parse("1.5"))
        assert st.list_pending_defs(base) == []

    def test_blank_id_is_invalid_even_for_pending_defs(self, base):
        with pytest.raises(InvalidInputError):
            st.delete_pending_def(base, " ")


# =============================================================================
# ATOMICITY
# =============================================================================

class TestAtomicity:
    def test_failed_rename_keeps_previous_entity(self, base, monkeypatch):
        original = make_node("1.2", statement="original")
        st.write_node(base, original)

        def blocked(src, dst):
            raise PermissionError(13, "Permission denied", dst)

        monkeypatch.setattr(jsonio.os, "replace", blocked)
        with pytest.raises(PermissionError):
            st.write_node(base, make_node("1.2", statement="replacement"))
        monkeypatch.undo()

        assert st.read_node(base, "1.2") == original
        assert tmp_files(base) == []

    def test_occupied_by_directory(self, base):
        blocker = base / "nodes" / "1_7.json"
        blocker.mkdir()
        (blocker / "keep").write_text("x")
        with pytest.raises(OSError):
            st.write_node(base, make_node("1.7"))
        assert (blocker / "keep").exists()
        assert tmp_files(base) == []

    def test_batch_failure_leaves_no_gap(self, base, monkeypatch):
        nodes = [make_node(f"1.{i}", statement=f"step {i}") for i in range(1, 6)]
        real_replace = os.replace

        def fail_on_third(src, dst):
            if os.path.basename(dst) == "1_3.json":
                raise OSError(28, "No space left on device")
            real_replace(src, dst)

        monkeypatch.setattr(jsonio.os, "replace", fail_on_third)
        written = []
        with pytest.raises(OSError):
            for n in nodes:
                st.write_node(base, n)
                written.append(n)
        monkeypatch.undo()

        assert written == nodes[:2]
        assert st.list_nodes(base) == [n.id for n in nodes[:2]]
        for n in nodes[:2]:
            assert st.read_node(base, n.id) == n
        for n in nodes[2:]:
            with pytest.raises(EntityNotFoundError):
                st.read_node(base, n.id)
        assert tmp_files(base) == []

    def test_unserializable_entity_leaves_nothing(self, base):
        a = Assumption.new("x")
        a.statement = "\ud800"  # lone surrogate cannot be UTF-8 encoded
        with pytest.raises(ValueError):
            st.write_assumption(base, a)
        assert os.listdir(base / "assumptions") == []


# =============================================================================
# SINGLETONS
# =============================================================================

class TestSingletons:
    def test_schema_round_trip(self, base):
        st.write_schema(base, Schema.default())
        s = st.read_schema(base)
        assert s == Schema.default()
        assert s.has_node_type("claim")

    def test_meta_round_trip(self, base):
        m = Meta("Every even n > 2 is a sum of two primes", datetime(2026, 5, 1, tzinfo=UTC), "1.0")
        path = st.write_meta(base, m)
        assert path == base / "meta.json"
        assert st.read_meta(base) == m

    def test_meta_naive_timestamp_round_trips(self, base):
        m = Meta("conj", datetime(2026, 5, 1, 12, 0), "1.0")
        assert m.created_at.tzinfo is UTC
        st.write_meta(base, m)
        got = st.read_meta(base)
        assert got == m
        assert got.created_at == datetime(2026, 5, 1, 12, 0, tzinfo=UTC)

    def test_missing(self, base):
        with pytest.raises(EntityNotFoundError):
            st.read_schema(base)
        with pytest.raises(EntityNotFoundError):
            st.read_meta(base)

    def test_wrong_type(self, base):
        with pytest.raises(InvalidInputError):
            st.write_schema(base, {"version": "1.0"})


# =============================================================================
# FACADE / WORKSPACE
# =============================================================================

class TestProofStore:
    def test_init_creates_layout(self, tmp_path):
        root = tmp_path / "p"
        init_workspace(root)
        for name in ["ledger", "nodes", "defs", "assumptions", "externals", "lemmas", "locks"]:
            assert (root / name).is_dir()

    def test_init_is_idempotent(self, base):
        st.write_node(base, make_node())
        init_workspace(base)
        assert st.list_nodes(base) == [NodeID.root()]

    def test_bound_stores(self, store):
        node = make_node("1.1")
        store.nodes.write(node)
        assert store.nodes.exists("1.1")
        assert not store.nodes.exists("1.2")
        assert not store.definitions.exists("../x")
        assert store.nodes.list() == [node.id]
        store.nodes.delete("1.1")
        assert store.nodes.list() == []

    def test_by_name(self, store):
        assert store.by_name("defs") is store.definitions
        assert store.by_name("pending-defs") is store.pending_defs
        with pytest.raises(InvalidInputError):
            store.by_name("ledger")

    def test_no_state_between_instances(self, base):
        a = ProofStore(base)
        b = ProofStore(base)
        a.nodes.write(make_node("1.3"))
        assert b.nodes.read("1.3").id == NodeID.parse("1.3")


# =============================================================================
# SYMLINK POLICY
# =============================================================================

class TestSymlinkPolicy:
    @pytest.fixture
    def outside(self, tmp_path: Path) -> Path:
        d = tmp_path / "outside"
        d.mkdir()
        return d

    def test_followed_by_default(self, base, outside):
        d = Definition.new("a", "b")
        (outside / f"{d.id}.json").write_text(json.dumps(d.to_dict()))
        (base / "defs" / f"{d.id}.json").symlink_to(outside / f"{d.id}.json")
        assert ProofStore(base).definitions.read(d.id) == d

    def test_refused_when_configured(self, base, outside):
        d = Definition.new("a", "b")
        (outside / f"{d.id}.json").write_text(json.dumps(d.to_dict()))
        (base / "defs" / f"{d.id}.json").symlink_to(outside / f"{d.id}.json")
        strict = ProofStore(base, follow_symlinks=False)
        with pytest.raises(EntityNotFoundError):
            strict.definitions.read(d.id)
        assert strict.definitions.list() == []
        with pytest.raises(InvalidInputError):
            strict.definitions.write(d)
        assert json.loads((outside / f"{d.id}.json").read_text())["name"] == "a"

    def test_symlinked_entity_directory_refused(self, tmp_path, outside):
        base = tmp_path / "proof"
        base.mkdir()
        (base / "lemmas").symlink_to(outside, target_is_directory=True)
        lem = Lemma.new("x", "1")
        strict = ProofStore(base, follow_symlinks=False)
        with pytest.raises(InvalidInputError):
            strict.lemmas.write(lem)
        with pytest.raises(EntityNotFoundError):
            strict.lemmas.list()
        assert list(outside.iterdir()) == []
        ProofStore(base).lemmas.write(lem)
        assert (outside / f"{lem.id}.json").exists()
