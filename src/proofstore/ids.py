"""Hierarchical node identifiers: "1", "1.2", "1.2.3", ...

The root is always 1; each child appends a positive integer. On disk the dots
become underscores (1.2.3 -> nodes/1_2_3.json). from_filename() reverses that
and returns None for anything that does not re-parse, so a stray file in
nodes/ is skipped rather than breaking a listing.
"""

from __future__ import annotations

import functools

from proofstore.errors import InvalidNodeIDError
from proofstore.paths import JSON_SUFFIX

_SEP = "."
_FILE_SEP = "_"
_DIGITS = frozenset("0123456789")


@functools.total_ordering
class NodeID:
    """Immutable dotted path into the proof tree."""

    __slots__ = ("_parts",)

    def __init__(self, parts: tuple[int, ...] | list[int] = (1,)) -> None:
        parts = tuple(parts)
        if not parts:
            msg = "node ID cannot be empty"
            raise InvalidNodeIDError(msg)
        if parts[0] != 1:
            msg = f"node ID must start with root 1, got {parts[0]}"
            raise InvalidNodeIDError(msg)
        for p in parts:
            if type(p) is not int or p < 1:
                msg = f"node ID segments must be positive integers, got {p!r}"
                raise InvalidNodeIDError(msg)
        self._parts = parts

    @classmethod
    def root(cls) -> NodeID:
        return cls((1,))

    @classmethod
    def parse(cls, text: str) -> NodeID:
        if not isinstance(text, str) or text == "":
            msg = "node ID cannot be empty"
            raise InvalidNodeIDError(msg)
        parts: list[int] = []
        for seg in text.split(_SEP):
            # str.isdigit() accepts superscripts and other Unicode digits
            if not seg or not set(seg) <= _DIGITS:
                msg = f"invalid node ID segment {seg!r} in {text!r}"
                raise InvalidNodeIDError(msg)
            parts.append(int(seg))
        return cls(parts)

    @classmethod
    def coerce(cls, value: NodeID | str) -> NodeID:
        return value if isinstance(value, NodeID) else cls.parse(value)

    @classmethod
    def from_filename(cls, name: str) -> NodeID | None:
        """1_2_3.json -> NodeID(1.2.3); None if name is not a valid node filename."""
        if not name.endswith(JSON_SUFFIX):
            return None
        stem = name[: -len(JSON_SUFFIX)]
        try:
            node_id = cls.parse(stem.replace(_FILE_SEP, _SEP))
        except InvalidNodeIDError:
            return None
        # "01_2.json" parses as 1.2 but is not the file 1.2 would be written to
        if node_id.to_filename() != name:
            return None
        return node_id

    def to_filename(self) -> str:
        return str(self).replace(_SEP, _FILE_SEP) + JSON_SUFFIX

    @property
    def parts(self) -> tuple[int, ...]:
        return self._parts

    @property
    def is_root(self) -> bool:
        return len(self._parts) == 1

    @property
    def depth(self) -> int:
        return len(self._parts)

    def parent(self) -> NodeID | None:
        if self.is_root:
            return None
        return NodeID(self._parts[:-1])

    def child(self, n: int) -> NodeID:
        if type(n) is not int or n < 1:
            msg = f"child number must be a positive integer, got {n!r}"
            raise InvalidNodeIDError(msg)
        return NodeID((*self._parts, n))

    def is_ancestor_of(self, other: NodeID) -> bool:
        """Strict ancestor: a node is not its own ancestor."""
        return len(self._parts) < len(other._parts) and other._parts[: len(self._parts)] == self._parts

    def common_ancestor(self, other: NodeID) -> NodeID:
        shared: list[int] = []
        for a, b in zip(self._parts, other._parts, strict=False):
            if a != b:
                break
            shared.append(a)
        return NodeID(shared)

    def __str__(self) -> str:
        return _SEP.join(str(p) for p in self._parts)

    def __repr__(self) -> str:
        return f"NodeID({str(self)!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, NodeID):
            return NotImplemented
        return self._parts == other._parts

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, NodeID):
            return NotImplemented
        return self._parts < other._parts

    def __hash__(self) -> int:
        return hash(self._parts)
