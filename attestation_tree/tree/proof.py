"""Paired-leaf inclusion proofs over an attestation tree.

A proof carries the two leaves, their positions, the tree's leaf count and
the sibling hashes needed to climb to the root. Below the level where the
two paths meet each leaf keeps its own siblings (``first_path`` and
``second_path``); from there up the path is shared and stored once
(``shared_path``). A single-leaf proof is the pair with both keys equal,
so every sibling lands in ``shared_path``.

Verification rebuilds the tree shape from ``leaf_count`` and the same
odd-node promotion rule used by the builder, so it never needs the tree.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterator

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from attestation_tree.tree.foliation import HashAndKey, HashAndKeyTuple
from attestation_tree.tree.hashers import HASH_LENGTH
from attestation_tree.tree.leaf_codec import leaf_hash, node_hash
from attestation_tree.tree.merkle import AttestationTree, level_sizes


class AttestationTreeProofError(LookupError):
    pass


class LeafNotFoundError(AttestationTreeProofError):
    def __init__(self, storage_key: bytes):
        self.storage_key = bytes(storage_key)
        super().__init__(f"no leaf with storage key 0x{self.storage_key.hex()} in attestation tree")


class EmptyTreeError(AttestationTreeProofError):
    def __init__(self):
        super().__init__("cannot prove leaves of an empty attestation tree")


class ProofShapeError(ValueError):
    pass


@dataclass(frozen=True)
class LeafPairProof:
    leaf_count: int
    first: HashAndKey
    second: HashAndKey
    first_position: int
    second_position: int
    first_path: tuple[bytes, ...]
    second_path: tuple[bytes, ...]
    shared_path: tuple[bytes, ...]

    @property
    def leaves(self) -> HashAndKeyTuple:
        return HashAndKeyTuple(first=self.first, second=self.second)

    @property
    def sibling_count(self) -> int:
        return len(self.first_path) + len(self.second_path) + len(self.shared_path)

    def to_dict(self) -> dict:
        return LeafPairProofModel.from_proof(self).model_dump()

    @classmethod
    def from_dict(cls, payload: dict) -> "LeafPairProof":
        return LeafPairProofModel.model_validate(payload).to_proof()


def _hex(value: bytes) -> str:
    return "0x" + bytes(value).hex()


def _unhex(value: str) -> bytes:
    text = value[2:] if value.startswith(("0x", "0X")) else value
    return bytes.fromhex(text)


class HashAndKeyModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    leaf_hash: str
    storage_key: str

    @field_validator("leaf_hash")
    @classmethod
    def _check_hash(cls, value: str) -> str:
        if len(_unhex(value)) != HASH_LENGTH:
            raise ValueError(f"leaf hash must be {HASH_LENGTH} bytes")
        return value

    @field_validator("storage_key")
    @classmethod
    def _check_key(cls, value: str) -> str:
        _unhex(value)
        return value


class LeafPairProofModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    leaf_count: int = Field(gt=0)
    first: HashAndKeyModel
    second: HashAndKeyModel
    first_position: int = Field(ge=0)
    second_position: int = Field(ge=0)
    first_path: list[str] = Field(default_factory=list)
    second_path: list[str] = Field(default_factory=list)
    shared_path: list[str] = Field(default_factory=list)

    @field_validator("first_path", "second_path", "shared_path")
    @classmethod
    def _check_siblings(cls, values: list[str]) -> list[str]:
        for value in values:
            if len(_unhex(value)) != HASH_LENGTH:
                raise ValueError(f"sibling hashes must be {HASH_LENGTH} bytes")
        return values

    @classmethod
    def from_proof(cls, proof: LeafPairProof) -> "LeafPairProofModel":
        return cls(
            leaf_count=proof.leaf_count,
            first=HashAndKeyModel(leaf_hash=_hex(proof.first.leaf_hash), storage_key=_hex(proof.first.storage_key)),
            second=HashAndKeyModel(
                leaf_hash=_hex(proof.second.leaf_hash), storage_key=_hex(proof.second.storage_key)
            ),
            first_position=proof.first_position,
            second_position=proof.second_position,
            first_path=[_hex(h) for h in proof.first_path],
            second_path=[_hex(h) for h in proof.second_path],
            shared_path=[_hex(h) for h in proof.shared_path],
        )

    def to_proof(self) -> LeafPairProof:
        return LeafPairProof(
            leaf_count=self.leaf_count,
            first=HashAndKey(leaf_hash=_unhex(self.first.leaf_hash), storage_key=_unhex(self.first.storage_key)),
            second=HashAndKey(leaf_hash=_unhex(self.second.leaf_hash), storage_key=_unhex(self.second.storage_key)),
            first_position=self.first_position,
            second_position=self.second_position,
            first_path=tuple(_unhex(h) for h in self.first_path),
            second_path=tuple(_unhex(h) for h in self.second_path),
            shared_path=tuple(_unhex(h) for h in self.shared_path),
        )


def _sibling(level: tuple[bytes, ...], index: int) -> bytes | None:
    sibling_index = index ^ 1
    if sibling_index >= len(level):
        return None
    return level[sibling_index]


def prove_leaf_pair(
    tree: AttestationTree,
    first_key: bytes,
    second_key: bytes | None = None,
) -> LeafPairProof:
    if tree.leaf_count == 0:
        raise EmptyTreeError()
    if second_key is None:
        second_key = first_key

    first_position = tree.position_of(first_key)
    if first_position is None:
        raise LeafNotFoundError(first_key)
    second_position = tree.position_of(second_key)
    if second_position is None:
        raise LeafNotFoundError(second_key)

    first_path: list[bytes] = []
    second_path: list[bytes] = []
    shared_path: list[bytes] = []
    a, b = first_position, second_position
    for level in tree.levels[:-1]:
        if a == b:
            sibling = _sibling(level, a)
            if sibling is not None:
                shared_path.append(sibling)
        elif a ^ 1 != b:
            for index, path in ((a, first_path), (b, second_path)):
                sibling = _sibling(level, index)
                if sibling is not None:
                    path.append(sibling)
        # when a and b are each other's sibling neither path needs a hash here
        a //= 2
        b //= 2

    return LeafPairProof(
        leaf_count=tree.leaf_count,
        first=tree.leaf_at(first_position).hash_and_key(),
        second=tree.leaf_at(second_position).hash_and_key(),
        first_position=first_position,
        second_position=second_position,
        first_path=tuple(first_path),
        second_path=tuple(second_path),
        shared_path=tuple(shared_path),
    )


def _climb(current: bytes, index: int, size: int, siblings: Iterator[bytes]) -> bytes:
    if index ^ 1 >= size:
        return current
    sibling = next(siblings, None)
    if sibling is None:
        raise ProofShapeError("proof has too few sibling hashes for its leaf count")
    if index % 2 == 0:
        return node_hash(current, sibling)
    return node_hash(sibling, current)


def recompute_root(proof: LeafPairProof) -> bytes:
    n = proof.leaf_count
    a, b = proof.first_position, proof.second_position
    if n < 1:
        raise ProofShapeError("leaf count must be positive")
    if not (0 <= a < n and 0 <= b < n):
        raise ProofShapeError("leaf position outside the tree")

    same_key = proof.first.storage_key == proof.second.storage_key
    if (a == b) != same_key:
        raise ProofShapeError("leaf positions disagree with leaf keys")
    if a == b and proof.first.leaf_hash != proof.second.leaf_hash:
        raise ProofShapeError("one position cannot hold two leaf hashes")
    if a != b and (a < b) != (proof.first.storage_key < proof.second.storage_key):
        raise ProofShapeError("leaf positions disagree with sorted key order")

    first_siblings = iter(proof.first_path)
    second_siblings = iter(proof.second_path)
    shared_siblings = iter(proof.shared_path)
    first_hash = proof.first.leaf_hash
    second_hash = proof.second.leaf_hash

    for size in level_sizes(n)[:-1]:
        if a == b:
            first_hash = second_hash = _climb(first_hash, a, size, shared_siblings)
        elif a ^ 1 == b:
            left, right = (first_hash, second_hash) if a < b else (second_hash, first_hash)
            first_hash = second_hash = node_hash(left, right)
        else:
            first_hash = _climb(first_hash, a, size, first_siblings)
            second_hash = _climb(second_hash, b, size, second_siblings)
        a //= 2
        b //= 2

    for leftover in (first_siblings, second_siblings, shared_siblings):
        if next(leftover, None) is not None:
            raise ProofShapeError("proof has more sibling hashes than the tree height allows")
    if first_hash != second_hash:
        raise ProofShapeError("the two leaf paths recompute different roots")
    return first_hash


def _claimed_root(root: bytes | str) -> bytes | None:
    if isinstance(root, str):
        try:
            return _unhex(root)
        except ValueError:
            return None
    if isinstance(root, (bytes, bytearray, memoryview)):
        return bytes(root)
    return None


def verify_leaf_pair(
    proof: LeafPairProof | dict[str, Any],
    root: bytes | str,
    values: tuple[bytes, bytes] | None = None,
) -> bool:
    """Check that both leaves of ``proof`` climb to ``root``.

    Without ``values`` only the leaf hashes are proven: the storage keys named
    in the proof are bound to the tree only through the leaf hash, so a caller
    that trusts a key must pass the leaf values as well.
    """
    expected = _claimed_root(root)
    if expected is None:
        return False
    if isinstance(proof, dict):
        try:
            proof = LeafPairProof.from_dict(proof)
        except (ValidationError, ValueError):
            return False
    if not isinstance(proof, LeafPairProof):
        return False

    if values is not None:
        first_value, second_value = values
        if leaf_hash(proof.first.storage_key, first_value) != proof.first.leaf_hash:
            return False
        if leaf_hash(proof.second.storage_key, second_value) != proof.second.leaf_hash:
            return False

    try:
        recomputed = recompute_root(proof)
    except ProofShapeError:
        return False
    return recomputed == expected
