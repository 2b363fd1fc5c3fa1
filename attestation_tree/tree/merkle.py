from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable

from attestation_tree.tree.foliation import FoliationKind, Leaf, PrefixFoliation
from attestation_tree.tree.leaf_codec import DecodeStorageError, node_hash

logger = logging.getLogger(__name__)


class AttestationTreeError(ValueError):
    pass


class NoLeavesError(AttestationTreeError):
    def __init__(self):
        super().__init__("attestation tree has no leaves")


class DuplicateKeyError(AttestationTreeError):
    def __init__(self, storage_key: bytes):
        self.storage_key = bytes(storage_key)
        super().__init__(f"duplicate leaf storage key: 0x{self.storage_key.hex()}")


class FoliationError(AttestationTreeError):
    def __init__(self, kind: FoliationKind, prefix: bytes, cause: DecodeStorageError):
        self.kind = kind
        self.prefix = bytes(prefix)
        self.cause = cause
        super().__init__(f"failed to foliate {kind.value} prefix 0x{self.prefix.hex()}: {cause}")


def next_level(nodes: list[bytes]) -> list[bytes]:
    paired = [node_hash(nodes[i], nodes[i + 1]) for i in range(0, len(nodes) - 1, 2)]
    if len(nodes) % 2 == 1:
        # the unpaired node moves up as-is, never hashed with itself
        paired.append(nodes[-1])
    return paired


def level_sizes(leaf_count: int) -> list[int]:
    if leaf_count < 1:
        raise ValueError("leaf count must be positive")
    sizes = [leaf_count]
    while sizes[-1] > 1:
        sizes.append((sizes[-1] + 1) // 2)
    return sizes


@dataclass(frozen=True)
class AttestationTree:
    leaves: tuple[Leaf, ...]
    levels: tuple[tuple[bytes, ...], ...]
    _positions: dict[bytes, int] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_positions", {leaf.storage_key: i for i, leaf in enumerate(self.leaves)})

    @property
    def root(self) -> bytes:
        return self.levels[-1][0]

    @property
    def root_hex(self) -> str:
        return "0x" + self.root.hex()

    @property
    def leaf_count(self) -> int:
        return len(self.leaves)

    @property
    def height(self) -> int:
        return len(self.levels) - 1

    def position_of(self, storage_key: bytes) -> int | None:
        return self._positions.get(bytes(storage_key))

    def leaf_at(self, position: int) -> Leaf:
        return self.leaves[position]

    def __contains__(self, storage_key: object) -> bool:
        return isinstance(storage_key, (bytes, bytearray)) and bytes(storage_key) in self._positions

    def __len__(self) -> int:
        return len(self.leaves)


def build_attestation_tree(leaves: Iterable[Leaf]) -> AttestationTree:
    ordered = sorted(leaves, key=lambda leaf: leaf.storage_key)
    if not ordered:
        raise NoLeavesError()
    for previous, current in zip(ordered, ordered[1:]):
        if previous.storage_key == current.storage_key:
            raise DuplicateKeyError(current.storage_key)

    current_level = [leaf.leaf_hash for leaf in ordered]
    levels = [tuple(current_level)]
    while len(current_level) > 1:
        current_level = next_level(current_level)
        levels.append(tuple(current_level))

    logger.debug("built attestation tree: leaves=%d height=%d", len(ordered), len(levels) - 1)
    return AttestationTree(leaves=tuple(ordered), levels=tuple(levels))


def attestation_tree_from_prefixes(
    sources: Iterable[tuple[PrefixFoliation, Iterable[tuple[bytes, bytes]]]],
) -> AttestationTree:
    leaves: list[Leaf] = []
    for foliation, entries in sources:
        try:
            leaves.extend(foliation.foliate(entries))
        except DecodeStorageError as exc:
            raise FoliationError(foliation.kind, foliation.prefix, exc) from exc
    return build_attestation_tree(leaves)
