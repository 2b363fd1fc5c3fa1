from __future__ import annotations

import itertools

import pytest

from attestation_tree.tree.foliation import Leaf, StakingLockFoliation, TableCommitmentFoliation
from attestation_tree.tree.leaf_codec import PrefixMismatchError, node_hash
from attestation_tree.tree.merkle import (
    DuplicateKeyError,
    FoliationError,
    NoLeavesError,
    attestation_tree_from_prefixes,
    build_attestation_tree,
    level_sizes,
)
from attestation_tree.tree.proof import prove_leaf_pair, verify_leaf_pair


def _leaves(*pairs: tuple[int, bytes]) -> list[Leaf]:
    return [Leaf.build(bytes([key]), value) for key, value in pairs]


def test_root_stable_across_construction_order():
    leaves = _leaves((1, b"a"), (2, b"b"), (3, b"c"))
    roots = {build_attestation_tree(order).root for order in itertools.permutations(leaves)}

    assert len(roots) == 1
    assert len(roots.pop()) == 32


def test_single_leaf_root_is_the_leaf_hash():
    (leaf,) = _leaves((1, b"x"))
    tree = build_attestation_tree([leaf])

    assert tree.root == leaf.leaf_hash
    assert tree.height == 0

    proof = prove_leaf_pair(tree, leaf.storage_key)
    assert proof.sibling_count == 0
    assert verify_leaf_pair(proof, tree.root)


def test_unpaired_node_is_promoted_unchanged():
    leaves = _leaves((1, b"a"), (2, b"b"), (3, b"c"))
    tree = build_attestation_tree(leaves)
    h0, h1, h2 = (leaf.leaf_hash for leaf in leaves)

    assert tree.levels[1] == (node_hash(h0, h1), h2)
    assert tree.levels[1][1] != node_hash(h2, h2)
    assert tree.root == node_hash(node_hash(h0, h1), h2)


def test_leaves_are_sorted_by_storage_key():
    tree = build_attestation_tree(_leaves((9, b"z"), (1, b"a"), (5, b"m")))

    assert [leaf.storage_key for leaf in tree.leaves] == [b"\x01", b"\x05", b"\x09"]
    assert tree.position_of(b"\x09") == 2
    assert b"\x05" in tree
    assert b"\x06" not in tree
    assert len(tree) == 3


def test_flipping_any_value_bit_changes_root():
    pairs = [(k, bytes([k]) * 4) for k in range(1, 6)]
    root = build_attestation_tree(_leaves(*pairs)).root

    for i, (key, value) in enumerate(pairs):
        for bit in (0, 7):
            tampered = bytearray(value)
            tampered[0] ^= 1 << bit
            altered = pairs[:i] + [(key, bytes(tampered))] + pairs[i + 1 :]
            assert build_attestation_tree(_leaves(*altered)).root != root


def test_duplicate_storage_key_rejected():
    with pytest.raises(DuplicateKeyError) as exc:
        build_attestation_tree(_leaves((1, b"a"), (2, b"b"), (1, b"c")))
    assert exc.value.storage_key == b"\x01"

    with pytest.raises(DuplicateKeyError):
        build_attestation_tree(_leaves((1, b"a"), (1, b"a")))


def test_empty_tree_rejected():
    with pytest.raises(NoLeavesError):
        build_attestation_tree([])
    with pytest.raises(NoLeavesError):
        attestation_tree_from_prefixes([(TableCommitmentFoliation(), [])])


def test_level_sizes():
    assert level_sizes(1) == [1]
    assert level_sizes(5) == [5, 3, 2, 1]
    assert level_sizes(8) == [8, 4, 2, 1]
    with pytest.raises(ValueError):
        level_sizes(0)


def test_tree_from_prefixes_merges_namespaces(snapshot_entries, contract_info):
    commitments = TableCommitmentFoliation()
    staking = StakingLockFoliation(contract_info=contract_info)

    def entries_for(foliation):
        return [(k, v) for k, v in snapshot_entries.items() if k.startswith(foliation.prefix)]

    tree = attestation_tree_from_prefixes(
        [(staking, entries_for(staking)), (commitments, entries_for(commitments))]
    )

    # two commitments plus the one account that holds a staking lock
    assert tree.leaf_count == 3
    keys = [leaf.storage_key for leaf in tree.leaves]
    assert keys == sorted(keys)


def test_tree_from_prefixes_wraps_decode_errors():
    foliation = TableCommitmentFoliation()
    bad_key = foliation.prefix + b"\x00" * 3

    with pytest.raises(FoliationError) as exc:
        attestation_tree_from_prefixes([(foliation, [(bad_key, b"\x00")])])

    assert exc.value.kind == foliation.kind
    assert exc.value.prefix == foliation.prefix
    assert exc.value.__cause__ is exc.value.cause


def test_foliation_error_carries_prefix_mismatch(snapshot_entries, contract_info):
    staking = StakingLockFoliation(contract_info=contract_info)
    commitment_entries = [
        (k, v) for k, v in snapshot_entries.items() if k.startswith(TableCommitmentFoliation().prefix)
    ]

    with pytest.raises(FoliationError) as exc:
        attestation_tree_from_prefixes([(staking, commitment_entries)])
    assert isinstance(exc.value.cause, PrefixMismatchError)
