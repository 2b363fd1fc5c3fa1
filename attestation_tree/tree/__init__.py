from attestation_tree.tree.foliation import (
    STAKING_BALANCE_LOCK_ID,
    FoliationKind,
    HashAndKey,
    HashAndKeyTuple,
    Leaf,
    PrefixFoliation,
    StakingLockFoliation,
    TableCommitmentFoliation,
    foliation_for,
)
from attestation_tree.tree.leaf_codec import (
    AccountKey,
    BalanceLock,
    CommitmentScheme,
    ContractInfo,
    DecodeStorageError,
    KeyTooShortError,
    LockReasons,
    MalformedKeyError,
    MalformedValueError,
    PrefixMismatchError,
    StorageNamespace,
    TableCommitmentKey,
    TableIdentifier,
    balance_locks_namespace,
    commitments_namespace,
    decode_storage_key_and_value,
    leaf_hash,
    node_hash,
    storage_key_for_prefix_key_tuple,
)
from attestation_tree.tree.merkle import (
    AttestationTree,
    AttestationTreeError,
    DuplicateKeyError,
    FoliationError,
    NoLeavesError,
    attestation_tree_from_prefixes,
    build_attestation_tree,
)
from attestation_tree.tree.proof import (
    AttestationTreeProofError,
    EmptyTreeError,
    LeafNotFoundError,
    LeafPairProof,
    prove_leaf_pair,
    verify_leaf_pair,
)

__all__ = [
    "STAKING_BALANCE_LOCK_ID",
    "AccountKey",
    "AttestationTree",
    "AttestationTreeError",
    "AttestationTreeProofError",
    "BalanceLock",
    "CommitmentScheme",
    "ContractInfo",
    "DecodeStorageError",
    "DuplicateKeyError",
    "EmptyTreeError",
    "FoliationError",
    "FoliationKind",
    "HashAndKey",
    "HashAndKeyTuple",
    "KeyTooShortError",
    "Leaf",
    "LeafNotFoundError",
    "LeafPairProof",
    "LockReasons",
    "MalformedKeyError",
    "MalformedValueError",
    "NoLeavesError",
    "PrefixFoliation",
    "PrefixMismatchError",
    "StakingLockFoliation",
    "StorageNamespace",
    "TableCommitmentFoliation",
    "TableCommitmentKey",
    "TableIdentifier",
    "attestation_tree_from_prefixes",
    "balance_locks_namespace",
    "build_attestation_tree",
    "commitments_namespace",
    "decode_storage_key_and_value",
    "foliation_for",
    "leaf_hash",
    "node_hash",
    "prove_leaf_pair",
    "storage_key_for_prefix_key_tuple",
    "verify_leaf_pair",
]
