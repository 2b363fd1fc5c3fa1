from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Iterable, Iterator

from attestation_tree.tree.leaf_codec import (
    AccountKey,
    BalanceLock,
    ContractInfo,
    StorageNamespace,
    TableCommitmentKey,
    TypedKey,
    balance_locks_namespace,
    commitments_namespace,
    decode_storage_key_and_value,
    leaf_hash,
)

STAKING_BALANCE_LOCK_ID = b"staking "

# Staking amounts are committed as 248-bit big-endian integers.
STAKING_AMOUNT_LENGTH = 31
CHAIN_ID_LENGTH = 32


@dataclass(frozen=True)
class HashAndKey:
    leaf_hash: bytes
    storage_key: bytes


@dataclass(frozen=True)
class HashAndKeyTuple:
    first: HashAndKey
    second: HashAndKey

    def __iter__(self) -> Iterator[HashAndKey]:
        return iter((self.first, self.second))


@dataclass(frozen=True)
class Leaf:
    storage_key: bytes
    value: bytes
    leaf_hash: bytes

    @classmethod
    def build(cls, storage_key: bytes, value: bytes) -> "Leaf":
        storage_key = bytes(storage_key)
        value = bytes(value)
        return cls(storage_key=storage_key, value=value, leaf_hash=leaf_hash(storage_key, value))

    def hash_and_key(self) -> HashAndKey:
        return HashAndKey(leaf_hash=self.leaf_hash, storage_key=self.storage_key)


class FoliationKind(str, Enum):
    TABLE_COMMITMENT = "table_commitment"
    STAKING_LOCK = "staking_lock"


@dataclass(frozen=True)
class PrefixFoliation:
    """Turns one namespace's raw storage entries into leaves.

    Entries are decoded and emitted in input order; sorting and duplicate
    detection belong to the tree builder. ``foliate`` returns a fresh
    generator on each call, so re-running it over a list restarts cleanly.
    """

    kind: ClassVar[FoliationKind]
    namespace: StorageNamespace

    @property
    def prefix(self) -> bytes:
        return self.namespace.prefix

    def leaf_value(self, typed_key: TypedKey, value: Any) -> bytes | None:
        raise NotImplementedError

    def foliate(self, entries: Iterable[tuple[bytes, bytes]]) -> Iterator[Leaf]:
        for raw_key, raw_value in entries:
            typed_key, value = decode_storage_key_and_value(self.namespace, raw_key, raw_value)
            encoded = self.leaf_value(typed_key, value)
            if encoded is None:
                continue
            yield Leaf.build(raw_key, encoded)


@dataclass(frozen=True)
class TableCommitmentFoliation(PrefixFoliation):
    kind: ClassVar[FoliationKind] = FoliationKind.TABLE_COMMITMENT
    namespace: StorageNamespace = field(default_factory=commitments_namespace)

    def leaf_value(self, typed_key: TableCommitmentKey, value: bytes) -> bytes:
        # commitment blobs are opaque; commit to the raw bytes without the length prefix
        return bytes(value)


def find_staking_lock(locks: Iterable[BalanceLock]) -> BalanceLock | None:
    for lock in locks:
        if lock.id == STAKING_BALANCE_LOCK_ID:
            return lock
    return None


def encode_staking_leaf_value(amount: int, contract_info: ContractInfo) -> bytes:
    return (
        amount.to_bytes(STAKING_AMOUNT_LENGTH, "big")
        + contract_info.chain_id.to_bytes(CHAIN_ID_LENGTH, "big")
        + bytes(contract_info.address)
    )


@dataclass(frozen=True)
class StakingLockFoliation(PrefixFoliation):
    kind: ClassVar[FoliationKind] = FoliationKind.STAKING_LOCK
    contract_info: ContractInfo | None = None
    namespace: StorageNamespace = field(default_factory=balance_locks_namespace)

    def __post_init__(self) -> None:
        if self.contract_info is None:
            raise ValueError("staking lock foliation requires the staking contract info")

    def leaf_value(self, typed_key: AccountKey, value: list[BalanceLock]) -> bytes | None:
        lock = find_staking_lock(value)
        if lock is None:
            return None
        return encode_staking_leaf_value(lock.amount, self.contract_info)


def foliation_for(kind: FoliationKind | str, contract_info: ContractInfo | None = None) -> PrefixFoliation:
    kind = FoliationKind(kind)
    if kind == FoliationKind.TABLE_COMMITMENT:
        return TableCommitmentFoliation()
    if kind == FoliationKind.STAKING_LOCK:
        return StakingLockFoliation(contract_info=contract_info)
    raise ValueError(f"unsupported foliation kind: {kind}")
