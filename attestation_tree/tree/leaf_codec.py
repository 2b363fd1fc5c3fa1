from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Callable, Protocol

from attestation_tree.core.config import get_settings
from attestation_tree.tree.hashers import (
    BLAKE2_128_LENGTH,
    blake2_128,
    blake2_128_concat,
    keccak256,
    storage_prefix,
)
from attestation_tree.tree.scale import (
    MAX_U128,
    MAX_U256,
    ScaleDecodeError,
    ScaleReader,
    ScaleTruncatedError,
    encode_bytes,
    encode_compact,
    encode_u8,
    encode_u128,
    encode_u256,
)

# Hash domain tags. Changing either breaks every previously published root.
LEAF_DOMAIN = b"leaf"
NODE_DOMAIN = b"node"

ACCOUNT_ID_LENGTH = 32
LOCK_ID_LENGTH = 8
ADDRESS_LENGTH = 20

COMMITMENTS = "commitments"
BALANCE_LOCKS = "balance_locks"


class DecodeStorageError(ValueError):
    reason = "unable to decode storage entry"

    def __init__(self, storage_key: bytes, detail: str | None = None):
        self.storage_key = bytes(storage_key)
        self.detail = detail
        message = f"{self.reason}: key=0x{self.storage_key.hex()}"
        if detail:
            message += f" ({detail})"
        super().__init__(message)


class PrefixMismatchError(DecodeStorageError):
    reason = "storage key does not start with the namespace prefix"


class KeyTooShortError(DecodeStorageError):
    reason = "storage key suffix is truncated"


class MalformedKeyError(DecodeStorageError):
    reason = "storage key suffix cannot be decoded"


class MalformedValueError(DecodeStorageError):
    reason = "storage value cannot be decoded"


def leaf_hash(storage_key: bytes, value: bytes) -> bytes:
    return keccak256(LEAF_DOMAIN + bytes(storage_key) + bytes(value))


def node_hash(left: bytes, right: bytes) -> bytes:
    return keccak256(NODE_DOMAIN + bytes(left) + bytes(right))


class TypedKey(Protocol):
    def storage_key_suffix(self) -> bytes:
        ...


class CommitmentScheme(IntEnum):
    HYPER_KZG = 0
    DYNAMIC_DORY = 1


class LockReasons(IntEnum):
    FEE = 0
    MISC = 1
    ALL = 2


@dataclass(frozen=True, order=True)
class TableIdentifier:
    namespace: str
    name: str

    def scale_encode(self) -> bytes:
        return encode_bytes(self.name.encode("utf-8")) + encode_bytes(self.namespace.encode("utf-8"))

    @classmethod
    def scale_decode(cls, reader: ScaleReader) -> "TableIdentifier":
        name = reader.read_bytes()
        namespace = reader.read_bytes()
        try:
            return cls(namespace=namespace.decode("utf-8"), name=name.decode("utf-8"))
        except UnicodeDecodeError as exc:
            raise ScaleDecodeError(f"table identifier is not utf-8: {exc}") from exc

    @classmethod
    def parse(cls, value: str) -> "TableIdentifier":
        namespace, sep, name = value.partition(".")
        if not sep or not namespace or not name:
            raise ValueError(f"table identifier must look like NAMESPACE.NAME, got {value!r}")
        return cls(namespace=namespace.upper(), name=name.upper())

    def __str__(self) -> str:
        return f"{self.namespace}.{self.name}"


def _read_hashed_item(reader: ScaleReader, decode: Callable[[ScaleReader], Any], encode: Callable[[Any], bytes]) -> Any:
    digest = reader.read(BLAKE2_128_LENGTH)
    item = decode(reader)
    if blake2_128(encode(item)) != digest:
        raise ScaleDecodeError("blake2_128 digest does not match the encoded key")
    return item


def _read_scheme(reader: ScaleReader) -> CommitmentScheme:
    index = reader.read_u8()
    try:
        return CommitmentScheme(index)
    except ValueError as exc:
        raise ScaleDecodeError(f"unknown commitment scheme index {index}") from exc


@dataclass(frozen=True)
class TableCommitmentKey:
    table: TableIdentifier
    scheme: CommitmentScheme

    def storage_key_suffix(self) -> bytes:
        return blake2_128_concat(self.table.scale_encode()) + blake2_128_concat(encode_u8(self.scheme))

    @classmethod
    def decode_suffix(cls, reader: ScaleReader) -> "TableCommitmentKey":
        table = _read_hashed_item(reader, TableIdentifier.scale_decode, TableIdentifier.scale_encode)
        scheme = _read_hashed_item(reader, _read_scheme, encode_u8)
        return cls(table=table, scheme=scheme)


@dataclass(frozen=True)
class AccountKey:
    account_id: bytes

    def __post_init__(self) -> None:
        if len(self.account_id) != ACCOUNT_ID_LENGTH:
            raise ValueError(f"account id must be {ACCOUNT_ID_LENGTH} bytes, got {len(self.account_id)}")

    def storage_key_suffix(self) -> bytes:
        return blake2_128_concat(self.account_id)

    @classmethod
    def decode_suffix(cls, reader: ScaleReader) -> "AccountKey":
        account_id = _read_hashed_item(
            reader,
            lambda r: r.read_fixed(ACCOUNT_ID_LENGTH),
            bytes,
        )
        return cls(account_id=account_id)


@dataclass(frozen=True)
class BalanceLock:
    id: bytes
    amount: int
    reasons: LockReasons = LockReasons.ALL

    def __post_init__(self) -> None:
        if len(self.id) != LOCK_ID_LENGTH:
            raise ValueError(f"lock id must be {LOCK_ID_LENGTH} bytes, got {len(self.id)}")
        if not 0 <= self.amount <= MAX_U128:
            raise ValueError("lock amount must fit in 128 bits")

    def scale_encode(self) -> bytes:
        return bytes(self.id) + encode_u128(self.amount) + encode_u8(self.reasons)

    @classmethod
    def scale_decode(cls, reader: ScaleReader) -> "BalanceLock":
        lock_id = reader.read_fixed(LOCK_ID_LENGTH)
        amount = reader.read_u128()
        index = reader.read_u8()
        try:
            reasons = LockReasons(index)
        except ValueError as exc:
            raise ScaleDecodeError(f"unknown lock reasons index {index}") from exc
        return cls(id=lock_id, amount=amount, reasons=reasons)


def encode_locks(locks: list[BalanceLock]) -> bytes:
    return encode_compact(len(locks)) + b"".join(lock.scale_encode() for lock in locks)


@dataclass(frozen=True)
class ContractInfo:
    chain_id: int
    address: bytes

    def __post_init__(self) -> None:
        if not 0 <= self.chain_id <= MAX_U256:
            raise ValueError("chain id must fit in 256 bits")
        if len(self.address) != ADDRESS_LENGTH:
            raise ValueError(f"contract address must be {ADDRESS_LENGTH} bytes, got {len(self.address)}")

    def scale_encode(self) -> bytes:
        return encode_u256(self.chain_id) + bytes(self.address)

    @classmethod
    def scale_decode(cls, reader: ScaleReader) -> "ContractInfo":
        chain_id = reader.read_u256()
        address = reader.read_fixed(ADDRESS_LENGTH)
        return cls(chain_id=chain_id, address=address)


def _decode_commitment_blob(reader: ScaleReader) -> bytes:
    return reader.read_bytes()


def _decode_locks(reader: ScaleReader) -> list[BalanceLock]:
    return reader.read_vec(BalanceLock.scale_decode)


@dataclass(frozen=True)
class StorageNamespace:
    name: str
    prefix: bytes
    key_type: Any
    decode_value: Callable[[ScaleReader], Any]


def commitments_namespace() -> StorageNamespace:
    settings = get_settings()
    return StorageNamespace(
        name=COMMITMENTS,
        prefix=storage_prefix(settings.commitments_pallet, settings.commitments_storage),
        key_type=TableCommitmentKey,
        decode_value=_decode_commitment_blob,
    )


def balance_locks_namespace() -> StorageNamespace:
    settings = get_settings()
    return StorageNamespace(
        name=BALANCE_LOCKS,
        prefix=storage_prefix(settings.balances_pallet, settings.locks_storage),
        key_type=AccountKey,
        decode_value=_decode_locks,
    )


def staking_contract_storage_key() -> bytes:
    settings = get_settings()
    return storage_prefix(settings.system_contracts_pallet, settings.staking_contract_storage)


def decode_contract_info(storage_key: bytes, raw_value: bytes) -> ContractInfo:
    reader = ScaleReader(raw_value)
    try:
        info = ContractInfo.scale_decode(reader)
    except ScaleDecodeError as exc:
        raise MalformedValueError(storage_key, str(exc)) from exc
    if not reader.is_exhausted:
        raise MalformedValueError(storage_key, f"{reader.remaining} trailing value bytes")
    return info


def storage_key_for_prefix_key_tuple(namespace: StorageNamespace, typed_key: TypedKey) -> bytes:
    if not isinstance(typed_key, namespace.key_type):
        raise TypeError(
            f"namespace {namespace.name} expects {namespace.key_type.__name__}, got {type(typed_key).__name__}"
        )
    return namespace.prefix + typed_key.storage_key_suffix()


def decode_storage_key_and_value(
    namespace: StorageNamespace,
    raw_key: bytes,
    raw_value: bytes,
) -> tuple[TypedKey, Any]:
    raw_key = bytes(raw_key)
    if not raw_key.startswith(namespace.prefix):
        raise PrefixMismatchError(raw_key)

    key_reader = ScaleReader(raw_key[len(namespace.prefix) :])
    try:
        typed_key = namespace.key_type.decode_suffix(key_reader)
    except ScaleTruncatedError as exc:
        raise KeyTooShortError(raw_key, str(exc)) from exc
    except ScaleDecodeError as exc:
        raise MalformedKeyError(raw_key, str(exc)) from exc
    if not key_reader.is_exhausted:
        raise MalformedKeyError(raw_key, f"{key_reader.remaining} trailing key bytes")

    value_reader = ScaleReader(raw_value)
    try:
        value = namespace.decode_value(value_reader)
    except ScaleDecodeError as exc:
        raise MalformedValueError(raw_key, str(exc)) from exc
    if not value_reader.is_exhausted:
        raise MalformedValueError(raw_key, f"{value_reader.remaining} trailing value bytes")

    return typed_key, value
