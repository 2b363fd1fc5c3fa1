from __future__ import annotations

import pytest

from attestation_tree.tree.hashers import blake2_128_concat
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
    TableCommitmentKey,
    TableIdentifier,
    balance_locks_namespace,
    commitments_namespace,
    decode_contract_info,
    decode_storage_key_and_value,
    encode_locks,
    leaf_hash,
    node_hash,
    staking_contract_storage_key,
    storage_key_for_prefix_key_tuple,
)
from attestation_tree.tree.scale import encode_bytes


def _commitment_key(table: TableIdentifier, scheme=CommitmentScheme.HYPER_KZG) -> bytes:
    return storage_key_for_prefix_key_tuple(commitments_namespace(), TableCommitmentKey(table=table, scheme=scheme))


def _account_key(fill: int = 7) -> bytes:
    return storage_key_for_prefix_key_tuple(balance_locks_namespace(), AccountKey(bytes([fill]) * 32))


def test_table_commitment_key_round_trip():
    namespace = commitments_namespace()
    typed_key = TableCommitmentKey(table=TableIdentifier("SXT", "BLOCKS"), scheme=CommitmentScheme.DYNAMIC_DORY)
    raw_key = storage_key_for_prefix_key_tuple(namespace, typed_key)

    assert raw_key.startswith(namespace.prefix)
    decoded_key, value = decode_storage_key_and_value(namespace, raw_key, encode_bytes(b"blob"))
    assert decoded_key == typed_key
    assert value == b"blob"


def test_account_key_round_trip():
    namespace = balance_locks_namespace()
    typed_key = AccountKey(bytes(range(32)))
    locks = [BalanceLock(id=b"staking ", amount=10**20, reasons=LockReasons.MISC)]

    decoded_key, value = decode_storage_key_and_value(
        namespace,
        storage_key_for_prefix_key_tuple(namespace, typed_key),
        encode_locks(locks),
    )
    assert decoded_key == typed_key
    assert value == locks


def test_table_identifier_encodes_name_before_namespace():
    assert TableIdentifier("NS", "T").scale_encode() == b"\x04T\x08NS"


def test_table_identifier_parse():
    table = TableIdentifier.parse("ethereum.blocks")
    assert table == TableIdentifier("ETHEREUM", "BLOCKS")
    assert str(table) == "ETHEREUM.BLOCKS"

    with pytest.raises(ValueError):
        TableIdentifier.parse("blocks")


def test_key_type_must_match_namespace():
    with pytest.raises(TypeError):
        storage_key_for_prefix_key_tuple(commitments_namespace(), AccountKey(b"\x00" * 32))


def test_prefix_mismatch():
    raw_key = _account_key()
    with pytest.raises(PrefixMismatchError) as exc:
        decode_storage_key_and_value(commitments_namespace(), raw_key, b"\x00")
    assert exc.value.storage_key == raw_key


def test_truncated_key():
    namespace = balance_locks_namespace()
    with pytest.raises(KeyTooShortError):
        decode_storage_key_and_value(namespace, _account_key()[:-1], encode_locks([]))
    with pytest.raises(KeyTooShortError):
        decode_storage_key_and_value(namespace, namespace.prefix, encode_locks([]))


def test_key_with_wrong_digest_is_malformed():
    raw_key = bytearray(_account_key())
    raw_key[32] ^= 0x01
    with pytest.raises(MalformedKeyError):
        decode_storage_key_and_value(balance_locks_namespace(), bytes(raw_key), encode_locks([]))


def test_key_with_trailing_bytes_is_malformed():
    raw_key = _commitment_key(TableIdentifier("SXT", "BLOCKS")) + b"\x00"
    with pytest.raises(MalformedKeyError):
        decode_storage_key_and_value(commitments_namespace(), raw_key, encode_bytes(b"blob"))


def test_unknown_commitment_scheme_is_malformed():
    namespace = commitments_namespace()
    table = TableIdentifier("SXT", "BLOCKS")
    raw_key = _commitment_key(table)
    # swap the hashed scheme index for one no scheme maps to
    raw_key = raw_key[: -(16 + 1)] + blake2_128_concat(b"\x09")
    with pytest.raises(MalformedKeyError):
        decode_storage_key_and_value(namespace, raw_key, encode_bytes(b"blob"))


@pytest.mark.parametrize(
    "raw_value",
    [
        b"",
        encode_locks([BalanceLock(id=b"staking ", amount=1)])[:-1],
        encode_locks([BalanceLock(id=b"staking ", amount=1)]) + b"\x00",
        b"\x04" + b"staking " + (1).to_bytes(16, "little") + b"\x07",
    ],
)
def test_malformed_lock_values(raw_value):
    with pytest.raises(MalformedValueError):
        decode_storage_key_and_value(balance_locks_namespace(), _account_key(), raw_value)


def test_decode_errors_are_value_errors():
    for error in (PrefixMismatchError, KeyTooShortError, MalformedKeyError, MalformedValueError):
        assert issubclass(error, DecodeStorageError)
        assert issubclass(error, ValueError)


def test_balance_lock_validation():
    with pytest.raises(ValueError):
        BalanceLock(id=b"short", amount=1)
    with pytest.raises(ValueError):
        BalanceLock(id=b"staking ", amount=1 << 128)


def test_contract_info_decode():
    info = ContractInfo(chain_id=1, address=b"\x11" * 20)
    key = staking_contract_storage_key()

    assert decode_contract_info(key, info.scale_encode()) == info
    with pytest.raises(MalformedValueError):
        decode_contract_info(key, info.scale_encode() + b"\x00")
    with pytest.raises(MalformedValueError):
        decode_contract_info(key, info.scale_encode()[:-1])


def test_leaf_and_node_hashes_are_domain_separated():
    left, right = b"\x01" * 32, b"\x02" * 32
    assert leaf_hash(left, right) != node_hash(left, right)
