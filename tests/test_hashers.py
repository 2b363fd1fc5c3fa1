from __future__ import annotations

from attestation_tree.tree.hashers import (
    blake2_128,
    blake2_128_concat,
    keccak256,
    storage_prefix,
    twox128,
)


def test_twox128_matches_known_storage_names():
    assert twox128(b"System").hex() == "26aa394eea5630e07c48ae0c9558cef7"
    assert twox128(b"Account").hex() == "b99d880ec681799c0cf30e8886371da9"


def test_storage_prefix_is_pallet_then_storage():
    prefix = storage_prefix("System", "Account")
    assert len(prefix) == 32
    assert prefix.hex() == "26aa394eea5630e07c48ae0c9558cef7b99d880ec681799c0cf30e8886371da9"


def test_blake2_128_concat_keeps_the_input():
    data = b"\x01" * 32
    hashed = blake2_128_concat(data)
    assert hashed[:16] == blake2_128(data)
    assert hashed[16:] == data


def test_keccak256_empty_input():
    assert keccak256(b"").hex() == "c5d2460186f7233c927e7db2dcc703c0e500b653ca82273b7bfad8045d85a470"
