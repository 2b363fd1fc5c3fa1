from __future__ import annotations

from hashlib import blake2b

import xxhash
from eth_utils import keccak

BLAKE2_128_LENGTH = 16
PREFIX_LENGTH = 32
HASH_LENGTH = 32


def twox128(data: bytes) -> bytes:
    return b"".join(xxhash.xxh64_intdigest(data, seed=seed).to_bytes(8, "little") for seed in (0, 1))


def blake2_128(data: bytes) -> bytes:
    return blake2b(data, digest_size=BLAKE2_128_LENGTH).digest()


def blake2_128_concat(data: bytes) -> bytes:
    return blake2_128(data) + bytes(data)


def storage_prefix(pallet: str, storage: str) -> bytes:
    return twox128(pallet.encode("utf-8")) + twox128(storage.encode("utf-8"))


def keccak256(data: bytes) -> bytes:
    return keccak(primitive=bytes(data))
