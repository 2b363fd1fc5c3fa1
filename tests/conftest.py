from __future__ import annotations

from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

import attestation_tree.storage.pg as pg
from attestation_tree.core.config import get_settings
from attestation_tree.storage.models import Base
from attestation_tree.storage.source import InMemoryStorageSource
from attestation_tree.tree.leaf_codec import (
    AccountKey,
    BalanceLock,
    CommitmentScheme,
    ContractInfo,
    TableCommitmentKey,
    TableIdentifier,
    balance_locks_namespace,
    commitments_namespace,
    encode_locks,
    staking_contract_storage_key,
    storage_key_for_prefix_key_tuple,
)
from attestation_tree.tree.scale import encode_bytes

SNAPSHOT_ID = "block-100"


@pytest.fixture(scope="session")
def test_db_path(tmp_path_factory: pytest.TempPathFactory) -> Path:
    return tmp_path_factory.mktemp("db") / "test.sqlite"


@pytest.fixture(scope="session", autouse=True)
def configure_test_engine(test_db_path: Path):
    settings = get_settings()
    settings.storage_backend = "sql"
    settings.snapshot_file = None

    engine = create_engine(
        f"sqlite+pysqlite:///{test_db_path}",
        future=True,
        connect_args={"check_same_thread": False},
    )
    TestSessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

    pg.engine = engine
    pg.SessionLocal = TestSessionLocal

    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def session(configure_test_engine):
    with pg.session_scope() as s:
        yield s


@pytest.fixture()
def contract_info() -> ContractInfo:
    return ContractInfo(chain_id=11155111, address=bytes.fromhex("aa" * 20))


@pytest.fixture()
def tables() -> list[TableIdentifier]:
    return [TableIdentifier("ETHEREUM", "BLOCKS"), TableIdentifier("ETHEREUM", "TRANSACTIONS")]


@pytest.fixture()
def snapshot_entries(contract_info: ContractInfo, tables: list[TableIdentifier]) -> dict[bytes, bytes]:
    """Two table commitments, one staker and one account holding only a vesting lock."""
    commitments = commitments_namespace()
    locks = balance_locks_namespace()
    entries: dict[bytes, bytes] = {staking_contract_storage_key(): contract_info.scale_encode()}
    for i, table in enumerate(tables):
        key = storage_key_for_prefix_key_tuple(
            commitments, TableCommitmentKey(table=table, scheme=CommitmentScheme.DYNAMIC_DORY)
        )
        entries[key] = encode_bytes(f"commitment-{i}".encode())

    staker = storage_key_for_prefix_key_tuple(locks, AccountKey(bytes([1]) * 32))
    entries[staker] = encode_locks(
        [BalanceLock(id=b"staking ", amount=5_000), BalanceLock(id=b"vesting ", amount=7)]
    )
    vester = storage_key_for_prefix_key_tuple(locks, AccountKey(bytes([2]) * 32))
    entries[vester] = encode_locks([BalanceLock(id=b"vesting ", amount=9)])
    return entries


@pytest.fixture()
def snapshot_id() -> str:
    return SNAPSHOT_ID


@pytest.fixture()
def memory_source(snapshot_entries: dict[bytes, bytes]) -> InMemoryStorageSource:
    return InMemoryStorageSource({SNAPSHOT_ID: snapshot_entries})
