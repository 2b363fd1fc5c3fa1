from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Iterator, Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session

from attestation_tree.core.config import get_settings
from attestation_tree.storage.models import StorageEntryModel

logger = logging.getLogger(__name__)


class StorageSource(Protocol):
    backend: str

    def iter_prefix(self, prefix: bytes, snapshot_id: str) -> Iterator[tuple[bytes, bytes]]:
        ...

    def get(self, key: bytes, snapshot_id: str) -> bytes | None:
        ...


class UnknownSnapshotError(LookupError):
    def __init__(self, snapshot_id: str):
        self.snapshot_id = snapshot_id
        super().__init__(f"unknown storage snapshot: {snapshot_id}")


def _unhex(value: str) -> bytes:
    return bytes.fromhex(value[2:] if value.startswith("0x") else value)


def prefix_upper_bound(prefix: bytes) -> bytes | None:
    """Smallest byte string greater than every string starting with ``prefix``."""
    stripped = bytes(prefix).rstrip(b"\xff")
    if not stripped:
        return None
    return stripped[:-1] + bytes([stripped[-1] + 1])


class InMemoryStorageSource:
    backend = "memory"

    def __init__(self, snapshots: dict[str, dict[bytes, bytes]] | None = None):
        self.snapshots: dict[str, dict[bytes, bytes]] = {
            snapshot_id: dict(entries) for snapshot_id, entries in (snapshots or {}).items()
        }

    @classmethod
    def from_json(cls, path: Path) -> "InMemoryStorageSource":
        raw = json.loads(Path(path).read_text())
        snapshots = {
            str(snapshot_id): {_unhex(k): _unhex(v) for k, v in entries.items()}
            for snapshot_id, entries in raw.items()
        }
        return cls(snapshots)

    def put(self, snapshot_id: str, key: bytes, value: bytes) -> None:
        self.snapshots.setdefault(snapshot_id, {})[bytes(key)] = bytes(value)

    def _snapshot(self, snapshot_id: str) -> dict[bytes, bytes]:
        try:
            return self.snapshots[snapshot_id]
        except KeyError as exc:
            raise UnknownSnapshotError(snapshot_id) from exc

    def iter_prefix(self, prefix: bytes, snapshot_id: str) -> Iterator[tuple[bytes, bytes]]:
        entries = self._snapshot(snapshot_id)
        for key, value in list(entries.items()):
            if key.startswith(prefix):
                yield key, value

    def get(self, key: bytes, snapshot_id: str) -> bytes | None:
        return self._snapshot(snapshot_id).get(bytes(key))


class SqlStorageSource:
    backend = "sql"

    def __init__(self, session: Session):
        self.session = session

    def iter_prefix(self, prefix: bytes, snapshot_id: str) -> Iterator[tuple[bytes, bytes]]:
        prefix = bytes(prefix)
        stmt = select(StorageEntryModel.key, StorageEntryModel.value).where(
            StorageEntryModel.snapshot_id == snapshot_id,
            StorageEntryModel.key >= prefix,
        )
        upper = prefix_upper_bound(prefix)
        if upper is not None:
            stmt = stmt.where(StorageEntryModel.key < upper)
        for key, value in self.session.execute(stmt.order_by(StorageEntryModel.key)):
            key = bytes(key)
            if key.startswith(prefix):
                yield key, bytes(value)

    def get(self, key: bytes, snapshot_id: str) -> bytes | None:
        value = self.session.scalar(
            select(StorageEntryModel.value).where(
                StorageEntryModel.snapshot_id == snapshot_id,
                StorageEntryModel.key == bytes(key),
            )
        )
        return None if value is None else bytes(value)


def load_entries(session: Session, snapshot_id: str, entries: Iterable[tuple[bytes, bytes]]) -> int:
    now = datetime.now(timezone.utc)
    count = 0
    for key, value in entries:
        key = bytes(key)
        record = session.scalar(
            select(StorageEntryModel).where(
                StorageEntryModel.snapshot_id == snapshot_id,
                StorageEntryModel.key == key,
            )
        )
        if record is None:
            session.add(StorageEntryModel(snapshot_id=snapshot_id, key=key, value=bytes(value), loaded_at=now))
        else:
            record.value = bytes(value)
            record.loaded_at = now
        count += 1
    session.flush()
    logger.info("loaded storage entries: snapshot_id=%s count=%d", snapshot_id, count)
    return count


def build_storage_source(session: Session | None = None) -> StorageSource:
    settings = get_settings()
    if settings.storage_backend == "memory":
        if settings.snapshot_file is None:
            return InMemoryStorageSource()
        return InMemoryStorageSource.from_json(settings.snapshot_file)
    if session is None:
        raise ValueError("sql storage backend requires a database session")
    return SqlStorageSource(session)
