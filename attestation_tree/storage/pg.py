from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import Engine, create_engine, inspect
from sqlalchemy.engine import make_url
from sqlalchemy.orm import Session, sessionmaker

from attestation_tree.core.config import get_settings
from attestation_tree.storage.models import Base

logger = logging.getLogger(__name__)


def create_engine_from_url(url: str) -> Engine:
    if make_url(url).get_backend_name() == "sqlite":
        return create_engine(url, future=True, connect_args={"check_same_thread": False})
    return create_engine(url, future=True, pool_pre_ping=True)


# Tests rebind both names to a throwaway database.
engine = create_engine_from_url(get_settings().database_url)
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def init_db() -> None:
    existing = set(inspect(engine).get_table_names())
    Base.metadata.create_all(bind=engine)
    created = [name for name in Base.metadata.tables if name not in existing]
    if created:
        logger.info("created storage tables: %s", ", ".join(sorted(created)))


@contextmanager
def session_scope() -> Iterator[Session]:
    """Session whose transaction commits on exit and rolls back on error."""
    with SessionLocal() as session, session.begin():
        yield session
