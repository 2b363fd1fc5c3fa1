from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

STORAGE_BACKENDS = ("sql", "memory")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_prefix="ATTESTATION_", extra="ignore")

    app_name: str = "attestation-tree"
    env: str = "dev"
    log_level: str = "INFO"

    database_url: str = "sqlite+pysqlite:///./attestation.db"
    test_database_url: str = "sqlite+pysqlite:///:memory:"

    # Storage backend: sql | memory
    storage_backend: str = "sql"
    snapshot_file: Path | None = Field(
        default=None,
        description="JSON snapshot file used by the memory backend",
    )

    commitments_pallet: str = "Commitments"
    commitments_storage: str = "CommitmentStorageMap"
    balances_pallet: str = "Balances"
    locks_storage: str = "Locks"
    system_contracts_pallet: str = "SystemContracts"
    staking_contract_storage: str = "StakingContract"

    def model_post_init(self, __context) -> None:
        if self.storage_backend not in STORAGE_BACKENDS:
            raise ValueError(
                f"unknown storage backend {self.storage_backend!r}; expected one of: "
                + ", ".join(STORAGE_BACKENDS)
            )
        if self.storage_backend == "memory" and self.env.lower() != "dev" and self.snapshot_file is None:
            raise ValueError("memory storage backend outside dev mode requires ATTESTATION_SNAPSHOT_FILE")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
