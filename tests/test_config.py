from __future__ import annotations

import logging

import pytest

from attestation_tree.core.config import Settings
from attestation_tree.core.logging import configure_logging


def test_unknown_storage_backend_rejected():
    with pytest.raises(ValueError):
        Settings(storage_backend="redis")


def test_memory_backend_outside_dev_needs_snapshot_file(tmp_path):
    with pytest.raises(ValueError):
        Settings(storage_backend="memory", env="prod")

    settings = Settings(storage_backend="memory", env="prod", snapshot_file=tmp_path / "s.json")
    assert settings.snapshot_file == tmp_path / "s.json"


def test_settings_read_prefixed_environment(monkeypatch):
    monkeypatch.setenv("ATTESTATION_BALANCES_PALLET", "Tokens")
    assert Settings().balances_pallet == "Tokens"


def test_configure_logging_sets_package_level():
    configure_logging("debug")
    assert logging.getLogger("attestation_tree").level == logging.DEBUG
    configure_logging("not-a-level")
    assert logging.getLogger("attestation_tree").level == logging.INFO
