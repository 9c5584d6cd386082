"""Vault test fixtures: a fixed-key engine over a fresh memory backend."""

from __future__ import annotations

import secrets
from pathlib import Path

import pytest

from keystore.config import Config
from keystore.vault import KeyStoreService
from keystore.vault.api_keys import ApiKeyRegistry
from keystore.vault.backends import MemoryBackend
from keystore.vault.crypto import CipherEngine
from keystore.vault.secret_store import SecretRepository


@pytest.fixture
def master_key() -> bytes:
    return secrets.token_bytes(32)


@pytest.fixture
def engine(master_key: bytes) -> CipherEngine:
    return CipherEngine(master_key)


@pytest.fixture
def backend() -> MemoryBackend:
    return MemoryBackend()


@pytest.fixture
def repo(engine: CipherEngine, backend: MemoryBackend) -> SecretRepository:
    return SecretRepository(engine, backend)


@pytest.fixture
def registry(engine: CipherEngine, backend: MemoryBackend) -> ApiKeyRegistry:
    return ApiKeyRegistry(engine, backend)


@pytest.fixture
def config(tmp_path: Path) -> Config:
    """Config pointing at a temp workspace, memory backend, no master key."""
    return Config(workspace=tmp_path, app_name="Test Keystore", environment="test")


@pytest.fixture
def store(config: Config, master_key: bytes):
    service = KeyStoreService.init(config, master_key=master_key)
    yield service
    service.teardown()
