"""
Root-level shared test fixtures.

Inherited by the vault suites and the top-level config/CLI tests.
"""

from __future__ import annotations

import pytest

from keystore.config import reset_config

KEYSTORE_ENV_VARS = [
    "KEYSTORE_WORKSPACE",
    "KEYSTORE_MASTER_KEY",
    "KEYSTORE_BACKEND",
    "KEYSTORE_DATA_FILE",
    "KEYSTORE_UNIQUE_KEY_NAMES",
    "KEYSTORE_APP_ID",
    "KEYSTORE_APP_NAME",
    "KEYSTORE_ENV",
    "KEYSTORE_DB_HOST",
    "KEYSTORE_DB_PORT",
    "KEYSTORE_DB_NAME",
    "KEYSTORE_DB_USER",
    "KEYSTORE_DB_PASSWORD",
]


@pytest.fixture
def clean_env(monkeypatch):
    """Remove keystore env vars that leak between tests and reset the config singleton."""
    for key in KEYSTORE_ENV_VARS:
        monkeypatch.delenv(key, raising=False)
    reset_config()
    yield monkeypatch
    reset_config()
