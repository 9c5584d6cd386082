"""
Centralized configuration for Keystore.

All configuration is loaded from environment variables with sensible defaults.

Usage:
    from keystore.config import get_config
    cfg = get_config()
    print(cfg.backend)       # "memory"
    print(cfg.key_file)      # "/home/user/.keystore/.vault-key"
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

BACKENDS = ("memory", "file", "postgres")

_TRUTHY = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class DatabaseConfig:
    """PostgreSQL connection parameters for the postgres backend."""

    host: str = ""  # empty = Unix socket (peer auth)
    port: int = 5432
    name: str = "keystore"
    user: str = "keystore"
    password: str = ""

    @property
    def dict(self) -> dict[str, str | int]:
        """Return a psycopg2.connect() kwargs dict."""
        d: dict[str, str | int] = {
            "dbname": self.name,
            "port": self.port,
        }
        if self.host:
            d["host"] = self.host
        if self.user:
            d["user"] = self.user
        if self.password:
            d["password"] = self.password
        return d


@dataclass(frozen=True)
class Config:
    """Top-level Keystore configuration."""

    workspace: Path = field(default_factory=lambda: Path.home() / ".keystore")

    # Master key material. Empty = fall back to key file, then an ephemeral key.
    master_key: str = field(default="", repr=False)

    # Persistence
    backend: str = "memory"
    data_file: Path | None = None
    db: DatabaseConfig = field(default_factory=DatabaseConfig)

    # API key registry: reject duplicate active names instead of first-match-wins
    unique_key_names: bool = False

    # App settings bootstrap
    app_id: str = ""
    app_name: str = "Keystore"
    environment: str = "development"

    @property
    def key_file(self) -> Path:
        return self.workspace / ".vault-key"

    @property
    def data_path(self) -> Path:
        return self.data_file or self.workspace / "keystore.json"


# Singleton
_config: Config | None = None


def get_config() -> Config:
    """Get or create the singleton config from environment variables."""
    global _config
    if _config is not None:
        return _config
    _config = _load_from_env()
    return _config


def _load_from_env() -> Config:
    """Load configuration from environment variables."""
    workspace = Path(os.environ.get("KEYSTORE_WORKSPACE", Path.home() / ".keystore"))
    data_file = os.environ.get("KEYSTORE_DATA_FILE")

    backend = os.environ.get("KEYSTORE_BACKEND", "memory").strip().lower()
    if backend not in BACKENDS:
        raise ValueError(f"KEYSTORE_BACKEND must be one of {', '.join(BACKENDS)}, got {backend!r}")

    db = DatabaseConfig(
        host=os.environ.get("KEYSTORE_DB_HOST", ""),
        port=int(os.environ.get("KEYSTORE_DB_PORT", "5432")),
        name=os.environ.get("KEYSTORE_DB_NAME", "keystore"),
        user=os.environ.get("KEYSTORE_DB_USER", os.environ.get("USER", "keystore")),
        password=os.environ.get("KEYSTORE_DB_PASSWORD", ""),
    )

    return Config(
        workspace=workspace,
        master_key=os.environ.get("KEYSTORE_MASTER_KEY", ""),
        backend=backend,
        data_file=Path(data_file) if data_file else None,
        db=db,
        unique_key_names=os.environ.get("KEYSTORE_UNIQUE_KEY_NAMES", "").strip().lower() in _TRUTHY,
        app_id=os.environ.get("KEYSTORE_APP_ID", ""),
        app_name=os.environ.get("KEYSTORE_APP_NAME", "Keystore"),
        environment=os.environ.get("KEYSTORE_ENV", "development"),
    )


def reset_config() -> None:
    """Reset the singleton config (for testing)."""
    global _config
    _config = None
