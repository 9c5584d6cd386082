"""
Keystore Vault: encrypted secrets and API keys behind AES-256-GCM.

One KeyStoreService per process. It owns the cipher engine (key fixed at init)
and the persistence backend, and hands both to its repositories:

    store = KeyStoreService.init()                 # key + backend from env config
    store.secrets.set("app", "db_url", "postgres://...", "string")
    store.secrets.get("app", "db_url")             → SecretValue or None
    store.secrets.list("app")                      → [SecretSummary] (no values)
    store.api_keys.create("openai", "api_key", "sk-...")
    store.api_keys.get_value("openai")             → "sk-..." or None
    store.api_keys.list_safe()                     → [ApiKeySummary] (no values)
    store.teardown()                               # flush + close the backend
"""

from __future__ import annotations

import logging

from keystore.config import Config, get_config
from keystore.vault.api_keys import ApiKeyRegistry
from keystore.vault.backends import RecordBackend, create_backend
from keystore.vault.codec import ValueType
from keystore.vault.crypto import CipherEngine, resolve_master_key
from keystore.vault.errors import (
    CodecError,
    CorruptRecordError,
    DecryptionError,
    DuplicateKeyNameError,
    KeyStoreError,
    ValidationError,
)
from keystore.vault.secret_store import SecretRepository
from keystore.vault.settings import AppSettingsStore

logger = logging.getLogger(__name__)


class KeyStoreService:
    """The vault for one process. Build it with init(), release it with teardown()."""

    def __init__(
        self,
        engine: CipherEngine,
        backend: RecordBackend,
        *,
        key_source: str = "explicit",
        unique_key_names: bool = False,
    ) -> None:
        self._engine = engine
        self._backend = backend
        self._key_source = key_source
        self._closed = False
        self.secrets = SecretRepository(engine, backend)
        self.api_keys = ApiKeyRegistry(engine, backend, unique_names=unique_key_names)
        self.settings = AppSettingsStore(backend)

    @classmethod
    def init(
        cls,
        config: Config | None = None,
        *,
        master_key: str | bytes | None = None,
        backend: RecordBackend | None = None,
    ) -> KeyStoreService:
        """Resolve the master key once and open the configured backend.

        master_key overrides config: bytes are used as a raw 32-byte key,
        str is treated as key material and stretched with HKDF.
        """
        cfg = config or get_config()
        if isinstance(master_key, bytes):
            engine, source = CipherEngine(master_key), "explicit"
        elif master_key:
            engine, source = CipherEngine.from_material(master_key), "explicit"
        else:
            engine, source = resolve_master_key(cfg)

        if engine.is_ephemeral:
            logger.warning(
                "No master key configured (KEYSTORE_MASTER_KEY or %s); using an ephemeral "
                "key. Stored secrets will be unreadable after this process exits.",
                cfg.key_file,
            )
        else:
            logger.info("Vault master key loaded (source=%s)", source)

        if backend is None:
            backend = create_backend(cfg)
        logger.info("Vault backend: %s", type(backend).__name__)

        store = cls(engine, backend, key_source=source, unique_key_names=cfg.unique_key_names)
        store.settings.bootstrap(cfg)
        return store

    @property
    def key_source(self) -> str:
        """Where the master key came from: env, file, explicit, or ephemeral."""
        return self._key_source

    @property
    def ephemeral(self) -> bool:
        return self._engine.is_ephemeral

    @property
    def closed(self) -> bool:
        return self._closed

    def flush(self) -> None:
        self._backend.flush()

    def teardown(self) -> None:
        """Flush and close the backend. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        self._backend.close()
        logger.debug("Vault closed")

    def __enter__(self) -> KeyStoreService:
        return self

    def __exit__(self, *exc_info) -> None:
        self.teardown()


__all__ = [
    "KeyStoreService",
    "ValueType",
    "KeyStoreError",
    "ValidationError",
    "DuplicateKeyNameError",
    "DecryptionError",
    "CodecError",
    "CorruptRecordError",
]
