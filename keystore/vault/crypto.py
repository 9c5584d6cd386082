"""
AES-256-GCM encryption for vault records.

Envelope layout: version (1 byte) + nonce (12 bytes) + ciphertext + tag (16 bytes).
Every call to encrypt() draws a fresh random nonce; nothing is counter-derived.

The master key comes from, in order:
  1. KEYSTORE_MASTER_KEY material, stretched to 32 bytes with HKDF-SHA256
  2. a 32-byte key file at $KEYSTORE_WORKSPACE/.vault-key (chmod 600)
  3. a random ephemeral key. Secrets sealed with it are unrecoverable
     once the process exits.
"""

from __future__ import annotations

import logging
import secrets
import stat
from pathlib import Path
from typing import TYPE_CHECKING

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from keystore.vault.errors import DecryptionError

if TYPE_CHECKING:
    from keystore.config import Config

logger = logging.getLogger(__name__)

KEY_SIZE = 32
NONCE_SIZE = 12
TAG_SIZE = 16
ENVELOPE_VERSION = 1

_HEADER_SIZE = 1
_MIN_ENVELOPE = _HEADER_SIZE + NONCE_SIZE + TAG_SIZE

_HKDF_SALT = b"keystore-master-key-v1"
_HKDF_INFO = b"keystore-record-encryption"


def derive_key(material: str | bytes) -> bytes:
    """Derive a 256-bit key from operator-supplied material using HKDF."""
    if isinstance(material, str):
        material = material.encode("utf-8")
    if not material:
        raise ValueError("Master key material must not be empty")
    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=KEY_SIZE,
        salt=_HKDF_SALT,
        info=_HKDF_INFO,
    )
    return hkdf.derive(material)


class CipherEngine:
    """Seals plaintext bytes into self-describing envelopes under one fixed key."""

    __slots__ = ("_aesgcm", "_ephemeral")

    def __init__(self, key: bytes, *, ephemeral: bool = False):
        if len(key) != KEY_SIZE:
            raise ValueError(f"Master key must be {KEY_SIZE} bytes, got {len(key)}")
        self._aesgcm = AESGCM(bytes(key))
        self._ephemeral = ephemeral

    @classmethod
    def from_material(cls, material: str | bytes) -> CipherEngine:
        return cls(derive_key(material))

    @classmethod
    def ephemeral(cls) -> CipherEngine:
        """Engine with a random key that lives only as long as this process."""
        return cls(secrets.token_bytes(KEY_SIZE), ephemeral=True)

    @property
    def is_ephemeral(self) -> bool:
        return self._ephemeral

    def encrypt(self, plaintext: bytes) -> bytes:
        nonce = secrets.token_bytes(NONCE_SIZE)
        header = bytes([ENVELOPE_VERSION])
        # Header is bound as AAD so the version byte can't be swapped.
        return header + nonce + self._aesgcm.encrypt(nonce, plaintext, header)

    def decrypt(self, envelope: bytes) -> bytes:
        if not isinstance(envelope, (bytes, bytearray)):
            raise DecryptionError("Envelope must be bytes")
        if len(envelope) < _MIN_ENVELOPE:
            raise DecryptionError("Encrypted data too short")
        header = bytes(envelope[:_HEADER_SIZE])
        if header[0] != ENVELOPE_VERSION:
            raise DecryptionError(f"Unsupported envelope version: {header[0]}")
        nonce = bytes(envelope[_HEADER_SIZE : _HEADER_SIZE + NONCE_SIZE])
        ciphertext = bytes(envelope[_HEADER_SIZE + NONCE_SIZE :])
        try:
            return self._aesgcm.decrypt(nonce, ciphertext, header)
        except InvalidTag as e:
            raise DecryptionError(
                "Integrity check failed (data corrupted or master key changed)"
            ) from e

    def __repr__(self) -> str:
        return f"CipherEngine(ephemeral={self._ephemeral})"


def init_master_key(workspace: Path | str) -> Path:
    """Generate a new master key file. Returns the path. Idempotent, skips if it exists."""
    key_path = Path(workspace) / ".vault-key"
    if key_path.exists():
        return key_path
    key_path.parent.mkdir(parents=True, exist_ok=True)
    key_path.write_bytes(secrets.token_bytes(KEY_SIZE))
    key_path.chmod(stat.S_IRUSR | stat.S_IWUSR)  # 600
    logger.info("Created vault master key at %s", key_path)
    return key_path


def load_key_file(key_path: Path) -> bytes:
    key = key_path.read_bytes()
    if len(key) != KEY_SIZE:
        raise ValueError(f"Vault master key must be {KEY_SIZE} bytes, got {len(key)}")
    return key


def resolve_master_key(config: Config) -> tuple[CipherEngine, str]:
    """Build the process cipher engine from config. Returns (engine, source)."""
    if config.master_key:
        return CipherEngine.from_material(config.master_key), "env"
    if config.key_file.exists():
        return CipherEngine(load_key_file(config.key_file)), "file"
    return CipherEngine.ephemeral(), "ephemeral"
