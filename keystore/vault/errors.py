"""Exceptions raised by the vault.

"Not found" is not an error: lookups return None for absent records.
"""

from __future__ import annotations


class KeyStoreError(Exception):
    """Base class for vault errors."""


class ValidationError(KeyStoreError, ValueError):
    """Malformed caller input (empty namespace/key, missing value, bad field)."""


class DuplicateKeyNameError(ValidationError):
    """An active API key with the same name already exists (unique-names mode)."""

    def __init__(self, key_name: str):
        super().__init__(f"An active API key named '{key_name}' already exists")
        self.key_name = key_name


class DecryptionError(KeyStoreError):
    """Envelope is malformed, tampered with, or was sealed under a different key."""


class CodecError(KeyStoreError):
    """Plaintext does not match the declared value type."""


class CorruptRecordError(KeyStoreError):
    """A stored row does not match the record schema."""
