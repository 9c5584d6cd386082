"""
API key registry: named, typed, expirable credentials.

Records are addressed by a generated id. Consumers that need the live value
look it up by name with get_value(), which only considers active keys.

Key names are not unique by default: get_value() returns the first active
match in creation order. Pass unique_names=True to reject a second active
key with the same name instead.
"""

from __future__ import annotations

import contextlib
import logging
import threading
from datetime import datetime
from typing import Any

import pydantic

from keystore.vault import codec
from keystore.vault.backends import RecordBackend
from keystore.vault.codec import ValueType
from keystore.vault.crypto import CipherEngine
from keystore.vault.errors import DecryptionError, DuplicateKeyNameError, ValidationError
from keystore.vault.locks import KeyedLocks
from keystore.vault.models import ApiKeyRecord, ApiKeySummary, ApiKeyUpdate, utcnow
from keystore.vault.secret_store import require_text, strictly_after

logger = logging.getLogger(__name__)

COLLECTION = "api_keys"


class ApiKeyRegistry:
    def __init__(
        self,
        engine: CipherEngine,
        backend: RecordBackend,
        *,
        unique_names: bool = False,
    ) -> None:
        self._engine = engine
        self._backend = backend
        self._locks = KeyedLocks()
        self.unique_names = unique_names
        # Name checks span records, so unique mode serializes writers.
        self._names_lock = threading.Lock() if unique_names else None

    def _load(self, row: dict) -> ApiKeyRecord:
        try:
            return ApiKeyRecord.model_validate(row)
        except pydantic.ValidationError as e:
            raise DecryptionError("Stored API key record is malformed") from e

    def _seal(self, value: Any) -> bytes:
        if not isinstance(value, str) or value == "":
            raise ValidationError("value must be a non-empty string")
        return self._engine.encrypt(codec.encode(value, ValueType.STRING))

    def _writer(self):
        return self._names_lock if self._names_lock is not None else contextlib.nullcontext()

    def _check_name_free(self, key_name: str, exclude_id: str | None = None) -> None:
        for row in self._backend.rows(COLLECTION):
            if row.get("id") == exclude_id:
                continue
            if row.get("key_name") == key_name and row.get("is_active"):
                raise DuplicateKeyNameError(key_name)

    def create(
        self,
        key_name: str,
        key_type: str,
        value: str,
        description: str | None = None,
        expires_at: datetime | None = None,
        is_active: bool = True,
    ) -> ApiKeyRecord:
        """Encrypt and store a new API key under a fresh id."""
        key_name = require_text("key_name", key_name)
        key_type = require_text("key_type", key_type)
        envelope = self._seal(value)
        now = utcnow()
        try:
            record = ApiKeyRecord(
                key_name=key_name,
                key_type=key_type,
                encrypted_value=envelope,
                description=description,
                is_active=is_active,
                expires_at=expires_at,
                created_at=now,
                updated_at=now,
            )
        except pydantic.ValidationError as e:
            raise ValidationError(str(e)) from e

        with self._writer():
            if self.unique_names and record.is_active:
                self._check_name_free(key_name)
            with self._locks.hold(record.id):
                self._backend.put(COLLECTION, record.id, record.model_dump(mode="json"))

        logger.info("Created API key %s (%s, id=%s)", key_name, key_type, record.id)
        return record

    def get(self, key_id: str) -> ApiKeySummary | None:
        """Safe view of one API key. Returns None if not found."""
        row = self._backend.get(COLLECTION, key_id)
        if row is None:
            return None
        return self._load(row).to_summary()

    def get_value(self, key_name: str) -> str | None:
        """Decrypt the first active key with this name. Returns None if none match."""
        for row in self._backend.rows(COLLECTION):
            if row.get("key_name") == key_name and row.get("is_active"):
                record = self._load(row)
                return codec.decode(self._engine.decrypt(record.encrypted_value), ValueType.STRING)
        return None

    def list_safe(self) -> list[ApiKeySummary]:
        """Every API key without its value, in creation order."""
        return [self._load(row).to_summary() for row in self._backend.rows(COLLECTION)]

    def update(self, key_id: str, changes: ApiKeyUpdate | dict[str, Any]) -> ApiKeyRecord | None:
        """Apply a partial update. Returns the updated record, or None if not found."""
        if not isinstance(changes, ApiKeyUpdate):
            try:
                changes = ApiKeyUpdate.model_validate(changes)
            except pydantic.ValidationError as e:
                raise ValidationError(str(e)) from e
        fields = changes.changes()

        for name in ("key_name", "key_type"):
            if name in fields:
                require_text(name, fields[name])
        if "is_active" in fields and fields["is_active"] is None:
            raise ValidationError("is_active must be true or false")

        update: dict[str, Any] = {k: v for k, v in fields.items() if k != "value"}
        if "value" in fields:
            update["encrypted_value"] = self._seal(fields["value"])

        with self._writer(), self._locks.hold(key_id):
            row = self._backend.get(COLLECTION, key_id)
            if row is None:
                return None
            current = self._load(row)
            if self.unique_names:
                name = update.get("key_name", current.key_name)
                active = update.get("is_active", current.is_active)
                if active:
                    self._check_name_free(name, exclude_id=key_id)
            update["updated_at"] = strictly_after(utcnow(), current.updated_at)
            record = current.model_copy(update=update)
            self._backend.put(COLLECTION, key_id, record.model_dump(mode="json"))

        logger.info(
            "Updated API key %s (fields: %s)", key_id, ", ".join(sorted(fields)) or "none"
        )
        return record

    def delete(self, key_id: str) -> bool:
        """Delete an API key by id. Returns True if one was removed."""
        with self._locks.hold(key_id):
            deleted = self._backend.delete(COLLECTION, key_id)
        if deleted:
            logger.info("Deleted API key %s", key_id)
        return deleted
