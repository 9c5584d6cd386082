"""
Namespaced secret repository.

A secret is addressed by (namespace, key). Writes are upserts; reads decrypt
and decode according to the value type recorded at write time. list() returns
metadata only.

Usage:
    repo = SecretRepository(engine, MemoryBackend())
    repo.set("app", "stripe", "sk_live_...", ValueType.STRING)
    repo.get("app", "stripe").value   # "sk_live_..."
    repo.list("app")                  # [SecretSummary(...)]
"""

from __future__ import annotations

import copy
import json
import logging
from datetime import datetime, timedelta
from typing import Any

import pydantic

from keystore.vault import codec
from keystore.vault.backends import RecordBackend
from keystore.vault.codec import ValueType
from keystore.vault.crypto import CipherEngine
from keystore.vault.errors import DecryptionError, ValidationError
from keystore.vault.locks import KeyedLocks
from keystore.vault.models import SecretRecord, SecretSummary, SecretValue, utcnow

logger = logging.getLogger(__name__)

COLLECTION = "secrets"


def require_text(field: str, value: Any) -> str:
    """Reject missing, non-string, or blank identifiers."""
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} must be a non-empty string")
    return value


def strictly_after(now: datetime, previous: datetime) -> datetime:
    """Return now, or previous + 1µs if the clock hasn't moved past previous."""
    if now > previous:
        return now
    return previous + timedelta(microseconds=1)


def _identity(namespace: str, key: str) -> str:
    # JSON keeps ("a:b", "c") and ("a", "b:c") distinct
    return json.dumps([namespace, key], ensure_ascii=False)


def _check_metadata(metadata: Any) -> dict[str, Any] | None:
    if metadata is None:
        return None
    if not isinstance(metadata, dict):
        raise ValidationError("metadata must be a JSON object")
    try:
        json.dumps(metadata, allow_nan=False)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"metadata is not JSON-serializable: {e}") from e
    return copy.deepcopy(metadata)


class SecretRepository:
    def __init__(self, engine: CipherEngine, backend: RecordBackend) -> None:
        self._engine = engine
        self._backend = backend
        self._locks = KeyedLocks()

    def _load(self, row: dict) -> SecretRecord:
        try:
            return SecretRecord.model_validate(row)
        except pydantic.ValidationError as e:
            raise DecryptionError("Stored secret record is malformed") from e

    def set(
        self,
        namespace: str,
        key: str,
        value: Any,
        value_type: ValueType | str,
        metadata: dict[str, Any] | None = None,
    ) -> SecretRecord:
        """Encrypt and upsert a secret. Overwrites keep id and created_at."""
        namespace = require_text("namespace", namespace)
        key = require_text("key", key)
        value_type = ValueType.parse(value_type)
        metadata = _check_metadata(metadata)

        envelope = self._engine.encrypt(codec.encode(value, value_type))
        identity = _identity(namespace, key)

        with self._locks.hold(identity):
            existing = self._backend.get(COLLECTION, identity)
            now = utcnow()
            if existing is None:
                record = SecretRecord(
                    namespace=namespace,
                    key=key,
                    encrypted_value=envelope,
                    value_type=value_type,
                    metadata=metadata,
                    created_at=now,
                    updated_at=now,
                )
            else:
                previous = self._load(existing)
                record = previous.model_copy(
                    update={
                        "encrypted_value": envelope,
                        "value_type": value_type,
                        "metadata": metadata,
                        "updated_at": strictly_after(now, previous.updated_at),
                    }
                )
            self._backend.put(COLLECTION, identity, record.model_dump(mode="json"))

        logger.debug(
            "Stored secret %s/%s (%s, %s)",
            namespace,
            key,
            value_type.value,
            "created" if existing is None else "updated",
        )
        return record

    def get(self, namespace: str, key: str) -> SecretValue | None:
        """Decrypt and decode a secret. Returns None if not found."""
        namespace = require_text("namespace", namespace)
        key = require_text("key", key)
        row = self._backend.get(COLLECTION, _identity(namespace, key))
        if row is None:
            return None
        record = self._load(row)
        plaintext = self._engine.decrypt(record.encrypted_value)
        return SecretValue(
            namespace=namespace,
            key=key,
            value_type=record.value_type,
            value=codec.decode(plaintext, record.value_type),
        )

    def delete(self, namespace: str, key: str) -> bool:
        """Delete a secret. Returns True if one was removed."""
        namespace = require_text("namespace", namespace)
        key = require_text("key", key)
        identity = _identity(namespace, key)
        with self._locks.hold(identity):
            deleted = self._backend.delete(COLLECTION, identity)
        if deleted:
            logger.debug("Deleted secret %s/%s", namespace, key)
        return deleted

    def list(self, namespace: str) -> list[SecretSummary]:
        """Safe summaries of every secret in a namespace, ordered by key."""
        namespace = require_text("namespace", namespace)
        records = [
            self._load(row)
            for row in self._backend.rows(COLLECTION)
            if row.get("namespace") == namespace
        ]
        records.sort(key=lambda r: r.key)
        return [r.to_summary() for r in records]

    def namespaces(self) -> list[str]:
        return sorted({row["namespace"] for row in self._backend.rows(COLLECTION)})
