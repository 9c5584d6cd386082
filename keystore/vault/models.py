"""Vault data models.

Full records carry the sealed envelope and never leave the vault package;
the *Summary models are the safe projections used for listing.
"""

from __future__ import annotations

import base64
import uuid
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

from keystore.vault.codec import ValueType


def utcnow() -> datetime:
    return datetime.now(UTC)


def new_id() -> str:
    return str(uuid.uuid4())


def as_utc(value: datetime | None) -> datetime | None:
    """Treat naive timestamps as UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


class _Sealed(BaseModel):
    """Mixin for records holding an envelope. JSON rows carry it as base64."""

    encrypted_value: bytes = Field(repr=False)

    @field_validator("encrypted_value", mode="before")
    @classmethod
    def _decode_envelope(cls, v: Any) -> Any:
        if isinstance(v, str):
            return base64.b64decode(v.encode("ascii"), validate=True)
        return v

    @field_serializer("encrypted_value", when_used="json")
    def _encode_envelope(self, v: bytes) -> str:
        return base64.b64encode(v).decode("ascii")


# ─── Namespaced secrets ──────────────────────────────────────────────────


class SecretSummary(BaseModel):
    """A secret's metadata only. Never includes the value or its envelope."""

    id: str
    namespace: str
    key: str
    value_type: ValueType
    metadata: dict[str, Any] | None = None
    created_at: datetime
    updated_at: datetime


class SecretRecord(_Sealed):
    id: str = Field(default_factory=new_id)
    namespace: str
    key: str
    value_type: ValueType
    metadata: dict[str, Any] | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def to_summary(self) -> SecretSummary:
        return SecretSummary(**self.model_dump(exclude={"encrypted_value"}))


class SecretValue(BaseModel):
    """A decrypted, decoded secret as returned by an explicit read."""

    model_config = ConfigDict(frozen=True)

    namespace: str
    key: str
    value_type: ValueType
    value: Any = Field(repr=False)


# ─── API keys ────────────────────────────────────────────────────────────


class ApiKeySummary(BaseModel):
    """An API key's metadata only. Never includes the value or its envelope."""

    id: str
    key_name: str
    key_type: str
    description: str | None = None
    is_active: bool = True
    expires_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


class ApiKeyRecord(_Sealed):
    id: str = Field(default_factory=new_id)
    key_name: str
    key_type: str
    description: str | None = None
    is_active: bool = True
    expires_at: datetime | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator("expires_at")
    @classmethod
    def _expires_at_utc(cls, v: datetime | None) -> datetime | None:
        return as_utc(v)

    def to_summary(self) -> ApiKeySummary:
        return ApiKeySummary(**self.model_dump(exclude={"encrypted_value"}))

    def is_expired(self, now: datetime | None = None) -> bool:
        """Whether expires_at has passed. The registry itself never enforces this."""
        if self.expires_at is None:
            return False
        return self.expires_at <= as_utc(now or utcnow())


class ApiKeyUpdate(BaseModel):
    """Partial update. Only fields explicitly set are applied."""

    model_config = ConfigDict(extra="forbid")

    key_name: str | None = None
    key_type: str | None = None
    value: str | None = Field(default=None, repr=False)
    description: str | None = None
    is_active: bool | None = None
    expires_at: datetime | None = None

    @field_validator("expires_at")
    @classmethod
    def _expires_at_utc(cls, v: datetime | None) -> datetime | None:
        return as_utc(v)

    def changes(self) -> dict[str, Any]:
        return {name: getattr(self, name) for name in self.model_fields_set}


# ─── App settings ────────────────────────────────────────────────────────


class AppSettings(BaseModel):
    id: str = Field(default_factory=new_id)
    app_id: str
    app_name: str
    description: str | None = None
    is_active: bool = True
    metadata: dict[str, Any] | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class AppSettingsUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    app_id: str | None = None
    app_name: str | None = None
    description: str | None = None
    is_active: bool | None = None
    metadata: dict[str, Any] | None = None

    def changes(self) -> dict[str, Any]:
        return {name: getattr(self, name) for name in self.model_fields_set}
