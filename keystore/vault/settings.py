"""Application settings: a single unencrypted record describing this deployment."""

from __future__ import annotations

import logging
import threading
import uuid
from typing import TYPE_CHECKING, Any

import pydantic

from keystore.vault.backends import RecordBackend
from keystore.vault.errors import CorruptRecordError, ValidationError
from keystore.vault.models import AppSettings, AppSettingsUpdate, utcnow
from keystore.vault.secret_store import require_text, strictly_after

if TYPE_CHECKING:
    from keystore.config import Config

logger = logging.getLogger(__name__)

COLLECTION = "settings"
_KEY = "app"


class AppSettingsStore:
    def __init__(self, backend: RecordBackend) -> None:
        self._backend = backend
        self._lock = threading.Lock()

    def get(self) -> AppSettings | None:
        row = self._backend.get(COLLECTION, _KEY)
        if row is None:
            return None
        try:
            return AppSettings.model_validate(row)
        except pydantic.ValidationError as e:
            raise CorruptRecordError(f"Stored app settings are malformed: {e}") from e

    def set(
        self,
        app_name: str,
        app_id: str | None = None,
        description: str | None = None,
        is_active: bool = True,
        metadata: dict[str, Any] | None = None,
    ) -> AppSettings:
        """Replace the settings record with a new one."""
        require_text("app_name", app_name)
        try:
            settings = AppSettings(
                app_id=app_id or str(uuid.uuid4()),
                app_name=app_name,
                description=description,
                is_active=is_active,
                metadata=metadata,
            )
        except pydantic.ValidationError as e:
            raise ValidationError(str(e)) from e
        with self._lock:
            self._backend.put(COLLECTION, _KEY, settings.model_dump(mode="json"))
        return settings

    def update(
        self, settings_id: str, changes: AppSettingsUpdate | dict[str, Any]
    ) -> AppSettings | None:
        """Partially update the settings. Returns None if settings_id doesn't match."""
        if not isinstance(changes, AppSettingsUpdate):
            try:
                changes = AppSettingsUpdate.model_validate(changes)
            except pydantic.ValidationError as e:
                raise ValidationError(str(e)) from e
        fields = changes.changes()
        for name in ("app_id", "app_name"):
            if name in fields:
                require_text(name, fields[name])
        if "is_active" in fields and fields["is_active"] is None:
            raise ValidationError("is_active must be true or false")

        with self._lock:
            current = self.get()
            if current is None or current.id != settings_id:
                return None
            fields["updated_at"] = strictly_after(utcnow(), current.updated_at)
            settings = current.model_copy(update=fields)
            self._backend.put(COLLECTION, _KEY, settings.model_dump(mode="json"))
        return settings

    def bootstrap(self, config: Config) -> AppSettings:
        """Seed default settings from config unless some already exist."""
        existing = self.get()
        if existing is not None:
            return existing
        settings = self.set(
            app_name=config.app_name,
            app_id=config.app_id or None,
            description="Encrypted secret and API key store",
            metadata={"environment": config.environment},
        )
        logger.info("Initialized app settings for %s (%s)", settings.app_name, settings.app_id)
        return settings
