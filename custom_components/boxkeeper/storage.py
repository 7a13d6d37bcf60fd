"""Persistent storage manager for Boxkeeper.

Wraps Home Assistant's Store with schema-aware load/save and migrations.

Data shape persisted:
    {
        "schema_version": int,
        "items": {id -> ItemDict},
        "groups": {id -> GroupDict},
    }

The manager ensures first load initializes an empty dataset and applies
forward-only migrations when an older schema payload is encountered.
"""

from __future__ import annotations

import logging
from copy import deepcopy
from typing import Any, Final

from homeassistant.core import HomeAssistant
from homeassistant.helpers.storage import Store

from . import migrations
from .const import DOMAIN, STORAGE_KEY
from .exceptions import StorageError

_LOGGER = logging.getLogger(__name__)

# Current schema version for persisted payloads
CURRENT_SCHEMA_VERSION: Final[int] = 2

# Version of the Home Assistant storage envelope. Kept fixed; payload changes
# are tracked by ``schema_version`` and applied by ``migrations``.
STORE_VERSION: Final[int] = 1


def _empty_payload() -> dict[str, Any]:
    """Create a new empty payload matching the current schema.

    Returns a fresh dict each time to avoid shared mutation across callers.
    """

    return {"schema_version": CURRENT_SCHEMA_VERSION, "items": {}, "groups": {}}


class DomainStore:
    """Schema-aware wrapper around Home Assistant's Store for Boxkeeper.

    This class centralizes storage access and schema migrations. It is exposed
    via ``hass.data[DOMAIN]["store"]``.
    """

    def __init__(
        self, hass: HomeAssistant, *, key: str = STORAGE_KEY, version: int = CURRENT_SCHEMA_VERSION
    ) -> None:
        self._hass = hass
        self._store = Store(hass, STORE_VERSION, key)
        self._schema_version = version
        self._key = key

    @property
    def schema_version(self) -> int:
        return self._schema_version

    @property
    def key(self) -> str:
        return self._key

    async def async_load(self) -> dict[str, Any]:
        """Load the persisted dataset, applying migrations if needed.

        Returns a copy of the data to prevent external mutation of the cached
        object inside the storage layer.
        """

        raw = await self._store.async_load()
        if raw is None:
            return _empty_payload()

        # Missing schema_version means treat as version 0
        from_version = int(raw.get("schema_version", 0)) if isinstance(raw, dict) else 0

        if from_version != self._schema_version:
            migrated = await self.async_migrate_if_needed(raw)
            return deepcopy(migrated)

        data: dict[str, Any] = {"schema_version": self._schema_version, "items": {}, "groups": {}}
        if isinstance(raw, dict):
            data.update(raw)
        return deepcopy(data)

    async def async_save(self, data: dict[str, Any]) -> None:
        """Persist the dataset ensuring schema_version is up-to-date."""

        payload = deepcopy(data) if isinstance(data, dict) else {}
        payload["schema_version"] = self._schema_version
        payload.setdefault("items", {})
        payload.setdefault("groups", {})
        await self._store.async_save(payload)

    async def async_migrate_if_needed(self, raw: dict[str, Any]) -> dict[str, Any]:
        """Migrate ``raw`` payload to the current schema iff needed.

        If a migration occurs, persist the migrated payload back to storage.
        Returns the migrated (or original) payload.
        """

        if not isinstance(raw, dict):
            _LOGGER.error(
                "Corrupted storage payload: expected dict, got %s",
                type(raw).__name__,
                extra={
                    "domain": DOMAIN,
                    "op": "migrate",
                    "from_version": None,
                    "to_version": self._schema_version,
                    "storage_key": self.key,
                },
            )
            raise StorageError("corrupted storage payload: not a dict")

        from_version = int(raw.get("schema_version", 0))
        to_version = self._schema_version
        if from_version == to_version:
            normalized = {"schema_version": to_version, "items": {}, "groups": {}}
            normalized.update(raw)
            return normalized

        try:
            migrated = migrations.migrate(raw, from_version=from_version, to_version=to_version)
        except Exception as exc:
            # Do not overwrite on-disk payload; surface as a typed error
            _LOGGER.error(
                "Storage migration failed",
                extra={
                    "domain": DOMAIN,
                    "op": "migrate",
                    "from_version": from_version,
                    "to_version": to_version,
                    "storage_key": self.key,
                },
                exc_info=True,
            )
            raise StorageError("storage migration failed") from exc
        migrated.setdefault("items", {})
        migrated.setdefault("groups", {})
        migrated["schema_version"] = to_version

        await self._store.async_save(migrated)
        _LOGGER.info(
            "Storage migrated from schema %s to %s",
            from_version,
            to_version,
            extra={"domain": DOMAIN, "op": "migrate", "storage_key": self.key},
        )
        return migrated
