"""Boxkeeper integration bootstrap.

This module initializes the integration, loads persistent storage, builds the
storage-backed gateways and the collection store, and places them in
hass.data.
"""

from __future__ import annotations

import logging
from typing import Any

from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant
from homeassistant.exceptions import ConfigEntryNotReady
from homeassistant.helpers import config_validation as cv

from . import services as services_mod
from .collection import CollectionStore
from .const import DOMAIN, INTEGRATION_VERSION
from .exceptions import StorageError
from .gateway import StoreSession, group_gateway, item_gateway
from .storage import DomainStore

LOGGER = logging.getLogger(__name__)


# This integration is config-entry only; no YAML configuration is accepted.
CONFIG_SCHEMA = cv.config_entry_only_config_schema(DOMAIN)


async def async_setup(hass: HomeAssistant, _config: dict) -> bool:
    """Set up the Boxkeeper domain at Home Assistant startup.

    Initializes an empty domain bucket in hass.data with no side effects.
    """
    hass.data.setdefault(DOMAIN, {})
    return True


async def async_setup_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    """Set up Boxkeeper from a config entry."""
    bucket = hass.data.setdefault(DOMAIN, {})

    store = DomainStore(hass)
    bucket["store"] = store

    try:
        payload = await store.async_load()
        _validate_storage_payload(payload, schema_version=store.schema_version)
        _log_storage_health(payload, schema_version=store.schema_version)
    except StorageError as exc:
        LOGGER.error(
            "Storage validation failed during setup",
            extra={"domain": DOMAIN, "op": "setup_storage", "schema_version": store.schema_version},
            exc_info=True,
        )
        raise ConfigEntryNotReady("storage validation failed") from exc
    except Exception as exc:
        LOGGER.error(
            "Failed to load storage during setup",
            extra={"domain": DOMAIN, "op": "setup_storage", "schema_version": store.schema_version},
            exc_info=True,
        )
        raise ConfigEntryNotReady("storage load failed") from exc

    session = StoreSession(store, payload)
    collection = CollectionStore.from_state(
        payload, item_gateway=item_gateway(session), group_gateway=group_gateway(session)
    )
    bucket["session"] = session
    bucket["collection"] = collection

    # Finish any delete cascade interrupted in a previous run
    repaired = await collection.async_reassign_orphans()
    if repaired.steps:
        LOGGER.info(
            "Reassigned %s orphaned items to the ungrouped scope",
            len(repaired.committed),
            extra={"domain": DOMAIN, "op": "setup_reassign_orphans"},
        )

    services_mod.setup(hass)

    return True


async def async_unload_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    """Unload a config entry.

    Every confirmed write is already on disk, so unloading only drops the
    in-memory state and registration flags.
    """

    bucket = hass.data.get(DOMAIN) or {}

    services_mod.unload(hass)

    bucket.pop("collection", None)
    bucket.pop("session", None)
    bucket.pop("store", None)

    return True


def _validate_storage_payload(payload: dict[str, Any], *, schema_version: int) -> None:
    """Validate loaded storage payload shape and version."""

    if not isinstance(payload, dict):
        raise StorageError("storage payload is not a dict")

    if int(payload.get("schema_version", -1)) != int(schema_version):
        raise StorageError("storage payload schema_version mismatch")

    items = payload.get("items")
    groups = payload.get("groups")
    if not isinstance(items, dict) or not isinstance(groups, dict):
        raise StorageError("storage payload missing required collections")


def _log_storage_health(payload: dict[str, Any], *, schema_version: int) -> None:
    """Log storage health summary after validation."""

    items = payload.get("items")
    groups = payload.get("groups")
    item_count = len(items) if isinstance(items, dict) else 0
    group_count = len(groups) if isinstance(groups, dict) else 0

    level = logging.WARNING if item_count == 0 and group_count == 0 else logging.DEBUG
    LOGGER.log(
        level,
        "Storage health: schema_version=%s items=%s groups=%s",
        schema_version,
        item_count,
        group_count,
        extra={
            "domain": DOMAIN,
            "op": "setup_storage_health",
            "integration_version": INTEGRATION_VERSION,
            "schema_version": schema_version,
            "items_count": item_count,
            "groups_count": group_count,
        },
    )
