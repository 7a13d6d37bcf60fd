"""Service registration and handlers for Boxkeeper.

Exposes Home Assistant services under the ``boxkeeper`` domain to create,
update, move, reorder and delete items and groups. Input is validated with
voluptuous and the model validators, then delegated to the ``CollectionStore``.

Errors from the domain layer (validation, not found, storage) are logged
with contextual fields and do not raise stack traces. Writes the gateway did
not confirm are logged as warnings; nothing is raised to the caller.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any

import voluptuous as vol
from homeassistant.core import HomeAssistant, ServiceCall

from .collection import CollectionStore
from .const import DOMAIN
from .exceptions import NotFoundError, StorageError, ValidationError
from .models import (
    group_from_create,
    item_from_create,
    validate_group_update,
    validate_item_update,
    validate_order,
)

LOGGER = logging.getLogger(__name__)


# -----------------------------
# Validation schemas
# -----------------------------

_OPTIONAL_ID = vol.Any(str, None)

SCHEMA_ITEM_CREATE = vol.Schema(
    {
        vol.Required("name"): str,
        vol.Optional("group_id"): _OPTIONAL_ID,
        vol.Optional("order"): int,
        vol.Optional("cover_image"): vol.Any(str, None),
        vol.Optional("content_images", default=[]): [str],
    }
)

SCHEMA_ITEM_UPDATE = vol.Schema(
    {
        vol.Required("item_id"): str,
        vol.Optional("name"): str,
        vol.Optional("group_id"): _OPTIONAL_ID,
        vol.Optional("order"): int,
        vol.Optional("cover_image"): vol.Any(str, None),
        vol.Optional("content_images"): [str],
    }
)

SCHEMA_ITEM_DELETE = vol.Schema({vol.Required("item_id"): str})

SCHEMA_ITEM_MOVE_TO_GROUP = vol.Schema(
    {
        vol.Required("item_id"): str,
        vol.Optional("group_id", default=None): _OPTIONAL_ID,
        vol.Optional("order"): int,
    }
)

SCHEMA_ITEM_REORDER = vol.Schema(
    {vol.Required("item_id"): str, vol.Required("target_item_id"): str}
)

SCHEMA_GROUP_CREATE = vol.Schema({vol.Required("name"): str, vol.Optional("order"): int})

SCHEMA_GROUP_UPDATE = vol.Schema(
    {vol.Required("group_id"): str, vol.Optional("name"): str, vol.Optional("order"): int}
)

SCHEMA_GROUP_ID = vol.Schema({vol.Required("group_id"): str})

SCHEMA_SCOPE_NORMALIZE = vol.Schema({vol.Optional("group_id", default=None): _OPTIONAL_ID})


# -----------------------------
# Internal helpers
# -----------------------------


def _get_collection(hass: HomeAssistant) -> CollectionStore:
    bucket = hass.data.get(DOMAIN) or {}
    collection = bucket.get("collection")
    if collection is None:
        raise StorageError("collection not initialized; run integration setup")
    return collection  # type: ignore[return-value]


def _log_domain_error(op: str, context: dict[str, Any], exc: Exception) -> None:
    level = logging.WARNING
    if isinstance(exc, StorageError):
        level = logging.ERROR
    LOGGER.log(level, str(exc), extra={"domain": DOMAIN, "op": op, **context})


def _log_unconfirmed(op: str, context: dict[str, Any]) -> None:
    LOGGER.warning("Change was not persisted", extra={"domain": DOMAIN, "op": op, **context})


_ServiceHandler = Callable[[HomeAssistant, dict], Awaitable[None]]


async def _run(
    op: str,
    context: dict[str, Any],
    hass: HomeAssistant,
    data: dict,
    body: Callable[[CollectionStore, dict], Awaitable[None]],
    schema: vol.Schema,
) -> None:
    """Validate ``data``, run ``body`` and map errors to log records."""

    try:
        payload = schema(data)
        await body(_get_collection(hass), payload)
    except vol.Invalid as exc:
        _log_domain_error(op, context, ValidationError(str(exc)))
    except (ValidationError, NotFoundError, StorageError) as exc:
        _log_domain_error(op, context, exc)
    except Exception:
        LOGGER.error("Unhandled service error", exc_info=True, extra={"domain": DOMAIN, "op": op})


# -----------------------------
# Service handlers (exported for tests)
# -----------------------------


async def service_item_create(hass: HomeAssistant, data: dict) -> None:
    op = "item_create"

    async def body(collection: CollectionStore, payload: dict) -> None:
        if payload.get("group_id") is not None:
            collection.require_group(payload["group_id"])
        item = await collection.async_create_item(item_from_create(payload))
        if item is None:
            _log_unconfirmed(op, {"item_name": payload["name"]})
            return
        LOGGER.debug(
            "Service item_create created item",
            extra={"domain": DOMAIN, "op": op, "item_id": item.id},
        )

    await _run(op, {"item_name": data.get("name")}, hass, data, body, SCHEMA_ITEM_CREATE)


async def service_item_update(hass: HomeAssistant, data: dict) -> None:
    op = "item_update"
    item_id = data.get("item_id")

    async def body(collection: CollectionStore, payload: dict) -> None:
        collection.require_item(payload["item_id"])
        if payload.get("group_id") is not None:
            collection.require_group(payload["group_id"])
        update = validate_item_update({k: v for k, v in payload.items() if k != "item_id"})
        if await collection.async_update_item(payload["item_id"], update) is None:
            _log_unconfirmed(op, {"item_id": item_id})

    await _run(op, {"item_id": item_id}, hass, data, body, SCHEMA_ITEM_UPDATE)


async def service_item_delete(hass: HomeAssistant, data: dict) -> None:
    op = "item_delete"
    item_id = data.get("item_id")

    async def body(collection: CollectionStore, payload: dict) -> None:
        collection.require_item(payload["item_id"])
        if not await collection.async_delete_item(payload["item_id"]):
            _log_unconfirmed(op, {"item_id": item_id})

    await _run(op, {"item_id": item_id}, hass, data, body, SCHEMA_ITEM_DELETE)


async def service_item_move_to_group(hass: HomeAssistant, data: dict) -> None:
    op = "item_move_to_group"
    context = {"item_id": data.get("item_id"), "group_id": data.get("group_id")}

    async def body(collection: CollectionStore, payload: dict) -> None:
        collection.require_item(payload["item_id"])
        if payload["group_id"] is not None:
            collection.require_group(payload["group_id"])
        moved = await collection.async_move_item_to_group(
            payload["item_id"], payload["group_id"], validate_order(payload.get("order"))
        )
        if moved is None:
            _log_unconfirmed(op, context)

    await _run(op, context, hass, data, body, SCHEMA_ITEM_MOVE_TO_GROUP)


async def service_item_reorder(hass: HomeAssistant, data: dict) -> None:
    op = "item_reorder"
    context = {"item_id": data.get("item_id"), "target_item_id": data.get("target_item_id")}

    async def body(collection: CollectionStore, payload: dict) -> None:
        collection.require_item(payload["item_id"])
        collection.require_item(payload["target_item_id"])
        outcome = await collection.async_reorder_items(
            payload["item_id"], payload["target_item_id"]
        )
        if outcome.partial:
            _log_unconfirmed(op, {**context, "failed_ids": [i.id for i in outcome.failed]})

    await _run(op, context, hass, data, body, SCHEMA_ITEM_REORDER)


async def service_group_create(hass: HomeAssistant, data: dict) -> None:
    op = "group_create"

    async def body(collection: CollectionStore, payload: dict) -> None:
        group = await collection.async_create_group(group_from_create(payload))
        if group is None:
            _log_unconfirmed(op, {"group_name": payload["name"]})
            return
        LOGGER.debug(
            "Service group_create created group",
            extra={"domain": DOMAIN, "op": op, "group_id": group.id},
        )

    await _run(op, {"group_name": data.get("name")}, hass, data, body, SCHEMA_GROUP_CREATE)


async def service_group_update(hass: HomeAssistant, data: dict) -> None:
    op = "group_update"
    group_id = data.get("group_id")

    async def body(collection: CollectionStore, payload: dict) -> None:
        collection.require_group(payload["group_id"])
        update = validate_group_update({k: v for k, v in payload.items() if k != "group_id"})
        if await collection.async_update_group(payload["group_id"], update) is None:
            _log_unconfirmed(op, {"group_id": group_id})

    await _run(op, {"group_id": group_id}, hass, data, body, SCHEMA_GROUP_UPDATE)


async def service_group_delete(hass: HomeAssistant, data: dict) -> None:
    op = "group_delete"
    group_id = data.get("group_id")

    async def body(collection: CollectionStore, payload: dict) -> None:
        collection.require_group(payload["group_id"])
        outcome = await collection.async_delete_group(payload["group_id"])
        if outcome is None or outcome.partial:
            _log_unconfirmed(op, {"group_id": group_id})

    await _run(op, {"group_id": group_id}, hass, data, body, SCHEMA_GROUP_ID)


async def service_group_move_up(hass: HomeAssistant, data: dict) -> None:
    op = "group_move_up"
    group_id = data.get("group_id")

    async def body(collection: CollectionStore, payload: dict) -> None:
        collection.require_group(payload["group_id"])
        if (await collection.async_move_group_up(payload["group_id"])).partial:
            _log_unconfirmed(op, {"group_id": group_id})

    await _run(op, {"group_id": group_id}, hass, data, body, SCHEMA_GROUP_ID)


async def service_group_move_down(hass: HomeAssistant, data: dict) -> None:
    op = "group_move_down"
    group_id = data.get("group_id")

    async def body(collection: CollectionStore, payload: dict) -> None:
        collection.require_group(payload["group_id"])
        if (await collection.async_move_group_down(payload["group_id"])).partial:
            _log_unconfirmed(op, {"group_id": group_id})

    await _run(op, {"group_id": group_id}, hass, data, body, SCHEMA_GROUP_ID)


async def service_scope_normalize(hass: HomeAssistant, data: dict) -> None:
    op = "scope_normalize"
    group_id = data.get("group_id")

    async def body(collection: CollectionStore, payload: dict) -> None:
        if payload["group_id"] is not None:
            collection.require_group(payload["group_id"])
        if (await collection.async_normalize_scope(payload["group_id"])).partial:
            _log_unconfirmed(op, {"group_id": group_id})

    await _run(op, {"group_id": group_id}, hass, data, body, SCHEMA_SCOPE_NORMALIZE)


# -----------------------------
# Registration
# -----------------------------

SERVICES: dict[str, tuple[_ServiceHandler, vol.Schema]] = {
    "item_create": (service_item_create, SCHEMA_ITEM_CREATE),
    "item_update": (service_item_update, SCHEMA_ITEM_UPDATE),
    "item_delete": (service_item_delete, SCHEMA_ITEM_DELETE),
    "item_move_to_group": (service_item_move_to_group, SCHEMA_ITEM_MOVE_TO_GROUP),
    "item_reorder": (service_item_reorder, SCHEMA_ITEM_REORDER),
    "group_create": (service_group_create, SCHEMA_GROUP_CREATE),
    "group_update": (service_group_update, SCHEMA_GROUP_UPDATE),
    "group_delete": (service_group_delete, SCHEMA_GROUP_ID),
    "group_move_up": (service_group_move_up, SCHEMA_GROUP_ID),
    "group_move_down": (service_group_move_down, SCHEMA_GROUP_ID),
    "scope_normalize": (service_scope_normalize, SCHEMA_SCOPE_NORMALIZE),
}


def _bind(
    hass: HomeAssistant, handler: _ServiceHandler
) -> Callable[[ServiceCall], Awaitable[None]]:
    async def _handle(call: ServiceCall) -> None:
        await handler(hass, dict(call.data))

    return _handle


def setup(hass: HomeAssistant) -> None:
    """Register boxkeeper.* services on Home Assistant."""

    # Idempotent: avoid duplicate registration across reloads
    bucket = hass.data.setdefault(DOMAIN, {})
    if bucket.get("services_registered"):
        return

    # Home Assistant validates inputs against these schemas before invoking
    # the handler. Handlers are exported above for testability.
    for name, (handler, schema) in SERVICES.items():
        hass.services.async_register(DOMAIN, name, _bind(hass, handler), schema)

    bucket["services_registered"] = True


def unload(hass: HomeAssistant) -> None:
    """Remove boxkeeper.* services and clear the registration flag."""

    bucket = hass.data.get(DOMAIN) or {}
    if not bucket.pop("services_registered", None):
        return
    for name in SERVICES:
        hass.services.async_remove(DOMAIN, name)
