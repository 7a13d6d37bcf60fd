"""Storage-backed persistence gateway for Boxkeeper.

Implements the per-entity upsert/remove contract on top of ``DomainStore``.
Every confirmed call has been written to Home Assistant storage; a failed
save is rolled back in memory and reported as an error result. Ids for new
entities are minted here on their first successful upsert.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import replace
from typing import Any, Generic, TypeVar

from .const import DOMAIN
from .exceptions import StorageError
from .models import (
    Group,
    Item,
    group_from_dict,
    group_to_dict,
    item_from_dict,
    item_to_dict,
    new_uuid4_str,
)
from .reconciler import GatewayResult
from .storage import DomainStore

_LOGGER = logging.getLogger(__name__)

EntityT = TypeVar("EntityT", Item, Group)

_MISSING: object = object()


class StoreSession:
    """Loaded payload plus the store it is written back to.

    Saves are serialized with an asyncio.Lock so two gateway calls never write
    the storage file at the same time.
    """

    def __init__(self, store: DomainStore, payload: dict[str, Any]) -> None:
        self._store = store
        self._data = payload
        self._data.setdefault("items", {})
        self._data.setdefault("groups", {})
        self._lock = asyncio.Lock()

    @property
    def data(self) -> dict[str, Any]:
        return self._data

    async def async_write(self, collection: str, key: str, value: dict[str, Any] | None) -> None:
        """Set (or, with ``value=None``, delete) one entry and save.

        On failure the in-memory payload is restored and StorageError raised.
        """

        async with self._lock:
            bucket: dict[str, Any] = self._data[collection]
            previous = bucket.get(key, _MISSING)
            if value is None:
                bucket.pop(key, None)
            else:
                bucket[key] = value

            start_time = time.monotonic()
            try:
                await self._store.async_save(self._data)
            except Exception as exc:
                if previous is _MISSING:
                    bucket.pop(key, None)
                else:
                    bucket[key] = previous
                _LOGGER.error(
                    "Failed to persist %s entry",
                    collection,
                    extra={
                        "domain": DOMAIN,
                        "op": "persist_failed",
                        "collection": collection,
                        "entity_id": key,
                        "elapsed_ms": int((time.monotonic() - start_time) * 1000),
                    },
                    exc_info=True,
                )
                raise StorageError(f"failed to persist {collection} entry") from exc

            _LOGGER.debug(
                "Persisted %s entry",
                collection,
                extra={
                    "domain": DOMAIN,
                    "op": "persist_complete",
                    "collection": collection,
                    "entity_id": key,
                    "elapsed_ms": int((time.monotonic() - start_time) * 1000),
                },
            )


class StorageGateway(Generic[EntityT]):
    """Gateway for one entity kind stored under ``collection`` in a StoreSession."""

    def __init__(
        self,
        session: StoreSession,
        *,
        collection: str,
        to_dict: Callable[[EntityT], dict[str, Any]],
        from_dict: Callable[[dict[str, Any]], EntityT],
    ) -> None:
        self._session = session
        self._collection = collection
        self._to_dict = to_dict
        self._from_dict = from_dict

    async def async_upsert(self, entity: EntityT) -> GatewayResult[EntityT]:
        entity_id = entity.id or new_uuid4_str()
        value = self._to_dict(replace(entity, id=entity_id))
        try:
            await self._session.async_write(self._collection, entity_id, value)
        except StorageError:
            return GatewayResult.error()
        # Echo a fresh copy built from what was written
        return GatewayResult.success(self._from_dict(dict(value)))

    async def async_remove(self, entity_id: str) -> GatewayResult[EntityT]:
        try:
            await self._session.async_write(self._collection, str(entity_id), None)
        except StorageError:
            return GatewayResult.error()
        return GatewayResult.success()


def item_gateway(session: StoreSession) -> StorageGateway[Item]:
    return StorageGateway(
        session, collection="items", to_dict=item_to_dict, from_dict=item_from_dict
    )


def group_gateway(session: StoreSession) -> StorageGateway[Group]:
    return StorageGateway(
        session, collection="groups", to_dict=group_to_dict, from_dict=group_from_dict
    )
