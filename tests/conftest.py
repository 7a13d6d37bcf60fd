"""Shared fixtures for Boxkeeper offline tests.

Provides in-memory gateways for the collection store and an in-memory
replacement for Home Assistant's storage Store, patched into the integration's
storage module so tests never touch the filesystem.
"""

from __future__ import annotations

import asyncio
import sys
from copy import deepcopy
from dataclasses import replace
from itertools import count
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest

# Ensure project root is on sys.path for module imports
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from custom_components.boxkeeper import storage as storage_mod  # noqa: E402
from custom_components.boxkeeper.collection import CollectionStore  # noqa: E402
from custom_components.boxkeeper.const import DOMAIN  # noqa: E402
from custom_components.boxkeeper.exceptions import PersistenceError  # noqa: E402
from custom_components.boxkeeper.reconciler import GatewayResult  # noqa: E402


class FakeGateway:
    """In-memory gateway that records every call and can be told to fail.

    - ``fail_ids``: upserts/removes for these ids return an error result
    - ``raise_ids``: upserts for these ids raise PersistenceError
    - ``fail_creates``: upserts of entities without id return an error result
    - ``yield_control``: await once inside each call so other tasks can run
    """

    def __init__(self, prefix: str) -> None:
        self.prefix = prefix
        self.records: dict[str, Any] = {}
        self.calls: list[tuple[str, str | None, dict[str, Any]]] = []
        self.fail_ids: set[str] = set()
        self.raise_ids: set[str] = set()
        self.fail_creates = False
        self.yield_control = False
        self._ids = count(1)

    def seed(self, entity: Any) -> Any:
        """Store ``entity`` as if it had been persisted earlier."""

        self.records[str(entity.id)] = replace(entity)
        return entity

    async def async_upsert(self, entity: Any) -> GatewayResult:
        self.calls.append(
            (
                "upsert",
                entity.id,
                {"order": entity.order, "group_id": getattr(entity, "group_id", None)},
            )
        )
        if self.yield_control:
            await asyncio.sleep(0)
        if entity.id is None and self.fail_creates:
            return GatewayResult.error()
        if entity.id in self.fail_ids:
            return GatewayResult.error()
        if entity.id in self.raise_ids:
            raise PersistenceError("upstream unavailable")
        entity_id = entity.id or f"{self.prefix}-{next(self._ids)}"
        committed = replace(entity, id=entity_id)
        self.records[entity_id] = committed
        return GatewayResult.success(replace(committed))

    async def async_remove(self, entity_id: str) -> GatewayResult:
        self.calls.append(("remove", entity_id, {}))
        if self.yield_control:
            await asyncio.sleep(0)
        if entity_id in self.fail_ids:
            return GatewayResult.error()
        self.records.pop(entity_id, None)
        return GatewayResult.success()

    def upserted_ids(self) -> list[str | None]:
        return [entity_id for op, entity_id, _ in self.calls if op == "upsert"]


@pytest.fixture
def item_gateway() -> FakeGateway:
    return FakeGateway("item")


@pytest.fixture
def group_gateway() -> FakeGateway:
    return FakeGateway("group")


@pytest.fixture
def collection(item_gateway: FakeGateway, group_gateway: FakeGateway) -> CollectionStore:
    return CollectionStore(item_gateway, group_gateway)


class MemoryStore:
    """Stand-in for homeassistant.helpers.storage.Store keyed by storage key.

    Like Store without a migration hook, loading data saved under another
    envelope version raises NotImplementedError.
    """

    backing: dict[str, Any] = {}
    versions: dict[str, int] = {}
    fail_saves = False

    def __init__(self, _hass: Any, version: int, key: str) -> None:
        self.version = version
        self.key = key

    async def async_load(self) -> Any:
        saved_version = MemoryStore.versions.get(self.key, self.version)
        if saved_version != self.version:
            raise NotImplementedError
        return deepcopy(MemoryStore.backing.get(self.key))

    async def async_save(self, data: Any) -> None:
        if MemoryStore.fail_saves:
            raise OSError("disk full")
        MemoryStore.backing[self.key] = deepcopy(data)
        MemoryStore.versions[self.key] = self.version


@pytest.fixture
def memory_store(monkeypatch) -> type[MemoryStore]:
    """Patch the integration's Store with an in-memory store; returns the class."""

    MemoryStore.backing = {}
    MemoryStore.versions = {}
    MemoryStore.fail_saves = False
    monkeypatch.setattr(storage_mod, "Store", MemoryStore)
    return MemoryStore


@pytest.fixture
def hass() -> MagicMock:
    """Minimal hass double: a real ``data`` dict and a mocked services registry."""

    mock = MagicMock()
    mock.data = {DOMAIN: {}}
    return mock
