"""Offline tests for Boxkeeper storage migrations.

Scenarios:
- Older version N → current version: transformed shape and version update
- No-op when already current; idempotency on repeated runs
- Missing order values are backfilled per scope, after existing ones
- Corrupt payload → logged with context and StorageError raised
"""

from __future__ import annotations

import logging
from typing import Any
from unittest.mock import MagicMock

import pytest
from custom_components.boxkeeper.const import DOMAIN
from custom_components.boxkeeper.exceptions import StorageError
from custom_components.boxkeeper.migrations import migrate, migrate_1_to_2
from custom_components.boxkeeper.storage import CURRENT_SCHEMA_VERSION, DomainStore


def test_older_version_is_migrated_to_current() -> None:
    """Older payload is upgraded to the current schema with required keys."""

    payload: dict[str, Any] = {"schema_version": 0}

    migrated = migrate(payload, from_version=0, to_version=CURRENT_SCHEMA_VERSION)

    assert migrated["schema_version"] == CURRENT_SCHEMA_VERSION
    assert migrated["items"] == {}
    assert migrated["groups"] == {}
    # The input is not mutated
    assert payload == {"schema_version": 0}


def test_noop_when_already_current_and_idempotent() -> None:
    payload = {"schema_version": CURRENT_SCHEMA_VERSION, "items": {}, "groups": {}}

    migrated1 = migrate(
        payload, from_version=CURRENT_SCHEMA_VERSION, to_version=CURRENT_SCHEMA_VERSION
    )
    migrated2 = migrate(
        migrated1, from_version=CURRENT_SCHEMA_VERSION, to_version=CURRENT_SCHEMA_VERSION
    )

    assert migrated1 == payload
    assert migrated2 == payload


def test_non_dict_payload_gets_safe_defaults() -> None:
    migrated = migrate(
        "oops",  # type: ignore[arg-type]
        from_version=0,
        to_version=CURRENT_SCHEMA_VERSION,
    )
    assert migrated == {"schema_version": CURRENT_SCHEMA_VERSION, "items": {}, "groups": {}}


def test_downgrade_returns_original() -> None:
    payload = {"schema_version": CURRENT_SCHEMA_VERSION, "items": {}, "groups": {}}

    result = migrate(
        payload, from_version=CURRENT_SCHEMA_VERSION, to_version=CURRENT_SCHEMA_VERSION - 1
    )

    assert result is payload


def test_backfill_orders_per_scope() -> None:
    payload = {
        "schema_version": 1,
        "groups": {
            "g1": {"id": "g1", "name": "Attic", "order": 4},
            "g2": {"id": "g2", "name": "Shed"},
        },
        "items": {
            "i1": {"id": "i1", "name": "A"},
            "i2": {"id": "i2", "name": "B", "order": 7},
            "i3": {"id": "i3", "name": "C", "group_id": "g1"},
            "i4": {"id": "i4", "name": "D"},
        },
    }

    migrated = migrate_1_to_2(payload)

    assert migrated["groups"]["g2"]["order"] == 5
    assert migrated["items"]["i1"]["order"] == 8
    assert migrated["items"]["i4"]["order"] == 9
    assert migrated["items"]["i2"]["order"] == 7
    # Each group is its own scope
    assert migrated["items"]["i3"]["order"] == 0
    # Applying the step again changes nothing
    assert migrate_1_to_2(migrated) == migrated


@pytest.mark.asyncio
async def test_log_context_on_corrupted_payload_via_storage(
    memory_store, caplog: pytest.LogCaptureFixture
) -> None:
    """Storage logs contextual fields when encountering corrupted payload (non-dict)."""

    caplog.set_level(logging.ERROR)
    key = "test_migrate_log_context_corrupt"
    store = DomainStore(MagicMock(), key=key)
    memory_store.backing[key] = "oops"

    with pytest.raises(StorageError):
        await store.async_load()

    found = False
    for rec in caplog.records:
        if (
            rec.levelno >= logging.ERROR
            and getattr(rec, "op", None) == "migrate"
            and getattr(rec, "domain", None) == DOMAIN
        ):
            found = True
            assert getattr(rec, "storage_key", None) == key
            assert getattr(rec, "to_version", None) == store.schema_version
            break
    assert found, "expected migration error log with context"
