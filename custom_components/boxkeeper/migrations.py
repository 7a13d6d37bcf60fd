"""Schema migrations for Boxkeeper persistent storage.

Forward-only, idempotent migration steps. Each step receives and returns the
entire persisted dict payload. Steps must tolerate being applied more than once
without changing the outcome.
"""

from __future__ import annotations

from copy import deepcopy
from typing import Any


def migrate(payload: dict[str, Any], *, from_version: int, to_version: int) -> dict[str, Any]:
    """Migrate ``payload`` from ``from_version`` to ``to_version``.

    Steps are applied sequentially: vN -> vN+1 -> ... -> vM.
    """

    if from_version > to_version:
        # We do not support downgrades; return the original as-is
        return payload

    data: dict[str, Any] = deepcopy(payload)
    version = int(from_version)
    while version < to_version:
        next_version = version + 1
        step_name = f"migrate_{version}_to_{next_version}"
        step = globals().get(step_name)
        if callable(step):
            data = step(data)  # type: ignore[misc]
        # If no step is defined, assume no-op for this transition
        version = next_version

    data["schema_version"] = to_version
    return data


def migrate_0_to_1(payload: dict[str, Any]) -> dict[str, Any]:
    """Initial migration to v1.

    Ensures required top-level keys exist and drops nothing.
    """

    data = deepcopy(payload) if isinstance(payload, dict) else {}
    data.setdefault("items", {})
    data.setdefault("groups", {})
    return data


def _backfill(entries: list[dict[str, Any]]) -> None:
    """Give unordered entries the next free order, keeping their stored sequence."""

    existing = [e["order"] for e in entries if isinstance(e.get("order"), int)]
    next_order = max(existing) + 1 if existing else 0
    for entry in entries:
        if not isinstance(entry.get("order"), int):
            entry["order"] = next_order
            next_order += 1


def migrate_1_to_2(payload: dict[str, Any]) -> dict[str, Any]:
    """Backfill ``order`` on groups and items saved without one.

    Groups share one scope; items are backfilled per ``group_id`` scope.
    """

    data = deepcopy(payload) if isinstance(payload, dict) else {}
    groups = data.setdefault("groups", {})
    items = data.setdefault("items", {})

    _backfill([g for g in groups.values() if isinstance(g, dict)])

    scopes: dict[str | None, list[dict[str, Any]]] = {}
    for item in items.values():
        if isinstance(item, dict):
            scopes.setdefault(item.get("group_id"), []).append(item)
    for scope_items in scopes.values():
        _backfill(scope_items)
    return data
