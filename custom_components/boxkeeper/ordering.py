"""Order index computation for Boxkeeper.

Pure, stateless helpers that compute ``order`` values for items and groups.
Nothing here performs I/O or touches the collection store; callers pass in
snapshots and receive new order values or id sequences back.

Scopes:
    Items are ordered within a scope identified by their ``group_id``
    (``None`` is the ungrouped scope). Groups share a single global scope.
"""

from __future__ import annotations

from collections.abc import Hashable, Iterable, Sequence
from dataclasses import dataclass
from typing import Literal, Protocol, TypeVar

from .const import DIRECTION_DOWN, DIRECTION_UP

IdT = TypeVar("IdT", bound=Hashable)

Direction = Literal["up", "down"]


class Ordered(Protocol):
    id: str | None
    order: int | None


OrderedT = TypeVar("OrderedT", bound=Ordered)


def order_value(entity: Ordered) -> int:
    """Return the entity's order, reading an unset order as 0."""

    return entity.order if entity.order is not None else 0


def sort_by_order(entities: Iterable[OrderedT]) -> list[OrderedT]:
    """Sort by order; ties keep their incoming (insertion) order."""

    return sorted(entities, key=order_value)


def assign_end_of_scope(existing_orders: Iterable[int | None]) -> int:
    """Return the order that appends to a scope: ``max + 1``, or 0 when empty."""

    values = [o if o is not None else 0 for o in existing_orders]
    if not values:
        return 0
    return max(values) + 1


def reindex_after_move(ordered_ids: Sequence[IdT], moved_id: IdT, target_id: IdT) -> list[IdT]:
    """Return the scope's id sequence after dropping ``moved_id`` onto ``target_id``.

    Moving an earlier entry onto a later one places it right after the target;
    moving a later entry onto an earlier one places it at the target's slot,
    pushing the target down by one. Unknown ids, or a drop onto itself, leave
    the sequence unchanged.
    """

    result = list(ordered_ids)
    if moved_id == target_id or moved_id not in result or target_id not in result:
        return result

    moved_index = result.index(moved_id)
    target_index = result.index(target_id)
    result.pop(moved_index)
    # After removal, target_index is the slot right after the target when the
    # moved entry preceded it, and the target's own slot otherwise.
    result.insert(target_index, moved_id)
    return result


def positional_orders(ordered_ids: Sequence[IdT]) -> dict[IdT, int]:
    """Assign ``order = index`` to every member of a scope."""

    return {entity_id: index for index, entity_id in enumerate(ordered_ids)}


def swap_adjacent(
    sorted_entries: Sequence[tuple[IdT, int]],
    entity_id: IdT,
    direction: Direction,
) -> list[tuple[IdT, int]]:
    """Exchange the positions of ``entity_id`` and its neighbour.

    ``sorted_entries`` holds ``(id, order)`` pairs already sorted by order.
    Returns the changed ``(id, new_order)`` pairs, or an empty list when the
    entry is unknown or already at the boundary in ``direction``.

    When both stored values are unique the two entries exchange them (current
    entry first). When either value is shared with another entry, exchanging
    values cannot pin down the new sequence, so the whole list is renumbered
    ``0..n-1`` with the two entries exchanged and only entries whose value
    changes are returned, in their new order.
    """

    if direction not in (DIRECTION_UP, DIRECTION_DOWN):
        raise ValueError(f"direction must be '{DIRECTION_UP}' or '{DIRECTION_DOWN}'")

    ids = [entry_id for entry_id, _ in sorted_entries]
    if entity_id not in ids:
        return []
    index = ids.index(entity_id)
    neighbour_index = index - 1 if direction == DIRECTION_UP else index + 1
    if neighbour_index < 0 or neighbour_index >= len(sorted_entries):
        return []

    current_id, current_order = sorted_entries[index]
    neighbour_id, neighbour_order = sorted_entries[neighbour_index]
    values = [order for _, order in sorted_entries]
    if values.count(current_order) == 1 and values.count(neighbour_order) == 1:
        return [(current_id, neighbour_order), (neighbour_id, current_order)]

    new_sequence = list(ids)
    new_sequence[index], new_sequence[neighbour_index] = neighbour_id, current_id
    stored = dict(sorted_entries)
    return [
        (entry_id, new_order)
        for entry_id, new_order in positional_orders(new_sequence).items()
        if stored[entry_id] != new_order
    ]


# -----------------------------
# Reorder decision
# -----------------------------


@dataclass(frozen=True)
class ReorderPlan:
    """Outcome of deciding how to handle a drop of one item onto another.

    kind:
        ``"reindex"`` when both items share a scope, ``"move"`` when the drop
        crosses scopes (the moved item goes to the end of ``group_id``), and
        ``"noop"`` when an item is dropped onto itself.
    """

    kind: Literal["reindex", "move", "noop"]
    moved_id: str
    target_id: str
    group_id: str | None


def plan_reorder(moved: Ordered, target: Ordered) -> ReorderPlan:
    """Decide between a same-scope reindex and a cross-scope move."""

    moved_id = str(moved.id)
    target_id = str(target.id)
    moved_scope = getattr(moved, "group_id", None)
    target_scope = getattr(target, "group_id", None)
    if moved_id == target_id:
        return ReorderPlan("noop", moved_id, target_id, moved_scope)
    if moved_scope != target_scope:
        return ReorderPlan("move", moved_id, target_id, target_scope)
    return ReorderPlan("reindex", moved_id, target_id, moved_scope)
