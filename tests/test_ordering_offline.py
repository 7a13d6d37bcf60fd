"""Offline tests for order index computation.

Scenarios:
- End-of-scope assignment on empty, dense, sparse and unset orders
- Drop semantics for earlier-onto-later and later-onto-earlier moves
- Adjacent swaps exchange stored values and stop at boundaries
- Reorder decision between reindex, move and noop
"""

from __future__ import annotations

import pytest
from custom_components.boxkeeper.models import Group, Item
from custom_components.boxkeeper.ordering import (
    assign_end_of_scope,
    plan_reorder,
    positional_orders,
    reindex_after_move,
    sort_by_order,
    swap_adjacent,
)


def test_assign_end_of_scope() -> None:
    assert assign_end_of_scope([]) == 0
    assert assign_end_of_scope([0, 1, 2]) == 3
    assert assign_end_of_scope([4, 10, 7]) == 11
    # Unset orders read as 0
    assert assign_end_of_scope([None, None]) == 1


def test_reindex_earlier_onto_later_lands_after_target() -> None:
    ids = ["a", "b", "c", "d"]
    assert reindex_after_move(ids, "a", "c") == ["b", "c", "a", "d"]
    assert reindex_after_move(ids, "b", "d") == ["a", "c", "d", "b"]


def test_reindex_later_onto_earlier_takes_target_slot() -> None:
    ids = ["a", "b", "c", "d"]
    assert reindex_after_move(ids, "c", "a") == ["c", "a", "b", "d"]
    assert reindex_after_move(ids, "b", "a") == ["b", "a", "c", "d"]


def test_reindex_noop_cases_return_copy() -> None:
    ids = ["a", "b"]
    same = reindex_after_move(ids, "a", "a")
    unknown = reindex_after_move(ids, "a", "zzz")
    assert same == ids and unknown == ids
    assert same is not ids


def test_positional_orders_are_contiguous_from_zero() -> None:
    assert positional_orders(["x", "y", "z"]) == {"x": 0, "y": 1, "z": 2}


def test_swap_adjacent_exchanges_stored_values() -> None:
    entries = [("g1", 0), ("g2", 5), ("g3", 9)]
    assert swap_adjacent(entries, "g2", "up") == [("g2", 0), ("g1", 5)]
    assert swap_adjacent(entries, "g2", "down") == [("g2", 9), ("g3", 5)]


def test_swap_adjacent_boundaries_and_unknown_are_noops() -> None:
    entries = [("g1", 0), ("g2", 1)]
    assert swap_adjacent(entries, "g1", "up") == []
    assert swap_adjacent(entries, "g2", "down") == []
    assert swap_adjacent(entries, "missing", "up") == []
    assert swap_adjacent([], "g1", "down") == []


def test_swap_adjacent_with_tied_values_renumbers() -> None:
    entries = [("g1", 3), ("g2", 3)]
    assert swap_adjacent(entries, "g2", "up") == [("g2", 0), ("g1", 1)]
    assert swap_adjacent(entries, "g1", "down") == [("g2", 0), ("g1", 1)]


def test_swap_adjacent_tie_never_collides_with_third_entry() -> None:
    # Tied pair followed by an entry holding value + 1
    entries = [("g1", 0), ("g2", 0), ("g3", 1)]
    assert swap_adjacent(entries, "g1", "down") == [("g1", 1), ("g3", 2)]

    # Neighbour's value shared with an entry outside the pair
    entries = [("a", 0), ("b", 1), ("c", 1)]
    assert swap_adjacent(entries, "a", "down") == [("b", 0), ("a", 1), ("c", 2)]


def test_swap_adjacent_rejects_unknown_direction() -> None:
    with pytest.raises(ValueError):
        swap_adjacent([("g1", 0), ("g2", 1)], "g1", "sideways")  # type: ignore[arg-type]


def test_sort_by_order_is_stable_for_ties() -> None:
    groups = [Group(name="b", id="b", order=1), Group(name="a", id="a", order=0)]
    groups.append(Group(name="c", id="c", order=1))
    assert [g.id for g in sort_by_order(groups)] == ["a", "b", "c"]


def test_plan_reorder_outcomes() -> None:
    a = Item(name="A", id="a", group_id=None, order=0)
    b = Item(name="B", id="b", group_id=None, order=1)
    c = Item(name="C", id="c", group_id="g1", order=0)

    same_scope = plan_reorder(a, b)
    assert same_scope.kind == "reindex"
    assert same_scope.group_id is None

    cross_scope = plan_reorder(a, c)
    assert cross_scope.kind == "move"
    assert cross_scope.group_id == "g1"

    assert plan_reorder(a, a).kind == "noop"
