"""In-memory collection store for Boxkeeper.

The collection store holds the current items and groups and is the single
source of truth for consumers. Every mutation goes through a gateway first:
order values are computed by ``ordering``, writes are issued by a
``Reconciler``, and local entries are replaced only after the gateway has
confirmed them. Failed writes leave local state as it was.

The store performs no locking and no version checks. Overlapping structural
operations on the same scope can interleave their gateway calls; callers that
need serialization must provide it themselves.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import replace
from typing import Any

from .const import DIRECTION_DOWN, DIRECTION_UP, DOMAIN
from .exceptions import NotFoundError
from .models import (
    Group,
    GroupUpdate,
    Item,
    ItemUpdate,
    apply_group_update,
    apply_item_update,
    group_from_dict,
    group_to_dict,
    item_from_dict,
    item_to_dict,
)
from .ordering import (
    Direction,
    assign_end_of_scope,
    order_value,
    plan_reorder,
    positional_orders,
    reindex_after_move,
    sort_by_order,
    swap_adjacent,
)
from .reconciler import EntityGateway, Reconciler, SequenceOutcome, StepOutcome

LOGGER = logging.getLogger(__name__)


class CollectionStore:
    """Owned aggregate of items and groups plus the operations that mutate them.

    Notes:
        - Ids come from the gateway; drafts passed to ``async_create_*`` carry
          ``id=None`` and only appear locally once confirmed.
        - No operation raises for a failed write or an unknown id. Failure is
          expressed as a ``None`` return, an empty or partial
          ``SequenceOutcome``, and unchanged local state.
    """

    # -----------------------------
    # Lifecycle
    # -----------------------------

    def __init__(
        self,
        item_gateway: EntityGateway[Item],
        group_gateway: EntityGateway[Group],
        *,
        items: Iterable[Item] = (),
        groups: Iterable[Group] = (),
    ) -> None:
        self._items = Reconciler(item_gateway, kind="item")
        self._groups = Reconciler(group_gateway, kind="group")
        # Insertion order doubles as the tie-break for equal order values
        self._items_by_id: dict[str, Item] = {str(i.id): i for i in items}
        self._groups_by_id: dict[str, Group] = {str(g.id): g for g in groups}

    @classmethod
    def from_state(
        cls,
        data: dict[str, Any],
        *,
        item_gateway: EntityGateway[Item],
        group_gateway: EntityGateway[Group],
    ) -> CollectionStore:
        """Create a store from a persisted payload, skipping malformed entries."""

        groups: list[Group] = []
        for group_id, raw in (data.get("groups") or {}).items():
            try:
                groups.append(group_from_dict(raw))
            except (AttributeError, KeyError, TypeError, ValueError):
                LOGGER.warning(
                    "Failed to load group from persisted state",
                    exc_info=True,
                    extra={"domain": DOMAIN, "op": "load_state_groups", "group_id": group_id},
                )

        items: list[Item] = []
        for item_id, raw in (data.get("items") or {}).items():
            try:
                items.append(item_from_dict(raw))
            except (AttributeError, KeyError, TypeError, ValueError):
                LOGGER.warning(
                    "Failed to load item from persisted state",
                    exc_info=True,
                    extra={"domain": DOMAIN, "op": "load_state_items", "item_id": item_id},
                )

        return cls(item_gateway, group_gateway, items=items, groups=groups)

    def export_state(self) -> dict[str, Any]:
        """Serialize local state to plain dicts keyed by id."""

        return {
            "items": {key: item_to_dict(item) for key, item in self._items_by_id.items()},
            "groups": {key: group_to_dict(group) for key, group in self._groups_by_id.items()},
        }

    # -----------------------------
    # Queries
    # -----------------------------

    @property
    def items(self) -> list[Item]:
        return list(self._items_by_id.values())

    @property
    def groups(self) -> list[Group]:
        return list(self._groups_by_id.values())

    def get_item(self, item_id: str) -> Item | None:
        return self._items_by_id.get(str(item_id))

    def get_group(self, group_id: str) -> Group | None:
        return self._groups_by_id.get(str(group_id))

    def require_item(self, item_id: str) -> Item:
        item = self.get_item(item_id)
        if item is None:
            raise NotFoundError("item not found")
        return item

    def require_group(self, group_id: str) -> Group:
        group = self.get_group(group_id)
        if group is None:
            raise NotFoundError("group not found")
        return group

    def items_in_scope(self, group_id: str | None) -> list[Item]:
        """Items whose ``group_id`` equals ``group_id``, sorted by order."""

        return sort_by_order(i for i in self._items_by_id.values() if i.group_id == group_id)

    def sorted_groups(self) -> list[Group]:
        return sort_by_order(self._groups_by_id.values())

    def scope_ids(self) -> list[str | None]:
        """All item scopes: the ungrouped scope first, then groups in display order."""

        return [None, *(str(g.id) for g in self.sorted_groups())]

    def get_counts(self) -> dict[str, int]:
        return {
            "items_total": len(self._items_by_id),
            "groups_total": len(self._groups_by_id),
            "ungrouped_total": sum(1 for i in self._items_by_id.values() if i.group_id is None),
        }

    # -----------------------------
    # Internal helpers
    # -----------------------------

    def _scope_exists(self, group_id: str | None) -> bool:
        return group_id is None or str(group_id) in self._groups_by_id

    def _replace_item(self, committed: Item) -> None:
        key = str(committed.id)
        if key not in self._items_by_id:
            # Evicted while the write was in flight; do not resurrect it
            LOGGER.debug(
                "Confirmed item no longer present locally",
                extra={"domain": DOMAIN, "op": "replace_item", "item_id": key},
            )
            return
        self._items_by_id[key] = committed

    def _replace_group(self, committed: Group) -> None:
        key = str(committed.id)
        if key not in self._groups_by_id:
            LOGGER.debug(
                "Confirmed group no longer present locally",
                extra={"domain": DOMAIN, "op": "replace_group", "group_id": key},
            )
            return
        self._groups_by_id[key] = committed

    def _log_missing(self, op: str, **context: Any) -> None:
        LOGGER.debug(
            "Referenced id not present; ignoring",
            extra={"domain": DOMAIN, "op": op, **context},
        )

    async def _async_commit_item(self, merged: Item) -> Item | None:
        committed = await self._items.async_persist_one(merged)
        if committed is None:
            return None
        self._replace_item(committed)
        return committed

    # -----------------------------
    # Public API: item operations
    # -----------------------------

    async def async_create_item(self, item: Item) -> Item | None:
        """Persist a new item and add it locally once confirmed.

        Without an explicit order the item is appended to the end of its scope.
        Returns the committed item, or ``None`` when the write failed or the
        item references an unknown group.
        """

        if not self._scope_exists(item.group_id):
            self._log_missing("create_item", group_id=item.group_id)
            return None

        draft = replace(item, content_images=list(item.content_images))
        if draft.order is None:
            draft.order = assign_end_of_scope(i.order for i in self.items_in_scope(item.group_id))

        committed = await self._items.async_persist_one(draft)
        if committed is None:
            return None
        self._items_by_id[str(committed.id)] = committed
        LOGGER.debug(
            "Item created",
            extra={
                "domain": DOMAIN,
                "op": "create_item",
                "item_id": committed.id,
                "group_id": committed.group_id,
                "order": committed.order,
            },
        )
        return committed

    async def async_update_item(self, item_id: str, update: ItemUpdate) -> Item | None:
        """Merge ``update`` into the current snapshot and persist the full item."""

        key = str(item_id)
        current = self._items_by_id.get(key)
        if current is None:
            self._log_missing("update_item", item_id=key)
            return None
        if "group_id" in update and not self._scope_exists(update["group_id"]):
            self._log_missing("update_item", item_id=key, group_id=update["group_id"])
            return None

        committed = await self._async_commit_item(apply_item_update(current, update))
        if committed is not None:
            LOGGER.debug(
                "Item updated",
                extra={"domain": DOMAIN, "op": "update_item", "item_id": key},
            )
        return committed

    async def async_delete_item(self, item_id: str) -> bool:
        """Remove an item. Remaining siblings keep their order values."""

        key = str(item_id)
        if key not in self._items_by_id:
            self._log_missing("delete_item", item_id=key)
            return False
        if not await self._items.async_remove_one(key):
            return False
        self._items_by_id.pop(key, None)
        LOGGER.debug("Item deleted", extra={"domain": DOMAIN, "op": "delete_item", "item_id": key})
        return True

    async def async_move_item_to_group(
        self, item_id: str, group_id: str | None, order: int | None = None
    ) -> Item | None:
        """Move an item into ``group_id`` (``None`` for ungrouped).

        An explicit ``order`` is used verbatim; otherwise the item goes to the
        end of the target scope. The item itself counts towards that scope, so
        a move within its own scope never lowers its order.
        """

        key = str(item_id)
        if key not in self._items_by_id:
            self._log_missing("move_item_to_group", item_id=key)
            return None
        if order is None:
            order = assign_end_of_scope(i.order for i in self.items_in_scope(group_id))
        return await self.async_update_item(key, ItemUpdate(group_id=group_id, order=order))

    async def async_reorder_items(self, moved_id: str, target_id: str) -> SequenceOutcome[Item]:
        """Drop ``moved_id`` onto ``target_id``.

        Within one scope, the scope is renumbered 0..n-1 and only items whose
        order changed are written, one after another. Across scopes the moved
        item is appended to the target's scope instead. The returned outcome
        lists every write issued and whether it was confirmed.
        """

        outcome: SequenceOutcome[Item] = SequenceOutcome()
        moved = self.get_item(moved_id)
        target = self.get_item(target_id)
        if moved is None or target is None:
            self._log_missing("reorder_items", moved_id=moved_id, target_id=target_id)
            return outcome

        plan = plan_reorder(moved, target)
        if plan.kind == "noop":
            return outcome

        if plan.kind == "move":
            requested = replace(
                moved,
                group_id=plan.group_id,
                order=assign_end_of_scope(i.order for i in self.items_in_scope(plan.group_id)),
            )
            committed = await self.async_move_item_to_group(plan.moved_id, plan.group_id)
            outcome.steps.append(StepOutcome(requested=requested, committed=committed))
            return outcome

        scope = self.items_in_scope(plan.group_id)
        new_sequence = reindex_after_move([str(i.id) for i in scope], plan.moved_id, plan.target_id)
        new_orders = positional_orders(new_sequence)
        by_id = {str(i.id): i for i in scope}
        changed = [
            replace(by_id[item_id], order=new_orders[item_id])
            for item_id in new_sequence
            if by_id[item_id].order != new_orders[item_id]
        ]

        outcome = await self._items.async_persist_sequence(changed, on_commit=self._replace_item)
        LOGGER.debug(
            "Items reordered",
            extra={
                "domain": DOMAIN,
                "op": "reorder_items",
                "group_id": plan.group_id,
                "writes": len(outcome.steps),
                "partial": outcome.partial,
            },
        )
        return outcome

    async def async_normalize_scope(self, group_id: str | None) -> SequenceOutcome[Item]:
        """Renumber a scope 0..n-1 in its current sorted order.

        Only items whose order changes are written. Running this after a
        partial reorder brings the persisted values back in line with what the
        store shows.
        """

        scope = self.items_in_scope(group_id)
        new_orders = positional_orders([str(i.id) for i in scope])
        changed = [
            replace(i, order=new_orders[str(i.id)])
            for i in scope
            if i.order != new_orders[str(i.id)]
        ]
        return await self._items.async_persist_sequence(changed, on_commit=self._replace_item)

    # -----------------------------
    # Public API: group operations
    # -----------------------------

    async def async_create_group(self, group: Group) -> Group | None:
        """Persist a new group, appended to the end of the group order by default."""

        draft = replace(group)
        if draft.order is None:
            draft.order = assign_end_of_scope(g.order for g in self._groups_by_id.values())

        committed = await self._groups.async_persist_one(draft)
        if committed is None:
            return None
        self._groups_by_id[str(committed.id)] = committed
        LOGGER.debug(
            "Group created",
            extra={"domain": DOMAIN, "op": "create_group", "group_id": committed.id},
        )
        return committed

    async def async_update_group(self, group_id: str, update: GroupUpdate) -> Group | None:
        key = str(group_id)
        current = self._groups_by_id.get(key)
        if current is None:
            self._log_missing("update_group", group_id=key)
            return None
        committed = await self._groups.async_persist_one(apply_group_update(current, update))
        if committed is None:
            return None
        self._replace_group(committed)
        return committed

    async def async_move_group_up(self, group_id: str) -> SequenceOutcome[Group]:
        return await self._async_swap_group(group_id, DIRECTION_UP)

    async def async_move_group_down(self, group_id: str) -> SequenceOutcome[Group]:
        return await self._async_swap_group(group_id, DIRECTION_DOWN)

    async def _async_swap_group(
        self, group_id: str, direction: Direction
    ) -> SequenceOutcome[Group]:
        ordered = self.sorted_groups()
        pairs = swap_adjacent(
            [(str(g.id), order_value(g)) for g in ordered], str(group_id), direction
        )
        changed = [replace(self._groups_by_id[gid], order=new_order) for gid, new_order in pairs]
        outcome = await self._groups.async_persist_sequence(changed, on_commit=self._replace_group)
        if pairs:
            LOGGER.debug(
                "Group moved",
                extra={
                    "domain": DOMAIN,
                    "op": f"move_group_{direction}",
                    "group_id": group_id,
                    "partial": outcome.partial,
                },
            )
        return outcome

    async def async_delete_group(self, group_id: str) -> SequenceOutcome[Item] | None:
        """Delete a group, then move each of its items to the ungrouped scope.

        Returns ``None`` when the group is unknown or its removal failed; no
        cascade is attempted in that case. Otherwise returns the outcome of
        the cascade, whose failed steps are items still pointing at the
        deleted group in the persisted store.
        """

        key = str(group_id)
        if key not in self._groups_by_id:
            self._log_missing("delete_group", group_id=key)
            return None
        if not await self._groups.async_remove_one(key):
            return None
        self._groups_by_id.pop(key, None)

        outcome: SequenceOutcome[Item] = SequenceOutcome()
        for item in self.items_in_scope(key):
            requested = apply_item_update(item, ItemUpdate(group_id=None))
            committed = await self.async_update_item(str(item.id), ItemUpdate(group_id=None))
            outcome.steps.append(StepOutcome(requested=requested, committed=committed))

        self._log_cascade(key, outcome)
        return outcome

    async def async_reassign_orphans(self) -> SequenceOutcome[Item]:
        """Move items that reference an unknown group to the ungrouped scope.

        Such items are left behind when a delete cascade step fails; running
        this after loading state finishes the cascade.
        """

        outcome: SequenceOutcome[Item] = SequenceOutcome()
        orphans = [i for i in self._items_by_id.values() if not self._scope_exists(i.group_id)]
        for item in sort_by_order(orphans):
            requested = apply_item_update(item, ItemUpdate(group_id=None))
            committed = await self._async_commit_item(requested)
            outcome.steps.append(StepOutcome(requested=requested, committed=committed))
        if outcome.steps:
            self._log_cascade(None, outcome)
        return outcome

    def _log_cascade(self, group_id: str | None, outcome: SequenceOutcome[Item]) -> None:
        log = LOGGER.warning if outcome.partial else LOGGER.debug
        log(
            "Reassigned %s of %s items to the ungrouped scope",
            len(outcome.committed),
            len(outcome.steps),
            extra={
                "domain": DOMAIN,
                "op": "reassign_items",
                "group_id": group_id,
                "failed_ids": [i.id for i in outcome.failed],
            },
        )
