"""Typed models and validation helpers for Boxkeeper.

This module defines the persisted shapes for Item and Group, along with the
partial update payloads accepted by the collection store. It also provides
validation helpers used at the services boundary and plain-dict conversion
used by storage.

The intent is to keep these models framework-agnostic and free of I/O. Higher
layers (collection store, gateway, services) are expected to compose these
helpers.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from typing import Any, TypedDict

from .exceptions import ValidationError

NAME_MAX_LENGTH = 120


@dataclass
class Item:
    """Persisted shape for an item (a box or container).

    ``id`` stays ``None`` until the gateway confirms the first upsert.
    ``group_id`` of ``None`` places the item in the ungrouped scope.
    ``order`` of ``None`` is only valid on drafts; the store fills it in.
    """

    name: str
    id: str | None = None
    group_id: str | None = None
    order: int | None = None
    cover_image: str | None = None
    content_images: list[str] = field(default_factory=list)


@dataclass
class Group:
    """Persisted shape for a group (a category of items)."""

    name: str
    id: str | None = None
    order: int | None = None


class ItemUpdate(TypedDict, total=False):
    """Partial update for Item. Keys that are present replace stored values."""

    name: str
    group_id: str | None
    order: int
    cover_image: str | None
    content_images: list[str]


class GroupUpdate(TypedDict, total=False):
    """Partial update for Group."""

    name: str
    order: int


# -----------------------------
# Utility helpers
# -----------------------------


def new_uuid4_str() -> str:
    """Generate a hyphenated UUID v4 string."""

    return str(uuid.uuid4())


def validate_name(name: Any, *, field_name: str = "name") -> str:
    """Validate a display name and return a trimmed value."""

    if not isinstance(name, str) or len(name.strip()) == 0:
        raise ValidationError(f"{field_name} is required and must be a non-empty string")
    trimmed = name.strip()
    if len(trimmed) > NAME_MAX_LENGTH:
        raise ValidationError(f"{field_name} must be at most {NAME_MAX_LENGTH} characters")
    return trimmed


def validate_order(order: Any) -> int | None:
    """Validate an explicit order value. ``None`` means "append to the end"."""

    if order is None:
        return None
    # bool is an int subclass; reject it explicitly
    if isinstance(order, bool) or not isinstance(order, int):
        raise ValidationError("order must be an integer")
    return order


def validate_images(images: Any) -> list[str]:
    if images is None:
        return []
    if not isinstance(images, list) or not all(isinstance(x, str) for x in images):
        raise ValidationError("content_images must be a list of strings")
    return list(images)


def item_from_create(payload: dict[str, Any]) -> Item:
    """Build a validated Item draft (no id) from a creation payload."""

    return Item(
        name=validate_name(payload.get("name")),
        group_id=payload.get("group_id"),
        order=validate_order(payload.get("order")),
        cover_image=payload.get("cover_image"),
        content_images=validate_images(payload.get("content_images")),
    )


def group_from_create(payload: dict[str, Any]) -> Group:
    """Build a validated Group draft (no id) from a creation payload."""

    return Group(
        name=validate_name(payload.get("name")),
        order=validate_order(payload.get("order")),
    )


def validate_item_update(update: dict[str, Any]) -> ItemUpdate:
    """Validate and normalize an item update payload."""

    result = ItemUpdate()
    if "name" in update:
        result["name"] = validate_name(update["name"])
    if "group_id" in update:
        result["group_id"] = update["group_id"]
    if "order" in update:
        order = validate_order(update["order"])
        if order is None:
            raise ValidationError("order must be an integer")
        result["order"] = order
    if "cover_image" in update:
        result["cover_image"] = update["cover_image"]
    if "content_images" in update:
        result["content_images"] = validate_images(update["content_images"])
    return result


def validate_group_update(update: dict[str, Any]) -> GroupUpdate:
    """Validate and normalize a group update payload."""

    result = GroupUpdate()
    if "name" in update:
        result["name"] = validate_name(update["name"])
    if "order" in update:
        order = validate_order(update["order"])
        if order is None:
            raise ValidationError("order must be an integer")
        result["order"] = order
    return result


# -----------------------------
# Update helpers
# -----------------------------


def apply_item_update(item: Item, update: ItemUpdate) -> Item:
    """Return a copy of ``item`` with the update's keys merged in."""

    new_item = replace(item, content_images=list(item.content_images))
    for key, value in update.items():
        if key == "content_images":
            value = list(value or [])
        setattr(new_item, key, value)
    return new_item


def apply_group_update(group: Group, update: GroupUpdate) -> Group:
    """Return a copy of ``group`` with the update's keys merged in."""

    return replace(group, **update)


# -----------------------------
# Serialization
# -----------------------------


def item_to_dict(item: Item) -> dict[str, Any]:
    return {
        "id": item.id,
        "name": item.name,
        "group_id": item.group_id,
        "order": item.order,
        "cover_image": item.cover_image,
        "content_images": list(item.content_images),
    }


def item_from_dict(data: dict[str, Any]) -> Item:
    """Build an Item from a persisted dict.

    A missing or null ``order`` reads as 0, matching how unordered entities
    sort alongside ordered ones.
    """

    order = data.get("order")
    return Item(
        id=str(data["id"]),
        name=str(data.get("name", "")),
        group_id=data.get("group_id"),
        order=int(order) if order is not None else 0,
        cover_image=data.get("cover_image"),
        content_images=list(data.get("content_images") or []),
    )


def group_to_dict(group: Group) -> dict[str, Any]:
    return {"id": group.id, "name": group.name, "order": group.order}


def group_from_dict(data: dict[str, Any]) -> Group:
    order = data.get("order")
    return Group(
        id=str(data["id"]),
        name=str(data.get("name", "")),
        order=int(order) if order is not None else 0,
    )
