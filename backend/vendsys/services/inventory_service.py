# Overview: Service-layer operations for per-channel machine inventory.

from __future__ import annotations

from ..models import InventoryItem
from ..validation import (
    ModelValidationPolicy,
    apply_aliases,
    ValidationError,
    enforce_rules_inventory,
    to_cents,
    validate_payload,
)
from . import entity_store, products_service


CHANNEL_POLICY = ModelValidationPolicy(
    writable_fields={"machine_id", "channel_id", "product_id", "quantity", "price_cents"},
    required_on_create={"machine_id", "channel_id", "product_id", "quantity", "price_cents"},
)

ITEM_PATCH_POLICY = ModelValidationPolicy(
    writable_fields={"quantity", "price_cents"},
)


def _normalize_price(payload: dict | None) -> dict:
    """Kiosk clients send `price` in major units; store cents."""
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    data = apply_aliases(payload)
    if "price" in data:
        if "price_cents" in data:
            raise ValidationError("Send either price or price_cents, not both")
        data["price_cents"] = to_cents(data.pop("price"))
    return data


def set_channel(payload: dict) -> InventoryItem:
    """
    Assign a product, quantity and price to one machine channel.

    Upsert keyed by (machine_id, channel_id): re-stocking a channel replaces
    its product, quantity and price.
    """
    patch = validate_payload(
        model=InventoryItem, payload=_normalize_price(payload), policy=CHANNEL_POLICY, partial=False
    )
    enforce_rules_inventory(patch)
    products_service.get_product(patch["product_id"])

    key = {"machine_id": patch.pop("machine_id"), "channel_id": patch.pop("channel_id")}
    return entity_store.upsert(InventoryItem, key=key, values=patch)


def list_machine_inventory(machine_id: str) -> list[InventoryItem]:
    return entity_store.find_all(InventoryItem, machine_id=machine_id, order_by=InventoryItem.channel_id)


def update_item(item_id: int, payload: dict) -> InventoryItem:
    patch = validate_payload(
        model=InventoryItem, payload=_normalize_price(payload), policy=ITEM_PATCH_POLICY, partial=True
    )
    enforce_rules_inventory(patch)
    item = entity_store.get_by_key(InventoryItem, id=item_id)
    if patch:
        entity_store.update_by_id(InventoryItem, item.id, patch)
    return entity_store.get_by_key(InventoryItem, id=item_id)


def delete_item(item_id: int) -> None:
    item = entity_store.get_by_key(InventoryItem, id=item_id)
    entity_store.delete(item)
