# backend/vendsys/services/products_service.py
"""Catalog service. Products are reference data; sales snapshot them."""
from __future__ import annotations

from ..models import Product
from ..validation import ModelValidationPolicy, validate_payload
from . import entity_store


PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={"sku", "name", "description", "image_url"},
    required_on_create={"sku", "name"},
)


def create_product(payload: dict) -> Product:
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
    return entity_store.create(Product, conflict_key={"sku": patch["sku"]}, **patch)


def list_products() -> list[Product]:
    return entity_store.find_all(Product, order_by=Product.sku)


def get_product(product_id: int) -> Product:
    return entity_store.get_by_key(Product, id=product_id)
