# Overview: Service-layer operations for payment; bridges the external gateway and local Sale state.

"""
Payment Reconciliation Service

WHY: Kiosks are paid through an external gateway that confirms payments
asynchronously. This module creates the pending Sale alongside the gateway
preference and later folds webhook notifications back into the Sale.

DESIGN PRINCIPLES:
- The gateway owns payment truth. Webhooks are only pointers; the payment is
  always re-fetched before anything is written.
- A Sale is written only after the preference exists, so there is never a
  pending Sale without something the payer can complete.
- Webhooks are at-least-once and may arrive out of order. Updates are
  last-write-wins by arrival; re-applying the same snapshot writes nothing.
- Webhook processing never fails the sender on application errors. Only a
  store outage propagates, which makes the gateway retry later.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

from flask import current_app

from ..errors import ConflictError, GatewayUnavailableError, NotFoundError
from ..models import Sale, SaleItem
from ..models.communications import NOTIFICATION_SALE_SUCCESS
from ..models.sales import (
    SALE_STATUS_APPROVED,
    SALE_STATUS_CANCELLED,
    SALE_STATUS_PENDING,
    SALE_STATUS_REFUNDED,
    SALE_STATUS_REJECTED,
)
from ..validation import ValidationError, validate_sale_items
from . import entity_store
from .notification_service import record_notification
from .payment_gateway import PaymentGateway


# =============================================================================
# GATEWAY STATUS MAPPING
# =============================================================================

# Gateway statuses that have no Sale counterpart collapse onto the closest one.
GATEWAY_STATUS_MAP = {
    "pending": SALE_STATUS_PENDING,
    "in_process": SALE_STATUS_PENDING,
    "authorized": SALE_STATUS_PENDING,
    "in_mediation": SALE_STATUS_PENDING,
    "approved": SALE_STATUS_APPROVED,
    "rejected": SALE_STATUS_REJECTED,
    "cancelled": SALE_STATUS_CANCELLED,
    "refunded": SALE_STATUS_REFUNDED,
    "charged_back": SALE_STATUS_REFUNDED,
}


def map_gateway_status(gateway_status: str | None) -> str | None:
    return GATEWAY_STATUS_MAP.get((gateway_status or "").strip().lower())


# =============================================================================
# PAYMENT INITIATION
# =============================================================================

def initiate_payment(
    gateway: PaymentGateway,
    *,
    machine_id: str,
    items: Any,
    vending_transaction_id: str,
    notification_url: str | None,
    currency: str = "MXN",
) -> dict:
    """
    Create the gateway preference, then persist the pending Sale.

    Returns:
        {vending_transaction_id, external_preference_id, redirect_url}

    Raises:
        ValidationError: missing ids or malformed items
        ConflictError: vending_transaction_id already used
        GatewayUnavailableError: preference creation failed (no Sale written)
    """
    machine_id = str(machine_id or "").strip()
    vending_transaction_id = str(vending_transaction_id or "").strip()
    if not machine_id:
        raise ValidationError("machine_id is required")
    if not vending_transaction_id:
        raise ValidationError("vending_transaction_id is required")
    cleaned = validate_sale_items(items)

    # Refuse before contacting the gateway so a replayed request does not
    # leave an orphan preference behind.
    if entity_store.find_by_key(Sale, vending_transaction_id=vending_transaction_id) is not None:
        raise ConflictError(
            f"Sale {vending_transaction_id} already exists",
            details={"key": {"vending_transaction_id": vending_transaction_id}},
        )

    try:
        preference = gateway.create_preference(cleaned, vending_transaction_id, notification_url, currency)
    except NotFoundError as exc:
        raise GatewayUnavailableError(str(exc)) from exc

    entity_store.create(
        Sale,
        conflict_key={"vending_transaction_id": vending_transaction_id},
        vending_transaction_id=vending_transaction_id,
        machine_id=machine_id,
        status=SALE_STATUS_PENDING,
        external_preference_id=preference.id,
        items=[
            SaleItem(
                position=idx,
                product_id=item["product_id"],
                name=item["name"],
                quantity=item["quantity"],
                unit_price_cents=item["unit_price_cents"],
            )
            for idx, item in enumerate(cleaned)
        ],
    )
    current_app.logger.info(
        "Sale %s created as pending for machine %s (preference %s)",
        vending_transaction_id, machine_id, preference.id,
    )

    return {
        "vending_transaction_id": vending_transaction_id,
        "external_preference_id": preference.id,
        "redirect_url": preference.redirect_url,
    }


# =============================================================================
# WEBHOOK DECODING
# =============================================================================

class WebhookPayloadError(ValueError):
    """Declared type is payment but no payment id could be found."""


@dataclass(frozen=True)
class PaymentEvent:
    payment_id: str
    type: str = "payment"


@dataclass(frozen=True)
class IgnoredEvent:
    type: str | None
    raw: dict = field(default_factory=dict)


def parse_webhook_event(payload: Any, query_args: Mapping[str, str] | None = None) -> PaymentEvent | IgnoredEvent:
    """
    Decode an inbound notification once, at the boundary.

    The gateway posts `{"type": "payment", "data": {"id": ...}}`; older
    notifications carry `?type=payment&data.id=...` (or `topic`/`id`) in the
    query string instead.
    """
    body = payload if isinstance(payload, dict) else {}
    query = query_args or {}

    event_type = body.get("type") or body.get("topic") or query.get("type") or query.get("topic")
    if event_type != "payment":
        return IgnoredEvent(type=event_type, raw=body)

    data = body.get("data") if isinstance(body.get("data"), dict) else {}
    payment_id = data.get("id") or query.get("data.id") or query.get("id")
    if payment_id is None or str(payment_id).strip() == "":
        raise WebhookPayloadError("payment notification without a payment id")
    return PaymentEvent(payment_id=str(payment_id).strip())


# =============================================================================
# RECONCILIATION
# =============================================================================

OUTCOME_IGNORED = "ignored"
OUTCOME_GATEWAY_ERROR = "gateway_error"
OUTCOME_UNMATCHED = "unmatched"
OUTCOME_UNCHANGED = "unchanged"
OUTCOME_UPDATED = "updated"


@dataclass(frozen=True)
class ReconcileResult:
    outcome: str
    payment_id: str | None = None
    vending_transaction_id: str | None = None
    status: str | None = None
    reason: str | None = None


def reconcile(
    gateway: PaymentGateway,
    payload: Any,
    query_args: Mapping[str, str] | None = None,
) -> ReconcileResult:
    """
    Fold one webhook notification into the matching Sale.

    Every outcome except a store outage is returned (and acknowledged by the
    route). StoreUnavailableError propagates on purpose: refusing the
    delivery makes the gateway retry it.
    """
    try:
        event = parse_webhook_event(payload, query_args)
    except WebhookPayloadError as exc:
        current_app.logger.warning("Webhook ignored: %s", exc)
        return ReconcileResult(OUTCOME_IGNORED, reason=str(exc))

    if isinstance(event, IgnoredEvent):
        current_app.logger.info("Webhook of type %r ignored", event.type)
        return ReconcileResult(OUTCOME_IGNORED, reason=f"type {event.type!r}")

    try:
        payment = gateway.get_payment(event.payment_id)
    except (GatewayUnavailableError, NotFoundError) as exc:
        current_app.logger.error("Webhook for payment %s: gateway lookup failed: %s", event.payment_id, exc)
        return ReconcileResult(OUTCOME_GATEWAY_ERROR, payment_id=event.payment_id, reason=str(exc))

    reference = payment.external_reference
    new_status = map_gateway_status(payment.status)
    current_app.logger.info(
        "Webhook: payment %s is %r (reference %s)", payment.id, payment.status, reference
    )

    if not reference:
        return ReconcileResult(OUTCOME_UNMATCHED, payment_id=payment.id, reason="no external reference")

    sale = entity_store.find_by_key(Sale, vending_transaction_id=reference)
    if sale is None:
        current_app.logger.warning("Webhook: no sale for reference %s (payment %s)", reference, payment.id)
        return ReconcileResult(
            OUTCOME_UNMATCHED, payment_id=payment.id, vending_transaction_id=reference, reason="unknown reference"
        )

    if new_status is None:
        current_app.logger.warning("Webhook: unknown gateway status %r for sale %s", payment.status, reference)
        return ReconcileResult(
            OUTCOME_IGNORED,
            payment_id=payment.id,
            vending_transaction_id=reference,
            reason=f"unknown status {payment.status!r}",
        )

    values = {
        "status": new_status,
        "external_payment_id": payment.id,
        "payment_status_detail": payment.status_detail,
    }
    previous_status = sale.status
    if all(getattr(sale, k) == v for k, v in values.items()):
        return ReconcileResult(OUTCOME_UNCHANGED, payment.id, reference, new_status)

    # Last write wins; see DESIGN.md on out-of-order deliveries.
    entity_store.update_by_id(Sale, sale.id, values)
    current_app.logger.info("Sale %s updated to %r", reference, new_status)

    if new_status == SALE_STATUS_APPROVED and previous_status != SALE_STATUS_APPROVED:
        try:
            record_notification(
                NOTIFICATION_SALE_SUCCESS,
                f"Payment {payment.id} approved for sale {reference}",
                machine_id=sale.machine_id,
            )
        except Exception:
            current_app.logger.exception("Failed to record sale notification for %s", reference)

    return ReconcileResult(OUTCOME_UPDATED, payment.id, reference, new_status)


# =============================================================================
# QUERIES
# =============================================================================

def get_sale(vending_transaction_id: str) -> Sale:
    return entity_store.get_by_key(Sale, vending_transaction_id=vending_transaction_id)


def get_sale_status(vending_transaction_id: str) -> dict:
    """Raises NotFoundError when no sale has that transaction id."""
    sale = get_sale(vending_transaction_id)
    return {
        "vending_transaction_id": sale.vending_transaction_id,
        "status": sale.status,
        "machine_id": sale.machine_id,
    }


def list_sales(machine_id: str | None = None) -> list[Sale]:
    filters = {"machine_id": machine_id} if machine_id else {}
    return entity_store.find_all(Sale, order_by=Sale.id.desc(), **filters)
