# Overview: Flask API routes for sales and payments; payment initiation, status polling and the gateway webhook.

"""
Sales & Payment API Routes

DESIGN:
- create-payment issues a gateway preference and a pending Sale
- status polling distinguishes "never created" (404, status not_found)
  from "still pending"
- the webhook always acknowledges, except during a data store outage, when
  a 503 makes the gateway redeliver later
"""

from flask import Blueprint, current_app, jsonify, request

from ..errors import NotFoundError, StoreUnavailableError, VendSysError
from ..services import payment_service
from ..validation import ValidationError


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


def _gateway():
    return current_app.extensions["payment_gateway"]


def _notification_url() -> str:
    return f"{current_app.config['BACKEND_URL'].rstrip('/')}{sales_bp.url_prefix}/webhook"


@sales_bp.post("/create-payment")
def create_payment_route():
    """
    Start a payment for a vending transaction.

    Request body:
    {
        "machine_id": "VM001",
        "vending_transaction_id": "TXN-001",
        "items": [{"product_id": "SKU-1", "name": "Soda", "quantity": 1, "price": "15.00"}]
    }

    Returns:
        201: {vending_transaction_id, external_preference_id, redirect_url}
        400: invalid input or duplicate transaction id
        502: payment gateway unavailable (nothing persisted)
    """
    try:
        data = request.get_json(silent=True) or {}
        notification_url = _notification_url()
        current_app.logger.info("Payment notification URL: %s", notification_url)

        result = payment_service.initiate_payment(
            _gateway(),
            machine_id=data.get("machine_id"),
            items=data.get("items"),
            vending_transaction_id=data.get("vending_transaction_id"),
            notification_url=notification_url,
            currency=current_app.config.get("PAYMENT_CURRENCY", "MXN"),
        )
        return jsonify(result), 201

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except VendSysError as e:
        current_app.logger.warning("Payment initiation failed: %s", e)
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create payment preference")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/status/<vending_transaction_id>")
def sale_status_route(vending_transaction_id: str):
    try:
        return jsonify(payment_service.get_sale_status(vending_transaction_id)), 200
    except NotFoundError:
        return jsonify({"status": "not_found", "message": "Transaction not found"}), 404
    except VendSysError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load sale status")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.post("/webhook")
def webhook_route():
    """
    Payment gateway notification.

    Always 200 so the sender does not retry-storm on application errors;
    503 only when the data store is unreachable.
    """
    payload = request.get_json(silent=True)
    current_app.logger.info("Webhook received: query=%s body=%s", request.args.to_dict(), payload)
    try:
        result = payment_service.reconcile(_gateway(), payload, request.args)
        return jsonify({"received": True, "outcome": result.outcome}), 200
    except StoreUnavailableError:
        current_app.logger.error("Webhook not acknowledged: data store unavailable")
        return jsonify({"error": "Data store unavailable"}), 503
    except Exception:
        current_app.logger.exception("Failed to process webhook")
        return jsonify({"received": True}), 200


@sales_bp.get("")
def list_sales_route():
    try:
        machine_id = request.args.get("machineId") or request.args.get("machine_id")
        sales = payment_service.list_sales(machine_id=machine_id)
        return jsonify([s.to_dict() for s in sales]), 200
    except VendSysError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list sales")
        return jsonify({"error": "Internal server error"}), 500
