# Overview: Flask API routes for per-channel machine inventory.

from flask import Blueprint, current_app, jsonify, request

from ..errors import VendSysError
from ..services import inventory_service
from ..validation import ValidationError


inventory_bp = Blueprint("inventory", __name__)


@inventory_bp.post("/api/inventory")
def set_channel_route():
    """
    Stock a channel (upsert by machine_id + channel_id).

    Request body:
    {
        "machine_id": "VM001",
        "channel_id": 3,
        "product_id": 7,
        "quantity": 10,
        "price": "15.00"  (or "price_cents": 1500)
    }
    """
    try:
        item = inventory_service.set_channel(request.get_json(silent=True))
        return jsonify(item.to_dict()), 201
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except VendSysError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to stock inventory channel")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/api/machines/<machine_id>/inventory")
def machine_inventory_route(machine_id: str):
    try:
        items = inventory_service.list_machine_inventory(machine_id)
        return jsonify([i.to_dict() for i in items]), 200
    except VendSysError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load machine inventory")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.patch("/api/inventory/<int:item_id>")
def update_item_route(item_id: int):
    try:
        item = inventory_service.update_item(item_id, request.get_json(silent=True))
        return jsonify(item.to_dict()), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except VendSysError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update inventory item")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.delete("/api/inventory/<int:item_id>")
def delete_item_route(item_id: int):
    try:
        inventory_service.delete_item(item_id)
        return jsonify({"message": "Inventory item deleted"}), 200
    except VendSysError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete inventory item")
        return jsonify({"error": "Internal server error"}), 500
