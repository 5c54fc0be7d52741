# Overview: Flask API routes for the product catalog.

from flask import Blueprint, current_app, jsonify, request

from ..errors import VendSysError
from ..services import products_service
from ..validation import ValidationError


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.post("")
def create_product_route():
    try:
        product = products_service.create_product(request.get_json(silent=True))
        return jsonify(product.to_dict()), 201
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except VendSysError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("")
def list_products_route():
    try:
        return jsonify([p.to_dict() for p in products_service.list_products()]), 200
    except VendSysError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list products")
        return jsonify({"error": "Internal server error"}), 500
