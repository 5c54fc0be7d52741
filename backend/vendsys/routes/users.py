# Overview: Flask API routes for back-office users and their alert preferences.

from flask import Blueprint, current_app, jsonify, request

from ..errors import VendSysError
from ..services import auth_service
from ..validation import ValidationError


users_bp = Blueprint("users", __name__, url_prefix="/api/users")


@users_bp.post("")
def create_user_route():
    """
    Request body:
    {
        "email": "tech@example.com",
        "name": "Tech One",
        "password": "Password123!",
        "role": "technician",  (admin, technician, sales)
        "notification_preferences": {"email": {"machine_offline": true, "low_stock": false}}  (optional)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        prefs = (data.get("notification_preferences") or data.get("notificationPreferences") or {}).get("email") or {}
        user = auth_service.create_user(
            email=data.get("email"),
            name=data.get("name"),
            password=data.get("password") or "",
            role=data.get("role") or "technician",
            notify_machine_offline=prefs.get("machine_offline", True),
            notify_low_stock=prefs.get("low_stock", False),
        )
        return jsonify(user.to_dict()), 201
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except VendSysError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create user")
        return jsonify({"error": "Internal server error"}), 500


@users_bp.get("")
def list_users_route():
    try:
        users = auth_service.list_users(role=request.args.get("role"))
        return jsonify([u.to_dict() for u in users]), 200
    except VendSysError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list users")
        return jsonify({"error": "Internal server error"}), 500


@users_bp.patch("/<int:user_id>/notification-preferences")
def update_preferences_route(user_id: int):
    """Request body: {"machine_offline": bool, "low_stock": bool} (either or both)."""
    try:
        data = request.get_json(silent=True) or {}
        user = auth_service.update_notification_preferences(
            user_id,
            machine_offline=data.get("machine_offline"),
            low_stock=data.get("low_stock"),
        )
        return jsonify(user.to_dict()), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except VendSysError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update notification preferences")
        return jsonify({"error": "Internal server error"}), 500
