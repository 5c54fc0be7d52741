# Overview: Flask API routes for the notification audit trail and on-demand liveness sweeps.

from flask import Blueprint, current_app, jsonify, request

from ..errors import VendSysError
from ..services import monitor_service, notification_service


notifications_bp = Blueprint("notifications", __name__)


@notifications_bp.get("/api/notifications")
def list_notifications_route():
    try:
        unread_only = request.args.get("unread", "false").lower() == "true"
        items = notification_service.list_notifications(
            unread_only=unread_only,
            machine_id=request.args.get("machineId"),
        )
        return jsonify([n.to_dict() for n in items]), 200
    except VendSysError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list notifications")
        return jsonify({"error": "Internal server error"}), 500


@notifications_bp.patch("/api/notifications/<int:notification_id>/read")
def mark_read_route(notification_id: int):
    try:
        return jsonify(notification_service.mark_read(notification_id).to_dict()), 200
    except VendSysError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to mark notification read")
        return jsonify({"error": "Internal server error"}), 500


@notifications_bp.post("/api/monitor/sweep")
def run_sweep_route():
    """Run one liveness sweep now; returns what it selected and changed."""
    try:
        result = monitor_service.try_sweep()
        if result is None:
            return jsonify({"error": "A sweep is already running"}), 409
        return jsonify(result.to_dict()), 200
    except VendSysError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Liveness sweep failed")
        return jsonify({"error": "Internal server error"}), 500
