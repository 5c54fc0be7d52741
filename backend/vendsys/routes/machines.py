# Overview: Flask API routes for machines; registration, listing and heartbeat reports.

from flask import Blueprint, current_app, jsonify, request

from ..errors import VendSysError
from ..services import machine_service
from ..validation import ValidationError


machines_bp = Blueprint("machines", __name__, url_prefix="/api/machines")


@machines_bp.post("")
def register_machine_route():
    """
    Register a machine.

    Request body:
    {
        "machine_id": "VM001",
        "location": "Lobby",
        "latitude": 19.43, "longitude": -99.13,  (optional, together)
        "model": "X200"  (optional)
    }
    """
    try:
        machine = machine_service.register_machine(request.get_json(silent=True))
        return jsonify(machine.to_dict()), 201
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except VendSysError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to register machine")
        return jsonify({"error": "Internal server error"}), 500


@machines_bp.get("")
def list_machines_route():
    try:
        machines = machine_service.list_machines(status=request.args.get("status"))
        return jsonify([m.to_dict() for m in machines]), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except VendSysError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list machines")
        return jsonify({"error": "Internal server error"}), 500


@machines_bp.get("/<machine_id>")
def get_machine_route(machine_id: str):
    try:
        return jsonify(machine_service.get_machine(machine_id).to_dict()), 200
    except VendSysError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load machine")
        return jsonify({"error": "Internal server error"}), 500


@machines_bp.patch("/<machine_id>/status")
def heartbeat_route(machine_id: str):
    """
    Heartbeat report from a machine.

    Request body: {"status": "online" | "offline" | "maintenance"}

    Creates the machine record when it does not exist yet.
    """
    try:
        data = request.get_json(silent=True) or {}
        machine = machine_service.report_heartbeat(machine_id, data.get("status"))
        return jsonify(machine.to_dict()), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except VendSysError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to record heartbeat")
        return jsonify({"error": "Internal server error"}), 500
