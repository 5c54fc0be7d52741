# Overview: Service-layer operations for machines; registration, lookup and heartbeat reports.

from __future__ import annotations

from datetime import datetime

from flask import current_app

from ..models import Machine
from ..validation import (
    ModelValidationPolicy,
    apply_aliases,
    ValidationError,
    enforce_rules_machine,
    validate_payload,
    MACHINE_STATUSES,
)
from vendsys.time_utils import utcnow
from . import entity_store


MACHINE_POLICY = ModelValidationPolicy(
    writable_fields={"machine_id", "location", "latitude", "longitude", "model"},
    required_on_create={"machine_id", "location"},
)


def register_machine(payload: dict) -> Machine:
    """
    Register a new machine. It starts offline with no heartbeat.

    Raises:
        ValidationError: bad payload
        ConflictError: machine_id already registered
    """
    patch = validate_payload(
        model=Machine, payload=apply_aliases(payload), policy=MACHINE_POLICY, partial=False
    )
    enforce_rules_machine(patch)
    if (patch.get("latitude") is None) != (patch.get("longitude") is None):
        raise ValidationError("latitude and longitude must be provided together")

    return entity_store.create(
        Machine,
        conflict_key={"machine_id": patch["machine_id"]},
        **patch,
    )


def list_machines(status: str | None = None) -> list[Machine]:
    if status:
        if status not in MACHINE_STATUSES:
            raise ValidationError(f"status must be one of {', '.join(MACHINE_STATUSES)}")
        return entity_store.find_all(Machine, status=status, order_by=Machine.machine_id)
    return entity_store.find_all(Machine, order_by=Machine.machine_id)


def get_machine(machine_id: str) -> Machine:
    return entity_store.get_by_key(Machine, machine_id=machine_id)


def report_heartbeat(machine_id: str, status: str, now: datetime | None = None) -> Machine:
    """
    Record a heartbeat: set the reported status and refresh last_heartbeat.

    Upserts, so a machine that announces itself before registration still
    gets a record.
    """
    machine_id = (machine_id or "").strip()
    if not machine_id:
        raise ValidationError("machine_id is required")
    if status not in MACHINE_STATUSES:
        raise ValidationError(f"status must be one of {', '.join(MACHINE_STATUSES)}")

    machine = entity_store.upsert(
        Machine,
        key={"machine_id": machine_id},
        values={"status": status, "last_heartbeat": now or utcnow()},
    )
    current_app.logger.debug("Heartbeat from %s: %s", machine_id, status)
    return machine
