# Overview: Liveness sweep; flips machines that stopped heartbeating to offline and alerts once per episode.

"""
Liveness Monitor

ORDER OF OPERATIONS (per sweep):
1. Select online machines whose last heartbeat is older than the cutoff and
   snapshot them.
2. For each snapshot, dispatch the offline alert.
3. Persist offline by primary key, guarded by the same staleness condition,
   so a heartbeat that landed after step 1 is never overwritten.

An already-offline machine is never selected, so repeated sweeps inside one
staleness episode produce a single transition and a single alert.

A store failure while selecting aborts the tick (StoreUnavailableError);
failures for one machine are logged and the batch continues.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from threading import Lock

from flask import current_app

from ..extensions import db
from ..models import Machine
from ..models.machines import MACHINE_STATUS_OFFLINE, MACHINE_STATUS_ONLINE
from vendsys.time_utils import to_utc_z, utcnow
from . import entity_store
from .mail_transport import MailTransport
from .notification_service import alert_machine_offline


DEFAULT_TOLERANCE_MINUTES = 7


@dataclass(frozen=True)
class MachineSnapshot:
    """Machine state as it was when the sweep selected it."""
    id: int
    machine_id: str
    location: str | None
    last_heartbeat: datetime | None


@dataclass
class SweepResult:
    cutoff: datetime
    selected: list[str] = field(default_factory=list)
    transitioned: list[str] = field(default_factory=list)
    alerted: list[str] = field(default_factory=list)
    # Heartbeat arrived between selection and persistence
    recovered: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "cutoff": to_utc_z(self.cutoff),
            "selected": self.selected,
            "transitioned": self.transitioned,
            "alerted": self.alerted,
            "recovered": self.recovered,
            "failed": self.failed,
        }


def select_stale_machines(cutoff: datetime) -> list[MachineSnapshot]:
    machines = entity_store.find_all(
        Machine,
        Machine.status == MACHINE_STATUS_ONLINE,
        Machine.last_heartbeat < cutoff,
        order_by=Machine.machine_id,
    )
    return [
        MachineSnapshot(
            id=m.id,
            machine_id=m.machine_id,
            location=m.location,
            last_heartbeat=m.last_heartbeat,
        )
        for m in machines
    ]


def sweep(
    now: datetime | None = None,
    tolerance_minutes: int | None = None,
    *,
    transport: MailTransport | None = None,
    frontend_url: str | None = None,
) -> SweepResult:
    """
    Run one liveness pass.

    Args:
        now: reference time (defaults to utcnow())
        tolerance_minutes: heartbeat grace window (defaults to
            HEARTBEAT_TOLERANCE_MINUTES)
        transport: alert transport (defaults to the app's configured one)
        frontend_url: base for links inside alert mail

    Raises:
        StoreUnavailableError: the candidate set could not be read
    """
    config = current_app.config
    if now is None:
        now = utcnow()
    if tolerance_minutes is None:
        tolerance_minutes = config.get("HEARTBEAT_TOLERANCE_MINUTES", DEFAULT_TOLERANCE_MINUTES)
    if transport is None:
        transport = current_app.extensions["mail_transport"]
    if frontend_url is None:
        frontend_url = config.get("FRONTEND_URL")

    cutoff = now - timedelta(minutes=tolerance_minutes)
    result = SweepResult(cutoff=cutoff)

    stale = select_stale_machines(cutoff)
    result.selected = [s.machine_id for s in stale]

    if not stale:
        current_app.logger.info("Liveness sweep: all online machines are reporting (cutoff %s)", to_utc_z(cutoff))
        return result

    for snapshot in stale:
        try:
            if alert_machine_offline(snapshot, transport, frontend_url=frontend_url):
                result.alerted.append(snapshot.machine_id)
        except Exception:
            current_app.logger.exception("Offline alert dispatch crashed for machine %s", snapshot.machine_id)

        try:
            changed = entity_store.update_by_id(
                Machine,
                snapshot.id,
                {"status": MACHINE_STATUS_OFFLINE},
                Machine.status == MACHINE_STATUS_ONLINE,
                Machine.last_heartbeat < cutoff,
            )
        except Exception:
            db.session.rollback()
            current_app.logger.exception("Failed to mark machine %s offline", snapshot.machine_id)
            result.failed.append(snapshot.machine_id)
            continue

        if changed:
            result.transitioned.append(snapshot.machine_id)
        else:
            result.recovered.append(snapshot.machine_id)
            current_app.logger.info("Machine %s reported in during the sweep; left as is", snapshot.machine_id)

    current_app.logger.warning(
        "Liveness sweep: %d machine(s) marked offline (%d recovered, %d failed)",
        len(result.transitioned),
        len(result.recovered),
        len(result.failed),
    )
    return result


# One sweep at a time per process; see MonitorScheduler for the overlap policy.
_sweep_lock = Lock()


def try_sweep(**kwargs) -> SweepResult | None:
    """Run sweep(**kwargs) unless another sweep is in progress; None when skipped."""
    if not _sweep_lock.acquire(blocking=False):
        current_app.logger.warning("Liveness sweep already running; skipping")
        return None
    try:
        return sweep(**kwargs)
    finally:
        _sweep_lock.release()
