from __future__ import annotations

from ..extensions import db
from vendsys.time_utils import to_utc_z


MACHINE_STATUS_ONLINE = "online"
MACHINE_STATUS_OFFLINE = "offline"
MACHINE_STATUS_MAINTENANCE = "maintenance"


class Machine(db.Model):
    """
    A vending machine in the fleet.

    Status only moves to online through a heartbeat report (which also
    refreshes last_heartbeat) and to offline through the liveness sweep or an
    explicit report.
    """
    __tablename__ = "machines"
    __table_args__ = (
        # Sweep candidate selection: status = online AND last_heartbeat < cutoff
        db.Index("ix_machines_status_heartbeat", "status", "last_heartbeat"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    machine_id = db.Column(db.String(64), nullable=False, unique=True)

    location = db.Column(db.String(255), nullable=True)
    latitude = db.Column(db.Float, nullable=True)
    longitude = db.Column(db.Float, nullable=True)
    model = db.Column(db.String(64), nullable=True)

    status = db.Column(db.String(16), nullable=False, default=MACHINE_STATUS_OFFLINE)  # online, offline, maintenance
    last_heartbeat = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "machine_id": self.machine_id,
            "location": self.location,
            "coordinates": (
                {"latitude": self.latitude, "longitude": self.longitude}
                if self.latitude is not None and self.longitude is not None
                else None
            ),
            "model": self.model,
            "status": self.status,
            "last_heartbeat": to_utc_z(self.last_heartbeat),
            "created_at": to_utc_z(self.created_at),
        }
