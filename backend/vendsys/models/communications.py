from __future__ import annotations

from ..extensions import db
from vendsys.time_utils import to_utc_z


NOTIFICATION_MACHINE_OFFLINE = "MACHINE_OFFLINE"
NOTIFICATION_LOW_STOCK = "LOW_STOCK"
NOTIFICATION_SALE_SUCCESS = "SALE_SUCCESS"
NOTIFICATION_ERROR = "ERROR"
NOTIFICATION_TYPES = (
    NOTIFICATION_MACHINE_OFFLINE,
    NOTIFICATION_LOW_STOCK,
    NOTIFICATION_SALE_SUCCESS,
    NOTIFICATION_ERROR,
)


class Notification(db.Model):
    """
    Audit trail of fleet events shown in the back office.

    Written by the alert dispatcher and payment reconciliation; the monitor
    does not depend on it for correctness.
    """
    __tablename__ = "notifications"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    machine_id = db.Column(db.String(64), nullable=True, index=True)

    type = db.Column(db.String(32), nullable=False)  # MACHINE_OFFLINE, LOW_STOCK, SALE_SUCCESS, ERROR
    message = db.Column(db.Text, nullable=False)
    is_read = db.Column(db.Boolean, nullable=False, default=False, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "machine_id": self.machine_id,
            "type": self.type,
            "message": self.message,
            "is_read": self.is_read,
            "created_at": to_utc_z(self.created_at),
        }
