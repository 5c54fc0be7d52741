from __future__ import annotations

from ..extensions import db
from vendsys.time_utils import to_utc_z


ROLE_ADMIN = "admin"
ROLE_TECHNICIAN = "technician"
ROLE_SALES = "sales"
VALID_ROLES = (ROLE_ADMIN, ROLE_TECHNICIAN, ROLE_SALES)


class User(db.Model):
    """
    Back-office user. Also the recipient source for fleet alerts.

    Email is stored lowercased so the unique constraint is case-insensitive.
    """
    __tablename__ = "users"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), nullable=False, unique=True)
    name = db.Column(db.String(255), nullable=False)
    role = db.Column(db.String(16), nullable=False, default=ROLE_TECHNICIAN, index=True)

    # Bcrypt hashed password
    password_hash = db.Column(db.String(255), nullable=False)

    # Email notification preferences
    notify_email_machine_offline = db.Column(db.Boolean, nullable=False, default=True)
    notify_email_low_stock = db.Column(db.Boolean, nullable=False, default=False)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "role": self.role,
            "is_active": self.is_active,
            "notification_preferences": {
                "email": {
                    "machine_offline": self.notify_email_machine_offline,
                    "low_stock": self.notify_email_low_stock,
                }
            },
            "created_at": to_utc_z(self.created_at),
        }
