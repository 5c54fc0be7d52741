from __future__ import annotations

from ..extensions import db
from vendsys.time_utils import to_utc_z


SALE_STATUS_PENDING = "pending"
SALE_STATUS_APPROVED = "approved"
SALE_STATUS_REJECTED = "rejected"
SALE_STATUS_CANCELLED = "cancelled"
SALE_STATUS_REFUNDED = "refunded"

SALE_STATUSES = (
    SALE_STATUS_PENDING,
    SALE_STATUS_APPROVED,
    SALE_STATUS_REJECTED,
    SALE_STATUS_CANCELLED,
    SALE_STATUS_REFUNDED,
)


class Sale(db.Model):
    """
    One vending transaction attempt paid through the gateway.

    Created once as pending when the preference is issued; afterwards only
    webhook reconciliation writes to it.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_machine_created", "machine_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    vending_transaction_id = db.Column(db.String(128), nullable=False, unique=True)
    machine_id = db.Column(db.String(64), nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default=SALE_STATUS_PENDING, index=True)

    external_preference_id = db.Column(db.String(128), nullable=True)
    external_payment_id = db.Column(db.String(128), nullable=True)
    payment_status_detail = db.Column(db.String(128), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    items = db.relationship(
        "SaleItem",
        backref="sale",
        lazy=True,
        order_by="SaleItem.position",
        cascade="all, delete-orphan",
    )

    @property
    def total_cents(self) -> int:
        return sum(item.quantity * item.unit_price_cents for item in self.items)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "vending_transaction_id": self.vending_transaction_id,
            "machine_id": self.machine_id,
            "status": self.status,
            "items": [item.to_dict() for item in self.items],
            "total_cents": self.total_cents,
            "external_preference_id": self.external_preference_id,
            "external_payment_id": self.external_payment_id,
            "payment_status_detail": self.payment_status_detail,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class SaleItem(db.Model):
    """Point-in-time snapshot of a purchased item."""
    __tablename__ = "sale_items"
    __table_args__ = (
        db.UniqueConstraint("sale_id", "position", name="uq_sale_items_sale_position"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False)

    product_id = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "name": self.name,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
        }
