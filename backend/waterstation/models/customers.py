from __future__ import annotations

from ..extensions import db
from waterstation.time_utils import to_utc_z

CUSTOMER_TYPES = ("Regular", "Wholesale", "Walk-in")


class Customer(db.Model):
    """
    Station customer.

    Customers are archived (is_hidden) rather than deleted because sales
    keep referencing them.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.Index("ix_customers_name", "name"),
        db.Index("ix_customers_hidden", "is_hidden"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(32), nullable=False)
    address = db.Column(db.String(512), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    customer_type = db.Column(db.String(32), nullable=False, default="Regular")

    is_hidden = db.Column(db.Boolean, nullable=False, default=False)

    # Denormalized aggregates (updated when completed sales are recorded)
    total_orders = db.Column(db.Integer, nullable=False, default=0)
    last_order_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Customer id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "address": self.address,
            "email": self.email,
            "customerType": self.customer_type,
            "hidden": self.is_hidden,
            "totalOrders": self.total_orders,
            "lastOrder": to_utc_z(self.last_order_at),
            "createdAt": to_utc_z(self.created_at),
        }
