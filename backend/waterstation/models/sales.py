from __future__ import annotations

from ..extensions import db
from waterstation.time_utils import to_utc_z
from .catalog import money

SALE_COMPLETED = "Completed"
SALE_PENDING = "Pending"
SALE_CANCELLED = "Cancelled"
SALE_STATUSES = (SALE_COMPLETED, SALE_PENDING, SALE_CANCELLED)


class Sale(db.Model):
    """
    Point-of-sale transaction record.

    Only a Completed sale owns stock movements: one Stock Out ledger row per
    line when it is recorded, one compensating Stock In row per line when it
    is deleted.

    subtotal/discount/total are computed by the sales service from the
    caller's line prices; they are not re-priced from the catalog.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.UniqueConstraint("invoice_id", name="uq_sales_invoice_id"),
        db.Index("ix_sales_status_date", "status", "date"),
        db.Index("ix_sales_customer", "customer_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Caller-supplied invoice number (e.g., "INV-000123")
    invoice_id = db.Column(db.String(64), nullable=False)

    date = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False)
    customer_type = db.Column(db.String(32), nullable=False, default="Regular")
    transaction_type = db.Column(db.String(32), nullable=False, default="Walk-in")
    delivery_type = db.Column(db.String(32), nullable=False, default="Walk-in")

    subtotal = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    discount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    payment_method = db.Column(db.String(32), nullable=False, default="Cash")
    status = db.Column(db.String(16), nullable=False, default=SALE_COMPLETED, index=True)
    notes = db.Column(db.Text, nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    customer = db.relationship("Customer")
    lines = db.relationship(
        "SaleLine",
        back_populates="sale",
        cascade="all, delete-orphan",
        order_by="SaleLine.line_number",
        lazy=True,
    )

    @property
    def is_completed(self) -> bool:
        return self.status == SALE_COMPLETED

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoiceId": self.invoice_id,
            "date": to_utc_z(self.date),
            "customerId": self.customer_id,
            "customerName": self.customer.name if self.customer else None,
            "customerType": self.customer_type,
            "transactionType": self.transaction_type,
            "deliveryType": self.delivery_type,
            "items": [line.to_dict() for line in self.lines],
            "subtotal": money(self.subtotal),
            "discount": money(self.discount),
            "total": money(self.total),
            "paymentMethod": self.payment_method,
            "status": self.status,
            "notes": self.notes,
            "createdByUserId": self.created_by_user_id,
            "createdAt": to_utc_z(self.created_at),
            "updatedAt": to_utc_z(self.updated_at),
        }


class SaleLine(db.Model):
    """Ordered line item of a sale."""
    __tablename__ = "sale_lines"
    __table_args__ = (
        db.UniqueConstraint("sale_id", "line_number", name="uq_sale_lines_sale_line"),
        db.CheckConstraint("quantity > 0", name="ck_sale_lines_quantity_pos"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id", ondelete="CASCADE"), nullable=False, index=True)
    line_number = db.Column(db.Integer, nullable=False)

    # Nulled when the catalog item is deleted; item_name keeps the receipt readable
    item_id = db.Column(db.Integer, db.ForeignKey("items.id", ondelete="SET NULL"), nullable=True, index=True)
    item_name = db.Column(db.String(255), nullable=True)

    quantity = db.Column(db.Integer, nullable=False)
    price = db.Column(db.Numeric(10, 2), nullable=False)
    line_total = db.Column(db.Numeric(12, 2), nullable=False)

    sale = db.relationship("Sale", back_populates="lines")

    def to_dict(self) -> dict:
        return {
            "itemId": self.item_id,
            "itemName": self.item_name,
            "quantity": self.quantity,
            "price": money(self.price),
            "lineTotal": money(self.line_total),
        }
