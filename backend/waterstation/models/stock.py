from __future__ import annotations

from ..extensions import db
from waterstation.time_utils import to_utc_z

STOCK_IN = "Stock In"
STOCK_OUT = "Stock Out"
MOVEMENT_TYPES = (STOCK_IN, STOCK_OUT)


class StockHistoryEntry(db.Model):
    """
    One quantity movement in or out of an item.

    Append-only: written once by the stock engine, never updated or deleted
    by business logic. Rows only disappear when their item is hard-deleted.
    """
    __tablename__ = "stock_history"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_stock_history_quantity_pos"),
        db.Index("ix_stock_history_item_created", "item_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    item_id = db.Column(
        db.Integer,
        db.ForeignKey("items.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    type = db.Column(db.String(16), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(255), nullable=True)

    # Acting user (nullable: system or unauthenticated movements)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    item = db.relationship("Item", back_populates="history")
    user = db.relationship("User")

    def __repr__(self) -> str:
        return f"<StockHistoryEntry id={self.id} item_id={self.item_id} {self.type} {self.quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "itemId": self.item_id,
            "type": self.type,
            "quantity": self.quantity,
            "reason": self.reason,
            "userId": self.user_id,
            "userName": self.user.username if self.user else None,
            "date": to_utc_z(self.created_at),
        }
