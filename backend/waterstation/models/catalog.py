from __future__ import annotations

from ..extensions import db
from waterstation.time_utils import to_utc_z


def money(value) -> float | None:
    """Numeric column value -> JSON number."""
    if value is None:
        return None
    return float(value)


class Item(db.Model):
    """
    Catalog entry with its quantity on hand.

    current_stock is a stored counter, not derived from the ledger. It is
    changed by the stock engine (which appends a StockHistoryEntry in the
    same transaction) or rewritten by a full administrative edit.

    The CHECK constraint is the last line of defense for the
    never-negative rule; the engine's guarded UPDATE is the first.
    """
    __tablename__ = "items"
    __table_args__ = (
        db.CheckConstraint("current_stock >= 0", name="ck_items_current_stock_nonneg"),
        db.CheckConstraint("min_stock >= 0", name="ck_items_min_stock_nonneg"),
        db.Index("ix_items_name", "name"),
        db.Index("ix_items_category", "category"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    category = db.Column(db.String(64), nullable=True)

    price = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    uom = db.Column(db.String(32), nullable=True)

    current_stock = db.Column(db.Integer, nullable=False, default=0)
    min_stock = db.Column(db.Integer, nullable=False, default=0)
    max_stock = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    history = db.relationship(
        "StockHistoryEntry",
        back_populates="item",
        cascade="all, delete-orphan",
        lazy=True,
    )

    def __repr__(self) -> str:
        return f"<Item id={self.id} name={self.name!r} current_stock={self.current_stock}>"

    @property
    def is_low_stock(self) -> bool:
        return (self.current_stock or 0) <= (self.min_stock or 0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "price": money(self.price),
            "uom": self.uom,
            "currentStock": self.current_stock,
            "minStock": self.min_stock,
            "maxStock": self.max_stock,
            "lowStock": self.is_low_stock,
            "createdAt": to_utc_z(self.created_at),
            "updatedAt": to_utc_z(self.updated_at),
        }
