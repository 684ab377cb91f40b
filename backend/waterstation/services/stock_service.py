# Overview: Service-layer operations for stock levels; encapsulates business logic and database work.

# backend/waterstation/services/stock_service.py

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import update

from ..models import Item, StockHistoryEntry
from ..models.stock import STOCK_IN, STOCK_OUT
from ..errors import AppError, ConflictOnCommitError, InsufficientStockError, NotFoundError, ValidationError
from ..validation import coerce_int
from .ledger_service import append_stock_entry
from .concurrency import get_session, lock_for_update, run_atomic, transaction
"""
Stock Invariants (authoritative)

Stock model:
- Item.current_stock is a stored counter; every movement through this
  module also appends exactly one StockHistoryEntry in the same transaction.
- current_stock may never go negative as the result of a movement.

Concurrency:
- Each public operation runs in one transaction opened as a writer
  (BEGIN IMMEDIATE on SQLite, SELECT ... FOR UPDATE on the item row elsewhere).
- Decrements are additionally guarded in SQL:
      UPDATE items SET current_stock = current_stock - :q
      WHERE id = :id AND current_stock >= :q
  so two writers that both passed the read check cannot both apply.
- A guard miss in a manual/bulk adjustment is reported as insufficient
  stock (re-read value). Inside a sale commit it is a ConflictOnCommitError.

Failure:
- Any error rolls back the whole operation (bulk: the whole batch).
"""

logger = logging.getLogger(__name__)

INCREASE = "increase"
DECREASE = "decrease"

_DIRECTIONS = {
    "increase": INCREASE,
    "in": INCREASE,
    "stock in": INCREASE,
    "decrease": DECREASE,
    "out": DECREASE,
    "stock out": DECREASE,
}


@dataclass(frozen=True)
class StockAdjustment:
    item_id: int
    new_stock: int
    entry: StockHistoryEntry

    def to_dict(self) -> dict:
        return {"id": self.item_id, "currentStock": self.new_stock}


def normalize_direction(direction) -> str:
    if not isinstance(direction, str) or direction.strip().lower() not in _DIRECTIONS:
        raise ValidationError("type must be 'increase' or 'decrease'")
    return _DIRECTIONS[direction.strip().lower()]


def normalize_quantity(quantity) -> int:
    """Positive integer quantity; the absolute value is taken."""
    if quantity is None:
        raise ValidationError("quantity is required")
    qty = abs(coerce_int("quantity", quantity))
    if qty == 0:
        raise ValidationError("quantity must be greater than zero")
    return qty


def get_item(item_id: int, *, session=None, lock: bool = False) -> Item:
    session = get_session(session)
    query = session.query(Item).filter_by(id=item_id)
    if lock:
        query = lock_for_update(query)
    item = query.first()
    if item is None:
        raise NotFoundError(f"Item with ID {item_id} not found", details={"itemId": item_id})
    return item


def _guarded_decrement(session, item: Item, quantity: int) -> bool:
    result = session.execute(
        update(Item)
        .where(Item.id == item.id, Item.current_stock >= quantity)
        .values(current_stock=Item.current_stock - quantity)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def _increment(session, item: Item, quantity: int) -> None:
    session.execute(
        update(Item)
        .where(Item.id == item.id)
        .values(current_stock=Item.current_stock + quantity)
        .execution_options(synchronize_session=False)
    )


def apply_movement(
    item: Item,
    *,
    quantity: int,
    direction: str,
    reason: str | None,
    acting_user_id: int | None,
    conflict_on_guard_miss: bool = False,
    session=None,
) -> StockAdjustment:
    """
    Move stock for one item and append its ledger row.

    No locking or commit: the caller owns the transaction. Used by
    the adjustment operations below and by the sale engine.
    """
    session = get_session(session)

    if direction == DECREASE:
        available = item.current_stock
        if available - quantity < 0:
            raise InsufficientStockError(
                item_id=item.id, item_name=item.name, available=available, requested=quantity,
            )
        if not _guarded_decrement(session, item, quantity):
            session.refresh(item, attribute_names=["current_stock"])
            if conflict_on_guard_miss:
                raise ConflictOnCommitError(
                    f"Stock for {item.name} changed while the transaction was in progress",
                    details={
                        "itemId": item.id,
                        "itemName": item.name,
                        "available": item.current_stock,
                        "requested": quantity,
                    },
                )
            raise InsufficientStockError(
                item_id=item.id, item_name=item.name, available=item.current_stock, requested=quantity,
            )
        movement_type = STOCK_OUT
    else:
        _increment(session, item, quantity)
        movement_type = STOCK_IN

    session.refresh(item, attribute_names=["current_stock"])

    entry = append_stock_entry(
        item_id=item.id,
        movement_type=movement_type,
        quantity=quantity,
        reason=reason,
        user_id=acting_user_id,
        session=session,
    )
    return StockAdjustment(item_id=item.id, new_stock=item.current_stock, entry=entry)


def adjust_stock(
    item_id: int,
    quantity,
    direction,
    reason: str | None = None,
    acting_user_id: int | None = None,
    *,
    session=None,
) -> StockAdjustment:
    """
    Manual stock adjustment: read, check, write, append, atomically.

    Raises NotFoundError for an unknown item and InsufficientStockError when
    a decrease would go below zero; nothing is written in either case.
    """
    session = get_session(session)
    quantity = normalize_quantity(quantity)
    direction = normalize_direction(direction)
    reason = reason or "Manual adjustment"

    def _op():
        with transaction(session):
            item = get_item(item_id, session=session, lock=True)
            result = apply_movement(
                item,
                quantity=quantity,
                direction=direction,
                reason=reason,
                acting_user_id=acting_user_id,
                session=session,
            )
        logger.info(
            "Stock %s item=%s qty=%s new_stock=%s user=%s",
            direction, item_id, quantity, result.new_stock, acting_user_id,
        )
        return result

    return run_atomic(_op, session=session)


def _parse_bulk_update(position: int, raw) -> tuple[int, int, str]:
    if not isinstance(raw, dict):
        raise ValidationError(f"Update #{position + 1} must be an object", details={"index": position})
    item_id = raw.get("itemId", raw.get("item_id", raw.get("id")))
    if item_id is None:
        raise ValidationError(f"Update #{position + 1} is missing itemId", details={"index": position})
    try:
        return (
            coerce_int("itemId", item_id),
            normalize_quantity(raw.get("quantity")),
            normalize_direction(raw.get("direction", raw.get("type"))),
        )
    except ValidationError as e:
        e.details.setdefault("index", position)
        raise


def bulk_adjust_stock(
    updates,
    acting_user_id: int | None = None,
    reason: str = "Bulk update",
    *,
    session=None,
) -> list[StockAdjustment]:
    """
    Apply independent adjustments in caller order, all-or-nothing.

    The first failing update (unknown item, would go negative) aborts the
    batch and rolls back every earlier update in it.
    """
    if not isinstance(updates, list) or not updates:
        raise ValidationError("Items array is required")

    session = get_session(session)
    parsed = [_parse_bulk_update(i, raw) for i, raw in enumerate(updates)]

    def _op():
        results: list[StockAdjustment] = []
        with transaction(session):
            for position, (item_id, quantity, direction) in enumerate(parsed):
                try:
                    item = get_item(item_id, session=session, lock=True)
                    results.append(
                        apply_movement(
                            item,
                            quantity=quantity,
                            direction=direction,
                            reason=reason,
                            acting_user_id=acting_user_id,
                            session=session,
                        )
                    )
                except AppError as e:
                    e.details.setdefault("index", position)
                    raise
        logger.info("Bulk stock update applied: %d movements, user=%s", len(results), acting_user_id)
        return results

    return run_atomic(_op, session=session)


def check_stock(lines, *, session=None) -> dict:
    """
    Read-only availability check for a prospective sale.

    Quantities for the same item are summed before comparing.
    """
    if not isinstance(lines, list):
        raise ValidationError("items must be a list")

    session = get_session(session)
    requested: dict[int, int] = {}
    for position, raw in enumerate(lines):
        if not isinstance(raw, dict) or raw.get("itemId") is None:
            raise ValidationError(f"Line #{position + 1} is missing itemId", details={"index": position})
        item_id = coerce_int("itemId", raw["itemId"])
        requested[item_id] = requested.get(item_id, 0) + normalize_quantity(raw.get("quantity"))

    items = {
        item.id: item
        for item in session.query(Item).filter(Item.id.in_(list(requested))).all()
    } if requested else {}

    insufficient = []
    for item_id, qty in requested.items():
        item = items.get(item_id)
        if item is None or item.current_stock < qty:
            insufficient.append({
                "itemId": item_id,
                "name": item.name if item else "Unknown",
                "requested": qty,
                "available": item.current_stock if item else 0,
            })

    return {"available": not insufficient, "insufficientItems": insufficient}
