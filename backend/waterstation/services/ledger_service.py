# Overview: Service-layer operations for the stock ledger; append and read only.

from __future__ import annotations

from sqlalchemy.orm import joinedload

from ..models import StockHistoryEntry
from ..models.stock import MOVEMENT_TYPES
from .concurrency import get_session
"""
Stock Ledger Invariants (authoritative)

- Append-only history of stock movements: one row per movement.
- No domain/business logic in the ledger itself; the stock engine decides
  what to append.
- Entries are written inside the same DB transaction as the stock change
  they record.
- quantity is always positive; the direction lives in type.
"""


def append_stock_entry(
    *,
    item_id: int,
    movement_type: str,
    quantity: int,
    reason: str | None = None,
    user_id: int | None = None,
    session=None,
) -> StockHistoryEntry:
    """
    Append one ledger row.

    - No commit here; the caller owns the transaction.
    - No deletes/updates of existing entries anywhere in the services.
    """
    if movement_type not in MOVEMENT_TYPES:
        raise ValueError(f"unknown movement type {movement_type!r}")
    if quantity <= 0:
        raise ValueError("ledger quantity must be positive")

    session = get_session(session)
    entry = StockHistoryEntry(
        item_id=item_id,
        type=movement_type,
        quantity=quantity,
        reason=reason,
        user_id=user_id,
    )
    session.add(entry)
    session.flush()  # ensures entry.id is assigned without committing
    return entry


def list_stock_history(item_id: int, *, limit: int | None = None, session=None) -> list[StockHistoryEntry]:
    """Ledger rows for an item, newest first, with the acting user loaded."""
    session = get_session(session)
    q = (
        session.query(StockHistoryEntry)
        .options(joinedload(StockHistoryEntry.user))
        .filter(StockHistoryEntry.item_id == item_id)
        .order_by(StockHistoryEntry.created_at.desc(), StockHistoryEntry.id.desc())
    )
    if limit is not None:
        q = q.limit(limit)
    return q.all()
