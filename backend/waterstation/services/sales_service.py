"""
Sales Service - point-of-sale transactions and their stock effects

A Completed sale owns one Stock Out ledger row per line. Creating,
updating and deleting a sale keep Item.current_stock, the stock ledger and
the sales table consistent inside a single transaction per call.

Update semantics (product decision):
- The stock footprint of a sale is {item_id: quantity} over its lines when
  the sale is Completed, and empty otherwise.
- update_sale() applies the difference between the old and the new
  footprint: net returns go back to stock first, then net takes are drawn
  through the guarded decrement. Each net movement is ledgered as
  "Sale Updated: <invoice>".
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy import func
from sqlalchemy.orm import joinedload, selectinload

from ..models import Customer, Item, Sale, SaleLine
from ..models.sales import SALE_COMPLETED, SALE_STATUSES
from ..errors import ConflictError, InsufficientStockError, NotFoundError, ValidationError
from ..validation import ModelValidationPolicy, coerce_decimal, coerce_int, validate_payload
from waterstation.time_utils import day_bounds, month_bounds, parse_iso_datetime, utcnow
from .stock_service import DECREASE, INCREASE, apply_movement
from .concurrency import get_session, lock_for_update, run_atomic, transaction

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")

SALE_POLICY = ModelValidationPolicy(
    writable_fields={
        "invoice_id",
        "date",
        "customer_id",
        "customer_type",
        "transaction_type",
        "delivery_type",
        "discount",
        "payment_method",
        "status",
        "notes",
    },
    required_on_create={"invoice_id", "customer_id"},
    aliases={
        "invoiceId": "invoice_id",
        "customerId": "customer_id",
        "customerType": "customer_type",
        "transactionType": "transaction_type",
        "deliveryType": "delivery_type",
        "paymentMethod": "payment_method",
    },
)


@dataclass(frozen=True)
class LineInput:
    item_id: int
    quantity: int
    price: Decimal

    @property
    def line_total(self) -> Decimal:
        return (self.price * self.quantity).quantize(CENTS)


def parse_lines(raw_items) -> list[LineInput]:
    """Validate the caller's line list at the boundary."""
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("items must be a non-empty list")

    lines = []
    for position, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            raise ValidationError(f"Line #{position + 1} must be an object", details={"index": position})
        if raw.get("itemId") is None:
            raise ValidationError(f"Line #{position + 1} is missing itemId", details={"index": position})
        if raw.get("price") is None:
            raise ValidationError(f"Line #{position + 1} is missing price", details={"index": position})
        try:
            quantity = coerce_int("quantity", raw.get("quantity"))
            if quantity <= 0:
                raise ValidationError("quantity must be greater than zero")
            price = coerce_decimal("price", raw["price"])
            if price < 0:
                raise ValidationError("price must be >= 0")
            lines.append(LineInput(
                item_id=coerce_int("itemId", raw["itemId"]),
                quantity=quantity,
                price=price.quantize(CENTS),
            ))
        except ValidationError as e:
            e.details.setdefault("index", position)
            raise
    return lines


def _footprint(lines) -> dict[int, int]:
    totals: dict[int, int] = {}
    for line in lines:
        if line.item_id is None:
            continue
        totals[line.item_id] = totals.get(line.item_id, 0) + line.quantity
    return totals


def _totals(lines: list[LineInput], discount: Decimal) -> tuple[Decimal, Decimal, Decimal]:
    subtotal = sum((line.line_total for line in lines), Decimal("0.00"))
    discount = (discount or Decimal("0")).quantize(CENTS)
    if discount < 0:
        raise ValidationError("discount must be >= 0")
    if discount > subtotal:
        raise ValidationError("discount cannot exceed subtotal")
    return subtotal, discount, subtotal - discount


def _validate_status(status: str) -> None:
    if status not in SALE_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(SALE_STATUSES)}")


def _load_items(session, item_ids, *, required: set[int]) -> dict[int, Item]:
    """Lock and load items; ids in `required` must exist."""
    items: dict[int, Item] = {}
    for item_id in item_ids:
        item = lock_for_update(session.query(Item).filter_by(id=item_id)).first()
        if item is None:
            if item_id in required:
                raise NotFoundError(f"Item with ID {item_id} not found", details={"itemId": item_id})
            logger.warning("Item %s no longer exists; skipping its stock movement", item_id)
            continue
        items[item_id] = item
    return items


def _precheck_takes(items: dict[int, Item], takes: dict[int, int]) -> None:
    """Every item must cover the quantity about to be drawn from it."""
    for item_id, qty in takes.items():
        item = items[item_id]
        if item.current_stock < qty:
            raise InsufficientStockError(
                item_id=item.id, item_name=item.name, available=item.current_stock, requested=qty,
            )


def _build_lines(lines: list[LineInput], items: dict[int, Item]) -> list[SaleLine]:
    return [
        SaleLine(
            line_number=n,
            item_id=line.item_id,
            item_name=items[line.item_id].name if line.item_id in items else None,
            quantity=line.quantity,
            price=line.price,
            line_total=line.line_total,
        )
        for n, line in enumerate(lines, start=1)
    ]


def _ensure_invoice_free(session, invoice_id: str, *, exclude_sale_id: int | None = None) -> None:
    q = session.query(Sale.id).filter(Sale.invoice_id == invoice_id)
    if exclude_sale_id is not None:
        q = q.filter(Sale.id != exclude_sale_id)
    if q.first() is not None:
        raise ConflictError(f"Invoice {invoice_id} already exists", details={"invoiceId": invoice_id})


def _get_customer(session, customer_id: int) -> Customer:
    customer = session.get(Customer, customer_id)
    if customer is None:
        raise NotFoundError("Customer not found", details={"customerId": customer_id})
    return customer


def _sale_query(session):
    return session.query(Sale).options(
        joinedload(Sale.customer),
        selectinload(Sale.lines),
    )


def get_sale(sale_id: int, *, session=None) -> Sale:
    session = get_session(session)
    sale = _sale_query(session).filter(Sale.id == sale_id).first()
    if sale is None:
        raise NotFoundError("Sale not found", details={"saleId": sale_id})
    return sale


def list_sales(*, session=None) -> list[Sale]:
    session = get_session(session)
    return _sale_query(session).order_by(Sale.created_at.desc(), Sale.id.desc()).all()


def create_sale(payload: dict, acting_user_id: int | None = None, *, session=None) -> Sale:
    """
    Record a sale.

    Validation happens before any write. For a Completed sale every line's
    item must cover its (per-item summed) quantity; otherwise the call fails
    with InsufficientStockError naming the item and nothing is written.
    The sale row, its lines, the stock decrements and their ledger rows
    commit together or not at all.
    """
    session = get_session(session)
    payload = payload if isinstance(payload, dict) else {}

    if not payload.get("invoiceId") or not payload.get("customerId") or not payload.get("items"):
        raise ValidationError("Missing required fields: invoiceId, customerId, and items are required")

    header = validate_payload(model=Sale, payload=payload, policy=SALE_POLICY, partial=False)
    lines = parse_lines(payload["items"])

    status = header.get("status") or SALE_COMPLETED
    _validate_status(status)
    subtotal, discount, total = _totals(lines, header.get("discount"))
    invoice_id = header["invoice_id"]

    def _op():
        with transaction(session):
            _ensure_invoice_free(session, invoice_id)
            customer = _get_customer(session, header["customer_id"])

            wanted = _footprint(lines)
            items = _load_items(session, wanted, required=set(wanted))

            completed = status == SALE_COMPLETED
            if completed:
                _precheck_takes(items, wanted)

            fields = {k: v for k, v in header.items() if v is not None}
            fields.update(
                status=status,
                subtotal=subtotal,
                discount=discount,
                total=total,
                created_by_user_id=acting_user_id,
            )
            fields.setdefault("date", utcnow())
            fields.setdefault("customer_type", customer.customer_type)

            sale = Sale(**fields)
            sale.lines = _build_lines(lines, items)
            session.add(sale)
            session.flush()

            if completed:
                for line in lines:
                    apply_movement(
                        items[line.item_id],
                        quantity=line.quantity,
                        direction=DECREASE,
                        reason=f"Sale: {invoice_id}",
                        acting_user_id=acting_user_id,
                        conflict_on_guard_miss=True,
                        session=session,
                    )
                customer.total_orders = (customer.total_orders or 0) + 1
                customer.last_order_at = sale.date
            sale_id = sale.id

        logger.info("Sale %s recorded (id=%s, status=%s, total=%s)", invoice_id, sale_id, status, total)
        return sale_id

    sale_id = run_atomic(_op, session=session)
    return get_sale(sale_id, session=session)


def update_sale(sale_id: int, payload: dict, acting_user_id: int | None = None, *, session=None) -> Sale:
    """
    Update a sale in place and reconcile stock against the previous version.

    Header fields are patched; "items", when present, replaces the line list
    and totals are recomputed from it.
    """
    session = get_session(session)
    payload = payload if isinstance(payload, dict) else {}

    header = validate_payload(model=Sale, payload=payload, policy=SALE_POLICY, partial=True)
    new_lines = parse_lines(payload["items"]) if "items" in payload else None
    if "status" in header:
        _validate_status(header["status"])
    for key in ("invoice_id", "customer_id"):
        if key in header and header[key] is None:
            raise ValidationError(f"{key} cannot be empty")

    def _op():
        with transaction(session):
            sale = lock_for_update(session.query(Sale).filter_by(id=sale_id)).first()
            if sale is None:
                raise NotFoundError("Sale not found", details={"saleId": sale_id})

            if "invoice_id" in header and header["invoice_id"] != sale.invoice_id:
                _ensure_invoice_free(session, header["invoice_id"], exclude_sale_id=sale.id)
            old_customer = sale.customer
            new_customer = (
                _get_customer(session, header["customer_id"]) if "customer_id" in header else old_customer
            )

            was_completed = sale.is_completed
            new_status = header.get("status", sale.status)
            will_complete = new_status == SALE_COMPLETED

            if new_lines is not None:
                effective = new_lines
            else:
                effective = [
                    LineInput(item_id=line.item_id, quantity=line.quantity, price=Decimal(line.price))
                    for line in sale.lines
                ]

            old_fp = _footprint(sale.lines) if was_completed else {}
            new_fp = _footprint(effective) if will_complete else {}
            required = set(_footprint(new_lines)) if new_lines is not None else set()

            item_ids = list(dict.fromkeys([*old_fp, *new_fp, *required]))
            items = _load_items(session, item_ids, required=required)

            returns = {i: old_fp.get(i, 0) - new_fp.get(i, 0) for i in item_ids}
            takes = {i: -d for i, d in returns.items() if d < 0}
            returns = {i: d for i, d in returns.items() if d > 0 and i in items}
            missing = [i for i in takes if i not in items]
            if missing:
                raise NotFoundError(f"Item with ID {missing[0]} not found", details={"itemId": missing[0]})
            _precheck_takes(items, takes)

            for key, value in header.items():
                setattr(sale, key, value)
            if new_lines is not None:
                # Old lines must be gone before renumbered ones are inserted
                sale.lines.clear()
                session.flush()
                sale.lines.extend(_build_lines(new_lines, items))
                session.flush()
            discount = header.get("discount", sale.discount)
            if new_lines is not None or "discount" in header:
                sale.subtotal, sale.discount, sale.total = _totals(effective, discount)

            reason = f"Sale Updated: {sale.invoice_id}"
            for item_id, qty in returns.items():
                apply_movement(
                    items[item_id], quantity=qty, direction=INCREASE, reason=reason,
                    acting_user_id=acting_user_id, session=session,
                )
            for item_id, qty in takes.items():
                apply_movement(
                    items[item_id], quantity=qty, direction=DECREASE, reason=reason,
                    acting_user_id=acting_user_id, conflict_on_guard_miss=True, session=session,
                )

            # Order counts follow the customer that owns the Completed sale
            if was_completed and old_customer is not None and (
                not will_complete or new_customer is not old_customer
            ):
                old_customer.total_orders = max(0, (old_customer.total_orders or 0) - 1)
            if will_complete and new_customer is not None and (
                not was_completed or new_customer is not old_customer
            ):
                new_customer.total_orders = (new_customer.total_orders or 0) + 1
                new_customer.last_order_at = sale.date

        logger.info(
            "Sale %s updated (returns=%s, takes=%s)", sale_id, returns, takes,
        )
        return sale_id

    run_atomic(_op, session=session)
    return get_sale(sale_id, session=session)


def delete_sale(sale_id: int, acting_user_id: int | None = None, *, session=None) -> None:
    """
    Delete a sale; a Completed sale first gives its stock back.

    Each line of a Completed sale is re-incremented with a "Sale Deleted"
    ledger row before the sale row is removed, all in one transaction.
    Lines whose item no longer exists are skipped.
    """
    session = get_session(session)

    def _op():
        with transaction(session):
            sale = lock_for_update(session.query(Sale).filter_by(id=sale_id)).first()
            if sale is None:
                raise NotFoundError("Sale not found", details={"saleId": sale_id})

            invoice_id = sale.invoice_id
            if sale.is_completed:
                items = _load_items(session, list(_footprint(sale.lines)), required=set())
                for line in sale.lines:
                    if line.item_id not in items:
                        continue
                    apply_movement(
                        items[line.item_id],
                        quantity=line.quantity,
                        direction=INCREASE,
                        reason=f"Sale Deleted: {invoice_id}",
                        acting_user_id=acting_user_id,
                        session=session,
                    )
                if sale.customer is not None:
                    sale.customer.total_orders = max(0, (sale.customer.total_orders or 0) - 1)

            session.delete(sale)
        logger.info("Sale %s deleted (id=%s)", invoice_id, sale_id)

    run_atomic(_op, session=session)


def _range_bound(raw: str | None, name: str, *, end: bool) -> datetime:
    if not raw:
        raise ValidationError("startDate and endDate are required")
    try:
        dt = parse_iso_datetime(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an ISO-8601 date")
    # A bare end date covers that whole day
    if end and len(raw.strip()) == 10:
        dt = dt + timedelta(days=1)
    return dt


def list_sales_by_date_range(start_date: str | None, end_date: str | None, *, session=None) -> list[Sale]:
    """Sales dated within [startDate, endDate], both inclusive, newest first."""
    session = get_session(session)
    start = _range_bound(start_date, "startDate", end=False)
    end = _range_bound(end_date, "endDate", end=True)
    if end < start:
        raise ValidationError("endDate must not be before startDate")

    q = _sale_query(session).filter(Sale.date >= start)
    if end_date and len(end_date.strip()) == 10:
        q = q.filter(Sale.date < end)
    else:
        q = q.filter(Sale.date <= end)
    return q.order_by(Sale.date.desc(), Sale.id.desc()).all()


def _aggregate(session, start: datetime | None = None, end: datetime | None = None):
    q = session.query(
        func.count(Sale.id).label("count"),
        func.coalesce(func.sum(Sale.total), 0).label("revenue"),
        func.avg(Sale.total).label("average"),
        func.coalesce(func.sum(Sale.subtotal), 0).label("subtotal"),
        func.coalesce(func.sum(Sale.discount), 0).label("discounts"),
    ).filter(Sale.status == SALE_COMPLETED)
    if start is not None:
        q = q.filter(Sale.date >= start, Sale.date < end)
    return q.one()


def _num(value) -> float:
    return round(float(value or 0), 2)


def get_sales_summary(*, today=None, session=None) -> dict:
    """Completed-sale aggregates: all time, today, and the current month."""
    session = get_session(session)
    today = today or utcnow().date()

    overall = _aggregate(session)
    day = _aggregate(session, *day_bounds(today))
    month = _aggregate(session, *month_bounds(today))

    return {
        "overall": {
            "totalSales": int(overall.count or 0),
            "totalRevenue": _num(overall.revenue),
            "averageSale": _num(overall.average),
            "totalSubtotal": _num(overall.subtotal),
            "totalDiscounts": _num(overall.discounts),
        },
        "today": {
            "todayRevenue": _num(day.revenue),
            "todaySales": int(day.count or 0),
        },
        "monthly": {
            "monthlyRevenue": _num(month.revenue),
            "monthlySales": int(month.count or 0),
        },
    }
