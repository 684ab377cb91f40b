# backend/waterstation/services/catalog_service.py
"""
Catalog Service - item (product) records

Stock levels are owned by stock_service. The one exception is the full
record edit, which an administrator may use to overwrite current_stock
directly; that path does not append a ledger row.
"""
from __future__ import annotations

import logging

from sqlalchemy import update

from ..models import Item, SaleLine
from ..errors import ValidationError
from ..validation import ModelValidationPolicy, enforce_rules_item, validate_payload
from .stock_service import get_item
from .concurrency import get_session, transaction

logger = logging.getLogger(__name__)

ITEM_POLICY = ModelValidationPolicy(
    writable_fields={
        "name",
        "description",
        "category",
        "price",
        "uom",
        "current_stock",
        "min_stock",
        "max_stock",
    },
    required_on_create={"name", "price"},
    aliases={
        "currentStock": "current_stock",
        "minStock": "min_stock",
        "maxStock": "max_stock",
        "unit": "uom",
    },
)


def apply_item_patch(item: Item, patch: dict) -> None:
    for k, v in patch.items():
        if k not in ITEM_POLICY.writable_fields:
            continue
        setattr(item, k, v)


def list_items(*, category: str | None = None, low_stock_only: bool = False, session=None) -> list[Item]:
    session = get_session(session)
    q = session.query(Item)
    if category:
        q = q.filter(Item.category == category)
    if low_stock_only:
        q = q.filter(Item.current_stock <= Item.min_stock)
    return q.order_by(Item.name.asc(), Item.id.asc()).all()


def create_item(payload: dict, *, session=None) -> Item:
    session = get_session(session)
    patch = validate_payload(model=Item, payload=payload, policy=ITEM_POLICY, partial=False)
    enforce_rules_item(patch)

    item = Item()
    apply_item_patch(item, patch)
    with transaction(session):
        session.add(item)
    logger.info("Item created id=%s name=%r stock=%s", item.id, item.name, item.current_stock)
    return item


def update_item(item_id: int, payload: dict, *, session=None) -> Item:
    """
    Patch an item record.

    max_stock >= min_stock is checked against the merged record, not just
    the fields present in the payload.
    """
    session = get_session(session)
    patch = validate_payload(model=Item, payload=payload, policy=ITEM_POLICY, partial=True)
    enforce_rules_item(patch)

    with transaction(session):
        item = get_item(item_id, session=session, lock=True)
        merged_min = patch.get("min_stock", item.min_stock)
        merged_max = patch.get("max_stock", item.max_stock)
        if merged_max is not None and merged_min is not None and merged_max < merged_min:
            raise ValidationError("maxStock must be >= minStock")
        if "current_stock" in patch and patch["current_stock"] != item.current_stock:
            logger.info(
                "Item %s stock overwritten by record edit: %s -> %s",
                item.id, item.current_stock, patch["current_stock"],
            )
        apply_item_patch(item, patch)
    return item


def delete_item(item_id: int, *, session=None) -> None:
    """
    Hard-delete an item.

    Its ledger rows go with it; past sale lines keep their item_name
    snapshot and lose the reference.
    """
    session = get_session(session)
    with transaction(session):
        item = get_item(item_id, session=session, lock=True)
        session.execute(
            update(SaleLine)
            .where(SaleLine.item_id == item.id)
            .values(item_id=None)
            .execution_options(synchronize_session=False)
        )
        session.delete(item)
    logger.info("Item %s deleted", item_id)
