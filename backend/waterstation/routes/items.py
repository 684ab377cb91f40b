# Overview: Flask API routes for item operations; parses input and returns JSON responses.

# backend/waterstation/routes/items.py
"""
Item (product) catalog and stock routes.

The same blueprint is mounted at /api/items and /api/products.

SECURITY: All routes require authentication.
- Deleting an item and bulk stock updates require an Administrator
"""
from flask import Blueprint, request, g, current_app

from ..services import catalog_service, ledger_service, stock_service
from ..decorators import require_auth, require_admin, current_user_id

items_bp = Blueprint("items", __name__, url_prefix="/api/items")


@items_bp.get("")
@require_auth
def list_items():
    """
    Query params:
    - category: str (optional)
    - low_stock: "1"/"true" to return only items at or below minStock
    """
    low = (request.args.get("low_stock") or "").lower() in ("1", "true", "yes")
    items = catalog_service.list_items(category=request.args.get("category"), low_stock_only=low)
    return {"items": [i.to_dict() for i in items], "count": len(items)}


@items_bp.post("")
@require_auth
def create_item_route():
    payload = request.get_json(silent=True) or {}
    item = catalog_service.create_item(payload)
    return item.to_dict(), 201


@items_bp.put("/bulk/stock")
@require_auth
@require_admin
def bulk_update_stock_route():
    """
    Body: {"items": [{"itemId", "quantity", "type"}], "reason"?}

    All-or-nothing: the first failing update aborts the batch and the
    error names the failing item.
    """
    payload = request.get_json(silent=True) or {}
    updates = payload.get("items", payload.get("updates"))
    results = stock_service.bulk_adjust_stock(
        updates,
        acting_user_id=current_user_id(),
        reason=payload.get("reason") or "Bulk update",
    )
    return {
        "message": "Bulk stock update successful",
        "results": [r.to_dict() for r in results],
    }


@items_bp.post("/check-stock")
@require_auth
def check_stock_route():
    payload = request.get_json(silent=True) or {}
    return stock_service.check_stock(payload.get("items"))


@items_bp.get("/<int:item_id>")
@require_auth
def get_item_route(item_id: int):
    return stock_service.get_item(item_id).to_dict()


@items_bp.put("/<int:item_id>")
@require_auth
def update_item_route(item_id: int):
    payload = request.get_json(silent=True) or {}
    item = catalog_service.update_item(item_id, payload)
    return item.to_dict()


@items_bp.delete("/<int:item_id>")
@require_auth
@require_admin
def delete_item_route(item_id: int):
    catalog_service.delete_item(item_id)
    current_app.logger.info("Item %s deleted by user %s", item_id, g.current_user.id)
    return {"message": "Item deleted successfully"}


@items_bp.put("/<int:item_id>/stock")
@require_auth
def update_stock_route(item_id: int):
    """
    Body: {"quantity": int, "type": "increase"|"decrease", "reason"?: str}

    Returns:
    - 200 {"message", "currentStock"}
    - 400 invalid input or insufficient stock
    - 404 unknown item
    """
    payload = request.get_json(silent=True) or {}
    result = stock_service.adjust_stock(
        item_id,
        payload.get("quantity"),
        payload.get("type", payload.get("direction")),
        reason=payload.get("reason"),
        acting_user_id=current_user_id(),
    )
    return {"message": "Stock updated successfully", "currentStock": result.new_stock}


@items_bp.get("/<int:item_id>/history")
@require_auth
def stock_history_route(item_id: int):
    stock_service.get_item(item_id)
    limit = request.args.get("limit", type=int)
    entries = ledger_service.list_stock_history(item_id, limit=limit)
    return [e.to_dict() for e in entries]
