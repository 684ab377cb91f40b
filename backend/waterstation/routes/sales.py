# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

# backend/waterstation/routes/sales.py
"""
Sales API routes.

A Completed sale draws stock for its lines when it is created; deleting
it gives that stock back. Insufficient stock answers 400 naming the item;
a stock change racing the commit answers 409 and can be retried.
"""
from flask import Blueprint, request

from ..services import sales_service
from ..decorators import require_auth, current_user_id

sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.get("")
@require_auth
def list_sales_route():
    sales = sales_service.list_sales()
    return {"items": [s.to_dict() for s in sales], "count": len(sales)}


@sales_bp.post("")
@require_auth
def create_sale_route():
    """
    Body: {"invoiceId", "customerId", "items": [{"itemId", "quantity", "price"}],
           "discount"?, "status"?, "paymentMethod"?, ...}

    Returns 201 with the stored sale.
    """
    payload = request.get_json(silent=True) or {}
    sale = sales_service.create_sale(payload, acting_user_id=current_user_id())
    return sale.to_dict(), 201


@sales_bp.get("/date-range")
@require_auth
def sales_by_date_range_route():
    sales = sales_service.list_sales_by_date_range(
        request.args.get("startDate"),
        request.args.get("endDate"),
    )
    return {"items": [s.to_dict() for s in sales], "count": len(sales)}


@sales_bp.get("/summary")
@require_auth
def sales_summary_route():
    return sales_service.get_sales_summary()


@sales_bp.get("/<int:sale_id>")
@require_auth
def get_sale_route(sale_id: int):
    return sales_service.get_sale(sale_id).to_dict()


@sales_bp.put("/<int:sale_id>")
@require_auth
def update_sale_route(sale_id: int):
    payload = request.get_json(silent=True) or {}
    sale = sales_service.update_sale(sale_id, payload, acting_user_id=current_user_id())
    return sale.to_dict()


@sales_bp.delete("/<int:sale_id>")
@require_auth
def delete_sale_route(sale_id: int):
    sales_service.delete_sale(sale_id, acting_user_id=current_user_id())
    return {"message": "Sale deleted successfully"}
