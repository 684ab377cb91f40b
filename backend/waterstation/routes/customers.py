# Overview: Flask API routes for customer operations; parses input and returns JSON responses.

# backend/waterstation/routes/customers.py
"""
Customer routes.

DELETE archives the customer (hidden flag); PUT /<id>/restore undoes it.
Listing includes archived customers unless ?include_hidden=false.
"""
from flask import Blueprint, request

from ..services import customer_service
from ..decorators import require_auth

customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.get("")
@require_auth
def list_customers():
    include_hidden = (request.args.get("include_hidden") or "true").lower() not in ("0", "false", "no")
    customers = customer_service.list_customers(include_hidden=include_hidden)
    return {"items": [c.to_dict() for c in customers], "count": len(customers)}


@customers_bp.post("")
@require_auth
def create_customer_route():
    payload = request.get_json(silent=True) or {}
    customer = customer_service.create_customer(payload)
    return customer.to_dict(), 201


@customers_bp.get("/<int:customer_id>")
@require_auth
def get_customer_route(customer_id: int):
    return customer_service.get_customer(customer_id).to_dict()


@customers_bp.put("/<int:customer_id>")
@require_auth
def update_customer_route(customer_id: int):
    payload = request.get_json(silent=True) or {}
    return customer_service.update_customer(customer_id, payload).to_dict()


@customers_bp.delete("/<int:customer_id>")
@require_auth
def archive_customer_route(customer_id: int):
    customer_service.set_customer_hidden(customer_id, True)
    return {"message": "Customer archived successfully"}


@customers_bp.put("/<int:customer_id>/restore")
@require_auth
def restore_customer_route(customer_id: int):
    customer = customer_service.set_customer_hidden(customer_id, False)
    return {"message": "Customer restored successfully", "customer": customer.to_dict()}
