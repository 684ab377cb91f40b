# backend/waterstation/services/customer_service.py
"""
Customer Service

Customers are archived, never hard-deleted, because sales reference them.
"""
from __future__ import annotations

import logging

from ..models import Customer
from ..errors import NotFoundError, ValidationError
from ..validation import ModelValidationPolicy, validate_payload
from ..models.customers import CUSTOMER_TYPES
from .concurrency import get_session, transaction

logger = logging.getLogger(__name__)

CUSTOMER_POLICY = ModelValidationPolicy(
    writable_fields={"name", "phone", "address", "email", "customer_type"},
    required_on_create={"name", "phone", "address"},
    aliases={"customerType": "customer_type", "type": "customer_type"},
)


def _check_rules(patch: dict) -> None:
    ctype = patch.get("customer_type")
    if ctype is not None and ctype not in CUSTOMER_TYPES:
        raise ValidationError(f"customerType must be one of: {', '.join(CUSTOMER_TYPES)}")
    email = patch.get("email")
    if email and "@" not in email:
        raise ValidationError("email is not valid")


def list_customers(*, include_hidden: bool = True, session=None) -> list[Customer]:
    session = get_session(session)
    q = session.query(Customer)
    if not include_hidden:
        q = q.filter(Customer.is_hidden.is_(False))
    return q.order_by(Customer.name.asc(), Customer.id.asc()).all()


def get_customer(customer_id: int, *, session=None) -> Customer:
    session = get_session(session)
    customer = session.get(Customer, customer_id)
    if customer is None:
        raise NotFoundError("Customer not found", details={"customerId": customer_id})
    return customer


def create_customer(payload: dict, *, session=None) -> Customer:
    session = get_session(session)
    patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=False)
    _check_rules(patch)

    customer = Customer(**patch)
    with transaction(session):
        session.add(customer)
    logger.info("Customer created id=%s name=%r", customer.id, customer.name)
    return customer


def update_customer(customer_id: int, payload: dict, *, session=None) -> Customer:
    session = get_session(session)
    patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=True)
    _check_rules(patch)

    with transaction(session):
        customer = get_customer(customer_id, session=session)
        for k, v in patch.items():
            setattr(customer, k, v)
    return customer


def set_customer_hidden(customer_id: int, hidden: bool, *, session=None) -> Customer:
    """Archive (hidden=True) or restore (hidden=False) a customer."""
    session = get_session(session)
    with transaction(session):
        customer = get_customer(customer_id, session=session)
        customer.is_hidden = hidden
    logger.info("Customer %s %s", customer_id, "archived" if hidden else "restored")
    return customer
