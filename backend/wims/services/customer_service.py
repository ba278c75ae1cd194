# Overview: Service-layer operations for customers; encapsulates business logic and database work.

from __future__ import annotations

import math

from sqlalchemy import func, or_

from ..extensions import db
from ..errors import DuplicateKeyError, InvalidStateError, NotFoundError
from ..models import Customer, Order
from .concurrency import lock_for_update, run_with_retry

MAX_PAGE_SIZE = 100


def _ensure_unique(patch: dict, *, exclude_id: int | None = None) -> None:
    for field in ("email", "phone"):
        if field not in patch:
            continue
        q = db.session.query(Customer.id).filter(getattr(Customer, field) == patch[field])
        if exclude_id is not None:
            q = q.filter(Customer.id != exclude_id)
        if q.first() is not None:
            raise DuplicateKeyError(
                f"Customer with this {field} already exists",
                {"field": field, "value": patch[field]},
            )


def get_customer(customer_id: int, *, lock: bool = False) -> Customer:
    q = db.session.query(Customer).filter_by(id=customer_id)
    if lock:
        q = lock_for_update(q)
    customer = q.first()
    if customer is None:
        raise NotFoundError(f"Customer not found: {customer_id}", {"customer_id": customer_id})
    return customer


def list_customers(*, search: str | None = None, page: int = 1, limit: int = 20) -> dict:
    page = max(1, page)
    limit = max(1, min(limit, MAX_PAGE_SIZE))

    q = db.session.query(Customer)
    if search:
        pattern = f"%{search.strip()}%"
        q = q.filter(or_(Customer.name.ilike(pattern), Customer.email.ilike(pattern), Customer.phone.ilike(pattern)))

    total = q.count()
    items = q.order_by(Customer.name.asc(), Customer.id.asc()).offset((page - 1) * limit).limit(limit).all()
    return {
        "customers": items,
        "total": total,
        "page": page,
        "limit": limit,
        "pages": math.ceil(total / limit) if total else 0,
    }


def create_customer(patch: dict) -> Customer:
    def _op():
        _ensure_unique(patch)
        customer = Customer(**patch)
        db.session.add(customer)
        db.session.commit()
        return customer

    return run_with_retry(_op)


def update_customer(customer_id: int, patch: dict) -> Customer:
    def _op():
        customer = get_customer(customer_id, lock=True)
        _ensure_unique(patch, exclude_id=customer.id)
        for k, v in patch.items():
            setattr(customer, k, v)
        db.session.commit()
        return customer

    return run_with_retry(_op)


def delete_customer(customer_id: int) -> dict:
    """Customers with orders are kept for history."""
    def _op():
        customer = get_customer(customer_id, lock=True)
        orders = db.session.query(func.count(Order.id)).filter(Order.customer_id == customer.id).scalar() or 0
        if orders:
            raise InvalidStateError(
                "Customer has orders and cannot be deleted",
                {"customer_id": customer.id, "order_count": int(orders)},
            )
        info = {"id": customer.id, "name": customer.name}
        db.session.delete(customer)
        db.session.commit()
        return info

    return run_with_retry(_op)
