# Overview: Service-layer operations for suppliers; encapsulates business logic and database work.

from __future__ import annotations

import math

from sqlalchemy import or_

from ..extensions import db
from ..errors import DuplicateKeyError, NotFoundError
from ..models import Product, Supplier
from .concurrency import lock_for_update, run_with_retry

MAX_PAGE_SIZE = 100


def _ensure_unique(patch: dict, *, exclude_id: int | None = None) -> None:
    for field in ("email", "phone"):
        if field not in patch:
            continue
        q = db.session.query(Supplier.id).filter(getattr(Supplier, field) == patch[field])
        if exclude_id is not None:
            q = q.filter(Supplier.id != exclude_id)
        if q.first() is not None:
            raise DuplicateKeyError(
                f"Supplier with this {field} already exists",
                {"field": field, "value": patch[field]},
            )


def get_supplier(supplier_id: int, *, lock: bool = False) -> Supplier:
    q = db.session.query(Supplier).filter_by(id=supplier_id)
    if lock:
        q = lock_for_update(q)
    supplier = q.first()
    if supplier is None:
        raise NotFoundError(f"Supplier not found: {supplier_id}", {"supplier_id": supplier_id})
    return supplier


def list_suppliers(*, search: str | None = None, page: int = 1, limit: int = 20) -> dict:
    page = max(1, page)
    limit = max(1, min(limit, MAX_PAGE_SIZE))

    q = db.session.query(Supplier)
    if search:
        pattern = f"%{search.strip()}%"
        q = q.filter(or_(Supplier.name.ilike(pattern), Supplier.email.ilike(pattern), Supplier.tax_id.ilike(pattern)))

    total = q.count()
    items = q.order_by(Supplier.name.asc(), Supplier.id.asc()).offset((page - 1) * limit).limit(limit).all()
    return {
        "suppliers": items,
        "total": total,
        "page": page,
        "limit": limit,
        "pages": math.ceil(total / limit) if total else 0,
    }


def create_supplier(patch: dict) -> Supplier:
    def _op():
        _ensure_unique(patch)
        supplier = Supplier(**patch)
        db.session.add(supplier)
        db.session.commit()
        return supplier

    return run_with_retry(_op)


def update_supplier(supplier_id: int, patch: dict) -> Supplier:
    def _op():
        supplier = get_supplier(supplier_id, lock=True)
        _ensure_unique(patch, exclude_id=supplier.id)
        for k, v in patch.items():
            setattr(supplier, k, v)
        db.session.commit()
        return supplier

    return run_with_retry(_op)


def delete_supplier(supplier_id: int) -> dict:
    """Products keep existing; their supplier reference is cleared."""
    def _op():
        supplier = get_supplier(supplier_id, lock=True)
        db.session.query(Product).filter(Product.supplier_id == supplier.id).update(
            {"supplier_id": None}, synchronize_session=False
        )
        info = {"id": supplier.id, "name": supplier.name}
        db.session.delete(supplier)
        db.session.commit()
        return info

    return run_with_retry(_op)
