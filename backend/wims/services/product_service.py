# Overview: Service-layer operations for products; encapsulates business logic and database work.

from __future__ import annotations

import logging
import math

from flask import current_app
from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import DuplicateKeyError, InvalidStateError, NotFoundError, ValidationError
from ..models import Batch, OrderLine, Product, StockAdjustment, Supplier
from . import notification_service, stock_service
from .concurrency import run_with_retry

logger = logging.getLogger(__name__)

PRODUCT_SORT_FIELDS = {
    "name": Product.name,
    "sku": Product.sku,
    "price": Product.price,
    "current_stock": Product.current_stock,
    "created_at": Product.created_at,
}

MAX_PAGE_SIZE = 100


def _ensure_sku_available(sku: str, *, exclude_id: int | None = None) -> None:
    q = db.session.query(Product.id).filter(Product.sku == sku)
    if exclude_id is not None:
        q = q.filter(Product.id != exclude_id)
    if q.first() is not None:
        raise DuplicateKeyError(f"SKU already exists: {sku}", {"field": "sku", "value": sku})


def _ensure_supplier(supplier_id: int | None) -> None:
    if supplier_id is not None and db.session.get(Supplier, supplier_id) is None:
        raise NotFoundError(f"Supplier not found: {supplier_id}", {"supplier_id": supplier_id})


def list_products(
    *,
    category: str | None = None,
    search: str | None = None,
    sort_by: str = "name",
    sort_dir: str = "asc",
    page: int = 1,
    limit: int = 20,
) -> dict:
    if sort_by not in PRODUCT_SORT_FIELDS:
        raise ValidationError(
            f"sort_by must be one of: {', '.join(PRODUCT_SORT_FIELDS)}",
            {"field": "sort_by", "allowed": list(PRODUCT_SORT_FIELDS)},
        )
    if sort_dir not in ("asc", "desc"):
        raise ValidationError("sort_dir must be asc or desc", {"field": "sort_dir"})
    page = max(1, page)
    limit = max(1, min(limit, MAX_PAGE_SIZE))

    q = db.session.query(Product)
    if category:
        q = q.filter(Product.category == category)
    if search:
        pattern = f"%{search.strip()}%"
        q = q.filter(or_(Product.name.ilike(pattern), Product.sku.ilike(pattern)))

    total = q.count()
    column = PRODUCT_SORT_FIELDS[sort_by]
    q = q.order_by(column.asc() if sort_dir == "asc" else column.desc(), Product.id.asc())
    items = q.offset((page - 1) * limit).limit(limit).all()

    return {
        "products": items,
        "total": total,
        "page": page,
        "limit": limit,
        "pages": math.ceil(total / limit) if total else 0,
    }


def get_product(product_id: int) -> Product:
    return stock_service.get_product_or_404(product_id)


def count_batches(product_id: int) -> int:
    return int(
        db.session.query(func.count(Batch.id)).filter(Batch.product_id == product_id).scalar() or 0
    )


def list_categories() -> list[str]:
    rows = db.session.query(Product.category).distinct().order_by(Product.category.asc()).all()
    return [r[0] for r in rows]


def create_product(patch: dict) -> Product:
    """
    Create a catalog product. Stock starts at zero; it comes from batches.
    """
    if "current_stock" in patch:
        raise ValidationError("current_stock is derived from batches", {"field": "current_stock"})

    def _op():
        _ensure_sku_available(patch["sku"])
        _ensure_supplier(patch.get("supplier_id"))

        product = Product(**patch)
        product.current_stock = 0
        db.session.add(product)
        try:
            db.session.flush()
        except IntegrityError:
            raise DuplicateKeyError(f"SKU already exists: {patch['sku']}", {"field": "sku", "value": patch["sku"]})
        db.session.commit()
        return product

    product = run_with_retry(_op)
    logger.info("Created product %s (%s)", product.sku, product.name)
    return product


def update_product(product_id: int, patch: dict) -> Product:
    """Update name, category, unit, price or supplier. SKU and stock are not editable here."""
    for key in ("sku", "current_stock"):
        if key in patch:
            raise ValidationError(f"{key} cannot be changed", {"field": key})

    def _op():
        product = stock_service.get_product_or_404(product_id, lock=True)
        if "supplier_id" in patch:
            _ensure_supplier(patch["supplier_id"])
        for k, v in patch.items():
            setattr(product, k, v)
        db.session.commit()
        return product

    return run_with_retry(_op)


def set_stock(product_id: int, new_stock: int, *, acting_user_id: int | None = None, note: str | None = None) -> Product:
    """
    Set a product's stock to an absolute level.

    The difference from the ledger total is recorded as a StockAdjustment,
    so the recalculator reproduces the new level instead of undoing it.
    """
    if isinstance(new_stock, bool) or not isinstance(new_stock, int):
        raise ValidationError("current_stock must be an integer", {"field": "current_stock"})
    if new_stock < 0:
        raise ValidationError("current_stock cannot be negative", {"field": "current_stock"})

    def _op():
        product = stock_service.get_product_or_404(product_id, lock=True)
        before = product.current_stock
        delta = new_stock - stock_service.compute_stock(product_id)
        if delta:
            db.session.add(
                StockAdjustment(
                    product_id=product_id,
                    quantity_delta=delta,
                    note=note or "Manual stock update",
                    created_by_user_id=acting_user_id,
                )
            )
            db.session.flush()
        stock_service.recalculate_stock(product_id)
        db.session.commit()
        return product, before

    product, before = run_with_retry(_op)
    logger.info("Stock for %s set %s -> %s", product.sku, before, product.current_stock)

    notification_service.notify_inventory_update(
        "stockUpdated", productId=product.id, sku=product.sku, previousStock=before, currentStock=product.current_stock
    )
    threshold = current_app.config["LOW_STOCK_THRESHOLD"]
    notification_service.notify_low_stock([product], threshold)
    return product


def list_adjustments(product_id: int, *, limit: int = 100) -> list[StockAdjustment]:
    stock_service.get_product_or_404(product_id)
    return (
        db.session.query(StockAdjustment)
        .filter(StockAdjustment.product_id == product_id)
        .order_by(StockAdjustment.occurred_at.desc(), StockAdjustment.id.desc())
        .limit(limit)
        .all()
    )


def delete_product(product_id: int) -> dict:
    """Products with batches or order history cannot be deleted."""
    def _op():
        product = stock_service.get_product_or_404(product_id, lock=True)
        batches = count_batches(product_id)
        lines = db.session.query(func.count(OrderLine.id)).filter(OrderLine.product_id == product_id).scalar() or 0
        if batches or lines:
            raise InvalidStateError(
                f"Product {product.sku} has batches or orders and cannot be deleted",
                {"product_id": product_id, "batch_count": batches, "order_line_count": int(lines)},
            )
        db.session.query(StockAdjustment).filter(StockAdjustment.product_id == product_id).delete(
            synchronize_session=False
        )
        info = {"id": product.id, "sku": product.sku}
        db.session.delete(product)
        db.session.commit()
        return info

    return run_with_retry(_op)


def list_low_stock(threshold: int) -> list[Product]:
    return (
        db.session.query(Product)
        .filter(Product.current_stock < threshold)
        .order_by(Product.current_stock.asc(), Product.name.asc())
        .all()
    )
