# Overview: Service-layer operations for product stock; ledger projection, recalculation and atomic deductions.

"""
Stock invariants (authoritative)

- Product.current_stock is a cached projection, never an independent fact:
    current_stock = SUM(batch.quantity)
                  + SUM(stock_adjustment.quantity_delta)
                  - SUM(order_line.quantity)
- With no orders and no adjustments this is exactly the sum of batch
  quantities.
- The order workflow moves the projection incrementally with conditional
  UPDATE statements (deduct_stock / restore_stock). The recalculator
  rebuilds it from the ledger; both agree because every order line that
  was deducted is also counted in the ledger.
- current_stock never goes negative (CHECK constraint + conditional UPDATE).
"""

from __future__ import annotations

import logging

from sqlalchemy import func, update
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..errors import InsufficientStockError, NotFoundError
from ..models import Batch, OrderLine, Product, StockAdjustment
from .concurrency import lock_for_update, run_with_retry

logger = logging.getLogger(__name__)


def _sum_batches(product_id: int) -> int:
    return int(
        db.session.query(func.coalesce(func.sum(Batch.quantity), 0))
        .filter(Batch.product_id == product_id)
        .scalar()
        or 0
    )


def _sum_adjustments(product_id: int) -> int:
    return int(
        db.session.query(func.coalesce(func.sum(StockAdjustment.quantity_delta), 0))
        .filter(StockAdjustment.product_id == product_id)
        .scalar()
        or 0
    )


def _sum_reserved(product_id: int, *, exclude_order_id: int | None = None) -> int:
    q = db.session.query(func.coalesce(func.sum(OrderLine.quantity), 0)).filter(
        OrderLine.product_id == product_id
    )
    if exclude_order_id is not None:
        q = q.filter(OrderLine.order_id != exclude_order_id)
    return int(q.scalar() or 0)


def compute_stock(product_id: int) -> int:
    """Stock level as the ledger says it should be (no writes)."""
    return _sum_batches(product_id) + _sum_adjustments(product_id) - _sum_reserved(product_id)


def get_product_or_404(product_id: int, *, lock: bool = False) -> Product:
    q = db.session.query(Product).filter_by(id=product_id)
    if lock:
        q = lock_for_update(q)
    product = q.first()
    if product is None:
        raise NotFoundError(f"Product not found: {product_id}", {"product_id": product_id})
    return product


def recalculate_stock(product_id: int) -> int:
    """
    Overwrite current_stock with the ledger total. Idempotent.

    Runs inside the caller's transaction; does not commit.
    """
    product = get_product_or_404(product_id, lock=True)
    total = compute_stock(product_id)
    if total < 0:
        logger.warning(
            "Ledger total for product %s is negative (%s); storing 0", product_id, total
        )
        total = 0
    if product.current_stock != total:
        logger.info(
            "Recalculated stock for product %s: %s -> %s", product_id, product.current_stock, total
        )
        product.current_stock = total
        db.session.flush()
    return total


def refresh_product_stock(product_id: int) -> int | None:
    """
    Recalculate and commit in its own transaction.

    Used after batch writes. A failure is logged and swallowed: the batch
    write has already committed and the projection can be repaired later
    with `flask stock recalc`.
    """
    def _op():
        total = recalculate_stock(product_id)
        db.session.commit()
        return total

    try:
        return run_with_retry(_op)
    except SQLAlchemyError:
        logger.exception("Stock recalculation failed for product %s", product_id)
        return None


def recalculate_all() -> list[dict]:
    """Repair every product's projection. Returns the products that changed."""
    def _op():
        changed = []
        for product in db.session.query(Product).order_by(Product.id).all():
            before = product.current_stock
            after = recalculate_stock(product.id)
            if before != after:
                changed.append({"product_id": product.id, "sku": product.sku, "before": before, "after": after})
        db.session.commit()
        return changed

    return run_with_retry(_op)


def deduct_stock(product_id: int, quantity: int) -> None:
    """
    Atomically decrement current_stock by quantity.

    The decrement is a single conditional UPDATE (current_stock >= quantity),
    so two concurrent orders cannot both pass against a stale read. Raises
    InsufficientStockError when the row no longer has enough stock.
    Does not commit.
    """
    stmt = (
        update(Product)
        .where(Product.id == product_id, Product.current_stock >= quantity)
        .values(
            current_stock=Product.current_stock - quantity,
            version_id=Product.version_id + 1,
        )
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if not result.rowcount:
        row = db.session.query(Product.name, Product.current_stock).filter(Product.id == product_id).first()
        if row is None:
            raise NotFoundError(f"Product not found: {product_id}", {"product_id": product_id})
        raise InsufficientStockError(
            product_id=product_id,
            product_name=row.name,
            available=int(row.current_stock),
            requested=quantity,
        )
    _expire_cached(product_id)


def restore_stock(product_id: int, quantity: int) -> None:
    """Atomically increment current_stock by quantity. Does not commit."""
    stmt = (
        update(Product)
        .where(Product.id == product_id)
        .values(
            current_stock=Product.current_stock + quantity,
            version_id=Product.version_id + 1,
        )
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if not result.rowcount:
        # Product rows referenced by order lines cannot be deleted, so this is a broken reference
        logger.warning("Stock restore skipped: product %s no longer exists", product_id)
        return
    _expire_cached(product_id)


def _expire_cached(product_id: int) -> None:
    # Drop stale in-session values written behind the ORM's back
    product = db.session.identity_map.get(db.session.identity_key(Product, product_id))
    if product is not None:
        db.session.expire(product, ["current_stock", "version_id"])


def assert_ledger_allows(product_id: int, *, batch_delta: int = 0) -> None:
    """
    Reject a batch change that would leave reserved stock uncovered.

    batch_delta is the signed change in batch quantity about to be written.
    """
    projected = compute_stock(product_id) + batch_delta
    if projected < 0:
        product = get_product_or_404(product_id)
        reserved = _sum_reserved(product_id)
        raise InsufficientStockError(
            product_id=product_id,
            product_name=product.name,
            available=reserved + projected,
            requested=reserved,
        )
