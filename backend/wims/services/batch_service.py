# Overview: Service-layer operations for batches; encapsulates business logic and database work.

from __future__ import annotations

import logging
from datetime import date, timedelta

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import DuplicateKeyError, NotFoundError, ValidationError
from ..models import Batch, OrderLine
from ..time_utils import utctoday
from ..validation import enforce_rules_batch
from . import stock_service
from .concurrency import lock_for_update, run_with_retry

logger = logging.getLogger(__name__)


def _ensure_batch_no_available(batch_no: str, *, exclude_id: int | None = None) -> None:
    q = db.session.query(Batch.id).filter(Batch.batch_no == batch_no)
    if exclude_id is not None:
        q = q.filter(Batch.id != exclude_id)
    if q.first() is not None:
        raise DuplicateKeyError(f"Batch number already exists: {batch_no}", {"field": "batch_no", "value": batch_no})


def get_batch(batch_id: int, *, lock: bool = False) -> Batch:
    q = db.session.query(Batch).filter_by(id=batch_id)
    if lock:
        q = lock_for_update(q)
    batch = q.first()
    if batch is None:
        raise NotFoundError(f"Batch not found: {batch_id}", {"batch_id": batch_id})
    return batch


def list_batches(
    product_id: int,
    *,
    include_expired: bool = False,
    near_expiry_days: int | None = None,
    today: date | None = None,
) -> list[Batch]:
    """Batches of a product, earliest expiry first."""
    stock_service.get_product_or_404(product_id)
    today = today or utctoday()

    q = db.session.query(Batch).filter(Batch.product_id == product_id)
    if not include_expired:
        q = q.filter(Batch.expiry_date >= today)
    if near_expiry_days is not None:
        q = q.filter(Batch.expiry_date <= today + timedelta(days=near_expiry_days))
    return q.order_by(Batch.expiry_date.asc(), Batch.id.asc()).all()


def create_batch(patch: dict) -> Batch:
    """
    Create a batch and refresh the product's stock projection.

    patch is a validated payload (see routes/batches.py); product_id,
    batch_no, quantity and both dates are required.
    """
    enforce_rules_batch(patch)

    def _op():
        stock_service.get_product_or_404(patch["product_id"])
        _ensure_batch_no_available(patch["batch_no"])

        batch = Batch(**patch)
        db.session.add(batch)
        try:
            db.session.flush()
        except IntegrityError:
            # Lost a race on the unique batch_no
            raise DuplicateKeyError(
                f"Batch number already exists: {patch['batch_no']}",
                {"field": "batch_no", "value": patch["batch_no"]},
            )
        db.session.commit()
        return batch

    batch = run_with_retry(_op)
    logger.info("Created batch %s for product %s (qty=%s)", batch.batch_no, batch.product_id, batch.quantity)
    stock_service.refresh_product_stock(batch.product_id)
    return batch


def update_batch(batch_id: int, patch: dict) -> Batch:
    """
    Update batch number, quantity or dates.

    A quantity decrease that would leave existing orders uncovered is
    rejected. Stock is refreshed only when the quantity changed.
    """
    if "product_id" in patch:
        raise ValidationError("product_id cannot be changed", {"field": "product_id"})

    def _op():
        batch = get_batch(batch_id, lock=True)
        enforce_rules_batch(
            patch,
            manufactured_date=batch.manufactured_date,
            expiry_date=batch.expiry_date,
        )
        if "batch_no" in patch and patch["batch_no"] != batch.batch_no:
            _ensure_batch_no_available(patch["batch_no"], exclude_id=batch.id)

        old_quantity = batch.quantity
        if "quantity" in patch and patch["quantity"] < old_quantity:
            stock_service.assert_ledger_allows(batch.product_id, batch_delta=patch["quantity"] - old_quantity)

        for k, v in patch.items():
            setattr(batch, k, v)
        batch_no = batch.batch_no
        try:
            db.session.flush()
        except IntegrityError:
            # Lost a race on the unique batch_no
            raise DuplicateKeyError(
                f"Batch number already exists: {batch_no}",
                {"field": "batch_no", "value": batch_no},
            )
        db.session.commit()
        return batch, old_quantity

    batch, old_quantity = run_with_retry(_op)
    if batch.quantity != old_quantity:
        stock_service.refresh_product_stock(batch.product_id)
    return batch


def delete_batch(batch_id: int) -> dict:
    def _op():
        batch = get_batch(batch_id, lock=True)
        product_id = batch.product_id
        stock_service.assert_ledger_allows(product_id, batch_delta=-batch.quantity)
        info = {"id": batch.id, "batch_no": batch.batch_no, "product_id": product_id}
        # Order lines keep their stock reservation; only the batch reference goes
        db.session.query(OrderLine).filter(OrderLine.batch_id == batch.id).update(
            {"batch_id": None}, synchronize_session=False
        )
        db.session.delete(batch)
        db.session.commit()
        return info

    info = run_with_retry(_op)
    logger.info("Deleted batch %s of product %s", info["batch_no"], info["product_id"])
    stock_service.refresh_product_stock(info["product_id"])
    return info


def list_near_expiry(days: int = 30, *, today: date | None = None) -> list[Batch]:
    """Unexpired batches whose expiry falls within the next `days` days."""
    if days < 0:
        raise ValidationError("days must be >= 0", {"field": "days"})
    today = today or utctoday()
    return (
        db.session.query(Batch)
        .filter(Batch.expiry_date >= today, Batch.expiry_date <= today + timedelta(days=days))
        .order_by(Batch.expiry_date.asc(), Batch.id.asc())
        .all()
    )


def list_expired(*, today: date | None = None) -> list[Batch]:
    today = today or utctoday()
    return (
        db.session.query(Batch)
        .filter(Batch.expiry_date < today)
        .order_by(Batch.expiry_date.asc(), Batch.id.asc())
        .all()
    )


def pick_batch_for_sale(product_id: int, *, today: date | None = None) -> Batch | None:
    """First-expiring unexpired batch that still has quantity, or None."""
    today = today or utctoday()
    return (
        db.session.query(Batch)
        .filter(
            Batch.product_id == product_id,
            Batch.expiry_date >= today,
            Batch.quantity > 0,
        )
        .order_by(Batch.expiry_date.asc(), Batch.id.asc())
        .first()
    )
