# Overview: Service-layer operations for orders; encapsulates business logic and database work.

"""
Order workflow.

Every write below is one transaction (run_with_retry): product stock is
checked and moved, lines are written, totals recomputed and the order is
committed together, or nothing is. Notifications go out only after the
commit succeeded.

Stock moves:
- create: each product's cumulative quantity is deducted
- update with items: old lines are restored, the new set is deducted
- delete: every line is restored, whatever the status
- status changes never move stock (a Cancelled order keeps its
  reservation until the order is deleted)
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from decimal import Decimal

from flask import current_app
from sqlalchemy import or_

from ..extensions import db
from ..errors import InsufficientStockError, InvalidStateError, NotFoundError, ValidationError
from ..models import Batch, Customer, Order, OrderLine, STATUS_PENDING
from ..money import ZERO
from ..validation import parse_amount, parse_int_arg
from ..time_utils import to_utc_z, utcnow
from . import notification_service, stock_service
from .batch_service import pick_batch_for_sale
from .concurrency import lock_for_update, run_with_retry
from .order_status import INITIAL_STATUS, assert_transition, normalize_status
from .order_totals import apply_totals, compute_totals
from .sequence_service import next_order_number

logger = logging.getLogger(__name__)

ORDER_SORT_FIELDS = {
    "created_at": Order.created_at,
    "order_no": Order.order_no,
    "net_amount": Order.net_amount,
    "status": Order.status,
}

MAX_PAGE_SIZE = 100


# =============================================================================
# Requests
# =============================================================================

@dataclass(frozen=True)
class OrderItemRequest:
    product_id: int
    quantity: int
    batch_id: int | None = None

    @classmethod
    def from_payload(cls, raw, index: int = 0) -> "OrderItemRequest":
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{index}] must be an object", {"index": index})
        if raw.get("product_id") is None:
            raise ValidationError(f"items[{index}].product_id is required", {"index": index, "field": "product_id"})
        if raw.get("quantity") is None:
            raise ValidationError(f"items[{index}].quantity is required", {"index": index, "field": "quantity"})
        product_id = parse_int_arg(raw["product_id"], f"items[{index}].product_id", minimum=1)
        quantity = parse_int_arg(raw["quantity"], f"items[{index}].quantity", minimum=1)
        batch_id = parse_int_arg(raw.get("batch_id"), f"items[{index}].batch_id", minimum=1)
        return cls(product_id=product_id, quantity=quantity, batch_id=batch_id)


def _parse_items(raw_items) -> list[OrderItemRequest]:
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("At least one item is required", {"field": "items"})
    return [OrderItemRequest.from_payload(raw, i) for i, raw in enumerate(raw_items)]


def _parse_notes(value) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError("notes must be a string", {"field": "notes"})
    return value.strip() or None


@dataclass(frozen=True)
class CreateOrderRequest:
    customer_id: int
    items: list[OrderItemRequest]
    discount: Decimal = ZERO
    tax: Decimal = ZERO
    notes: str | None = None

    @classmethod
    def from_payload(cls, payload) -> "CreateOrderRequest":
        if not isinstance(payload, dict):
            raise ValidationError("Invalid JSON payload")
        if payload.get("customer_id") is None:
            raise ValidationError("customer_id is required", {"field": "customer_id"})
        return cls(
            customer_id=parse_int_arg(payload["customer_id"], "customer_id", minimum=1),
            items=_parse_items(payload.get("items")),
            discount=parse_amount(payload.get("discount"), "discount"),
            tax=parse_amount(payload.get("tax"), "tax"),
            notes=_parse_notes(payload.get("notes")),
        )


@dataclass(frozen=True)
class UpdateOrderRequest:
    """Fields left as None are unchanged. An empty notes string clears the notes."""
    items: list[OrderItemRequest] | None = None
    discount: Decimal | None = None
    tax: Decimal | None = None
    notes: str | None = None
    clear_notes: bool = field(default=False)

    @classmethod
    def from_payload(cls, payload) -> "UpdateOrderRequest":
        if not isinstance(payload, dict):
            raise ValidationError("Invalid JSON payload")
        unknown = set(payload) - {"items", "discount", "tax", "notes"}
        if unknown:
            raise ValidationError(f"Field not allowed: {sorted(unknown)[0]}", {"field": sorted(unknown)[0]})
        notes = _parse_notes(payload.get("notes"))
        return cls(
            items=_parse_items(payload["items"]) if "items" in payload else None,
            discount=parse_amount(payload["discount"], "discount") if payload.get("discount") is not None else None,
            tax=parse_amount(payload["tax"], "tax") if payload.get("tax") is not None else None,
            notes=notes,
            clear_notes="notes" in payload and notes is None,
        )


# =============================================================================
# Internals
# =============================================================================

def _get_order(order_id: int, *, lock: bool = False) -> Order:
    q = db.session.query(Order).filter_by(id=order_id)
    if lock:
        q = lock_for_update(q)
    order = q.first()
    if order is None:
        raise NotFoundError(f"Order not found: {order_id}", {"order_id": order_id})
    return order


def _requested_by_product(items: list[OrderItemRequest]) -> dict[int, int]:
    # Insertion order follows the first appearance of each product
    totals: dict[int, int] = {}
    for item in items:
        totals[item.product_id] = totals.get(item.product_id, 0) + item.quantity
    return totals


def _resolve_batch(item: OrderItemRequest, product_id: int) -> Batch | None:
    if item.batch_id is None:
        return pick_batch_for_sale(product_id)
    batch = db.session.get(Batch, item.batch_id)
    if batch is None:
        raise NotFoundError(f"Batch not found: {item.batch_id}", {"batch_id": item.batch_id})
    if batch.product_id != product_id:
        raise ValidationError(
            f"Batch {batch.batch_no} does not belong to product {product_id}",
            {"batch_id": batch.id, "product_id": product_id},
        )
    return batch


def _reserve_lines(items: list[OrderItemRequest]) -> list[OrderLine]:
    """
    Check and deduct stock for a full set of items; returns unsaved lines.

    Every product is checked before any stock moves, so the first failure
    reports against the untouched stock levels.
    """
    requested = _requested_by_product(items)

    products = {}
    for product_id, quantity in requested.items():
        product = stock_service.get_product_or_404(product_id, lock=True)
        if product.current_stock < quantity:
            raise InsufficientStockError(
                product_id=product.id,
                product_name=product.name,
                available=product.current_stock,
                requested=quantity,
            )
        products[product_id] = product

    lines = []
    for position, item in enumerate(items):
        product = products[item.product_id]
        batch = _resolve_batch(item, product.id)
        lines.append(
            OrderLine(
                position=position,
                product=product,
                batch=batch,
                quantity=item.quantity,
                unit_price=product.price,
            )
        )

    for product_id, quantity in requested.items():
        stock_service.deduct_stock(product_id, quantity)

    return lines


def _release_lines(lines) -> list[int]:
    released: dict[int, int] = {}
    for line in lines:
        released[line.product_id] = released.get(line.product_id, 0) + line.quantity
    for product_id, quantity in released.items():
        stock_service.restore_stock(product_id, quantity)
    return list(released)


def _threshold() -> int:
    return current_app.config["LOW_STOCK_THRESHOLD"]


def _notify_after_commit(fn, *args, **kwargs) -> None:
    """Run a notification step for an already committed change; failures are logged only."""
    try:
        fn(*args, **kwargs)
    except Exception:
        db.session.rollback()
        logger.exception("Post-commit notification failed: %s", getattr(fn, "__name__", fn))


# =============================================================================
# Operations
# =============================================================================

def create_order(request: CreateOrderRequest, *, acting_user_id: int) -> Order:
    """
    Validate, deduct stock, number and persist a new order.

    Raises NotFoundError (customer, product or batch), InsufficientStockError
    or ValidationError; in every case no stock or sequence change survives.
    """
    def _op():
        customer = db.session.get(Customer, request.customer_id)
        if customer is None:
            raise NotFoundError(
                f"Customer not found: {request.customer_id}", {"customer_id": request.customer_id}
            )

        lines = _reserve_lines(request.items)
        totals = compute_totals(lines, request.discount, request.tax)

        order = Order(
            order_no=next_order_number(),
            customer=customer,
            created_by_user_id=acting_user_id,
            status=INITIAL_STATUS,
            notes=request.notes,
        )
        order.lines = lines
        apply_totals(order, totals)

        db.session.add(order)
        db.session.commit()
        return order

    order = run_with_retry(_op)
    logger.info("Created order %s (%d lines, net %s)", order.order_no, len(order.lines), order.net_amount)

    product_ids = _requested_by_product(request.items)
    _notify_after_commit(notification_service.notify_new_order, order)
    _notify_after_commit(notification_service.notify_low_stock_for, list(product_ids), _threshold())
    return order


def update_order(order_id: int, request: UpdateOrderRequest) -> Order:
    """
    Edit a Pending order.

    With items: the stored lines are restored and the new set is validated
    and deducted as on create. Totals are recomputed in every case.
    """
    def _op():
        order = _get_order(order_id, lock=True)
        if order.status != STATUS_PENDING:
            raise InvalidStateError(
                f"Only Pending orders can be edited (order {order.order_no} is {order.status})",
                {"order_id": order.id, "current_status": order.status},
            )

        touched: list[int] = []
        if request.items is not None:
            touched.extend(_release_lines(order.lines))
            order.lines = _reserve_lines(request.items)
            # New lines are unflushed; take ids from the request
            touched.extend(_requested_by_product(request.items))

        discount = request.discount if request.discount is not None else order.discount
        tax = request.tax if request.tax is not None else order.tax
        apply_totals(order, compute_totals(order.lines, discount, tax))

        if request.notes is not None:
            order.notes = request.notes
        elif request.clear_notes:
            order.notes = None

        db.session.commit()
        return order, touched

    order, touched = run_with_retry(_op)
    logger.info("Updated order %s", order.order_no)

    if touched:
        product_ids = sorted(set(touched))
        _notify_after_commit(
            notification_service.notify_inventory_update,
            "orderUpdated", orderId=order.id, orderNo=order.order_no, productIds=product_ids,
        )
        _notify_after_commit(notification_service.notify_low_stock_for, product_ids, _threshold())
    return order


def delete_order(order_id: int) -> dict:
    """Restore stock for every line and delete the order, whatever its status."""
    def _op():
        order = _get_order(order_id, lock=True)
        product_ids = _release_lines(order.lines)
        info = {"id": order.id, "order_no": order.order_no, "status": order.status, "product_ids": product_ids}
        db.session.delete(order)
        db.session.commit()
        return info

    info = run_with_retry(_op)
    logger.info("Deleted order %s", info["order_no"])

    _notify_after_commit(
        notification_service.notify_inventory_update,
        "orderDeleted", orderId=info["id"], orderNo=info["order_no"], productIds=info["product_ids"],
    )
    return info


def update_order_status(order_id: int, new_status: str) -> Order:
    """Move an order along the status graph. Stock is not touched."""
    requested = normalize_status(new_status)

    def _op():
        order = _get_order(order_id, lock=True)
        previous = order.status
        assert_transition(previous, requested)
        order.status = requested
        db.session.commit()
        return order, previous

    order, previous = run_with_retry(_op)
    logger.info("Order %s status %s -> %s", order.order_no, previous, order.status)

    _notify_after_commit(notification_service.notify_status_changed, order, previous)
    return order


def get_order(order_id: int) -> Order:
    return _get_order(order_id)


def list_orders(
    *,
    search: str | None = None,
    status: str | None = None,
    sort_by: str = "created_at",
    sort_dir: str = "desc",
    page: int = 1,
    limit: int = 10,
) -> dict:
    """
    Paginated order list.

    search matches order number or customer name (case-insensitive).
    """
    if sort_by not in ORDER_SORT_FIELDS:
        raise ValidationError(
            f"sort_by must be one of: {', '.join(ORDER_SORT_FIELDS)}",
            {"field": "sort_by", "allowed": list(ORDER_SORT_FIELDS)},
        )
    if sort_dir not in ("asc", "desc"):
        raise ValidationError("sort_dir must be asc or desc", {"field": "sort_dir"})
    page = max(1, page)
    limit = max(1, min(limit, MAX_PAGE_SIZE))

    q = db.session.query(Order).join(Customer, Order.customer_id == Customer.id)
    if search:
        pattern = f"%{search.strip()}%"
        q = q.filter(or_(Order.order_no.ilike(pattern), Customer.name.ilike(pattern)))
    if status:
        q = q.filter(Order.status == normalize_status(status))

    total = q.count()
    column = ORDER_SORT_FIELDS[sort_by]
    q = q.order_by(column.asc() if sort_dir == "asc" else column.desc(), Order.id.desc())
    orders = q.offset((page - 1) * limit).limit(limit).all()

    return {
        "orders": orders,
        "total": total,
        "page": page,
        "limit": limit,
        "pages": math.ceil(total / limit) if total else 0,
    }


def get_invoice(order_id: int) -> dict:
    """Printable view of an order: full customer, creator, product and batch details."""
    order = _get_order(order_id)
    customer = order.customer

    items = []
    for line in order.lines:
        item = line.to_dict()
        item["category"] = line.product.category if line.product else None
        item["unit"] = line.product.unit if line.product else None
        items.append(item)

    return {
        "invoice_no": order.order_no,
        "order_id": order.id,
        "status": order.status,
        "order_date": to_utc_z(order.created_at),
        "generated_at": to_utc_z(utcnow()),
        "customer": customer.to_dict() if customer else None,
        "created_by": order.created_by.to_summary() if order.created_by else None,
        "items": items,
        "totals": compute_totals(order.lines, order.discount, order.tax).to_dict(),
        "notes": order.notes,
    }
