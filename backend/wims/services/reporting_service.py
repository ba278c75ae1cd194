# Overview: Service-layer operations for reporting; read-only aggregations over orders, products and batches.

from __future__ import annotations

from datetime import date, datetime, time, timedelta

from sqlalchemy import case, func

from ..extensions import db
from ..errors import ValidationError
from ..models import Batch, Order, OrderLine, Product, STATUS_CANCELLED, ORDER_STATUSES
from ..money import money2, money_str
from ..time_utils import parse_iso_date, to_iso_date, to_utc_z, utcnow, utctoday

PERIOD_FORMATS = {
    "daily": "%Y-%m-%d",
    "monthly": "%Y-%m",
    "yearly": "%Y",
}

# Near-expiry urgency buckets (days until expiry, inclusive upper bounds)
CRITICAL_DAYS = 7
URGENT_DAYS = 14


def _parse_date_arg(value, name: str) -> date | None:
    try:
        return parse_iso_date(value)
    except ValueError:
        raise ValidationError(f"{name} must be an ISO-8601 date", {"field": name})


def _date_range(start, end) -> tuple[date, date, datetime, datetime]:
    """
    Inclusive calendar range; defaults to the current month to date.
    Returns (start_date, end_date, start_dt, end_dt_exclusive).
    """
    today = utctoday()
    start_date = _parse_date_arg(start, "start_date") or today.replace(day=1)
    end_date = _parse_date_arg(end, "end_date") or today
    if end_date < start_date:
        raise ValidationError(
            "end_date must not be before start_date",
            {"start_date": start_date.isoformat(), "end_date": end_date.isoformat()},
        )
    start_dt = datetime.combine(start_date, time.min)
    end_dt = datetime.combine(end_date + timedelta(days=1), time.min)
    return start_date, end_date, start_dt, end_dt


def sales_summary(*, start=None, end=None, group_by: str = "daily") -> dict:
    """
    Order totals per period. Cancelled orders are excluded.

    gross is the sum of subtotals, net the sum of net amounts.
    """
    if group_by not in PERIOD_FORMATS:
        raise ValidationError(
            f"group_by must be one of: {', '.join(PERIOD_FORMATS)}",
            {"field": "group_by", "allowed": list(PERIOD_FORMATS)},
        )
    start_date, end_date, start_dt, end_dt = _date_range(start, end)
    period_expr = func.strftime(PERIOD_FORMATS[group_by], Order.created_at)

    base_filters = (
        Order.status != STATUS_CANCELLED,
        Order.created_at >= start_dt,
        Order.created_at < end_dt,
    )

    order_rows = (
        db.session.query(
            period_expr.label("period"),
            func.count(Order.id).label("order_count"),
            func.coalesce(func.sum(Order.subtotal), 0).label("gross"),
            func.coalesce(func.sum(Order.discount), 0).label("discounts"),
            func.coalesce(func.sum(Order.tax), 0).label("tax"),
            func.coalesce(func.sum(Order.net_amount), 0).label("net"),
        )
        .filter(*base_filters)
        .group_by("period")
        .order_by("period")
        .all()
    )

    items_by_period = dict(
        db.session.query(
            period_expr.label("period"),
            func.coalesce(func.sum(OrderLine.quantity), 0),
        )
        .join(OrderLine, OrderLine.order_id == Order.id)
        .filter(*base_filters)
        .group_by("period")
        .all()
    )

    rows = []
    totals = {"order_count": 0, "items_sold": 0, "gross": money2(0), "discounts": money2(0), "tax": money2(0), "net": money2(0)}
    for row in order_rows:
        entry = {
            "period": row.period,
            "order_count": int(row.order_count or 0),
            "items_sold": int(items_by_period.get(row.period) or 0),
            "gross": money2(row.gross),
            "discounts": money2(row.discounts),
            "tax": money2(row.tax),
            "net": money2(row.net),
        }
        for key in totals:
            totals[key] += entry[key]
        rows.append(entry)

    def _render(entry: dict) -> dict:
        out = dict(entry)
        for key in ("gross", "discounts", "tax", "net"):
            out[key] = money_str(out[key])
        return out

    return {
        "start_date": to_iso_date(start_date),
        "end_date": to_iso_date(end_date),
        "group_by": group_by,
        "rows": [_render(r) for r in rows],
        "totals": _render(totals),
    }


def top_products(*, start=None, end=None, limit: int = 10) -> dict:
    """Best sellers by quantity, with revenue, over non-cancelled orders."""
    start_date, end_date, start_dt, end_dt = _date_range(start, end)
    limit = max(1, min(int(limit), 100))

    revenue = func.coalesce(func.sum(OrderLine.quantity * OrderLine.unit_price), 0)
    quantity = func.coalesce(func.sum(OrderLine.quantity), 0)

    rows = (
        db.session.query(
            Product.id,
            Product.sku,
            Product.name,
            Product.category,
            quantity.label("quantity_sold"),
            revenue.label("revenue"),
            func.count(func.distinct(Order.id)).label("order_count"),
        )
        .join(OrderLine, OrderLine.product_id == Product.id)
        .join(Order, Order.id == OrderLine.order_id)
        .filter(
            Order.status != STATUS_CANCELLED,
            Order.created_at >= start_dt,
            Order.created_at < end_dt,
        )
        .group_by(Product.id, Product.sku, Product.name, Product.category)
        .order_by(quantity.desc(), Product.id.asc())
        .limit(limit)
        .all()
    )

    return {
        "start_date": to_iso_date(start_date),
        "end_date": to_iso_date(end_date),
        "products": [
            {
                "product_id": r.id,
                "sku": r.sku,
                "name": r.name,
                "category": r.category,
                "quantity_sold": int(r.quantity_sold or 0),
                "revenue": money_str(r.revenue),
                "order_count": int(r.order_count or 0),
            }
            for r in rows
        ],
    }


def low_stock_report(*, threshold: int) -> dict:
    if threshold < 0:
        raise ValidationError("threshold must be >= 0", {"field": "threshold"})

    batch_stats = (
        db.session.query(
            Batch.product_id.label("product_id"),
            func.count(Batch.id).label("batch_count"),
            func.min(Batch.expiry_date).label("nearest_expiry"),
        )
        .group_by(Batch.product_id)
        .subquery()
    )

    rows = (
        db.session.query(Product, batch_stats.c.batch_count, batch_stats.c.nearest_expiry)
        .outerjoin(batch_stats, batch_stats.c.product_id == Product.id)
        .filter(Product.current_stock < threshold)
        .order_by(Product.current_stock.asc(), Product.name.asc())
        .all()
    )

    products = []
    total_value = money2(0)
    for product, batch_count, nearest_expiry in rows:
        value = money2(product.price * product.current_stock)
        total_value += value
        products.append({
            "product_id": product.id,
            "sku": product.sku,
            "name": product.name,
            "category": product.category,
            "price": money_str(product.price),
            "current_stock": product.current_stock,
            "total_value": money_str(value),
            "batch_count": int(batch_count or 0),
            "nearest_expiry": to_iso_date(nearest_expiry),
            "supplier_id": product.supplier_id,
        })

    count = len(products)
    return {
        "threshold": threshold,
        "summary": {
            "total_low_stock_items": count,
            "total_value": money_str(total_value),
            "avg_stock": str(money2(sum(p["current_stock"] for p in products) / count)) if count else "0.00",
            "critical_items": sum(1 for p in products if p["current_stock"] == 0),
        },
        "products": products,
    }


def _urgency(days_left: int) -> str:
    if days_left <= CRITICAL_DAYS:
        return "critical"
    if days_left <= URGENT_DAYS:
        return "urgent"
    return "warning"


def near_expiry_report(*, days: int = 30, today: date | None = None) -> dict:
    """Unexpired batches expiring within `days`, bucketed by urgency."""
    if days < 0:
        raise ValidationError("days must be >= 0", {"field": "days"})
    today = today or utctoday()

    batches = (
        db.session.query(Batch)
        .join(Product, Product.id == Batch.product_id)
        .filter(Batch.expiry_date >= today, Batch.expiry_date <= today + timedelta(days=days))
        .order_by(Batch.expiry_date.asc(), Batch.id.asc())
        .all()
    )

    buckets = {"critical": [], "urgent": [], "warning": []}
    total_quantity = 0
    for batch in batches:
        days_left = batch.days_until_expiry(today)
        entry = {
            "batch_id": batch.id,
            "batch_no": batch.batch_no,
            "product_id": batch.product_id,
            "product_name": batch.product.name,
            "sku": batch.product.sku,
            "quantity": batch.quantity,
            "expiry_date": to_iso_date(batch.expiry_date),
            "days_until_expiry": days_left,
        }
        buckets[_urgency(days_left)].append(entry)
        total_quantity += batch.quantity

    return {
        "days": days,
        "as_of": to_iso_date(today),
        "summary": {
            "total_batches": len(batches),
            "total_quantity": total_quantity,
            "critical_batches": len(buckets["critical"]),
        },
        "batches": buckets,
    }


def inventory_summary(*, low_stock_threshold: int) -> dict:
    stock_value = Product.price * Product.current_stock

    category_rows = (
        db.session.query(
            Product.category,
            func.count(Product.id).label("product_count"),
            func.coalesce(func.sum(Product.current_stock), 0).label("total_stock"),
            func.coalesce(func.sum(stock_value), 0).label("total_value"),
            func.avg(Product.price).label("avg_price"),
        )
        .group_by(Product.category)
        .all()
    )
    categories = sorted(
        (
            {
                "category": r.category,
                "product_count": int(r.product_count),
                "total_stock": int(r.total_stock or 0),
                "total_value": money2(r.total_value),
                "avg_price": money2(r.avg_price or 0),
            }
            for r in category_rows
        ),
        key=lambda c: (-c["total_value"], c["category"]),
    )

    overall = db.session.query(
        func.count(Product.id),
        func.coalesce(func.sum(Product.current_stock), 0),
        func.coalesce(func.sum(stock_value), 0),
        func.coalesce(func.sum(case((Product.current_stock < low_stock_threshold, 1), else_=0)), 0),
        func.coalesce(func.sum(case((Product.current_stock == 0, 1), else_=0)), 0),
    ).one()

    batch_overall = db.session.query(
        func.count(Batch.id),
        func.coalesce(func.sum(Batch.quantity), 0),
    ).one()

    return {
        "overall": {
            "total_products": int(overall[0] or 0),
            "total_stock": int(overall[1] or 0),
            "total_value": money_str(overall[2]),
            "low_stock_items": int(overall[3] or 0),
            "zero_stock_items": int(overall[4] or 0),
            "low_stock_threshold": low_stock_threshold,
        },
        "categories": [
            {**c, "total_value": money_str(c["total_value"]), "avg_price": money_str(c["avg_price"])}
            for c in categories
        ],
        "batches": {
            "total_batches": int(batch_overall[0] or 0),
            "total_quantity": int(batch_overall[1] or 0),
        },
        "generated_at": to_utc_z(utcnow()),
    }


def order_status_breakdown() -> dict:
    rows = dict(
        (status, (count, net))
        for status, count, net in db.session.query(
            Order.status, func.count(Order.id), func.coalesce(func.sum(Order.net_amount), 0)
        ).group_by(Order.status).all()
    )
    return {
        "statuses": [
            {
                "status": status,
                "order_count": int(rows.get(status, (0, 0))[0]),
                "net_amount": money_str(rows.get(status, (0, 0))[1]),
            }
            for status in ORDER_STATUSES
        ],
        "total_orders": sum(int(c) for c, _ in rows.values()),
    }
