# Overview: Service-layer operations for notifications; publisher sinks and event helpers.

"""
Notification publishing.

Business code never talks to a transport directly. It asks the current app
for its publisher (`get_publisher()`) and calls publish(event, payload)
after its transaction has committed.

Publishers:
- NullPublisher: drops everything (tests, CLI)
- LoggingPublisher: writes the event to the application log
- DatabasePublisher: appends to the notifications outbox table, which
  clients poll through GET /api/notifications
- RecordingPublisher: keeps events in memory for assertions

Publishing is fire-and-forget: a failing sink is logged and never fails the
operation that triggered it.
"""

from __future__ import annotations

import logging

from flask import current_app

from ..extensions import db
from ..models import Notification, Product
from ..money import money_str
from ..time_utils import to_utc_z, utcnow

logger = logging.getLogger(__name__)

EVENT_NEW_ORDER = "newOrder"
EVENT_ORDER_STATUS_CHANGED = "orderStatusChanged"
EVENT_LOW_STOCK = "lowStockAlert"
EVENT_NEAR_EXPIRY = "nearExpiryAlert"
EVENT_INVENTORY_UPDATE = "inventoryUpdate"

EXTENSION_KEY = "wims.notifier"


class NotificationPublisher:
    def publish(self, event: str, payload: dict) -> None:
        raise NotImplementedError


class NullPublisher(NotificationPublisher):
    def publish(self, event: str, payload: dict) -> None:
        return None


class LoggingPublisher(NotificationPublisher):
    def __init__(self, log: logging.Logger | None = None):
        self.log = log or logging.getLogger("wims.notifications")

    def publish(self, event: str, payload: dict) -> None:
        self.log.info("notification %s %s", event, payload)


class DatabasePublisher(NotificationPublisher):
    """
    Writes to the outbox in its own short transaction.

    Called only after the business transaction committed, so this commit
    never carries business rows.
    """

    def publish(self, event: str, payload: dict) -> None:
        db.session.add(Notification(event=event, payload=payload))
        db.session.commit()


class RecordingPublisher(NotificationPublisher):
    def __init__(self):
        self.events: list[tuple[str, dict]] = []

    def publish(self, event: str, payload: dict) -> None:
        self.events.append((event, payload))

    def of(self, event: str) -> list[dict]:
        return [p for e, p in self.events if e == event]

    def clear(self) -> None:
        self.events.clear()


PUBLISHERS = {
    "null": NullPublisher,
    "log": LoggingPublisher,
    "database": DatabasePublisher,
}


def build_publisher(name: str) -> NotificationPublisher:
    try:
        return PUBLISHERS[name.lower()]()
    except KeyError:
        raise ValueError(f"Unknown NOTIFIER: {name!r} (expected one of {', '.join(PUBLISHERS)})")


def init_app(app, publisher: NotificationPublisher | None = None) -> None:
    if publisher is None:
        publisher = build_publisher(app.config.get("NOTIFIER", "null"))
    app.extensions[EXTENSION_KEY] = publisher


def get_publisher() -> NotificationPublisher:
    return current_app.extensions.get(EXTENSION_KEY) or NullPublisher()


def publish(event: str, payload: dict) -> None:
    """Publish through the app's publisher; errors are logged, never raised."""
    publisher = get_publisher()
    try:
        publisher.publish(event, payload)
    except Exception:
        if isinstance(publisher, DatabasePublisher):
            db.session.rollback()
        logger.exception("Failed to publish %s notification", event)


# =============================================================================
# Event helpers
# =============================================================================

def notify_new_order(order) -> None:
    publish(EVENT_NEW_ORDER, {
        "orderId": order.id,
        "orderNo": order.order_no,
        "customer": order.customer.name if order.customer else None,
        "totalAmount": money_str(order.net_amount),
        "timestamp": to_utc_z(utcnow()),
    })


def notify_status_changed(order, previous_status: str) -> None:
    publish(EVENT_ORDER_STATUS_CHANGED, {
        "orderId": order.id,
        "orderNo": order.order_no,
        "status": order.status,
        "previousStatus": previous_status,
        "timestamp": to_utc_z(utcnow()),
    })


def notify_inventory_update(action: str, **fields) -> None:
    payload = {"action": action, "timestamp": to_utc_z(utcnow())}
    payload.update(fields)
    publish(EVENT_INVENTORY_UPDATE, payload)


def notify_low_stock(products, threshold: int) -> int:
    """One lowStockAlert per product below threshold. Returns the number sent."""
    sent = 0
    for product in products:
        if product.current_stock < threshold:
            publish(EVENT_LOW_STOCK, {
                "productId": product.id,
                "sku": product.sku,
                "productName": product.name,
                "currentStock": product.current_stock,
                "threshold": threshold,
                "timestamp": to_utc_z(utcnow()),
            })
            sent += 1
    return sent


def notify_low_stock_for(product_ids, threshold: int | None = None) -> int:
    if threshold is None:
        threshold = current_app.config["LOW_STOCK_THRESHOLD"]
    ids = sorted(set(product_ids))
    if not ids:
        return 0
    products = db.session.query(Product).filter(Product.id.in_(ids)).order_by(Product.id).all()
    return notify_low_stock(products, threshold)


def notify_near_expiry(batches) -> int:
    sent = 0
    for batch in batches:
        publish(EVENT_NEAR_EXPIRY, {
            "batchId": batch.id,
            "batchNo": batch.batch_no,
            "productId": batch.product_id,
            "productName": batch.product.name if batch.product else None,
            "expiryDate": batch.expiry_date.isoformat(),
            "daysUntilExpiry": batch.days_until_expiry(),
            "quantity": batch.quantity,
        })
        sent += 1
    return sent


def list_notifications(*, event: str | None = None, since_id: int | None = None, limit: int = 50) -> list[Notification]:
    """Most recent outbox rows first."""
    limit = max(1, min(int(limit), 200))
    q = db.session.query(Notification)
    if event:
        q = q.filter(Notification.event == event)
    if since_id is not None:
        q = q.filter(Notification.id > since_id)
    return q.order_by(Notification.id.desc()).limit(limit).all()
