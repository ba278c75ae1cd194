from __future__ import annotations

from ..extensions import db
from ..money import money2, money_str
from ..time_utils import to_utc_z, to_iso_date, utcnow

STATUS_PENDING = "Pending"
STATUS_CONFIRMED = "Confirmed"
STATUS_DELIVERED = "Delivered"
STATUS_CANCELLED = "Cancelled"
ORDER_STATUSES = (STATUS_PENDING, STATUS_CONFIRMED, STATUS_DELIVERED, STATUS_CANCELLED)


class Order(db.Model):
    """
    Customer order document.

    Totals (subtotal, net_amount) are always recomputed from the current
    lines before the order is written; see services/order_totals.py.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.CheckConstraint("discount >= 0", name="ck_orders_discount_non_negative"),
        db.CheckConstraint("tax >= 0", name="ck_orders_tax_non_negative"),
        db.CheckConstraint("net_amount >= 0", name="ck_orders_net_non_negative"),
        db.Index("ix_orders_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable number, e.g. "ORD-20261018-0001"
    order_no = db.Column(db.String(32), nullable=False, unique=True)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)

    status = db.Column(db.String(16), nullable=False, default=STATUS_PENDING, index=True)

    subtotal = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    discount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    tax = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    net_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    customer = db.relationship("Customer", backref=db.backref("orders", lazy=True))
    created_by = db.relationship("User")
    lines = db.relationship(
        "OrderLine",
        back_populates="order",
        order_by="OrderLine.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Order id={self.id} order_no={self.order_no!r} status={self.status}>"

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "order_no": self.order_no,
            "customer_id": self.customer_id,
            "customer": self.customer.to_summary() if self.customer else None,
            "created_by_user_id": self.created_by_user_id,
            "created_by": self.created_by.to_summary() if self.created_by else None,
            "status": self.status,
            "subtotal": money_str(self.subtotal),
            "discount": money_str(self.discount),
            "tax": money_str(self.tax),
            "net_amount": money_str(self.net_amount),
            "notes": self.notes,
            "item_count": len(self.lines),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
        if include_lines:
            data["items"] = [line.to_dict() for line in self.lines]
        return data


class OrderLine(db.Model):
    """One (product, batch, quantity, price snapshot) tuple within an order."""
    __tablename__ = "order_lines"
    __table_args__ = (
        db.CheckConstraint("quantity >= 1", name="ck_order_lines_quantity_positive"),
        db.CheckConstraint("unit_price >= 0", name="ck_order_lines_price_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False, default=0)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    batch_id = db.Column(db.Integer, db.ForeignKey("batches.id", ondelete="SET NULL"), nullable=True, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    # Price captured when the line was written; later catalog changes do not apply
    unit_price = db.Column(db.Numeric(12, 2), nullable=False)

    order = db.relationship("Order", back_populates="lines")
    product = db.relationship("Product")
    batch = db.relationship("Batch")

    @property
    def line_total(self):
        return money2(self.unit_price * self.quantity)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "sku": self.product.sku if self.product else None,
            "batch_id": self.batch_id,
            "batch_no": self.batch.batch_no if self.batch else None,
            "batch_expiry_date": to_iso_date(self.batch.expiry_date) if self.batch else None,
            "quantity": self.quantity,
            "unit_price": money_str(self.unit_price),
            "line_total": money_str(self.line_total),
        }


class OrderSequence(db.Model):
    """
    Atomic per-date order number counter.

    One row per (sequence_key, date_key); next_number is incremented in the
    same transaction that inserts the order.
    """
    __tablename__ = "order_sequences"
    __table_args__ = (
        db.UniqueConstraint("sequence_key", "date_key", name="uq_order_sequences_key_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sequence_key = db.Column(db.String(16), nullable=False)
    date_key = db.Column(db.String(8), nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sequence_key": self.sequence_key,
            "date_key": self.date_key,
            "next_number": self.next_number,
            "updated_at": to_utc_z(self.updated_at),
        }
