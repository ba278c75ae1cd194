from __future__ import annotations

from datetime import date, timedelta

from ..extensions import db
from ..money import money_str
from ..time_utils import to_utc_z, to_iso_date, utcnow, utctoday

PRODUCT_UNITS = ("kg", "liter", "piece", "box", "carton")
DEFAULT_LOW_STOCK_THRESHOLD = 10


class Product(db.Model):
    """
    Product master data.

    current_stock is a cached projection of the stock ledger
    (batches + adjustments - order lines). It is written only by the stock
    recalculator and by the order workflow's atomic increments/decrements.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("current_stock >= 0", name="ck_products_stock_non_negative"),
        db.CheckConstraint("price >= 0", name="ck_products_price_non_negative"),
        db.Index("ix_products_category_stock", "category", "current_stock"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Stored upper-cased; unique across the catalog
    sku = db.Column(db.String(64), nullable=False, unique=True)
    name = db.Column(db.String(255), nullable=False, index=True)
    category = db.Column(db.String(120), nullable=False, index=True)
    unit = db.Column(db.String(16), nullable=False, default="piece")

    price = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    current_stock = db.Column(db.Integer, nullable=False, default=0, index=True)

    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=True, index=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )

    supplier = db.relationship("Supplier", backref=db.backref("products", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r} stock={self.current_stock}>"

    def is_low_stock(self, threshold: int = DEFAULT_LOW_STOCK_THRESHOLD) -> bool:
        return self.current_stock < threshold

    def to_dict(self, threshold: int = DEFAULT_LOW_STOCK_THRESHOLD) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "category": self.category,
            "unit": self.unit,
            "price": money_str(self.price),
            "current_stock": self.current_stock,
            "is_low_stock": self.is_low_stock(threshold),
            "supplier_id": self.supplier_id,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Batch(db.Model):
    """
    A dated quantity of a product (the atomic unit of received stock).

    Batch quantity is the received amount; reservations by orders are
    tracked on order lines, not by shrinking the batch.
    """
    __tablename__ = "batches"
    __table_args__ = (
        db.CheckConstraint("quantity >= 0", name="ck_batches_quantity_non_negative"),
        db.CheckConstraint("expiry_date > manufactured_date", name="ck_batches_expiry_after_mfg"),
        db.Index("ix_batches_product_expiry", "product_id", "expiry_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    # Stored upper-cased; unique across all products
    batch_no = db.Column(db.String(64), nullable=False, unique=True)
    quantity = db.Column(db.Integer, nullable=False, default=0)

    manufactured_date = db.Column(db.Date, nullable=False)
    expiry_date = db.Column(db.Date, nullable=False, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    product = db.relationship("Product", backref=db.backref("batches", lazy=True))

    def __repr__(self) -> str:
        return f"<Batch id={self.id} batch_no={self.batch_no!r} product_id={self.product_id} qty={self.quantity}>"

    def is_expired(self, today: date | None = None) -> bool:
        return (today or utctoday()) > self.expiry_date

    def is_near_expiry(self, days: int = 30, today: date | None = None) -> bool:
        today = today or utctoday()
        return today <= self.expiry_date <= today + timedelta(days=days)

    def days_until_expiry(self, today: date | None = None) -> int:
        return (self.expiry_date - (today or utctoday())).days

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "batch_no": self.batch_no,
            "quantity": self.quantity,
            "manufactured_date": to_iso_date(self.manufactured_date),
            "expiry_date": to_iso_date(self.expiry_date),
            "is_expired": self.is_expired(),
            "days_until_expiry": self.days_until_expiry(),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StockAdjustment(db.Model):
    """Manual stock correction recorded as a signed ledger entry."""
    __tablename__ = "stock_adjustments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    quantity_delta = db.Column(db.Integer, nullable=False)
    note = db.Column(db.String(255), nullable=True)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    product = db.relationship("Product", backref=db.backref("adjustments", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "quantity_delta": self.quantity_delta,
            "note": self.note,
            "created_by_user_id": self.created_by_user_id,
            "occurred_at": to_utc_z(self.occurred_at),
        }
