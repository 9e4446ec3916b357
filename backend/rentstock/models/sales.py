from __future__ import annotations

from ..extensions import db
from ..money import money_to_json
from ..time_utils import to_utc_z

SALE_PENDING = "pending"
SALE_COMPLETED = "completed"
SALE_CANCELLED = "cancelled"
SALE_STATUSES = (SALE_PENDING, SALE_COMPLETED, SALE_CANCELLED)

PAYMENT_PENDING = "pending"
PAYMENT_PAID = "paid"
PAYMENT_PARTIAL = "partial"
PAYMENT_STATUSES = (PAYMENT_PENDING, PAYMENT_PAID, PAYMENT_PARTIAL)

PAYMENT_METHODS = ("cash", "card", "transfer", "other")


class Sale(db.Model):
    """
    Sale document over countable stock.

    WHY: stock is validated when the sale is written but only deducted when
    it is completed, so a pending sale can be edited or deleted freely.
    Cancelling a completed sale restores what was deducted.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.UniqueConstraint("bill_number", name="uq_sales_bill_number"),
        db.Index("ix_sales_status_created", "status", "created_at"),
        db.Index("ix_sales_customer_name", "customer_name"),
        db.Index("ix_sales_payment_status", "payment_status"),
        db.CheckConstraint(
            "status IN ('pending', 'completed', 'cancelled')", name="ck_sales_status"
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable number (e.g., "BILL-20261019-0001")
    bill_number = db.Column(db.String(32), nullable=False)

    customer_name = db.Column(db.String(200), nullable=False)
    customer_phone = db.Column(db.String(20), nullable=True)
    customer_email = db.Column(db.String(255), nullable=True)
    customer_address = db.Column(db.String(500), nullable=True)

    subtotal = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    discount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    tax = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    payment_method = db.Column(db.String(16), nullable=True)
    payment_status = db.Column(db.String(16), nullable=False, default=PAYMENT_PENDING)
    paid_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default=SALE_PENDING, index=True)
    notes = db.Column(db.String(1000), nullable=True)

    created_by = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    items = db.relationship(
        "SaleItem",
        back_populates="sale",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="SaleItem.id",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Sale id={self.id} bill={self.bill_number!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "bill_number": self.bill_number,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "customer_email": self.customer_email,
            "customer_address": self.customer_address,
            "items": [item.to_dict() for item in self.items],
            "subtotal": money_to_json(self.subtotal),
            "discount": money_to_json(self.discount),
            "tax": money_to_json(self.tax),
            "total_amount": money_to_json(self.total_amount),
            "payment_method": self.payment_method,
            "payment_status": self.payment_status,
            "paid_amount": money_to_json(self.paid_amount),
            "status": self.status,
            "notes": self.notes,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "completed_at": to_utc_z(self.completed_at) if self.completed_at else None,
            "version_id": self.version_id,
        }


class SaleItem(db.Model):
    """Line item on a sale; product name and SKU are snapshotted at write time."""
    __tablename__ = "sale_items"
    __table_args__ = (
        db.CheckConstraint("quantity >= 1", name="ck_sale_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    product_name = db.Column(db.String(200), nullable=False)
    sku = db.Column(db.String(64), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(12, 2), nullable=False)
    line_total = db.Column(db.Numeric(12, 2), nullable=False)

    sale = db.relationship("Sale", back_populates="items")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "sku": self.sku,
            "quantity": self.quantity,
            "unit_price": money_to_json(self.unit_price),
            "line_total": money_to_json(self.line_total),
        }
