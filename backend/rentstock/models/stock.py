from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class StockEntry(db.Model):
    """
    Countable on-hand quantity for one product.

    Quantity is mutated only by stock_service through a conditional UPDATE,
    never by read-modify-write on a loaded instance. The CHECK constraint is
    the last line that keeps quantity from going negative.
    """
    __tablename__ = "stock_entries"
    __table_args__ = (
        db.UniqueConstraint("product_id", name="uq_stock_entries_product"),
        db.CheckConstraint("quantity >= 0", name="ck_stock_entries_quantity_nonneg"),
        db.CheckConstraint("min_quantity >= 0", name="ck_stock_entries_min_quantity_nonneg"),
        db.Index("ix_stock_entries_quantity", "quantity"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    quantity = db.Column(db.Integer, nullable=False, default=0)
    min_quantity = db.Column(db.Integer, nullable=False, default=0)

    last_modified_by = db.Column(db.String(64), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    product = db.relationship("Product", backref=db.backref("stock_entry", uselist=False, lazy=True))

    @property
    def is_low_stock(self) -> bool:
        return self.quantity <= self.min_quantity

    def __repr__(self) -> str:
        return f"<StockEntry product_id={self.product_id} quantity={self.quantity}>"

    def to_dict(self) -> dict:
        product = self.product
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": product.name if product else None,
            "product_sku": product.sku if product else None,
            "quantity": self.quantity,
            "min_quantity": self.min_quantity,
            "is_low_stock": self.is_low_stock,
            "last_modified_by": self.last_modified_by,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
