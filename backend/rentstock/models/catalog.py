from __future__ import annotations

from ..extensions import db
from ..money import money_to_json
from ..time_utils import to_utc_z

STOCK_KIND_COUNTABLE = "countable"
STOCK_KIND_UNIT_TRACKED = "unit_tracked"
STOCK_KINDS = (STOCK_KIND_COUNTABLE, STOCK_KIND_UNIT_TRACKED)


class Product(db.Model):
    """
    Catalog entry referenced by stock entries, asset units, and sale lines.

    stock_kind decides which ledger tracks the product:
    - countable: a single StockEntry quantity (bulk purchased stock)
    - unit_tracked: one AssetUnit per physical item (rental assets)

    The inventory engine only reads products; catalog maintenance lives elsewhere.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("sku", name="uq_products_sku"),
        db.Index("ix_products_name", "name"),
        db.CheckConstraint(
            "stock_kind IN ('countable', 'unit_tracked')", name="ck_products_stock_kind"
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    sku = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    category = db.Column(db.String(100), nullable=True)
    unit = db.Column(db.String(20), nullable=True)

    stock_kind = db.Column(db.String(16), nullable=False, index=True)

    # Sale price for countable stock; daily rate for unit-tracked rentals
    price = db.Column(db.Numeric(12, 2), nullable=True)
    daily_rental_rate = db.Column(db.Numeric(12, 2), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} kind={self.stock_kind}>"

    @property
    def is_countable(self) -> bool:
        return self.stock_kind == STOCK_KIND_COUNTABLE

    @property
    def is_unit_tracked(self) -> bool:
        return self.stock_kind == STOCK_KIND_UNIT_TRACKED

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "unit": self.unit,
            "stock_kind": self.stock_kind,
            "price": money_to_json(self.price),
            "daily_rental_rate": money_to_json(self.daily_rental_rate),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
