from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z

ASSET_AVAILABLE = "available"
ASSET_RENTED = "rented"
ASSET_MAINTENANCE = "maintenance"
ASSET_RESERVED = "reserved"
ASSET_DAMAGED = "damaged"

ASSET_STATUSES = (
    ASSET_AVAILABLE,
    ASSET_RENTED,
    ASSET_MAINTENANCE,
    ASSET_RESERVED,
    ASSET_DAMAGED,
)


class AssetUnit(db.Model):
    """
    One physical rental item.

    asset_code is a label shared by a batch of interchangeable units; it is
    unique per product, not globally, and is NOT unique per row.

    current_rental_id is set if and only if status == 'rented'. The
    constraint below backs up asset_service.claim/release, which are the
    only writers of the rented state.
    """
    __tablename__ = "asset_units"
    __table_args__ = (
        db.Index("ix_asset_units_product_code", "product_id", "asset_code"),
        db.Index("ix_asset_units_status", "status"),
        db.CheckConstraint(
            "status IN ('available', 'rented', 'maintenance', 'reserved', 'damaged')",
            name="ck_asset_units_status",
        ),
        db.CheckConstraint(
            "(status = 'rented') = (current_rental_id IS NOT NULL)",
            name="ck_asset_units_rental_ref",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    asset_code = db.Column(db.String(64), nullable=False)
    status = db.Column(db.String(16), nullable=False, default=ASSET_AVAILABLE)

    current_rental_id = db.Column(db.Integer, db.ForeignKey("rentals.id"), nullable=True, index=True)
    notes = db.Column(db.String(1000), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    product = db.relationship("Product")

    def __repr__(self) -> str:
        return f"<AssetUnit id={self.id} code={self.asset_code!r} status={self.status}>"

    def to_dict(self) -> dict:
        product = self.product
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": product.name if product else None,
            "product_sku": product.sku if product else None,
            "asset_code": self.asset_code,
            "status": self.status,
            "current_rental_id": self.current_rental_id,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
