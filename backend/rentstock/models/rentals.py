from __future__ import annotations

from ..extensions import db
from ..money import money_to_json
from ..time_utils import to_utc_z

RENTAL_PENDING = "pending"
RENTAL_ACTIVE = "active"
RENTAL_COMPLETED = "completed"
RENTAL_CANCELLED = "cancelled"

RENTAL_STATUSES = (RENTAL_PENDING, RENTAL_ACTIVE, RENTAL_COMPLETED, RENTAL_CANCELLED)


# Explicit FK rows for the units a rental holds (join-at-read via selectinload)
rental_assets = db.Table(
    "rental_assets",
    db.Column("rental_id", db.Integer, db.ForeignKey("rentals.id", ondelete="CASCADE"), primary_key=True),
    db.Column("asset_id", db.Integer, db.ForeignKey("asset_units.id", ondelete="CASCADE"), primary_key=True),
    db.Index("ix_rental_assets_asset", "asset_id"),
)


class Rental(db.Model):
    """
    Rental agreement over a set of asset units for a date range.

    Lifecycle: pending -> active -> completed, pending|active -> cancelled.
    The units are claimed (status=rented) when the rental is created, even
    while it is still pending, and released on completion or cancellation.
    """
    __tablename__ = "rentals"
    __table_args__ = (
        db.UniqueConstraint("rental_number", name="uq_rentals_rental_number"),
        db.Index("ix_rentals_status_created", "status", "created_at"),
        db.Index("ix_rentals_customer_email", "customer_email"),
        db.CheckConstraint(
            "status IN ('pending', 'active', 'completed', 'cancelled')", name="ck_rentals_status"
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable number (e.g., "RENT-20261019-0001")
    rental_number = db.Column(db.String(32), nullable=False)

    customer_name = db.Column(db.String(200), nullable=False)
    customer_phone = db.Column(db.String(20), nullable=True)
    customer_email = db.Column(db.String(255), nullable=True)
    customer_address = db.Column(db.String(500), nullable=True)

    start_date = db.Column(db.DateTime, nullable=False)
    end_date = db.Column(db.DateTime, nullable=False)
    expected_return_date = db.Column(db.DateTime, nullable=True)
    actual_return_date = db.Column(db.DateTime, nullable=True)

    daily_rate = db.Column(db.Numeric(12, 2), nullable=False)
    total_amount = db.Column(db.Numeric(12, 2), nullable=False)
    deposit = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    shipping_cost = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    penalty_rate = db.Column(db.Numeric(6, 2), nullable=False, default=1.5)
    penalty_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default=RENTAL_PENDING, index=True)
    notes = db.Column(db.String(1000), nullable=True)

    created_by = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    version_id = db.Column(db.Integer, nullable=False, default=1)

    assets = db.relationship(
        "AssetUnit",
        secondary=rental_assets,
        lazy="selectin",
        order_by="AssetUnit.id",
    )
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def asset_ids(self) -> list[int]:
        return [asset.id for asset in self.assets]

    @property
    def is_mutable(self) -> bool:
        return self.status in (RENTAL_PENDING, RENTAL_ACTIVE)

    def __repr__(self) -> str:
        return f"<Rental id={self.id} number={self.rental_number!r} status={self.status}>"

    def to_dict(self, *, penalty_amount=None) -> dict:
        """Serialize; penalty_amount overrides the stored value (live overdue view)."""
        if penalty_amount is None:
            penalty_amount = self.penalty_amount
        return {
            "id": self.id,
            "rental_number": self.rental_number,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "customer_email": self.customer_email,
            "customer_address": self.customer_address,
            "assets": [
                {
                    "id": asset.id,
                    "asset_code": asset.asset_code,
                    "product_id": asset.product_id,
                    "product_name": asset.product.name if asset.product else None,
                    "status": asset.status,
                }
                for asset in self.assets
            ],
            "start_date": to_utc_z(self.start_date),
            "end_date": to_utc_z(self.end_date),
            "expected_return_date": to_utc_z(self.expected_return_date),
            "actual_return_date": to_utc_z(self.actual_return_date),
            "daily_rate": money_to_json(self.daily_rate),
            "total_amount": money_to_json(self.total_amount),
            "deposit": money_to_json(self.deposit),
            "shipping_cost": money_to_json(self.shipping_cost),
            "penalty_rate": float(self.penalty_rate) if self.penalty_rate is not None else None,
            "penalty_amount": money_to_json(penalty_amount),
            "status": self.status,
            "notes": self.notes,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
