# Overview: Countable stock ledger; the single place stock_entries quantities change.

"""
RentStock Stock Ledger

One StockEntry per countable product. Every quantity change goes through
_apply_delta, which is a single conditional UPDATE:

    UPDATE stock_entries SET quantity = quantity + :delta
    WHERE product_id = :id AND quantity + :delta >= 0

so concurrent adjusters can never drive a quantity negative, and a rejected
adjustment leaves the stored value untouched. Sale completion uses the same
function inside its own transaction.
"""

from __future__ import annotations

from sqlalchemy import func, or_, select, update

from ..errors import InsufficientStock, NotFound
from ..extensions import db
from ..models import Product, StockEntry
from ..models.catalog import STOCK_KIND_COUNTABLE
from ..validation import (
    ModelValidationPolicy,
    ValidationError,
    enforce_rules_stock,
    search_pattern,
    validate_payload,
)
from .activity_log_service import record_activity
from .catalog_service import require_product_kind
from .concurrency import begin_write, lock_for_update, run_with_retry

STOCK_POLICY = ModelValidationPolicy(
    writable_fields={"quantity", "min_quantity"},
    required_on_create={"quantity"},
)


def _apply_delta(product_id: int, delta: int, *, actor: str | None = None) -> StockEntry:
    """
    Apply quantity += delta atomically. Does not commit.

    Raises:
        NotFound: product has no stock entry
        InsufficientStock: result would be negative (nothing changed)
    """
    values = {"quantity": StockEntry.quantity + delta}
    if actor is not None:
        values["last_modified_by"] = actor

    result = db.session.execute(
        update(StockEntry)
        .where(
            StockEntry.product_id == product_id,
            StockEntry.quantity + delta >= 0,
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )

    if result.rowcount == 0:
        available = db.session.execute(
            select(StockEntry.quantity).where(StockEntry.product_id == product_id)
        ).scalar_one_or_none()
        if available is None:
            raise NotFound(
                f"No stock entry for product {product_id}",
                details={"product_id": product_id},
            )
        raise InsufficientStock(
            f"Insufficient stock for product {product_id}: available {available}, requested {-delta}",
            details={"product_id": product_id, "available": available, "requested": -delta},
        )

    return db.session.execute(
        select(StockEntry)
        .where(StockEntry.product_id == product_id)
        .execution_options(populate_existing=True)
    ).scalar_one()


def upsert_stock(
    product_id: int,
    *,
    quantity,
    min_quantity=None,
    actor: str | None = None,
) -> StockEntry:
    """
    Set the quantity (and optionally the low-stock threshold) for a product.

    Creates the entry on first assignment; overwrites it afterwards.
    """
    payload = {"quantity": quantity}
    if min_quantity is not None:
        payload["min_quantity"] = min_quantity
    patch = validate_payload(model=StockEntry, payload=payload, policy=STOCK_POLICY, partial=False)
    enforce_rules_stock(patch)

    product = require_product_kind(product_id, STOCK_KIND_COUNTABLE)

    def _op():
        begin_write()
        entry = lock_for_update(
            db.session.query(StockEntry).filter_by(product_id=product_id)
        ).first()

        if entry is None:
            entry = StockEntry(
                product_id=product_id,
                quantity=patch["quantity"],
                min_quantity=patch.get("min_quantity", 0),
                last_modified_by=actor,
            )
            db.session.add(entry)
            old = None
        else:
            old = {"quantity": entry.quantity, "min_quantity": entry.min_quantity}
            entry.quantity = patch["quantity"]
            if "min_quantity" in patch:
                entry.min_quantity = patch["min_quantity"]
            entry.last_modified_by = actor

        new = {"quantity": entry.quantity, "min_quantity": entry.min_quantity}
        db.session.commit()
        return entry, old, new

    entry, old, new = run_with_retry(_op)
    record_activity(
        actor=actor,
        action="create" if old is None else "update",
        entity_type="stock",
        entity_id=product_id,
        entity_name=product.name,
        old=old,
        new=new,
    )
    return entry


def adjust(
    product_id: int,
    delta,
    *,
    reason: str | None = None,
    actor: str | None = None,
) -> StockEntry:
    """
    Add delta (positive or negative) to a product's quantity.

    Raises:
        ValidationError: delta is not a non-zero integer
        NotFound / InvalidProductKind: product missing or not countable
        InsufficientStock: quantity would go negative
    """
    if isinstance(delta, bool) or not isinstance(delta, int):
        raise ValidationError("delta must be an integer")
    if delta == 0:
        raise ValidationError("delta must be non-zero")

    product = require_product_kind(product_id, STOCK_KIND_COUNTABLE)

    def _op():
        begin_write()
        entry = _apply_delta(product_id, delta, actor=actor)
        quantity = entry.quantity
        db.session.commit()
        return entry, quantity

    entry, quantity = run_with_retry(_op)

    new = {"quantity": quantity, "delta": delta}
    if reason:
        new["reason"] = reason
    record_activity(
        actor=actor,
        action="update",
        entity_type="stock",
        entity_id=product_id,
        entity_name=product.name,
        old={"quantity": quantity - delta},
        new=new,
    )
    return entry


def get(product_id: int) -> StockEntry | None:
    return db.session.execute(
        select(StockEntry).where(StockEntry.product_id == product_id)
    ).scalar_one_or_none()


def list_low_stock() -> list[StockEntry]:
    """Entries at or below their threshold, lowest quantity first."""
    rows = db.session.execute(
        select(StockEntry)
        .where(StockEntry.quantity <= StockEntry.min_quantity)
        .order_by(StockEntry.quantity.asc(), StockEntry.id.asc())
    ).scalars().all()
    return list(rows)


def list_stock(
    *,
    search: str | None = None,
    low_stock_only: bool = False,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[StockEntry], int]:
    """Most recently updated first; search matches product name or SKU."""
    filters = []
    pattern = search_pattern(search)
    if pattern:
        filters.append(
            or_(
                Product.name.ilike(pattern, escape="\\"),
                Product.sku.ilike(pattern, escape="\\"),
            )
        )
    if low_stock_only:
        filters.append(StockEntry.quantity <= StockEntry.min_quantity)

    total = db.session.execute(
        select(func.count(StockEntry.id))
        .join(Product, Product.id == StockEntry.product_id)
        .where(*filters)
    ).scalar_one()

    rows = db.session.execute(
        select(StockEntry)
        .join(Product, Product.id == StockEntry.product_id)
        .where(*filters)
        .order_by(StockEntry.updated_at.desc(), StockEntry.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    ).scalars().all()

    return list(rows), total
