# Overview: Sale workflow; validates stock up front and deducts it on completion.

"""
RentStock Sale Workflow

    create             -> items validated against stock, nothing deducted (pending)
    pending -> completed -> every item deducted through the stock ledger
    completed -> cancelled -> every item restored
    pending -> cancelled -> no stock effect

Completion deducts all items inside one transaction together with the
status change. If any item is short the whole completion rolls back,
including deductions already applied for earlier items.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime
from decimal import Decimal

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError

from ..errors import Conflict, InsufficientStock, InvalidState, NotFound
from ..extensions import db
from ..models import Sale, SaleItem, StockEntry
from ..models.catalog import STOCK_KIND_COUNTABLE
from ..models.sales import (
    PAYMENT_METHODS,
    PAYMENT_PAID,
    PAYMENT_PARTIAL,
    PAYMENT_PENDING,
    PAYMENT_STATUSES,
    SALE_CANCELLED,
    SALE_COMPLETED,
    SALE_PENDING,
)
from ..money import ZERO, to_money
from ..time_utils import utcnow
from ..validation import (
    ModelValidationPolicy,
    ValidationError,
    enforce_rules_sale,
    require_positive_int,
    search_pattern,
    validate_payload,
)
from . import lifecycle_service, stock_service
from .activity_log_service import record_activity
from .catalog_service import require_product_kind
from .concurrency import begin_write, lock_for_update, run_with_retry
from .document_service import SALE_DOCUMENT, SALE_PREFIX, next_document_number

SALE_POLICY = ModelValidationPolicy(
    writable_fields={
        "customer_name",
        "customer_phone",
        "customer_email",
        "customer_address",
        "discount",
        "tax",
        "payment_method",
        "paid_amount",
        "notes",
    },
    required_on_create={"customer_name"},
)


def _payment_status(paid_amount: Decimal, total_amount: Decimal) -> str:
    if paid_amount <= 0:
        return PAYMENT_PENDING
    if paid_amount >= total_amount:
        return PAYMENT_PAID
    return PAYMENT_PARTIAL


def _check_payment_method(method) -> None:
    if method is not None and method not in PAYMENT_METHODS:
        raise ValidationError(f"payment_method must be one of: {', '.join(PAYMENT_METHODS)}")


def _parse_items(raw) -> list[dict]:
    """Normalize the items payload to [{product_id, quantity, unit_price|None}]."""
    if not isinstance(raw, (list, tuple)) or not raw:
        raise ValidationError("items must be a non-empty list")

    items = []
    for index, item in enumerate(raw):
        if not isinstance(item, dict):
            raise ValidationError(f"items[{index}] must be an object")
        unknown = set(item) - {"product_id", "quantity", "unit_price"}
        if unknown:
            raise ValidationError(f"items[{index}]: field not allowed: {', '.join(sorted(unknown))}")

        unit_price = item.get("unit_price")
        if unit_price is not None:
            try:
                unit_price = to_money(unit_price, field=f"items[{index}].unit_price")
            except ValueError as exc:
                raise ValidationError(str(exc))
            if unit_price < 0:
                raise ValidationError(f"items[{index}].unit_price must be >= 0")

        items.append(
            {
                "product_id": require_positive_int(item.get("product_id"), field=f"items[{index}].product_id"),
                "quantity": require_positive_int(item.get("quantity"), field=f"items[{index}].quantity"),
                "unit_price": unit_price,
            }
        )
    return items


def _build_items(items: list[dict]) -> list[SaleItem]:
    """
    Snapshot product data into SaleItem rows and check stock covers them.

    Quantities for the same product are summed before the check. Nothing is
    deducted here.
    """
    needed: dict[int, int] = defaultdict(int)
    built = []
    for item in items:
        product = require_product_kind(item["product_id"], STOCK_KIND_COUNTABLE)
        unit_price = item["unit_price"]
        if unit_price is None:
            if product.price is None:
                raise ValidationError(f"Product '{product.name}' has no price; unit_price is required")
            unit_price = to_money(product.price)

        needed[product.id] += item["quantity"]
        built.append(
            SaleItem(
                product_id=product.id,
                product_name=product.name,
                sku=product.sku,
                quantity=item["quantity"],
                unit_price=unit_price,
                line_total=to_money(unit_price * item["quantity"]),
            )
        )

    for product_id, quantity in needed.items():
        available = db.session.execute(
            select(StockEntry.quantity).where(StockEntry.product_id == product_id)
        ).scalar_one_or_none()
        if available is None or available < quantity:
            raise InsufficientStock(
                f"Insufficient stock for product {product_id}: available {available or 0}, requested {quantity}",
                details={"product_id": product_id, "available": available or 0, "requested": quantity},
            )
    return built


def _apply_totals(sale: Sale, items: list[SaleItem]) -> None:
    subtotal = sum((item.line_total for item in items), ZERO)
    discount = sale.discount if sale.discount is not None else ZERO
    tax = sale.tax if sale.tax is not None else ZERO
    total = to_money(subtotal - discount + tax)
    if total < 0:
        raise ValidationError("discount cannot exceed subtotal plus tax")

    sale.subtotal = to_money(subtotal)
    sale.discount = discount
    sale.tax = tax
    sale.total_amount = total
    sale.paid_amount = sale.paid_amount if sale.paid_amount is not None else ZERO
    sale.payment_status = _payment_status(sale.paid_amount, total)


def _snapshot(sale: Sale) -> dict:
    return {
        "bill_number": sale.bill_number,
        "status": sale.status,
        "total_amount": float(sale.total_amount),
        "payment_status": sale.payment_status,
        "items": [{"product_id": i.product_id, "quantity": i.quantity} for i in sale.items],
    }


def _locked_sale(sale_id: int) -> Sale:
    sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
    if sale is None:
        raise NotFound(f"Sale {sale_id} not found", details={"sale_id": sale_id})
    return sale


def get_sale(sale_id: int) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if sale is None:
        raise NotFound(f"Sale {sale_id} not found", details={"sale_id": sale_id})
    return sale


def create_sale(data: dict, *, actor: str | None = None) -> Sale:
    """
    Create a pending sale.

    Raises:
        ValidationError: bad input
        NotFound / InvalidProductKind: item product missing or unit-tracked
        InsufficientStock: current stock does not cover the items
    """
    data = dict(data or {})
    items = _parse_items(data.pop("items", None))

    patch = validate_payload(model=Sale, payload=data, policy=SALE_POLICY, partial=False)
    enforce_rules_sale(patch)
    _check_payment_method(patch.get("payment_method"))

    def _op():
        begin_write()
        built = _build_items(items)
        number = next_document_number(document_type=SALE_DOCUMENT, prefix=SALE_PREFIX)
        sale = Sale(bill_number=number, status=SALE_PENDING, created_by=actor, **patch)
        _apply_totals(sale, built)
        sale.items = built
        db.session.add(sale)

        try:
            db.session.flush()
        except IntegrityError:
            db.session.rollback()
            raise Conflict(f"Bill number {number} already exists", details={"bill_number": number})
        snapshot = _snapshot(sale)
        db.session.commit()
        return sale, snapshot

    sale, snapshot = run_with_retry(_op)
    record_activity(
        actor=actor,
        action="create",
        entity_type="sale",
        entity_id=sale.id,
        entity_name=snapshot["bill_number"],
        new=snapshot,
    )
    return sale


def update_sale(sale_id: int, data: dict, *, actor: str | None = None) -> Sale:
    """Edit a pending sale; totals are always recomputed."""
    data = dict(data or {})
    items = _parse_items(data.pop("items")) if "items" in data else None

    patch = validate_payload(model=Sale, payload=data, policy=SALE_POLICY, partial=True)
    enforce_rules_sale(patch)
    _check_payment_method(patch.get("payment_method"))

    def _op():
        begin_write()
        sale = _locked_sale(sale_id)
        if sale.status != SALE_PENDING:
            raise InvalidState(
                f"Sale {sale.bill_number} is {sale.status} and can no longer be edited",
                details={"status": sale.status},
            )

        old = _snapshot(sale)
        for key, value in patch.items():
            setattr(sale, key, value)

        if items is not None:
            built = _build_items(items)
            sale.items = built
        _apply_totals(sale, sale.items)

        new = _snapshot(sale)
        db.session.commit()
        return sale, old, new

    sale, old, new = run_with_retry(_op)
    record_activity(
        actor=actor,
        action="update",
        entity_type="sale",
        entity_id=sale_id,
        entity_name=new["bill_number"],
        old=old,
        new=new,
    )
    return sale


def _deduct_items(sale: Sale, actor: str | None) -> None:
    for item in sale.items:
        try:
            stock_service._apply_delta(item.product_id, -item.quantity, actor=actor)
        except InsufficientStock as exc:
            raise InsufficientStock(
                f"Insufficient stock for {item.product_name} ({item.sku}) on sale {sale.bill_number}",
                details={**exc.details, "sku": item.sku, "sale_id": sale.id},
            ) from exc


def _restore_items(sale: Sale, actor: str | None) -> None:
    for item in sale.items:
        stock_service._apply_delta(item.product_id, item.quantity, actor=actor)


def update_status(
    sale_id: int,
    status: str,
    *,
    notes: str | None = None,
    actor: str | None = None,
) -> Sale:
    """
    Move a sale along its lifecycle, applying the stock effect.

    Raises:
        NotFound, InvalidTransition, InsufficientStock (completion only)
    """
    lifecycle_service.validate_status(lifecycle_service.SALE, status)

    def _op():
        begin_write()
        sale = _locked_sale(sale_id)
        old = _snapshot(sale)
        lifecycle_service.ensure_transition(lifecycle_service.SALE, sale.status, status)

        if status == SALE_COMPLETED:
            _deduct_items(sale, actor)
            sale.completed_at = utcnow()
        elif status == SALE_CANCELLED and sale.status == SALE_COMPLETED:
            _restore_items(sale, actor)

        if notes is not None:
            sale.notes = str(notes).strip() or None
        sale.status = status

        new = _snapshot(sale)
        db.session.commit()
        return sale, old, new

    sale, old, new = run_with_retry(_op)
    record_activity(
        actor=actor,
        action="update",
        entity_type="sale",
        entity_id=sale_id,
        entity_name=new["bill_number"],
        old=old,
        new=new,
    )
    return sale


def delete_sale(sale_id: int, *, actor: str | None = None) -> None:
    """Only pending sales may be deleted."""
    def _op():
        begin_write()
        sale = _locked_sale(sale_id)
        if sale.status != SALE_PENDING:
            raise InvalidState(
                f"Sale {sale.bill_number} is {sale.status} and cannot be deleted",
                details={"status": sale.status},
            )
        snapshot = _snapshot(sale)
        db.session.delete(sale)
        db.session.commit()
        return snapshot

    snapshot = run_with_retry(_op)
    record_activity(
        actor=actor,
        action="delete",
        entity_type="sale",
        entity_id=sale_id,
        entity_name=snapshot["bill_number"],
        old=snapshot,
    )


def record_payment(
    sale_id: int,
    amount,
    *,
    payment_method: str | None = None,
    actor: str | None = None,
) -> Sale:
    """Add a payment and re-derive payment_status."""
    try:
        amount = to_money(amount, field="amount")
    except ValueError as exc:
        raise ValidationError(str(exc))
    if amount <= 0:
        raise ValidationError("amount must be > 0")
    _check_payment_method(payment_method)

    def _op():
        begin_write()
        sale = _locked_sale(sale_id)
        if sale.status == SALE_CANCELLED:
            raise InvalidState(
                f"Sale {sale.bill_number} is cancelled",
                details={"status": sale.status},
            )
        old = {"paid_amount": float(sale.paid_amount), "payment_status": sale.payment_status}

        sale.paid_amount = to_money(sale.paid_amount + amount)
        sale.payment_status = _payment_status(sale.paid_amount, sale.total_amount)
        if payment_method is not None:
            sale.payment_method = payment_method

        new = {
            "paid_amount": float(sale.paid_amount),
            "payment_status": sale.payment_status,
            "amount": float(amount),
        }
        bill_number = sale.bill_number
        db.session.commit()
        return sale, old, new, bill_number

    sale, old, new, bill_number = run_with_retry(_op)
    record_activity(
        actor=actor,
        action="update",
        entity_type="sale",
        entity_id=sale_id,
        entity_name=bill_number,
        old=old,
        new=new,
    )
    return sale


def list_sales(
    *,
    status: str | None = None,
    payment_status: str | None = None,
    customer_name: str | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    search: str | None = None,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[Sale], int]:
    """Newest first; date range applies to created_at."""
    filters = []
    if status:
        lifecycle_service.validate_status(lifecycle_service.SALE, status)
        filters.append(Sale.status == status)
    if payment_status:
        if payment_status not in PAYMENT_STATUSES:
            raise ValidationError(f"Invalid payment_status '{payment_status}'")
        filters.append(Sale.payment_status == payment_status)

    name_pattern = search_pattern(customer_name)
    if name_pattern:
        filters.append(Sale.customer_name.ilike(name_pattern, escape="\\"))
    if start_date is not None:
        filters.append(Sale.created_at >= start_date)
    if end_date is not None:
        filters.append(Sale.created_at <= end_date)

    pattern = search_pattern(search)
    if pattern:
        filters.append(
            or_(
                Sale.bill_number.ilike(pattern, escape="\\"),
                Sale.customer_name.ilike(pattern, escape="\\"),
            )
        )

    total = db.session.execute(select(func.count(Sale.id)).where(*filters)).scalar_one()
    rows = db.session.execute(
        select(Sale)
        .where(*filters)
        .order_by(Sale.created_at.desc(), Sale.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    ).scalars().all()
    return list(rows), total
