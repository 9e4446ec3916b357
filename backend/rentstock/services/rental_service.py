# Overview: Rental workflow; claims asset units and drives them through the rental lifecycle.

"""
RentStock Rental Workflow

A rental holds a set of asset units for a date range:

    create            -> units claimed (rented), rental pending
    pending -> active -> no unit effect
    active -> completed -> penalty computed from the return date, units released
    pending|active -> cancelled -> units released

Units are claimed at creation, while the rental is still pending, so a
booked unit cannot be promised twice.

The rental row and its units change in the same transaction: a failed claim
rolls back the rental insert (or the edit) along with it.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal

from flask import current_app
from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError

from ..errors import Conflict, InvalidState, NotFound
from ..extensions import db
from ..models import AssetUnit, Rental
from ..models.rentals import RENTAL_ACTIVE, RENTAL_CANCELLED, RENTAL_COMPLETED, RENTAL_PENDING
from ..money import ZERO, to_money
from ..time_utils import coerce_datetime, utcnow
from ..validation import (
    ModelValidationPolicy,
    ValidationError,
    enforce_rules_rental,
    require_positive_int,
    search_pattern,
    validate_payload,
)
from . import asset_service, lifecycle_service
from .activity_log_service import record_activity
from .concurrency import begin_write, lock_for_update, run_with_retry
from .document_service import RENTAL_DOCUMENT, RENTAL_PREFIX, next_document_number

ONE_DAY = timedelta(days=1)

RENTAL_POLICY = ModelValidationPolicy(
    writable_fields={
        "customer_name",
        "customer_phone",
        "customer_email",
        "customer_address",
        "start_date",
        "end_date",
        "expected_return_date",
        "daily_rate",
        "deposit",
        "shipping_cost",
        "penalty_rate",
        "notes",
    },
    required_on_create={"customer_name", "start_date", "end_date", "daily_rate"},
)

# Fields whose change forces total_amount to be recomputed
_PRICING_FIELDS = ("start_date", "end_date", "daily_rate")


def _ceil_days(span: timedelta) -> int:
    return -((-span) // ONE_DAY)


def _default_penalty_rate() -> Decimal:
    return to_money(current_app.config.get("DEFAULT_PENALTY_RATE", 1.5), field="penalty_rate")


def calculate_total_amount(start_date: datetime, end_date: datetime, daily_rate) -> Decimal:
    """Whole days between start and end, rounded up, times the daily rate."""
    days = max(_ceil_days(end_date - start_date), 0)
    return to_money(days * to_money(daily_rate))


def calculate_penalty(end_date: datetime, actual_return_date: datetime, daily_rate, penalty_rate) -> Decimal:
    """
    Overdue days (rounded up) x daily rate x penalty rate.

    Zero when the return is on or before end_date.
    """
    if actual_return_date <= end_date:
        return ZERO
    overdue_days = _ceil_days(actual_return_date - end_date)
    return to_money(overdue_days * to_money(daily_rate) * Decimal(str(penalty_rate)))


def live_penalty(rental: Rental, as_of: datetime | None = None) -> Decimal:
    """
    Penalty to report for a rental right now.

    Active rentals accrue against as_of by calendar day; every other status
    reports the stored value.
    """
    if rental.status != RENTAL_ACTIVE:
        return rental.penalty_amount if rental.penalty_amount is not None else ZERO

    as_of = as_of or utcnow()
    overdue_days = (as_of.date() - rental.end_date.date()).days
    if overdue_days <= 0:
        return ZERO
    rate = rental.penalty_rate if rental.penalty_rate is not None else _default_penalty_rate()
    return to_money(overdue_days * to_money(rental.daily_rate) * Decimal(str(rate)))


def _parse_asset_ids(raw) -> list[int]:
    if not isinstance(raw, (list, tuple)) or not raw:
        raise ValidationError("asset_ids must be a non-empty list")
    return sorted({require_positive_int(a, field="asset_ids") for a in raw})


def _load_units(ids) -> list[AssetUnit]:
    rows = db.session.execute(
        select(AssetUnit).where(AssetUnit.id.in_(list(ids))).order_by(AssetUnit.id)
    ).scalars().all()
    return list(rows)


def _snapshot(rental: Rental) -> dict:
    return {
        "rental_number": rental.rental_number,
        "status": rental.status,
        "asset_ids": rental.asset_ids,
        "total_amount": float(rental.total_amount),
        "penalty_amount": float(rental.penalty_amount or 0),
    }


def get_rental(rental_id: int) -> Rental:
    rental = db.session.get(Rental, rental_id)
    if rental is None:
        raise NotFound(f"Rental {rental_id} not found", details={"rental_id": rental_id})
    return rental


def create_rental(data: dict, *, actor: str | None = None) -> Rental:
    """
    Create a pending rental and claim its units.

    Raises:
        ValidationError: bad input (missing fields, end_date not after start_date...)
        AssetsUnavailable: any requested unit is not available; nothing is created
        Conflict: rental number collision
    """
    data = dict(data or {})
    ids = _parse_asset_ids(data.pop("asset_ids", None))

    patch = validate_payload(model=Rental, payload=data, policy=RENTAL_POLICY, partial=False)
    enforce_rules_rental(patch)
    if patch.get("penalty_rate") is None:
        patch["penalty_rate"] = _default_penalty_rate()
    for field in ("deposit", "shipping_cost"):
        if patch.get(field) is None:
            patch[field] = ZERO
    patch["total_amount"] = calculate_total_amount(
        patch["start_date"], patch["end_date"], patch["daily_rate"]
    )

    def _op():
        begin_write()
        number = next_document_number(document_type=RENTAL_DOCUMENT, prefix=RENTAL_PREFIX)
        rental = Rental(
            rental_number=number,
            status=RENTAL_PENDING,
            penalty_amount=ZERO,
            created_by=actor,
            **patch,
        )
        db.session.add(rental)
        db.session.flush()

        asset_service.claim(ids, rental.id)
        rental.assets = _load_units(ids)

        snapshot = _snapshot(rental)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise Conflict(f"Rental number {number} already exists", details={"rental_number": number})
        return rental, snapshot

    rental, snapshot = run_with_retry(_op)
    record_activity(
        actor=actor,
        action="create",
        entity_type="rental",
        entity_id=rental.id,
        entity_name=snapshot["rental_number"],
        new=snapshot,
    )
    return rental


def update_status(
    rental_id: int,
    status: str,
    *,
    actual_return_date=None,
    penalty_rate=None,
    notes: str | None = None,
    actor: str | None = None,
) -> Rental:
    """
    Move a rental along its lifecycle.

    completed: actual_return_date defaults to now; penalty_rate defaults to
    the stored rate (else DEFAULT_PENALTY_RATE); units released.
    cancelled: units released; notes records the reason.

    Raises:
        NotFound, InvalidTransition, ValidationError
    """
    lifecycle_service.validate_status(lifecycle_service.RENTAL, status)
    try:
        returned_at = coerce_datetime(actual_return_date, field="actual_return_date")
    except ValueError as exc:
        raise ValidationError(str(exc))
    if penalty_rate is not None:
        try:
            penalty_rate = to_money(penalty_rate, field="penalty_rate")
        except ValueError as exc:
            raise ValidationError(str(exc))
        if penalty_rate < 0:
            raise ValidationError("penalty_rate must be >= 0")

    def _op():
        begin_write()
        rental = lock_for_update(db.session.query(Rental).filter_by(id=rental_id)).first()
        if rental is None:
            raise NotFound(f"Rental {rental_id} not found", details={"rental_id": rental_id})

        old = _snapshot(rental)
        lifecycle_service.ensure_transition(lifecycle_service.RENTAL, rental.status, status)

        if status == RENTAL_COMPLETED:
            rate = penalty_rate
            if rate is None:
                rate = rental.penalty_rate if rental.penalty_rate is not None else _default_penalty_rate()
            rental.actual_return_date = returned_at or utcnow()
            rental.penalty_rate = rate
            rental.penalty_amount = calculate_penalty(
                rental.end_date, rental.actual_return_date, rental.daily_rate, rate
            )
            asset_service.release(rental.asset_ids, rental.id)
        elif status == RENTAL_CANCELLED:
            asset_service.release(rental.asset_ids, rental.id)

        if notes is not None:
            rental.notes = str(notes).strip() or None
        rental.status = status

        new = _snapshot(rental)
        db.session.commit()
        return rental, old, new

    rental, old, new = run_with_retry(_op)
    record_activity(
        actor=actor,
        action="update",
        entity_type="rental",
        entity_id=rental_id,
        entity_name=new["rental_number"],
        old=old,
        new=new,
    )
    return rental


def cancel_rental(rental_id: int, *, reason: str | None = None, actor: str | None = None) -> Rental:
    return update_status(rental_id, RENTAL_CANCELLED, notes=reason, actor=actor)


def complete_rental(
    rental_id: int,
    *,
    actual_return_date=None,
    penalty_rate=None,
    actor: str | None = None,
) -> Rental:
    return update_status(
        rental_id,
        RENTAL_COMPLETED,
        actual_return_date=actual_return_date,
        penalty_rate=penalty_rate,
        actor=actor,
    )


def update_rental(rental_id: int, data: dict, *, actor: str | None = None) -> Rental:
    """
    Edit a pending or active rental.

    Changing dates or the daily rate recomputes total_amount. Changing
    asset_ids claims the added units before releasing the removed ones, so a
    failed claim leaves the original set in place.

    Raises:
        NotFound, InvalidState, ValidationError, AssetsUnavailable
    """
    data = dict(data or {})
    new_ids = None
    if "asset_ids" in data:
        new_ids = set(_parse_asset_ids(data.pop("asset_ids")))

    patch = validate_payload(model=Rental, payload=data, policy=RENTAL_POLICY, partial=True)
    enforce_rules_rental(patch)

    def _op():
        begin_write()
        rental = lock_for_update(db.session.query(Rental).filter_by(id=rental_id)).first()
        if rental is None:
            raise NotFound(f"Rental {rental_id} not found", details={"rental_id": rental_id})
        if not rental.is_mutable:
            raise InvalidState(
                f"Rental {rental.rental_number} is {rental.status} and can no longer be edited",
                details={"status": rental.status},
            )

        old = _snapshot(rental)
        start = patch.get("start_date", rental.start_date)
        end = patch.get("end_date", rental.end_date)
        if end <= start:
            raise ValidationError("end_date must be after start_date")

        for key, value in patch.items():
            setattr(rental, key, value)

        if any(field in patch for field in _PRICING_FIELDS):
            rental.total_amount = calculate_total_amount(start, end, rental.daily_rate)

        if new_ids is not None:
            current = set(rental.asset_ids)
            added = new_ids - current
            removed = current - new_ids
            if added:
                asset_service.claim(added, rental.id)
            if removed:
                asset_service.release(removed, rental.id)
            if added or removed:
                rental.assets = _load_units(new_ids)

        new = _snapshot(rental)
        db.session.commit()
        return rental, old, new

    rental, old, new = run_with_retry(_op)
    record_activity(
        actor=actor,
        action="update",
        entity_type="rental",
        entity_id=rental_id,
        entity_name=new["rental_number"],
        old=old,
        new=new,
    )
    return rental


def _rental_filters(*, status, customer_email, start_date, end_date, search) -> list:
    filters = []
    if status:
        lifecycle_service.validate_status(lifecycle_service.RENTAL, status)
        filters.append(Rental.status == status)
    if customer_email:
        filters.append(Rental.customer_email == customer_email)

    # Rentals that start or end within the range
    if start_date is not None and end_date is not None:
        filters.append(
            or_(
                Rental.start_date.between(start_date, end_date),
                Rental.end_date.between(start_date, end_date),
            )
        )
    elif start_date is not None:
        filters.append(Rental.end_date >= start_date)
    elif end_date is not None:
        filters.append(Rental.start_date <= end_date)

    pattern = search_pattern(search)
    if pattern:
        filters.append(
            or_(
                Rental.rental_number.ilike(pattern, escape="\\"),
                Rental.customer_name.ilike(pattern, escape="\\"),
                Rental.customer_email.ilike(pattern, escape="\\"),
                Rental.customer_phone.ilike(pattern, escape="\\"),
            )
        )
    return filters


def list_rentals(
    *,
    status: str | None = None,
    customer_email: str | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    search: str | None = None,
    page: int = 1,
    limit: int = 20,
    as_of: datetime | None = None,
) -> tuple[list[dict], int]:
    """
    Newest first. Active rentals carry a live penalty against as_of (default now).
    """
    filters = _rental_filters(
        status=status,
        customer_email=customer_email,
        start_date=start_date,
        end_date=end_date,
        search=search,
    )

    total = db.session.execute(select(func.count(Rental.id)).where(*filters)).scalar_one()

    rows = db.session.execute(
        select(Rental)
        .where(*filters)
        .order_by(Rental.created_at.desc(), Rental.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    ).scalars().all()

    as_of = as_of or utcnow()
    return [r.to_dict(penalty_amount=live_penalty(r, as_of)) for r in rows], total


def list_overdue_rentals(as_of: datetime | None = None) -> list[dict]:
    """Active rentals past their end date, most overdue first."""
    as_of = as_of or utcnow()
    rows = db.session.execute(
        select(Rental)
        .where(Rental.status == RENTAL_ACTIVE, Rental.end_date < as_of)
        .order_by(Rental.end_date.asc(), Rental.id.asc())
    ).scalars().all()
    return [r.to_dict(penalty_amount=live_penalty(r, as_of)) for r in rows]
