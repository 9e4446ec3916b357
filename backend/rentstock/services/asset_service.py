# Overview: Registry of individually tracked rental units and their status.

"""
RentStock Asset Registry

Units move between statuses by two routes:
- claim / release, used only by the rental workflow (available <-> rented)
- set_status, a direct override for everything else (maintenance, damaged...)

claim is one conditional UPDATE across the whole id set. If fewer rows match
than ids were requested the claim raises AssetsUnavailable and the caller's
transaction is rolled back, so a rental never holds a partial set.
"""

from __future__ import annotations

from itertools import groupby

from flask import current_app
from sqlalchemy import case, delete as delete_stmt, func, or_, select, update

from ..errors import AssetInUse, AssetsUnavailable, Conflict, DuplicateCode, InvalidTransition, NotFound
from ..extensions import db
from ..models import AssetUnit, Product, rental_assets
from ..models.assets import ASSET_AVAILABLE, ASSET_RENTED, ASSET_STATUSES
from ..models.catalog import STOCK_KIND_UNIT_TRACKED
from ..validation import ValidationError, normalize_code, require_positive_int, search_pattern
from .activity_log_service import record_activity
from .catalog_service import require_product_kind
from .concurrency import begin_write, run_with_retry


def _validate_status(status: str) -> None:
    if status not in ASSET_STATUSES:
        raise ValidationError(f"Invalid asset status '{status}'. Must be one of: {', '.join(ASSET_STATUSES)}")


def _code_exists(product_id: int, asset_code: str, *, exclude_id: int | None = None) -> bool:
    stmt = select(AssetUnit.id).where(
        AssetUnit.product_id == product_id,
        AssetUnit.asset_code == asset_code,
    )
    if exclude_id is not None:
        stmt = stmt.where(AssetUnit.id != exclude_id)
    return db.session.execute(stmt.limit(1)).first() is not None


def get_asset(asset_id: int) -> AssetUnit:
    asset = db.session.get(AssetUnit, asset_id)
    if asset is None:
        raise NotFound(f"Asset {asset_id} not found", details={"asset_id": asset_id})
    return asset


def create_batch(
    product_id: int,
    *,
    asset_code,
    count,
    initial_status: str = ASSET_AVAILABLE,
    notes: str | None = None,
    actor: str | None = None,
) -> list[AssetUnit]:
    """
    Register count interchangeable units of a unit-tracked product under one code.

    Raises:
        ValidationError: bad code, count outside 1..MAX_ASSET_BATCH, bad status
        NotFound / InvalidProductKind: product missing or countable
        DuplicateCode: the product already has units with this code
    """
    code = normalize_code(asset_code, field="asset_code")
    count = require_positive_int(count, field="count")
    max_batch = current_app.config.get("MAX_ASSET_BATCH", 500)
    if count > max_batch:
        raise ValidationError(f"count cannot exceed {max_batch}")

    _validate_status(initial_status)
    if initial_status == ASSET_RENTED:
        raise ValidationError("Assets cannot be created as rented")
    if notes is not None:
        notes = str(notes).strip() or None

    product = require_product_kind(product_id, STOCK_KIND_UNIT_TRACKED)

    def _op():
        begin_write()
        if _code_exists(product_id, code):
            raise DuplicateCode(
                f"Asset code '{code}' already exists for product '{product.name}'",
                details={"product_id": product_id, "asset_code": code},
            )

        units = [
            AssetUnit(product_id=product_id, asset_code=code, status=initial_status, notes=notes)
            for _ in range(count)
        ]
        db.session.add_all(units)
        db.session.flush()
        ids = [unit.id for unit in units]
        db.session.commit()
        return units, ids

    units, ids = run_with_retry(_op)
    record_activity(
        actor=actor,
        action="create",
        entity_type="asset",
        entity_id=code,
        entity_name=f"{product.name} ({code})",
        new={"product_id": product_id, "asset_code": code, "count": count, "status": initial_status, "asset_ids": ids},
    )
    return units


def set_status(
    asset_id: int,
    new_status: str,
    *,
    notes: str | None = None,
    actor: str | None = None,
) -> AssetUnit:
    """
    Override a unit's status directly.

    Leaving 'rented' clears current_rental_id. Entering 'rented' is reserved
    for rental claims and is rejected here.
    """
    _validate_status(new_status)
    if new_status == ASSET_RENTED:
        raise InvalidTransition(
            "Assets can only become rented through a rental",
            details={"asset_id": asset_id, "to": new_status},
        )

    def _op():
        begin_write()
        asset = get_asset(asset_id)
        observed = asset.status

        values = {"status": new_status, "current_rental_id": None}
        if notes is not None:
            values["notes"] = str(notes).strip() or None

        # Compare-and-set on the status we read
        result = db.session.execute(
            update(AssetUnit)
            .where(AssetUnit.id == asset_id, AssetUnit.status == observed)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise Conflict(
                f"Asset {asset_id} was modified concurrently",
                details={"asset_id": asset_id},
            )
        db.session.commit()
        return observed

    observed = run_with_retry(_op)
    asset = get_asset(asset_id)
    record_activity(
        actor=actor,
        action="update",
        entity_type="asset",
        entity_id=asset.id,
        entity_name=asset.asset_code,
        old={"status": observed},
        new={"status": new_status},
    )
    return asset


def update_asset(
    asset_id: int,
    *,
    asset_code=None,
    notes=None,
    actor: str | None = None,
) -> AssetUnit:
    """
    Rename a unit's code or edit its notes.

    A rename moves only this unit: it leaves its batch and starts a new
    code. Renaming to a code the product already uses (including one
    created by an earlier rename) raises DuplicateCode.
    """
    code = normalize_code(asset_code, field="asset_code") if asset_code is not None else None

    def _op():
        begin_write()
        asset = get_asset(asset_id)
        old = {"asset_code": asset.asset_code, "notes": asset.notes}

        values = {}
        if code is not None and code != asset.asset_code:
            if _code_exists(asset.product_id, code, exclude_id=asset.id):
                raise DuplicateCode(
                    f"Asset code '{code}' already exists for this product",
                    details={"product_id": asset.product_id, "asset_code": code},
                )
            values["asset_code"] = code
        if notes is not None:
            values["notes"] = str(notes).strip() or None

        if values:
            db.session.execute(
                update(AssetUnit)
                .where(AssetUnit.id == asset_id)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
        db.session.commit()
        return old, values

    old, values = run_with_retry(_op)
    asset = get_asset(asset_id)
    if values:
        record_activity(
            actor=actor,
            action="update",
            entity_type="asset",
            entity_id=asset.id,
            entity_name=asset.asset_code,
            old={k: old[k] for k in values},
            new=values,
        )
    return asset


def delete(asset_id: int, *, actor: str | None = None) -> None:
    """
    Raises:
        NotFound: unknown asset
        AssetInUse: the unit is currently rented
    """
    def _op():
        begin_write()
        asset = get_asset(asset_id)
        if asset.status == ASSET_RENTED:
            raise AssetInUse(
                f"Asset {asset.asset_code} is currently rented",
                details={"asset_id": asset_id, "rental_id": asset.current_rental_id},
            )
        snapshot = asset.to_dict()

        result = db.session.execute(
            delete_stmt(AssetUnit)
            .where(AssetUnit.id == asset_id, AssetUnit.status != ASSET_RENTED)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise AssetInUse(
                f"Asset {asset.asset_code} is currently rented",
                details={"asset_id": asset_id},
            )
        # Past rentals keep their totals; only the unit link goes
        db.session.execute(delete_stmt(rental_assets).where(rental_assets.c.asset_id == asset_id))
        db.session.expunge(asset)
        db.session.commit()
        return snapshot

    snapshot = run_with_retry(_op)
    record_activity(
        actor=actor,
        action="delete",
        entity_type="asset",
        entity_id=asset_id,
        entity_name=snapshot["asset_code"],
        old=snapshot,
    )


def claim(asset_ids, rental_id: int) -> int:
    """
    Mark every unit rented by rental_id, or none of them. Does not commit.

    Raises:
        ValidationError: empty id list
        AssetsUnavailable: any unit missing or not available; the caller must
            roll back (run_with_retry does)
    """
    ids = sorted(set(asset_ids or []))
    if not ids:
        raise ValidationError("At least one asset is required")

    result = db.session.execute(
        update(AssetUnit)
        .where(AssetUnit.id.in_(ids), AssetUnit.status == ASSET_AVAILABLE)
        .values(status=ASSET_RENTED, current_rental_id=rental_id)
        .execution_options(synchronize_session=False)
    )

    if result.rowcount != len(ids):
        claimed = set(
            db.session.execute(
                select(AssetUnit.id).where(
                    AssetUnit.id.in_(ids),
                    AssetUnit.status == ASSET_RENTED,
                    AssetUnit.current_rental_id == rental_id,
                )
            ).scalars()
        )
        unavailable = [asset_id for asset_id in ids if asset_id not in claimed]
        raise AssetsUnavailable(
            f"{len(unavailable)} of {len(ids)} requested assets are not available",
            details={"asset_ids": unavailable},
        )
    return result.rowcount


def release(asset_ids, rental_id: int | None = None) -> int:
    """
    Return rented units to available. Does not commit.

    Units no longer rented (or held by another rental when rental_id is
    given) are left alone.
    """
    ids = sorted(set(asset_ids or []))
    if not ids:
        return 0

    stmt = update(AssetUnit).where(AssetUnit.id.in_(ids), AssetUnit.status == ASSET_RENTED)
    if rental_id is not None:
        stmt = stmt.where(AssetUnit.current_rental_id == rental_id)

    result = db.session.execute(
        stmt.values(status=ASSET_AVAILABLE, current_rental_id=None)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount


def list_grouped(
    *,
    product_id: int | None = None,
    status: str | None = None,
    search: str | None = None,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[dict], int]:
    """
    Units grouped by (asset_code, product) with per-status counts.

    A group matches a status filter when at least one of its units has that status.
    """
    if status is not None:
        _validate_status(status)

    status_columns = [
        func.sum(case((AssetUnit.status == s, 1), else_=0)).label(s) for s in ASSET_STATUSES
    ]

    stmt = (
        select(
            AssetUnit.asset_code,
            AssetUnit.product_id,
            Product.name.label("product_name"),
            Product.sku.label("product_sku"),
            func.count(AssetUnit.id).label("total_count"),
            *status_columns,
        )
        .join(Product, Product.id == AssetUnit.product_id)
        .group_by(AssetUnit.asset_code, AssetUnit.product_id, Product.name, Product.sku)
    )

    if product_id is not None:
        stmt = stmt.where(AssetUnit.product_id == product_id)
    pattern = search_pattern(search)
    if pattern:
        stmt = stmt.where(
            or_(
                AssetUnit.asset_code.ilike(pattern, escape="\\"),
                Product.name.ilike(pattern, escape="\\"),
                Product.sku.ilike(pattern, escape="\\"),
            )
        )
    if status is not None:
        stmt = stmt.having(func.sum(case((AssetUnit.status == status, 1), else_=0)) > 0)

    total = db.session.execute(select(func.count()).select_from(stmt.subquery())).scalar_one()

    rows = db.session.execute(
        stmt.order_by(Product.name.asc(), AssetUnit.asset_code.asc())
        .offset((page - 1) * limit)
        .limit(limit)
    ).all()

    groups = [
        {
            "asset_code": row.asset_code,
            "product_id": row.product_id,
            "product_name": row.product_name,
            "product_sku": row.product_sku,
            "total_count": row.total_count,
            "status_counts": {s: int(getattr(row, s) or 0) for s in ASSET_STATUSES},
        }
        for row in rows
    ]
    return groups, total


def list_available(product_id: int | None = None) -> list[AssetUnit]:
    stmt = select(AssetUnit).where(AssetUnit.status == ASSET_AVAILABLE)
    if product_id is not None:
        stmt = stmt.where(AssetUnit.product_id == product_id)
    rows = db.session.execute(stmt.order_by(AssetUnit.asset_code.asc(), AssetUnit.id.asc())).scalars().all()
    return list(rows)


def list_available_grouped(product_id: int | None = None) -> list[dict]:
    """Available units grouped by (product, asset_code), with the unit ids per group."""
    stmt = (
        select(
            AssetUnit.id,
            AssetUnit.asset_code,
            AssetUnit.product_id,
            Product.name,
            Product.sku,
            Product.daily_rental_rate,
        )
        .join(Product, Product.id == AssetUnit.product_id)
        .where(AssetUnit.status == ASSET_AVAILABLE)
        .order_by(Product.name.asc(), AssetUnit.product_id.asc(), AssetUnit.asset_code.asc(), AssetUnit.id.asc())
    )
    if product_id is not None:
        stmt = stmt.where(AssetUnit.product_id == product_id)

    groups = []
    for (pid, code), rows in groupby(db.session.execute(stmt).all(), key=lambda r: (r.product_id, r.asset_code)):
        rows = list(rows)
        first = rows[0]
        groups.append(
            {
                "asset_code": code,
                "product_id": pid,
                "product_name": first.name,
                "product_sku": first.sku,
                "daily_rental_rate": float(first.daily_rental_rate) if first.daily_rental_rate is not None else None,
                "available_count": len(rows),
                "asset_ids": [r.id for r in rows],
            }
        )
    return groups
