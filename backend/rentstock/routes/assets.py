# backend/rentstock/routes/assets.py
"""
Asset registry routes (unit-tracked rental items).

- GET    /api/assets                    - grouped by code with status counts
- POST   /api/assets                    - register a batch of units
- GET    /api/assets/available          - available units
- GET    /api/assets/available/grouped  - available units grouped, with ids
- GET    /api/assets/<id>               - one unit
- PATCH  /api/assets/<id>               - rename code / edit notes
- DELETE /api/assets/<id>               - delete (409 while rented)
- POST   /api/assets/<id>/status        - direct status override

Rented status is only ever set by a rental; see rentals routes.
"""
from flask import Blueprint, g, request

from ..decorators import json_body, paginated, require_actor
from ..models.assets import ASSET_AVAILABLE
from ..services import asset_service
from ..validation import ValidationError, normalize_paging, require_positive_int

assets_bp = Blueprint("assets", __name__, url_prefix="/api/assets")


@assets_bp.get("")
def list_grouped_route():
    page, limit = normalize_paging(request.args.get("page"), request.args.get("limit"))
    groups, total = asset_service.list_grouped(
        product_id=request.args.get("product_id", type=int),
        status=request.args.get("status") or None,
        search=request.args.get("search"),
        page=page,
        limit=limit,
    )
    return paginated(groups, total, page, limit)


@assets_bp.post("")
@require_actor
def create_batch_route():
    """
    Body: {"product_id": int, "asset_code": str, "count": int,
           "status": str (optional, default available), "notes": str (optional)}
    """
    payload = json_body()
    missing = sorted(f for f in ("product_id", "asset_code", "count") if f not in payload)
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    units = asset_service.create_batch(
        require_positive_int(payload["product_id"], field="product_id"),
        asset_code=payload["asset_code"],
        count=payload["count"],
        initial_status=payload.get("status") or ASSET_AVAILABLE,
        notes=payload.get("notes"),
        actor=g.actor,
    )
    return {"assets": [u.to_dict() for u in units], "count": len(units)}, 201


@assets_bp.get("/available")
def list_available_route():
    units = asset_service.list_available(request.args.get("product_id", type=int))
    return {"items": [u.to_dict() for u in units]}


@assets_bp.get("/available/grouped")
def list_available_grouped_route():
    return {"items": asset_service.list_available_grouped(request.args.get("product_id", type=int))}


@assets_bp.get("/<int:asset_id>")
def get_asset_route(asset_id: int):
    return {"asset": asset_service.get_asset(asset_id).to_dict()}


@assets_bp.patch("/<int:asset_id>")
@require_actor
def update_asset_route(asset_id: int):
    """Body: {"asset_code": str (optional), "notes": str (optional)}"""
    payload = json_body()
    unknown = set(payload) - {"asset_code", "notes"}
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(sorted(unknown))}")

    asset = asset_service.update_asset(
        asset_id,
        asset_code=payload.get("asset_code"),
        notes=payload.get("notes"),
        actor=g.actor,
    )
    return {"asset": asset.to_dict()}


@assets_bp.delete("/<int:asset_id>")
@require_actor
def delete_asset_route(asset_id: int):
    asset_service.delete(asset_id, actor=g.actor)
    return "", 204


@assets_bp.post("/<int:asset_id>/status")
@require_actor
def set_status_route(asset_id: int):
    """Body: {"status": str, "notes": str (optional)}"""
    payload = json_body()
    status = payload.get("status")
    if not status:
        raise ValidationError("status is required")

    asset = asset_service.set_status(asset_id, status, notes=payload.get("notes"), actor=g.actor)
    return {"asset": asset.to_dict()}
