# backend/rentstock/routes/rentals.py
"""
Rental workflow routes.

- GET   /api/rentals               - list (status, customer_email, start_date, end_date, search, page, limit)
- POST  /api/rentals               - create (claims asset_ids immediately)
- GET   /api/rentals/overdue       - active rentals past end_date with live penalty
- GET   /api/rentals/<id>          - one rental (active rentals show live penalty)
- PATCH /api/rentals/<id>          - edit while pending or active
- POST  /api/rentals/<id>/status   - lifecycle transition
- POST  /api/rentals/<id>/cancel   - cancel with optional reason

Status changes and edits that swap assets either apply completely or not at all.
"""
from flask import Blueprint, g, request

from ..decorators import json_body, paginated, require_actor
from ..services import rental_service
from ..validation import ValidationError, normalize_paging, optional_datetime

rentals_bp = Blueprint("rentals", __name__, url_prefix="/api/rentals")


def _rental_payload(rental) -> dict:
    return rental.to_dict(penalty_amount=rental_service.live_penalty(rental))


@rentals_bp.get("")
def list_rentals_route():
    page, limit = normalize_paging(request.args.get("page"), request.args.get("limit"))
    rentals, total = rental_service.list_rentals(
        status=request.args.get("status") or None,
        customer_email=request.args.get("customer_email") or None,
        start_date=optional_datetime(request.args.get("start_date"), field="start_date"),
        end_date=optional_datetime(request.args.get("end_date"), field="end_date"),
        search=request.args.get("search"),
        page=page,
        limit=limit,
    )
    return paginated(rentals, total, page, limit)


@rentals_bp.post("")
@require_actor
def create_rental_route():
    """
    Body: customer_name, start_date, end_date, daily_rate, asset_ids (required);
    customer_phone, customer_email, customer_address, expected_return_date,
    deposit, shipping_cost, penalty_rate, notes (optional).

    409 ASSETS_UNAVAILABLE (details.asset_ids) when any unit is not available.
    """
    rental = rental_service.create_rental(json_body(), actor=g.actor)
    return {"rental": rental.to_dict()}, 201


@rentals_bp.get("/overdue")
def overdue_rentals_route():
    as_of = optional_datetime(request.args.get("as_of"), field="as_of")
    return {"items": rental_service.list_overdue_rentals(as_of)}


@rentals_bp.get("/<int:rental_id>")
def get_rental_route(rental_id: int):
    return {"rental": _rental_payload(rental_service.get_rental(rental_id))}


@rentals_bp.patch("/<int:rental_id>")
@require_actor
def update_rental_route(rental_id: int):
    rental = rental_service.update_rental(rental_id, json_body(), actor=g.actor)
    return {"rental": _rental_payload(rental)}


@rentals_bp.post("/<int:rental_id>/status")
@require_actor
def update_status_route(rental_id: int):
    """
    Body: {"status": str, "actual_return_date": iso (optional),
           "penalty_rate": number (optional), "notes": str (optional)}
    """
    payload = json_body()
    status = payload.get("status")
    if not status:
        raise ValidationError("status is required")

    rental = rental_service.update_status(
        rental_id,
        status,
        actual_return_date=payload.get("actual_return_date"),
        penalty_rate=payload.get("penalty_rate"),
        notes=payload.get("notes"),
        actor=g.actor,
    )
    return {"rental": _rental_payload(rental)}


@rentals_bp.post("/<int:rental_id>/cancel")
@require_actor
def cancel_rental_route(rental_id: int):
    """Body: {"reason": str (optional)}"""
    payload = json_body()
    rental = rental_service.cancel_rental(rental_id, reason=payload.get("reason"), actor=g.actor)
    return {"rental": rental.to_dict()}
