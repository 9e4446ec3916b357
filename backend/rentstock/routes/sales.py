# backend/rentstock/routes/sales.py
"""
Sale workflow routes.

- GET    /api/sales                 - list (status, payment_status, customer_name, start_date, end_date, search)
- POST   /api/sales                 - create pending sale (stock checked, not deducted)
- GET    /api/sales/<id>            - one sale
- PATCH  /api/sales/<id>            - edit while pending
- DELETE /api/sales/<id>            - delete while pending
- POST   /api/sales/<id>/status     - complete (deducts stock) / cancel (restores if completed)
- POST   /api/sales/<id>/payments   - record a payment
"""
from flask import Blueprint, g, request

from ..decorators import json_body, paginated, require_actor
from ..services import sale_service
from ..validation import ValidationError, normalize_paging, optional_datetime

sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.get("")
def list_sales_route():
    page, limit = normalize_paging(request.args.get("page"), request.args.get("limit"))
    sales, total = sale_service.list_sales(
        status=request.args.get("status") or None,
        payment_status=request.args.get("payment_status") or None,
        customer_name=request.args.get("customer_name"),
        start_date=optional_datetime(request.args.get("start_date"), field="start_date"),
        end_date=optional_datetime(request.args.get("end_date"), field="end_date"),
        search=request.args.get("search"),
        page=page,
        limit=limit,
    )
    return paginated([s.to_dict() for s in sales], total, page, limit)


@sales_bp.post("")
@require_actor
def create_sale_route():
    """
    Body: customer_name and items [{product_id, quantity, unit_price?}] (required);
    customer contact fields, discount, tax, payment_method, paid_amount, notes (optional).
    """
    sale = sale_service.create_sale(json_body(), actor=g.actor)
    return {"sale": sale.to_dict()}, 201


@sales_bp.get("/<int:sale_id>")
def get_sale_route(sale_id: int):
    return {"sale": sale_service.get_sale(sale_id).to_dict()}


@sales_bp.patch("/<int:sale_id>")
@require_actor
def update_sale_route(sale_id: int):
    sale = sale_service.update_sale(sale_id, json_body(), actor=g.actor)
    return {"sale": sale.to_dict()}


@sales_bp.delete("/<int:sale_id>")
@require_actor
def delete_sale_route(sale_id: int):
    sale_service.delete_sale(sale_id, actor=g.actor)
    return "", 204


@sales_bp.post("/<int:sale_id>/status")
@require_actor
def update_status_route(sale_id: int):
    """
    Body: {"status": str, "notes": str (optional)}

    409 INSUFFICIENT_STOCK on completion leaves the sale pending and stock untouched.
    """
    payload = json_body()
    status = payload.get("status")
    if not status:
        raise ValidationError("status is required")

    sale = sale_service.update_status(sale_id, status, notes=payload.get("notes"), actor=g.actor)
    return {"sale": sale.to_dict()}


@sales_bp.post("/<int:sale_id>/payments")
@require_actor
def record_payment_route(sale_id: int):
    """Body: {"amount": number, "payment_method": str (optional)}"""
    payload = json_body()
    if "amount" not in payload:
        raise ValidationError("amount is required")

    sale = sale_service.record_payment(
        sale_id,
        payload["amount"],
        payment_method=payload.get("payment_method"),
        actor=g.actor,
    )
    return {"sale": sale.to_dict()}
