# backend/rentstock/routes/stock.py
"""
Stock ledger routes (countable products).

- GET  /api/stock                       - list (search, low_stock, page, limit)
- PUT  /api/stock                       - create or overwrite a product's stock
- GET  /api/stock/low                   - entries at or below min_quantity
- GET  /api/stock/<product_id>          - one entry
- POST /api/stock/<product_id>/adjust   - apply a +/- delta

Mutations require the X-Actor-Id header.
"""
from flask import Blueprint, g, request

from ..decorators import json_body, paginated, require_actor
from ..errors import NotFound
from ..services import stock_service
from ..validation import ValidationError, normalize_paging, parse_bool, require_positive_int

stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


@stock_bp.get("")
def list_stock_route():
    page, limit = normalize_paging(request.args.get("page"), request.args.get("limit"))
    entries, total = stock_service.list_stock(
        search=request.args.get("search"),
        low_stock_only=parse_bool(request.args.get("low_stock")),
        page=page,
        limit=limit,
    )
    return paginated([e.to_dict() for e in entries], total, page, limit)


@stock_bp.put("")
@require_actor
def upsert_stock_route():
    """
    Body: {"product_id": int, "quantity": int, "min_quantity": int (optional)}
    """
    payload = json_body()
    product_id = require_positive_int(payload.get("product_id"), field="product_id")
    if "quantity" not in payload:
        raise ValidationError("Missing required fields: quantity")

    entry = stock_service.upsert_stock(
        product_id,
        quantity=payload.get("quantity"),
        min_quantity=payload.get("min_quantity"),
        actor=g.actor,
    )
    return {"stock": entry.to_dict()}, 200


@stock_bp.get("/low")
def low_stock_route():
    return {"items": [e.to_dict() for e in stock_service.list_low_stock()]}


@stock_bp.get("/<int:product_id>")
def get_stock_route(product_id: int):
    entry = stock_service.get(product_id)
    if entry is None:
        raise NotFound(f"No stock entry for product {product_id}", details={"product_id": product_id})
    return {"stock": entry.to_dict()}


@stock_bp.post("/<int:product_id>/adjust")
@require_actor
def adjust_stock_route(product_id: int):
    """
    Body: {"delta": int (non-zero), "reason": str (optional)}

    409 INSUFFICIENT_STOCK if the quantity would go negative.
    """
    payload = json_body()
    entry = stock_service.adjust(
        product_id,
        payload.get("delta"),
        reason=payload.get("reason"),
        actor=g.actor,
    )
    return {"stock": entry.to_dict()}
