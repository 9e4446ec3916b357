# Overview: Read access to the product catalog plus a creation helper for seeding.

from __future__ import annotations

from sqlalchemy.exc import IntegrityError

from ..errors import Conflict, InvalidProductKind, NotFound
from ..extensions import db
from ..models import Product
from ..models.catalog import STOCK_KINDS
from ..validation import (
    ModelValidationPolicy,
    ValidationError,
    enforce_rules_product,
    normalize_code,
    validate_payload,
)
from .activity_log_service import record_activity
from .concurrency import run_with_retry

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "sku",
        "name",
        "description",
        "category",
        "unit",
        "stock_kind",
        "price",
        "daily_rental_rate",
    },
    required_on_create={"sku", "name", "stock_kind"},
)


def create_product(data: dict, *, actor: str | None = None) -> Product:
    """
    Create a catalog product.

    Catalog maintenance is owned elsewhere; this exists so the CLI seed and
    tests can set up products for the inventory engine.
    """
    patch = validate_payload(model=Product, payload=data, policy=PRODUCT_POLICY, partial=False)
    enforce_rules_product(patch)
    patch["sku"] = normalize_code(patch["sku"], field="sku")
    if patch["stock_kind"] not in STOCK_KINDS:
        raise ValidationError(f"stock_kind must be one of: {', '.join(STOCK_KINDS)}")

    def _op() -> Product:
        product = Product(**patch)
        db.session.add(product)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise Conflict(f"SKU '{patch['sku']}' already exists", details={"sku": patch["sku"]})
        return product

    product = run_with_retry(_op)
    record_activity(
        actor=actor,
        action="create",
        entity_type="product",
        entity_id=product.id,
        entity_name=product.name,
        new=product.to_dict(),
    )
    return product


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFound(f"Product {product_id} not found", details={"product_id": product_id})
    return product


def require_product_kind(product_id: int, stock_kind: str) -> Product:
    """
    Raises:
        NotFound: product missing
        InvalidProductKind: product exists but is tracked the other way
    """
    product = get_product(product_id)
    if product.stock_kind != stock_kind:
        raise InvalidProductKind(
            f"Product '{product.name}' is {product.stock_kind}, expected {stock_kind}",
            details={"product_id": product_id, "stock_kind": product.stock_kind},
        )
    return product
