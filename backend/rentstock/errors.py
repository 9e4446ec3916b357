# Overview: Typed domain errors raised by the service layer.

"""
RentStock domain errors.

Every business-rule failure in the service layer raises one of these.
Routes translate them to JSON using status_code; services never swallow them.

Input-shape problems (missing fields, bad types) are reported with
rentstock.validation.ValidationError instead.
"""

from __future__ import annotations


class InventoryError(Exception):
    """Base class for inventory and transaction lifecycle errors."""

    status_code = 400
    code = "INVENTORY_ERROR"

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        payload = {"error": self.message, "code": self.code}
        if self.details:
            payload["details"] = self.details
        return payload


class NotFound(InventoryError):
    """Referenced product, stock entry, asset, rental, or sale does not exist."""
    status_code = 404
    code = "NOT_FOUND"


class InvalidProductKind(InventoryError):
    """Product is countable where unit-tracked is required, or vice versa."""
    status_code = 400
    code = "INVALID_PRODUCT_KIND"


class InsufficientStock(InventoryError):
    """Adjustment or sale completion would drive a quantity negative."""
    status_code = 409
    code = "INSUFFICIENT_STOCK"


class AssetsUnavailable(InventoryError):
    """One or more requested asset units are not currently available."""
    status_code = 409
    code = "ASSETS_UNAVAILABLE"


class AssetInUse(InventoryError):
    """Delete attempted on a unit that is currently rented."""
    status_code = 409
    code = "ASSET_IN_USE"


class InvalidTransition(InventoryError):
    """Status change not permitted from the current state."""
    status_code = 409
    code = "INVALID_TRANSITION"


class InvalidState(InventoryError):
    """Edit or delete not permitted in the current status."""
    status_code = 409
    code = "INVALID_STATE"


class DuplicateCode(InventoryError):
    """Asset code already used for the same product."""
    status_code = 409
    code = "DUPLICATE_CODE"


class Conflict(InventoryError):
    """Uniqueness violation or concurrent modification."""
    status_code = 409
    code = "CONFLICT"
