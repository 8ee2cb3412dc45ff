# Overview: Domain error taxonomy shared by the services and the HTTP boundary.

"""
Transaction engine errors.

Every business-rule violation is a DomainError carrying a stable code for
programmatic handling. None of them are retried: they leave the sale or
purchase exactly as it was before the call.

Usage:
    try:
        sale_lifecycle.approve(storage, tenant_id, sale_id)
    except InsufficientStock as e:
        for item in e.items:
            print(item["product_name"], item["available"])
"""

from __future__ import annotations

from typing import Any


class DomainError(Exception):
    """Base for caller-visible business failures."""

    code = "DOMAIN_ERROR"
    http_status = 400

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def as_dict(self) -> dict[str, Any]:
        return {
            "error": self.message,
            "code": self.code,
            "details": self.details,
        }


class ValidationError(DomainError):
    """400-level input problem."""

    code = "VALIDATION_ERROR"
    http_status = 400

    def __init__(self, message: str, errors: list[str] | None = None):
        super().__init__(message, details={"errors": list(errors or [message])})

    @property
    def errors(self) -> list[str]:
        return self.details["errors"]


class NotFound(DomainError):
    """Unknown sale/purchase/product/supplier/customer id within a tenant."""

    code = "NOT_FOUND"
    http_status = 404

    def __init__(self, entity: str, entity_id: int, tenant_id: int):
        super().__init__(
            f"{entity} {entity_id} not found",
            details={"entity": entity, "id": entity_id, "tenant_id": tenant_id},
        )


class InvalidStateTransition(DomainError):
    """Attempted transition is not legal from the current state."""

    code = "INVALID_STATE"
    http_status = 409

    def __init__(self, action: str, current: dict[str, str], reason: str | None = None):
        message = f"Cannot {action} sale in state {current}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message, details={"action": action, "current": current})


class InsufficientStock(DomainError):
    """A ledger batch would drive one or more products below zero."""

    code = "INSUFFICIENT_STOCK"
    http_status = 409

    def __init__(self, items: list[dict[str, Any]]):
        names = ", ".join(str(item.get("product_name") or item["product_id"]) for item in items)
        super().__init__(f"Insufficient stock for: {names}", details={"items": items})

    @property
    def items(self) -> list[dict[str, Any]]:
        return self.details["items"]

    @property
    def product_ids(self) -> list[int]:
        return [item["product_id"] for item in self.items]


class MissingPaymentProof(DomainError):
    """Non-cash payment method without an uploaded proof artifact."""

    code = "MISSING_PROOF"
    http_status = 422

    def __init__(self, payment_method: str):
        super().__init__(
            f"Payment method {payment_method} requires a payment proof",
            details={"payment_method": payment_method},
        )


class AuthorizationError(DomainError):
    """Caller's tenant context or role does not allow the operation."""

    code = "FORBIDDEN"
    http_status = 403


class AuthenticationRequired(AuthorizationError):
    code = "UNAUTHENTICATED"
    http_status = 401


class ConcurrencyConflict(DomainError):
    """Ledger contention outlasted the bounded retry budget."""

    code = "CONFLICT_RETRY_EXHAUSTED"
    http_status = 503

    def __init__(self, attempts: int):
        super().__init__(
            "Operation could not complete due to concurrent updates, please retry",
            details={"attempts": attempts},
        )
