# Overview: Request payload parsing into typed commands, returning a ValidationResult.

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Generic, TypeVar

from .domain import (
    CHANNELS,
    PAYMENT_METHODS,
    STATUS_CANCELLED,
    STATUS_PAID,
    STATUS_REGISTERED,
    CheckoutCommand,
    PurchaseCommand,
    PurchaseLineInput,
    SaleFilters,
    SaleLineInput,
)
from .errors import ValidationError
from .time_utils import parse_iso_datetime

T = TypeVar("T")

MAX_LIST_LIMIT = 500


@dataclass(frozen=True)
class ValidationResult(Generic[T]):
    value: T | None = None
    errors: tuple[str, ...] = field(default_factory=tuple)

    @property
    def ok(self) -> bool:
        return not self.errors

    def unwrap(self) -> T:
        """Return the parsed value or raise ValidationError with every problem found."""
        if self.errors:
            raise ValidationError("Invalid request", errors=list(self.errors))
        return self.value


def _to_int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValueError("boolean is not an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not value.is_integer():
            raise ValueError("fractional value")
        return int(value)
    text = str(value).strip()
    if not text:
        return None
    return int(text)


def _to_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text if text else None


def _to_date(value: Any) -> date | None:
    text = _to_text(value)
    if text is None:
        return None
    return date.fromisoformat(text)


def _int_field(data: dict, key: str, errors: list[str], *, label: str | None = None, required: bool = False, minimum: int | None = None) -> int | None:
    label = label or key
    try:
        value = _to_int(data.get(key))
    except (TypeError, ValueError):
        errors.append(f"{label} must be an integer")
        return None
    if value is None:
        if required:
            errors.append(f"{label} is required")
        return None
    if minimum is not None and value < minimum:
        errors.append(f"{label} must be >= {minimum}")
        return None
    return value


def _choice(data: dict, key: str, choices, errors: list[str]) -> str | None:
    value = _to_text(data.get(key))
    if value is None:
        errors.append(f"{key} is required")
        return None
    value = value.upper()
    if value not in choices:
        errors.append(f"{key} must be one of {', '.join(choices)}")
        return None
    return value


def _lines(data: dict, errors: list[str]) -> list[dict]:
    lines = data.get("lines")
    if not isinstance(lines, list) or not lines:
        errors.append("lines must be a non-empty list")
        return []
    good = []
    for i, line in enumerate(lines, start=1):
        if not isinstance(line, dict):
            errors.append(f"lines[{i}] must be an object")
            continue
        good.append(line)
    return good


def parse_checkout(data: Any, *, user_id: int | None = None) -> ValidationResult[CheckoutCommand]:
    if not isinstance(data, dict):
        return ValidationResult(errors=("JSON object body required",))

    errors: list[str] = []
    channel = _choice(data, "channel", CHANNELS, errors)
    payment_method = _choice(data, "payment_method", PAYMENT_METHODS, errors)
    customer_id = _int_field(data, "customer_id", errors, minimum=1)
    amount_received = _int_field(data, "amount_received_cents", errors, minimum=0)

    lines = []
    for i, line in enumerate(_lines(data, errors), start=1):
        product_id = _int_field(line, "product_id", errors, label=f"lines[{i}].product_id", required=True, minimum=1)
        quantity = _int_field(line, "quantity", errors, label=f"lines[{i}].quantity", required=True, minimum=1)
        discount = _int_field(line, "discount_cents", errors, label=f"lines[{i}].discount_cents", minimum=0)
        if product_id is not None and quantity is not None:
            lines.append(SaleLineInput(product_id=product_id, quantity=quantity, discount_cents=discount or 0))

    if errors:
        return ValidationResult(errors=tuple(errors))

    return ValidationResult(
        value=CheckoutCommand(
            channel=channel,
            payment_method=payment_method,
            lines=tuple(lines),
            customer_id=customer_id,
            payment_proof_ref=_to_text(data.get("payment_proof_ref")),
            billing_tax_id=_to_text(data.get("billing_tax_id")),
            billing_name=_to_text(data.get("billing_name")),
            amount_received_cents=amount_received,
            user_id=user_id,
        )
    )


def parse_purchase(data: Any, *, user_id: int | None = None) -> ValidationResult[PurchaseCommand]:
    if not isinstance(data, dict):
        return ValidationResult(errors=("JSON object body required",))

    errors: list[str] = []
    payment_method = _choice(data, "payment_method", PAYMENT_METHODS, errors)
    supplier_id = _int_field(data, "supplier_id", errors, minimum=1)

    lines = []
    for i, line in enumerate(_lines(data, errors), start=1):
        product_id = _int_field(line, "product_id", errors, label=f"lines[{i}].product_id", required=True, minimum=1)
        quantity = _int_field(line, "quantity", errors, label=f"lines[{i}].quantity", required=True, minimum=1)
        unit_cost = _int_field(line, "unit_cost_cents", errors, label=f"lines[{i}].unit_cost_cents", required=True, minimum=0)
        try:
            expiry = _to_date(line.get("expiry_date"))
        except ValueError:
            errors.append(f"lines[{i}].expiry_date must be YYYY-MM-DD")
            expiry = None
        if product_id is not None and quantity is not None and unit_cost is not None:
            lines.append(
                PurchaseLineInput(
                    product_id=product_id,
                    quantity=quantity,
                    unit_cost_cents=unit_cost,
                    lot_number=_to_text(line.get("lot_number")),
                    expiry_date=expiry,
                )
            )

    if errors:
        return ValidationResult(errors=tuple(errors))

    return ValidationResult(
        value=PurchaseCommand(
            payment_method=payment_method,
            lines=tuple(lines),
            supplier_id=supplier_id,
            invoice_number=_to_text(data.get("invoice_number")),
            observation=_to_text(data.get("observation")),
            payment_proof_ref=_to_text(data.get("payment_proof_ref")),
            user_id=user_id,
        )
    )


def parse_sale_filters(args) -> ValidationResult[SaleFilters]:
    """Query-string filters for the sales list."""
    errors: list[str] = []

    channel = _to_text(args.get("channel"))
    if channel is not None:
        channel = channel.upper()
        if channel not in CHANNELS:
            errors.append(f"channel must be one of {', '.join(CHANNELS)}")

    status = _to_text(args.get("status"))
    statuses = (STATUS_REGISTERED, STATUS_PAID, STATUS_CANCELLED)
    if status is not None:
        status = status.upper()
        if status not in statuses:
            errors.append(f"status must be one of {', '.join(statuses)}")

    customer_id = _int_field(args, "customer_id", errors, minimum=1)
    limit = _int_field(args, "limit", errors, minimum=1)

    dates = {}
    for key in ("date_from", "date_to"):
        try:
            dates[key] = parse_iso_datetime(args.get(key))
        except ValueError:
            errors.append(f"{key} must be an ISO-8601 datetime")

    if errors:
        return ValidationResult(errors=tuple(errors))

    return ValidationResult(
        value=SaleFilters(
            channel=channel,
            status=status,
            customer_id=customer_id,
            date_from=dates.get("date_from"),
            date_to=dates.get("date_to"),
            limit=min(limit or 200, MAX_LIST_LIMIT),
        )
    )


@dataclass(frozen=True)
class PurchaseFilters:
    supplier_id: int | None = None
    limit: int = 200


def parse_purchase_filters(args) -> ValidationResult[PurchaseFilters]:
    errors: list[str] = []
    supplier_id = _int_field(args, "supplier_id", errors, minimum=1)
    limit = _int_field(args, "limit", errors, minimum=1)
    if errors:
        return ValidationResult(errors=tuple(errors))
    return ValidationResult(value=PurchaseFilters(supplier_id=supplier_id, limit=min(limit or 200, MAX_LIST_LIMIT)))
