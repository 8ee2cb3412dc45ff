"""Request parsing and gateway header handling."""

from datetime import date

import pytest

from tienda.authorization import principal_from_headers, require_role, PURCHASE_ROLES
from tienda.errors import AuthenticationRequired, AuthorizationError, ValidationError
from tienda.validation import parse_checkout, parse_purchase, parse_sale_filters


def test_checkout_is_normalised():
    result = parse_checkout(
        {
            "channel": " online ",
            "payment_method": "qr",
            "customer_id": "3",
            "payment_proof_ref": "  ",
            "lines": [{"product_id": 1, "quantity": "2", "discount_cents": 50}],
        },
        user_id=9,
    )

    command = result.unwrap()
    assert command.channel == "ONLINE"
    assert command.payment_method == "QR"
    assert command.customer_id == 3
    assert command.payment_proof_ref is None
    assert command.lines[0].quantity == 2
    assert command.lines[0].discount_cents == 50
    assert command.user_id == 9


@pytest.mark.parametrize("body", [None, [], "text"])
def test_checkout_requires_object(body):
    assert not parse_checkout(body).ok


def test_checkout_rejects_fractional_and_boolean_quantities():
    result = parse_checkout(
        {
            "channel": "PHYSICAL",
            "payment_method": "CASH",
            "lines": [{"product_id": 1, "quantity": 1.5}, {"product_id": True, "quantity": 1}],
        }
    )

    assert result.errors == (
        "lines[1].quantity must be an integer",
        "lines[2].product_id must be an integer",
    )
    with pytest.raises(ValidationError) as exc:
        result.unwrap()
    assert exc.value.errors == list(result.errors)


def test_purchase_parses_expiry_date():
    command = parse_purchase(
        {
            "payment_method": "TRANSFER",
            "payment_proof_ref": "1/wire.pdf",
            "lines": [{"product_id": 4, "quantity": 10, "unit_cost_cents": 0, "expiry_date": "2027-06-30"}],
        }
    ).unwrap()

    assert command.lines[0].expiry_date == date(2027, 6, 30)
    assert command.lines[0].unit_cost_cents == 0


def test_purchase_requires_unit_cost():
    result = parse_purchase({"payment_method": "CASH", "lines": [{"product_id": 4, "quantity": 1}]})
    assert result.errors == ("lines[1].unit_cost_cents is required",)


def test_sale_filters_cap_limit_and_parse_dates():
    filters = parse_sale_filters({"limit": "5000", "date_from": "2026-01-01T00:00:00Z", "status": "paid"}).unwrap()

    assert filters.limit == 500
    assert filters.status == "PAID"
    assert filters.date_from.year == 2026


def test_principal_from_headers():
    principal = principal_from_headers({"X-Tenant-Id": "4", "X-User-Role": "owner", "X-User-Id": "12"})

    assert (principal.tenant_id, principal.role, principal.user_id) == (4, "OWNER", 12)
    assert require_role(principal, PURCHASE_ROLES) is principal


@pytest.mark.parametrize(
    "headers",
    [
        {},
        {"X-Tenant-Id": "4"},
        {"X-User-Role": "OWNER"},
        {"X-Tenant-Id": "0", "X-User-Role": "OWNER"},
        {"X-Tenant-Id": "4", "X-User-Role": "OWNER", "X-User-Id": "me"},
    ],
)
def test_missing_or_malformed_headers(headers):
    with pytest.raises(AuthenticationRequired):
        principal_from_headers(headers)


def test_seller_is_not_a_purchase_role():
    principal = principal_from_headers({"X-Tenant-Id": "4", "X-User-Role": "SELLER"})

    with pytest.raises(AuthorizationError) as exc:
        require_role(principal, PURCHASE_ROLES)
    assert exc.value.http_status == 403
