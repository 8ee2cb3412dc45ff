# Overview: Value objects, commands and status vocabulary of the transaction engine.

"""
Records returned by the repositories are frozen snapshots: controllers never
hold a live ORM object, so the storage behind them can be swapped.
"""

from __future__ import annotations

from dataclasses import dataclass, field, asdict
from datetime import date, datetime
from typing import Literal

from .time_utils import to_utc_z


# =============================================================================
# VOCABULARY
# =============================================================================

CHANNEL_PHYSICAL = "PHYSICAL"
CHANNEL_ONLINE = "ONLINE"
CHANNELS = (CHANNEL_PHYSICAL, CHANNEL_ONLINE)

METHOD_CASH = "CASH"
METHOD_QR = "QR"
METHOD_TRANSFER = "TRANSFER"
PAYMENT_METHODS = (METHOD_CASH, METHOD_QR, METHOD_TRANSFER)

STATUS_REGISTERED = "REGISTERED"
STATUS_PAID = "PAID"
STATUS_CANCELLED = "CANCELLED"

FULFILLMENT_PENDING = "PENDING"
FULFILLMENT_DELIVERED = "DELIVERED"

FISCAL_NONE = "NONE"
FISCAL_ISSUED = "ISSUED"

PRODUCT_ACTIVE = "ACTIVE"

ROLE_OWNER = "OWNER"
ROLE_SELLER = "SELLER"

Channel = Literal["PHYSICAL", "ONLINE"]
PaymentMethod = Literal["CASH", "QR", "TRANSFER"]


# =============================================================================
# CATALOG / TENANT SNAPSHOTS
# =============================================================================

@dataclass(frozen=True)
class ProductRecord:
    id: int
    tenant_id: int
    name: str
    price_cents: int
    stock_current: int
    stock_minimum: int
    status: str
    version: int

    @property
    def is_active(self) -> bool:
        return self.status == PRODUCT_ACTIVE


@dataclass(frozen=True)
class TenantDisplay:
    """Tenant data printed on documents; always read fresh at render time."""
    id: int
    name: str
    address: str | None
    phone: str | None
    currency: str
    tax_rate_bps: int
    fiscal_tax_id: str | None
    fiscal_authorization: str | None


@dataclass(frozen=True)
class CustomerRecord:
    id: int
    name: str
    tax_id: str | None
    email: str | None


@dataclass(frozen=True)
class SupplierRecord:
    id: int
    name: str
    phone: str | None
    email: str | None


# =============================================================================
# LEDGER
# =============================================================================

@dataclass(frozen=True)
class StockDelta:
    product_id: int
    delta: int


@dataclass(frozen=True)
class StockChange:
    """Outcome of one product's ledger write."""
    product_id: int
    product_name: str
    previous: int
    current: int
    stock_minimum: int

    @property
    def below_minimum(self) -> bool:
        return self.current <= self.stock_minimum

    @property
    def depleted(self) -> bool:
        return self.current <= 0


# =============================================================================
# SALES
# =============================================================================

@dataclass(frozen=True)
class SaleLineRecord:
    position: int
    product_id: int
    product_name: str
    quantity: int
    unit_price_cents: int
    discount_cents: int
    subtotal_cents: int

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class SaleRecord:
    id: int
    tenant_id: int
    document_number: str
    channel: str
    payment_method: str
    status: str
    fulfillment_status: str
    fiscal_status: str
    total_cents: int
    discount_total_cents: int
    amount_received_cents: int | None
    change_cents: int | None
    customer_id: int | None
    billing_tax_id: str | None
    billing_name: str | None
    payment_proof_ref: str | None
    fiscal_number: str | None
    stock_committed: bool
    created_by_user_id: int | None
    created_at: datetime | None
    paid_at: datetime | None
    cancelled_at: datetime | None
    delivered_at: datetime | None
    invoiced_at: datetime | None
    lines: tuple[SaleLineRecord, ...] = ()

    def state(self) -> dict[str, str]:
        return {
            "status": self.status,
            "fulfillment_status": self.fulfillment_status,
            "fiscal_status": self.fiscal_status,
        }

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "document_number": self.document_number,
            "channel": self.channel,
            "payment_method": self.payment_method,
            "status": self.status,
            "fulfillment_status": self.fulfillment_status,
            "fiscal_status": self.fiscal_status,
            "total_cents": self.total_cents,
            "discount_total_cents": self.discount_total_cents,
            "amount_received_cents": self.amount_received_cents,
            "change_cents": self.change_cents,
            "customer_id": self.customer_id,
            "billing_tax_id": self.billing_tax_id,
            "billing_name": self.billing_name,
            "payment_proof_ref": self.payment_proof_ref,
            "fiscal_number": self.fiscal_number,
            "stock_committed": self.stock_committed,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "paid_at": to_utc_z(self.paid_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "delivered_at": to_utc_z(self.delivered_at),
            "invoiced_at": to_utc_z(self.invoiced_at),
            "lines": [line.to_dict() for line in self.lines],
        }


@dataclass(frozen=True)
class SaleLineInput:
    product_id: int
    quantity: int
    discount_cents: int = 0


@dataclass(frozen=True)
class CheckoutCommand:
    channel: Channel
    payment_method: PaymentMethod
    lines: tuple[SaleLineInput, ...]
    customer_id: int | None = None
    payment_proof_ref: str | None = None
    billing_tax_id: str | None = None
    billing_name: str | None = None
    amount_received_cents: int | None = None
    user_id: int | None = None


@dataclass(frozen=True)
class SaleDraft:
    """Fully priced sale ready to be inserted."""
    channel: str
    payment_method: str
    status: str
    fulfillment_status: str
    total_cents: int
    discount_total_cents: int
    lines: tuple[SaleLineRecord, ...]
    stock_committed: bool
    customer_id: int | None = None
    payment_proof_ref: str | None = None
    billing_tax_id: str | None = None
    billing_name: str | None = None
    amount_received_cents: int | None = None
    change_cents: int | None = None
    created_by_user_id: int | None = None
    paid_at: datetime | None = None
    delivered_at: datetime | None = None


@dataclass(frozen=True)
class SaleFilters:
    channel: str | None = None
    status: str | None = None
    customer_id: int | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None
    limit: int = 200


# =============================================================================
# PURCHASES
# =============================================================================

@dataclass(frozen=True)
class PurchaseLineRecord:
    position: int
    product_id: int
    product_name: str
    quantity: int
    unit_cost_cents: int
    subtotal_cents: int
    lot_number: str | None = None
    expiry_date: date | None = None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["expiry_date"] = self.expiry_date.isoformat() if self.expiry_date else None
        return data


@dataclass(frozen=True)
class PurchaseRecord:
    id: int
    tenant_id: int
    document_number: str
    supplier_id: int | None
    payment_method: str
    status: str
    total_cents: int
    invoice_number: str | None
    observation: str | None
    payment_proof_ref: str | None
    created_by_user_id: int | None
    created_at: datetime | None
    lines: tuple[PurchaseLineRecord, ...] = ()

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "document_number": self.document_number,
            "supplier_id": self.supplier_id,
            "payment_method": self.payment_method,
            "status": self.status,
            "total_cents": self.total_cents,
            "invoice_number": self.invoice_number,
            "observation": self.observation,
            "payment_proof_ref": self.payment_proof_ref,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "lines": [line.to_dict() for line in self.lines],
        }


@dataclass(frozen=True)
class PurchaseLineInput:
    product_id: int
    quantity: int
    unit_cost_cents: int
    lot_number: str | None = None
    expiry_date: date | None = None


@dataclass(frozen=True)
class PurchaseCommand:
    payment_method: PaymentMethod
    lines: tuple[PurchaseLineInput, ...]
    supplier_id: int | None = None
    invoice_number: str | None = None
    observation: str | None = None
    payment_proof_ref: str | None = None
    user_id: int | None = None


@dataclass(frozen=True)
class PurchaseDraft:
    payment_method: str
    total_cents: int
    lines: tuple[PurchaseLineRecord, ...]
    supplier_id: int | None = None
    invoice_number: str | None = None
    observation: str | None = None
    payment_proof_ref: str | None = None
    created_by_user_id: int | None = None


# =============================================================================
# EVENTS
# =============================================================================

@dataclass(frozen=True)
class EventRecord:
    event_type: str
    entity_type: str
    entity_id: int
    actor_user_id: int | None = None
    payload: dict = field(default_factory=dict)
