# Overview: Purchase lifecycle controller; registers supplier restocking.

from __future__ import annotations

import logging

from ..domain import (
    PAYMENT_METHODS,
    PurchaseCommand,
    PurchaseDraft,
    PurchaseLineRecord,
    PurchaseRecord,
    StockDelta,
)
from ..errors import NotFound, ValidationError
from . import event_log, inventory_ledger
from .concurrency import run_in_transaction
from .numbering_service import next_purchase_number
from .payment_gate import require_payment_proof

logger = logging.getLogger(__name__)


class PurchaseError(ValidationError):
    """Purchase input that cannot be registered."""
    pass


def _price_lines(storage, tenant_id: int, command: PurchaseCommand) -> tuple[PurchaseLineRecord, ...]:
    products = storage.products.get_many(tenant_id, [line.product_id for line in command.lines])

    priced = []
    for position, line in enumerate(command.lines, start=1):
        product = products.get(line.product_id)
        if product is None:
            raise NotFound("Product", line.product_id, tenant_id)
        if line.quantity <= 0:
            raise PurchaseError(f"Line {position}: quantity must be positive")
        if line.unit_cost_cents < 0:
            raise PurchaseError(f"Line {position}: unit cost cannot be negative")

        priced.append(
            PurchaseLineRecord(
                position=position,
                product_id=product.id,
                product_name=product.name,
                quantity=line.quantity,
                unit_cost_cents=line.unit_cost_cents,
                subtotal_cents=line.unit_cost_cents * line.quantity,
                lot_number=line.lot_number,
                expiry_date=line.expiry_date,
            )
        )
    return tuple(priced)


def create_purchase(storage, tenant_id: int, command: PurchaseCommand) -> PurchaseRecord:
    """
    Register a purchase and add its quantities to stock in one transaction.

    The payment proof check runs before anything else, so a QR or transfer
    purchase without proof never reaches the ledger. Purchases settle on
    creation and have no further transitions.
    """
    if command.payment_method not in PAYMENT_METHODS:
        raise PurchaseError(f"Unknown payment method: {command.payment_method}")
    require_payment_proof(command.payment_method, command.payment_proof_ref)
    if not command.lines:
        raise PurchaseError("Purchase must have at least one line")

    def _op() -> PurchaseRecord:
        if command.supplier_id is not None and storage.suppliers.get(tenant_id, command.supplier_id) is None:
            raise NotFound("Supplier", command.supplier_id, tenant_id)

        lines = _price_lines(storage, tenant_id, command)
        total_cents = sum(line.subtotal_cents for line in lines)

        changes = inventory_ledger.apply_deltas(
            storage.products,
            tenant_id,
            [StockDelta(product_id=line.product_id, delta=line.quantity) for line in lines],
        )

        document_number = next_purchase_number(storage.sequences, tenant_id)
        purchase = storage.purchases.add(
            tenant_id,
            document_number,
            PurchaseDraft(
                payment_method=command.payment_method,
                total_cents=total_cents,
                lines=lines,
                supplier_id=command.supplier_id,
                invoice_number=command.invoice_number,
                observation=command.observation,
                payment_proof_ref=command.payment_proof_ref,
                created_by_user_id=command.user_id,
            ),
        )

        event_log.append_event(
            storage.events,
            tenant_id=tenant_id,
            event_type=event_log.PURCHASE_REGISTERED,
            entity_type="purchase",
            entity_id=purchase.id,
            actor_user_id=command.user_id,
            payload={
                "total_cents": purchase.total_cents,
                "stock": {str(c.product_id): c.current for c in changes},
            },
        )
        # A restock can still leave a product at or below its minimum
        event_log.record_stock_signals(
            storage.events, tenant_id=tenant_id, changes=changes, actor_user_id=command.user_id
        )
        return purchase

    purchase = run_in_transaction(
        storage,
        _op,
        attempts=storage.retry_attempts,
        backoff_base=storage.retry_backoff,
    )
    logger.info(
        "purchase.registered",
        extra={
            "tenant_id": tenant_id,
            "purchase_id": purchase.id,
            "supplier_id": purchase.supplier_id,
            "total_cents": purchase.total_cents,
        },
    )
    return purchase


def get_purchase(storage, tenant_id: int, purchase_id: int) -> PurchaseRecord:
    purchase = storage.purchases.get(tenant_id, purchase_id)
    if purchase is None:
        raise NotFound("Purchase", purchase_id, tenant_id)
    return purchase


def list_purchases(storage, tenant_id: int, *, supplier_id: int | None = None, limit: int = 200) -> list[PurchaseRecord]:
    return storage.purchases.list(tenant_id, supplier_id=supplier_id, limit=limit)
