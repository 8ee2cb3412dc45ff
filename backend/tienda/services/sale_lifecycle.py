# Overview: Sale lifecycle controller; checkout and every named status transition.

from __future__ import annotations

import logging
from typing import Iterable

from ..domain import (
    CHANNEL_ONLINE,
    CHANNEL_PHYSICAL,
    CHANNELS,
    FISCAL_ISSUED,
    FULFILLMENT_DELIVERED,
    FULFILLMENT_PENDING,
    METHOD_CASH,
    PAYMENT_METHODS,
    STATUS_CANCELLED,
    STATUS_PAID,
    STATUS_REGISTERED,
    CheckoutCommand,
    SaleDraft,
    SaleFilters,
    SaleLineInput,
    SaleLineRecord,
    SaleRecord,
    StockDelta,
)
from ..errors import InvalidStateTransition, NotFound, ValidationError
from ..time_utils import utcnow
from . import event_log, inventory_ledger
from .concurrency import run_in_transaction
from .numbering_service import next_fiscal_number, next_sale_number
from .payment_gate import require_payment_proof

logger = logging.getLogger(__name__)

"""
Sale Lifecycle Invariants (authoritative)

- status: REGISTERED -> PAID | CANCELLED, PAID -> CANCELLED. Never backwards.
- fulfillment: PENDING -> DELIVERED, only while PAID.
- fiscal: NONE -> ISSUED, only from PAID; issuing twice returns the same number.
- PHYSICAL sales decrement stock at checkout and are PAID + DELIVERED at once.
- ONLINE sales hold no stock until approve; approve is gated on payment proof.
- stock_committed is True exactly while the sale holds decremented stock;
  cancel restores it once and clears the flag.
- Lines, price snapshots and total_cents are written once at checkout.
- Every transition is a single transaction: a rejected call changes nothing.
"""


def _run(storage, func):
    return run_in_transaction(
        storage,
        func,
        attempts=storage.retry_attempts,
        backoff_base=storage.retry_backoff,
    )


def _load(storage, tenant_id: int, sale_id: int, *, lock: bool = False) -> SaleRecord:
    sale = storage.sales.get(tenant_id, sale_id, lock=lock)
    if sale is None:
        raise NotFound("Sale", sale_id, tenant_id)
    return sale


def _decrements(lines: Iterable[SaleLineRecord]) -> list[StockDelta]:
    return [StockDelta(product_id=line.product_id, delta=-line.quantity) for line in lines]


def _restorations(lines: Iterable[SaleLineRecord]) -> list[StockDelta]:
    return [StockDelta(product_id=line.product_id, delta=line.quantity) for line in lines]


def price_lines(storage, tenant_id: int, lines: Iterable[SaleLineInput]) -> tuple[SaleLineRecord, ...]:
    """
    Snapshot the current catalog price of each line and compute its subtotal.

    subtotal = unit_price * quantity - discount
    """
    lines = list(lines)
    products = storage.products.get_many(tenant_id, [line.product_id for line in lines])

    priced = []
    for position, line in enumerate(lines, start=1):
        product = products.get(line.product_id)
        if product is None:
            raise NotFound("Product", line.product_id, tenant_id)
        if not product.is_active:
            raise ValidationError(f"Product {product.name} is not active")
        if line.quantity <= 0:
            raise ValidationError(f"Line {position}: quantity must be positive")
        if line.discount_cents < 0:
            raise ValidationError(f"Line {position}: discount cannot be negative")

        gross = product.price_cents * line.quantity
        if line.discount_cents > gross:
            raise ValidationError(f"Line {position}: discount exceeds line amount")

        priced.append(
            SaleLineRecord(
                position=position,
                product_id=product.id,
                product_name=product.name,
                quantity=line.quantity,
                unit_price_cents=product.price_cents,
                discount_cents=line.discount_cents,
                subtotal_cents=gross - line.discount_cents,
            )
        )
    return tuple(priced)


def checkout(storage, tenant_id: int, command: CheckoutCommand) -> SaleRecord:
    """
    Create a sale.

    PHYSICAL: stock leaves the counter now; the sale is PAID and DELIVERED.
    ONLINE: REGISTERED/PENDING with no stock touched and no stock pre-check;
    availability is decided by approve().
    """
    if command.channel not in CHANNELS:
        raise ValidationError(f"Unknown channel: {command.channel}")
    if command.payment_method not in PAYMENT_METHODS:
        raise ValidationError(f"Unknown payment method: {command.payment_method}")
    if not command.lines:
        raise ValidationError("Sale must have at least one line")

    def _op() -> SaleRecord:
        if command.customer_id is not None and storage.customers.get(tenant_id, command.customer_id) is None:
            raise NotFound("Customer", command.customer_id, tenant_id)

        lines = price_lines(storage, tenant_id, command.lines)
        total_cents = sum(line.subtotal_cents for line in lines)
        discount_total_cents = sum(line.discount_cents for line in lines)

        changes = []
        if command.channel == CHANNEL_PHYSICAL:
            amount_received_cents = None
            change_cents = None
            if command.payment_method == METHOD_CASH and command.amount_received_cents is not None:
                if command.amount_received_cents < total_cents:
                    raise ValidationError("Amount received is less than the sale total")
                amount_received_cents = command.amount_received_cents
                change_cents = amount_received_cents - total_cents

            changes = inventory_ledger.apply_deltas(storage.products, tenant_id, _decrements(lines))
            now = utcnow()
            draft = SaleDraft(
                channel=command.channel,
                payment_method=command.payment_method,
                status=STATUS_PAID,
                fulfillment_status=FULFILLMENT_DELIVERED,
                total_cents=total_cents,
                discount_total_cents=discount_total_cents,
                lines=lines,
                stock_committed=True,
                customer_id=command.customer_id,
                payment_proof_ref=command.payment_proof_ref,
                billing_tax_id=command.billing_tax_id,
                billing_name=command.billing_name,
                amount_received_cents=amount_received_cents,
                change_cents=change_cents,
                created_by_user_id=command.user_id,
                paid_at=now,
                delivered_at=now,
            )
        else:
            draft = SaleDraft(
                channel=command.channel,
                payment_method=command.payment_method,
                status=STATUS_REGISTERED,
                fulfillment_status=FULFILLMENT_PENDING,
                total_cents=total_cents,
                discount_total_cents=discount_total_cents,
                lines=lines,
                stock_committed=False,
                customer_id=command.customer_id,
                payment_proof_ref=command.payment_proof_ref,
                billing_tax_id=command.billing_tax_id,
                billing_name=command.billing_name,
                created_by_user_id=command.user_id,
            )

        document_number = next_sale_number(storage.sequences, tenant_id)
        sale = storage.sales.add(tenant_id, document_number, draft)

        event_log.append_event(
            storage.events,
            tenant_id=tenant_id,
            event_type=event_log.SALE_CREATED,
            entity_type="sale",
            entity_id=sale.id,
            actor_user_id=command.user_id,
            payload={"channel": sale.channel, "total_cents": sale.total_cents},
        )
        if sale.status == STATUS_PAID:
            event_log.append_event(
                storage.events,
                tenant_id=tenant_id,
                event_type=event_log.SALE_PAID,
                entity_type="sale",
                entity_id=sale.id,
                actor_user_id=command.user_id,
            )
        event_log.record_stock_signals(
            storage.events, tenant_id=tenant_id, changes=changes, actor_user_id=command.user_id
        )
        return sale

    sale = _run(storage, _op)
    logger.info(
        "sale.created",
        extra={
            "tenant_id": tenant_id,
            "sale_id": sale.id,
            "channel": sale.channel,
            "status": sale.status,
            "total_cents": sale.total_cents,
        },
    )
    return sale


def approve(storage, tenant_id: int, sale_id: int, *, user_id: int | None = None) -> SaleRecord:
    """
    REGISTERED -> PAID for online sales.

    Order: state check, payment gate, ledger batch decrement, status write.
    InsufficientStock leaves the sale REGISTERED and stock untouched.
    """
    def _op() -> SaleRecord:
        sale = _load(storage, tenant_id, sale_id, lock=True)
        if sale.channel != CHANNEL_ONLINE:
            raise InvalidStateTransition("approve", sale.state(), "only online sales require approval")
        if sale.status != STATUS_REGISTERED:
            raise InvalidStateTransition("approve", sale.state())

        require_payment_proof(sale.payment_method, sale.payment_proof_ref)

        changes = inventory_ledger.apply_deltas(storage.products, tenant_id, _decrements(sale.lines))
        updated = storage.sales.mark_paid(tenant_id, sale_id, paid_at=utcnow())

        event_log.append_event(
            storage.events,
            tenant_id=tenant_id,
            event_type=event_log.SALE_PAID,
            entity_type="sale",
            entity_id=sale_id,
            actor_user_id=user_id,
        )
        event_log.record_stock_signals(storage.events, tenant_id=tenant_id, changes=changes, actor_user_id=user_id)
        return updated

    sale = _run(storage, _op)
    logger.info("sale.approved", extra={"tenant_id": tenant_id, "sale_id": sale_id})
    return sale


def reject(storage, tenant_id: int, sale_id: int, *, user_id: int | None = None) -> SaleRecord:
    """REGISTERED -> CANCELLED for online sales; stock was never taken."""
    def _op() -> SaleRecord:
        sale = _load(storage, tenant_id, sale_id, lock=True)
        if sale.channel != CHANNEL_ONLINE:
            raise InvalidStateTransition("reject", sale.state(), "only online sales can be rejected")
        if sale.status != STATUS_REGISTERED:
            raise InvalidStateTransition("reject", sale.state())

        updated = storage.sales.mark_cancelled(tenant_id, sale_id, cancelled_at=utcnow())
        event_log.append_event(
            storage.events,
            tenant_id=tenant_id,
            event_type=event_log.SALE_REJECTED,
            entity_type="sale",
            entity_id=sale_id,
            actor_user_id=user_id,
        )
        return updated

    sale = _run(storage, _op)
    logger.info("sale.rejected", extra={"tenant_id": tenant_id, "sale_id": sale_id})
    return sale


def cancel(storage, tenant_id: int, sale_id: int, *, user_id: int | None = None) -> SaleRecord:
    """
    REGISTERED | PAID -> CANCELLED.

    A sale holding committed stock gets it back through one positive ledger
    batch. Cancelling twice is an InvalidStateTransition, so stock is
    restored at most once.
    """
    def _op() -> SaleRecord:
        sale = _load(storage, tenant_id, sale_id, lock=True)
        if sale.status == STATUS_CANCELLED:
            raise InvalidStateTransition("cancel", sale.state(), "sale is already cancelled")

        restored = False
        if sale.stock_committed:
            inventory_ledger.apply_deltas(storage.products, tenant_id, _restorations(sale.lines))
            restored = True

        updated = storage.sales.mark_cancelled(tenant_id, sale_id, cancelled_at=utcnow())
        event_log.append_event(
            storage.events,
            tenant_id=tenant_id,
            event_type=event_log.SALE_CANCELLED,
            entity_type="sale",
            entity_id=sale_id,
            actor_user_id=user_id,
            payload={"previous_status": sale.status, "stock_restored": restored},
        )
        return updated

    sale = _run(storage, _op)
    logger.info("sale.cancelled", extra={"tenant_id": tenant_id, "sale_id": sale_id})
    return sale


def deliver(storage, tenant_id: int, sale_id: int, *, user_id: int | None = None) -> SaleRecord:
    def _op() -> SaleRecord:
        sale = _load(storage, tenant_id, sale_id, lock=True)
        if sale.status != STATUS_PAID:
            raise InvalidStateTransition("deliver", sale.state(), "only paid sales can be delivered")
        if sale.fulfillment_status != FULFILLMENT_PENDING:
            raise InvalidStateTransition("deliver", sale.state(), "sale is already delivered")

        updated = storage.sales.mark_delivered(tenant_id, sale_id, delivered_at=utcnow())
        event_log.append_event(
            storage.events,
            tenant_id=tenant_id,
            event_type=event_log.SALE_DELIVERED,
            entity_type="sale",
            entity_id=sale_id,
            actor_user_id=user_id,
        )
        return updated

    sale = _run(storage, _op)
    logger.info("sale.delivered", extra={"tenant_id": tenant_id, "sale_id": sale_id})
    return sale


def issue_invoice(storage, tenant_id: int, sale_id: int, *, user_id: int | None = None) -> SaleRecord:
    """
    Stamp a fiscal number on a PAID sale.

    Idempotent: an ISSUED sale is returned as-is with its existing number and
    no new number is allocated.
    """
    def _op() -> SaleRecord:
        sale = _load(storage, tenant_id, sale_id, lock=True)
        if sale.fiscal_status == FISCAL_ISSUED:
            return sale
        if sale.status != STATUS_PAID:
            raise InvalidStateTransition("invoice", sale.state(), "only paid sales can be invoiced")

        fiscal_number = next_fiscal_number(storage.sequences, tenant_id)
        updated = storage.sales.stamp_invoice(
            tenant_id, sale_id, fiscal_number=fiscal_number, invoiced_at=utcnow()
        )
        event_log.append_event(
            storage.events,
            tenant_id=tenant_id,
            event_type=event_log.SALE_INVOICED,
            entity_type="sale",
            entity_id=sale_id,
            actor_user_id=user_id,
            payload={"fiscal_number": fiscal_number},
        )
        return updated

    sale = _run(storage, _op)
    logger.info(
        "sale.invoiced",
        extra={"tenant_id": tenant_id, "sale_id": sale_id, "fiscal_number": sale.fiscal_number},
    )
    return sale


def attach_payment_proof(storage, tenant_id: int, sale_id: int, artifact_ref: str) -> SaleRecord:
    """Link an uploaded proof to a sale still awaiting approval."""
    if not artifact_ref:
        raise ValidationError("artifact_ref is required")

    def _op() -> SaleRecord:
        sale = _load(storage, tenant_id, sale_id, lock=True)
        if sale.status != STATUS_REGISTERED:
            raise InvalidStateTransition(
                "attach payment proof to", sale.state(), "proof can only be attached before approval"
            )
        return storage.sales.attach_payment_proof(tenant_id, sale_id, artifact_ref=artifact_ref)

    sale = _run(storage, _op)
    logger.info("sale.payment_proof_attached", extra={"tenant_id": tenant_id, "sale_id": sale_id})
    return sale


def get_sale(storage, tenant_id: int, sale_id: int) -> SaleRecord:
    return _load(storage, tenant_id, sale_id)


def list_sales(storage, tenant_id: int, filters: SaleFilters | None = None) -> list[SaleRecord]:
    return storage.sales.list(tenant_id, filters or SaleFilters())
