# Overview: Domain event appends, including the low-stock signal raised after ledger writes.

from __future__ import annotations

from typing import Iterable

from ..domain import EventRecord, StockChange

SALE_CREATED = "sale.created"
SALE_PAID = "sale.paid"
SALE_REJECTED = "sale.rejected"
SALE_CANCELLED = "sale.cancelled"
SALE_DELIVERED = "sale.delivered"
SALE_INVOICED = "sale.invoiced"
PURCHASE_REGISTERED = "purchase.registered"
STOCK_LOW = "stock.low"
STOCK_DEPLETED = "stock.depleted"


def append_event(
    events,
    *,
    tenant_id: int,
    event_type: str,
    entity_type: str,
    entity_id: int,
    actor_user_id: int | None = None,
    payload: dict | None = None,
) -> EventRecord:
    """
    Append-only domain event.

    - No domain logic here.
    - Written in the caller's transaction; rolled back with it.
    """
    record = EventRecord(
        event_type=event_type,
        entity_type=entity_type,
        entity_id=entity_id,
        actor_user_id=actor_user_id,
        payload=payload or {},
    )
    events.append(tenant_id, record)
    return record


def record_stock_signals(
    events,
    *,
    tenant_id: int,
    changes: Iterable[StockChange],
    actor_user_id: int | None = None,
) -> list[EventRecord]:
    """One stock.depleted or stock.low event per product that ended at or below its minimum."""
    emitted = []
    for change in changes:
        if not change.below_minimum:
            continue
        emitted.append(
            append_event(
                events,
                tenant_id=tenant_id,
                event_type=STOCK_DEPLETED if change.depleted else STOCK_LOW,
                entity_type="product",
                entity_id=change.product_id,
                actor_user_id=actor_user_id,
                payload={
                    "product_name": change.product_name,
                    "stock_current": change.current,
                    "stock_minimum": change.stock_minimum,
                },
            )
        )
    return emitted
