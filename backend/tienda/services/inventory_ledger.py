# Overview: Inventory ledger; the only writer of Product.stock_current.

from __future__ import annotations

import logging
from typing import Iterable

from ..domain import StockChange, StockDelta
from ..errors import InsufficientStock, NotFound

logger = logging.getLogger(__name__)

"""
Inventory Ledger Invariants (authoritative)

- stock_current >= 0 for every product, always.
- A batch is all-or-nothing: every product is validated before any is written.
- Deltas for the same product are merged before validation.
- Products are locked in ascending id order.
- Each write is conditioned on the version read under the lock; a mismatch
  raises StaleDataError for the transaction runner to retry.
- The ledger never commits. The caller's unit of work does.
"""


def merge_deltas(deltas: Iterable[StockDelta]) -> dict[int, int]:
    """Sum deltas per product, ordered by product id."""
    merged: dict[int, int] = {}
    for d in deltas:
        merged[d.product_id] = merged.get(d.product_id, 0) + int(d.delta)
    return {pid: merged[pid] for pid in sorted(merged)}


def apply_deltas(products, tenant_id: int, deltas: Iterable[StockDelta]) -> list[StockChange]:
    """
    Apply a batch of stock deltas atomically within the caller's transaction.

    Raises InsufficientStock naming every product that would go negative, in
    which case nothing is written. Raises NotFound for a product outside the
    tenant.
    """
    merged = merge_deltas(deltas)
    if not merged:
        return []

    locked = products.lock_many(tenant_id, merged.keys())
    for product_id in merged:
        if product_id not in locked:
            raise NotFound("Product", product_id, tenant_id)

    shortfalls = []
    for product_id, delta in merged.items():
        current = locked[product_id]
        if current.stock_current + delta < 0:
            shortfalls.append({
                "product_id": product_id,
                "product_name": current.name,
                "requested": -delta,
                "available": current.stock_current,
            })
    if shortfalls:
        logger.info(
            "ledger.insufficient_stock",
            extra={"tenant_id": tenant_id, "product_ids": [s["product_id"] for s in shortfalls]},
        )
        raise InsufficientStock(shortfalls)

    changes = []
    for product_id, delta in merged.items():
        current = locked[product_id]
        new_stock = current.stock_current + delta
        if delta:
            products.write_stock(tenant_id, product_id, new_stock, current.version)
        changes.append(
            StockChange(
                product_id=product_id,
                product_name=current.name,
                previous=current.stock_current,
                current=new_stock,
                stock_minimum=current.stock_minimum,
            )
        )

    logger.debug(
        "ledger.applied",
        extra={"tenant_id": tenant_id, "deltas": merged},
    )
    return changes


def apply_delta(products, tenant_id: int, product_id: int, delta: int) -> StockChange:
    """Single-product form of apply_deltas."""
    return apply_deltas(products, tenant_id, [StockDelta(product_id=product_id, delta=delta)])[0]
