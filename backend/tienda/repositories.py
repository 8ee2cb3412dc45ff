# Overview: Repository interfaces per aggregate and their SQLAlchemy implementations.

"""
Controllers depend on the Protocols below, never on ORM objects. The SQL
implementations load rows, convert them into the frozen records from
tienda.domain and write through explicit, typed commands (mark_paid,
stamp_invoice, ...). There is no generic "patch these fields" method.

All SQL repositories share Flask-SQLAlchemy's scoped session, so every write
made inside one SqlStorage unit of work commits or rolls back together.
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Iterable, Protocol

from sqlalchemy import select, text, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from .extensions import db
from .models import (
    Customer,
    DocumentSequence,
    DomainEvent,
    Product,
    Purchase,
    PurchaseLine,
    Sale,
    SaleLine,
    Supplier,
    Tenant,
)
from .domain import (
    CustomerRecord,
    EventRecord,
    FISCAL_ISSUED,
    FULFILLMENT_DELIVERED,
    PRODUCT_ACTIVE,
    ProductRecord,
    PurchaseDraft,
    PurchaseLineRecord,
    PurchaseRecord,
    STATUS_CANCELLED,
    STATUS_PAID,
    SaleDraft,
    SaleFilters,
    SaleLineRecord,
    SaleRecord,
    SupplierRecord,
    TenantDisplay,
)
from .services.concurrency import lock_for_update


# =============================================================================
# INTERFACES
# =============================================================================

class ProductRepository(Protocol):
    def get(self, tenant_id: int, product_id: int) -> ProductRecord | None: ...

    def get_many(self, tenant_id: int, product_ids: Iterable[int]) -> dict[int, ProductRecord]: ...

    def lock_many(self, tenant_id: int, product_ids: Iterable[int]) -> dict[int, ProductRecord]: ...

    def write_stock(self, tenant_id: int, product_id: int, new_stock: int, expected_version: int) -> None: ...

    def list_below_minimum(self, tenant_id: int) -> list[ProductRecord]: ...


class SaleRepository(Protocol):
    def add(self, tenant_id: int, document_number: str, draft: SaleDraft) -> SaleRecord: ...

    def get(self, tenant_id: int, sale_id: int, *, lock: bool = False) -> SaleRecord | None: ...

    def list(self, tenant_id: int, filters: SaleFilters) -> list[SaleRecord]: ...

    def mark_paid(self, tenant_id: int, sale_id: int, *, paid_at: datetime) -> SaleRecord: ...

    def mark_cancelled(self, tenant_id: int, sale_id: int, *, cancelled_at: datetime) -> SaleRecord: ...

    def mark_delivered(self, tenant_id: int, sale_id: int, *, delivered_at: datetime) -> SaleRecord: ...

    def stamp_invoice(self, tenant_id: int, sale_id: int, *, fiscal_number: str, invoiced_at: datetime) -> SaleRecord: ...

    def attach_payment_proof(self, tenant_id: int, sale_id: int, *, artifact_ref: str) -> SaleRecord: ...


class PurchaseRepository(Protocol):
    def add(self, tenant_id: int, document_number: str, draft: PurchaseDraft) -> PurchaseRecord: ...

    def get(self, tenant_id: int, purchase_id: int) -> PurchaseRecord | None: ...

    def list(self, tenant_id: int, *, supplier_id: int | None = None, limit: int = 200) -> list[PurchaseRecord]: ...


class TenantRepository(Protocol):
    def get_display(self, tenant_id: int) -> TenantDisplay | None: ...


class SupplierRepository(Protocol):
    def get(self, tenant_id: int, supplier_id: int) -> SupplierRecord | None: ...


class CustomerRepository(Protocol):
    def get(self, tenant_id: int, customer_id: int) -> CustomerRecord | None: ...


class SequenceRepository(Protocol):
    def allocate(self, tenant_id: int, document_type: str) -> int: ...


class EventLog(Protocol):
    def append(self, tenant_id: int, event: EventRecord) -> None: ...

    def list(self, tenant_id: int, *, event_type: str | None = None, limit: int = 200) -> list[dict]: ...


# =============================================================================
# CONVERSIONS
# =============================================================================

def _product_record(row) -> ProductRecord:
    return ProductRecord(
        id=row.id,
        tenant_id=row.tenant_id,
        name=row.name,
        price_cents=row.price_cents,
        stock_current=row.stock_current,
        stock_minimum=row.stock_minimum,
        status=row.status,
        version=row.version,
    )


def _sale_record(sale: Sale) -> SaleRecord:
    return SaleRecord(
        id=sale.id,
        tenant_id=sale.tenant_id,
        document_number=sale.document_number,
        channel=sale.channel,
        payment_method=sale.payment_method,
        status=sale.status,
        fulfillment_status=sale.fulfillment_status,
        fiscal_status=sale.fiscal_status,
        total_cents=sale.total_cents,
        discount_total_cents=sale.discount_total_cents,
        amount_received_cents=sale.amount_received_cents,
        change_cents=sale.change_cents,
        customer_id=sale.customer_id,
        billing_tax_id=sale.billing_tax_id,
        billing_name=sale.billing_name,
        payment_proof_ref=sale.payment_proof_ref,
        fiscal_number=sale.fiscal_number,
        stock_committed=bool(sale.stock_committed),
        created_by_user_id=sale.created_by_user_id,
        created_at=sale.created_at,
        paid_at=sale.paid_at,
        cancelled_at=sale.cancelled_at,
        delivered_at=sale.delivered_at,
        invoiced_at=sale.invoiced_at,
        lines=tuple(
            SaleLineRecord(
                position=line.position,
                product_id=line.product_id,
                product_name=line.product_name,
                quantity=line.quantity,
                unit_price_cents=line.unit_price_cents,
                discount_cents=line.discount_cents,
                subtotal_cents=line.subtotal_cents,
            )
            for line in sale.lines
        ),
    )


def _purchase_record(purchase: Purchase) -> PurchaseRecord:
    return PurchaseRecord(
        id=purchase.id,
        tenant_id=purchase.tenant_id,
        document_number=purchase.document_number,
        supplier_id=purchase.supplier_id,
        payment_method=purchase.payment_method,
        status=purchase.status,
        total_cents=purchase.total_cents,
        invoice_number=purchase.invoice_number,
        observation=purchase.observation,
        payment_proof_ref=purchase.payment_proof_ref,
        created_by_user_id=purchase.created_by_user_id,
        created_at=purchase.created_at,
        lines=tuple(
            PurchaseLineRecord(
                position=line.position,
                product_id=line.product_id,
                product_name=line.product_name,
                quantity=line.quantity,
                unit_cost_cents=line.unit_cost_cents,
                subtotal_cents=line.subtotal_cents,
                lot_number=line.lot_number,
                expiry_date=line.expiry_date,
            )
            for line in purchase.lines
        ),
    )


# =============================================================================
# SQLALCHEMY IMPLEMENTATIONS
# =============================================================================

_PRODUCT_COLUMNS = (
    Product.id,
    Product.tenant_id,
    Product.name,
    Product.price_cents,
    Product.stock_current,
    Product.stock_minimum,
    Product.status,
    Product.version,
)


class SqlProductRepository:
    def get(self, tenant_id: int, product_id: int) -> ProductRecord | None:
        row = db.session.execute(
            select(*_PRODUCT_COLUMNS).where(Product.id == product_id, Product.tenant_id == tenant_id)
        ).first()
        return _product_record(row) if row else None

    def get_many(self, tenant_id: int, product_ids: Iterable[int]) -> dict[int, ProductRecord]:
        ids = sorted(set(product_ids))
        if not ids:
            return {}
        rows = db.session.execute(
            select(*_PRODUCT_COLUMNS).where(Product.tenant_id == tenant_id, Product.id.in_(ids))
        ).all()
        return {row.id: _product_record(row) for row in rows}

    def lock_many(self, tenant_id: int, product_ids: Iterable[int]) -> dict[int, ProductRecord]:
        # Ascending id order so two batches over the same products never
        # deadlock on PostgreSQL.
        ids = sorted(set(product_ids))
        if not ids:
            return {}
        stmt = lock_for_update(
            select(*_PRODUCT_COLUMNS)
            .where(Product.tenant_id == tenant_id, Product.id.in_(ids))
            .order_by(Product.id)
        )
        rows = db.session.execute(stmt).all()
        return {row.id: _product_record(row) for row in rows}

    def write_stock(self, tenant_id: int, product_id: int, new_stock: int, expected_version: int) -> None:
        result = db.session.execute(
            update(Product)
            .where(
                Product.id == product_id,
                Product.tenant_id == tenant_id,
                Product.version == expected_version,
            )
            .values(stock_current=new_stock, version=Product.version + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise StaleDataError(
                f"Product {product_id} changed concurrently (expected version {expected_version})"
            )

    def list_below_minimum(self, tenant_id: int) -> list[ProductRecord]:
        rows = db.session.execute(
            select(*_PRODUCT_COLUMNS)
            .where(
                Product.tenant_id == tenant_id,
                Product.status == PRODUCT_ACTIVE,
                Product.stock_current <= Product.stock_minimum,
            )
            .order_by(Product.stock_current, Product.name)
        ).all()
        return [_product_record(row) for row in rows]


class SqlSaleRepository:
    def _load(self, tenant_id: int, sale_id: int, *, lock: bool = False) -> Sale | None:
        query = db.session.query(Sale).filter_by(id=sale_id, tenant_id=tenant_id)
        if lock:
            query = lock_for_update(query).populate_existing()
        return query.first()

    def _require(self, tenant_id: int, sale_id: int) -> Sale:
        sale = self._load(tenant_id, sale_id)
        if sale is None:
            raise LookupError(f"Sale {sale_id} vanished for tenant {tenant_id}")
        return sale

    def add(self, tenant_id: int, document_number: str, draft: SaleDraft) -> SaleRecord:
        sale = Sale(
            tenant_id=tenant_id,
            document_number=document_number,
            channel=draft.channel,
            payment_method=draft.payment_method,
            status=draft.status,
            fulfillment_status=draft.fulfillment_status,
            total_cents=draft.total_cents,
            discount_total_cents=draft.discount_total_cents,
            amount_received_cents=draft.amount_received_cents,
            change_cents=draft.change_cents,
            customer_id=draft.customer_id,
            billing_tax_id=draft.billing_tax_id,
            billing_name=draft.billing_name,
            payment_proof_ref=draft.payment_proof_ref,
            stock_committed=draft.stock_committed,
            created_by_user_id=draft.created_by_user_id,
            paid_at=draft.paid_at,
            delivered_at=draft.delivered_at,
        )
        sale.lines = [
            SaleLine(
                position=line.position,
                product_id=line.product_id,
                product_name=line.product_name,
                quantity=line.quantity,
                unit_price_cents=line.unit_price_cents,
                discount_cents=line.discount_cents,
                subtotal_cents=line.subtotal_cents,
            )
            for line in draft.lines
        ]
        db.session.add(sale)
        db.session.flush()
        db.session.refresh(sale)
        return _sale_record(sale)

    def get(self, tenant_id: int, sale_id: int, *, lock: bool = False) -> SaleRecord | None:
        sale = self._load(tenant_id, sale_id, lock=lock)
        return _sale_record(sale) if sale else None

    def list(self, tenant_id: int, filters: SaleFilters) -> list[SaleRecord]:
        query = db.session.query(Sale).filter(Sale.tenant_id == tenant_id)
        if filters.channel:
            query = query.filter(Sale.channel == filters.channel)
        if filters.status:
            query = query.filter(Sale.status == filters.status)
        if filters.customer_id is not None:
            query = query.filter(Sale.customer_id == filters.customer_id)
        if filters.date_from is not None:
            query = query.filter(Sale.created_at >= filters.date_from)
        if filters.date_to is not None:
            query = query.filter(Sale.created_at <= filters.date_to)
        sales = query.order_by(Sale.created_at.desc(), Sale.id.desc()).limit(filters.limit).all()
        return [_sale_record(sale) for sale in sales]

    def mark_paid(self, tenant_id: int, sale_id: int, *, paid_at: datetime) -> SaleRecord:
        sale = self._require(tenant_id, sale_id)
        sale.status = STATUS_PAID
        sale.stock_committed = True
        sale.paid_at = paid_at
        db.session.flush()
        return _sale_record(sale)

    def mark_cancelled(self, tenant_id: int, sale_id: int, *, cancelled_at: datetime) -> SaleRecord:
        sale = self._require(tenant_id, sale_id)
        sale.status = STATUS_CANCELLED
        sale.stock_committed = False
        sale.cancelled_at = cancelled_at
        db.session.flush()
        return _sale_record(sale)

    def mark_delivered(self, tenant_id: int, sale_id: int, *, delivered_at: datetime) -> SaleRecord:
        sale = self._require(tenant_id, sale_id)
        sale.fulfillment_status = FULFILLMENT_DELIVERED
        sale.delivered_at = delivered_at
        db.session.flush()
        return _sale_record(sale)

    def stamp_invoice(self, tenant_id: int, sale_id: int, *, fiscal_number: str, invoiced_at: datetime) -> SaleRecord:
        sale = self._require(tenant_id, sale_id)
        sale.fiscal_status = FISCAL_ISSUED
        sale.fiscal_number = fiscal_number
        sale.invoiced_at = invoiced_at
        db.session.flush()
        return _sale_record(sale)

    def attach_payment_proof(self, tenant_id: int, sale_id: int, *, artifact_ref: str) -> SaleRecord:
        sale = self._require(tenant_id, sale_id)
        sale.payment_proof_ref = artifact_ref
        db.session.flush()
        return _sale_record(sale)


class SqlPurchaseRepository:
    def add(self, tenant_id: int, document_number: str, draft: PurchaseDraft) -> PurchaseRecord:
        purchase = Purchase(
            tenant_id=tenant_id,
            document_number=document_number,
            supplier_id=draft.supplier_id,
            payment_method=draft.payment_method,
            total_cents=draft.total_cents,
            invoice_number=draft.invoice_number,
            observation=draft.observation,
            payment_proof_ref=draft.payment_proof_ref,
            created_by_user_id=draft.created_by_user_id,
        )
        purchase.lines = [
            PurchaseLine(
                position=line.position,
                product_id=line.product_id,
                product_name=line.product_name,
                quantity=line.quantity,
                unit_cost_cents=line.unit_cost_cents,
                subtotal_cents=line.subtotal_cents,
                lot_number=line.lot_number,
                expiry_date=line.expiry_date,
            )
            for line in draft.lines
        ]
        db.session.add(purchase)
        db.session.flush()
        db.session.refresh(purchase)
        return _purchase_record(purchase)

    def get(self, tenant_id: int, purchase_id: int) -> PurchaseRecord | None:
        purchase = db.session.query(Purchase).filter_by(id=purchase_id, tenant_id=tenant_id).first()
        return _purchase_record(purchase) if purchase else None

    def list(self, tenant_id: int, *, supplier_id: int | None = None, limit: int = 200) -> list[PurchaseRecord]:
        query = db.session.query(Purchase).filter(Purchase.tenant_id == tenant_id)
        if supplier_id is not None:
            query = query.filter(Purchase.supplier_id == supplier_id)
        purchases = query.order_by(Purchase.created_at.desc(), Purchase.id.desc()).limit(limit).all()
        return [_purchase_record(p) for p in purchases]


class SqlTenantRepository:
    def get_display(self, tenant_id: int) -> TenantDisplay | None:
        tenant = db.session.get(Tenant, tenant_id)
        if tenant is None:
            return None
        return TenantDisplay(
            id=tenant.id,
            name=tenant.name,
            address=tenant.address,
            phone=tenant.phone,
            currency=tenant.currency,
            tax_rate_bps=tenant.tax_rate_bps,
            fiscal_tax_id=tenant.fiscal_tax_id,
            fiscal_authorization=tenant.fiscal_authorization,
        )


class SqlSupplierRepository:
    def get(self, tenant_id: int, supplier_id: int) -> SupplierRecord | None:
        supplier = db.session.query(Supplier).filter_by(id=supplier_id, tenant_id=tenant_id).first()
        if supplier is None:
            return None
        return SupplierRecord(id=supplier.id, name=supplier.name, phone=supplier.phone, email=supplier.email)


class SqlCustomerRepository:
    def get(self, tenant_id: int, customer_id: int) -> CustomerRecord | None:
        customer = db.session.query(Customer).filter_by(id=customer_id, tenant_id=tenant_id).first()
        if customer is None:
            return None
        return CustomerRecord(id=customer.id, name=customer.name, tax_id=customer.tax_id, email=customer.email)


class SqlSequenceRepository:
    def allocate(self, tenant_id: int, document_type: str) -> int:
        """
        Atomically allocate the next number for (tenant_id, document_type).

        The UPDATE takes the row lock; the first allocation for a pair
        inserts the row inside a savepoint so a racing insert falls back to
        the UPDATE path instead of aborting the caller's transaction.
        """
        stmt = (
            update(DocumentSequence)
            .where(
                DocumentSequence.tenant_id == tenant_id,
                DocumentSequence.document_type == document_type,
            )
            .values(next_number=DocumentSequence.next_number + 1)
            .execution_options(synchronize_session=False)
        )

        result = db.session.execute(stmt)
        if not result.rowcount:
            try:
                with db.session.begin_nested():
                    db.session.add(DocumentSequence(tenant_id=tenant_id, document_type=document_type, next_number=2))
                return 1
            except IntegrityError:
                result = db.session.execute(stmt)
                if not result.rowcount:
                    raise

        current = db.session.execute(
            select(DocumentSequence.next_number).where(
                DocumentSequence.tenant_id == tenant_id,
                DocumentSequence.document_type == document_type,
            )
        ).scalar_one()
        return current - 1


class SqlEventLog:
    """
    Append-only event log.

    - No domain logic here.
    - No deletes/updates of existing events.
    """

    def append(self, tenant_id: int, event: EventRecord) -> None:
        db.session.add(
            DomainEvent(
                tenant_id=tenant_id,
                event_type=event.event_type,
                entity_type=event.entity_type,
                entity_id=event.entity_id,
                actor_user_id=event.actor_user_id,
                payload=json.dumps(event.payload, sort_keys=True) if event.payload else None,
            )
        )
        db.session.flush()

    def list(self, tenant_id: int, *, event_type: str | None = None, limit: int = 200) -> list[dict]:
        query = db.session.query(DomainEvent).filter(DomainEvent.tenant_id == tenant_id)
        if event_type:
            query = query.filter(DomainEvent.event_type == event_type)
        events = query.order_by(DomainEvent.id.desc()).limit(limit).all()
        return [
            {
                "id": ev.id,
                "event_type": ev.event_type,
                "entity_type": ev.entity_type,
                "entity_id": ev.entity_id,
                "actor_user_id": ev.actor_user_id,
                "payload": json.loads(ev.payload) if ev.payload else {},
                "occurred_at": ev.occurred_at,
            }
            for ev in events
        ]


class SqlStorage:
    """
    Unit of work over the Flask-SQLAlchemy session plus one repository per
    aggregate.

    begin() on SQLite issues BEGIN IMMEDIATE so the write lock is taken
    before the first read; elsewhere row locks (SELECT ... FOR UPDATE) do the
    per-product serialization.
    """

    def __init__(self, *, retry_attempts: int = 3, retry_backoff: float = 0.05):
        self.retry_attempts = retry_attempts
        self.retry_backoff = retry_backoff
        self.products = SqlProductRepository()
        self.sales = SqlSaleRepository()
        self.purchases = SqlPurchaseRepository()
        self.tenants = SqlTenantRepository()
        self.suppliers = SqlSupplierRepository()
        self.customers = SqlCustomerRepository()
        self.sequences = SqlSequenceRepository()
        self.events = SqlEventLog()

    def begin(self) -> None:
        if db.engine.dialect.name == "sqlite":
            # Ends any read-only transaction the session autobegan
            db.session.rollback()
            db.session.execute(text("BEGIN IMMEDIATE"))

    def commit(self) -> None:
        db.session.commit()

    def rollback(self) -> None:
        db.session.rollback()


def storage_for(app) -> SqlStorage:
    """SqlStorage configured from the app's ledger retry settings."""
    return SqlStorage(
        retry_attempts=app.config["LEDGER_RETRY_ATTEMPTS"],
        retry_backoff=app.config["LEDGER_RETRY_BACKOFF"],
    )
