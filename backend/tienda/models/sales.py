from __future__ import annotations

from ..domain import FISCAL_NONE, FULFILLMENT_PENDING, STATUS_REGISTERED
from ..extensions import db


class Sale(db.Model):
    """
    One checkout event, POS (PHYSICAL) or ONLINE.

    Three orthogonal status axes:
    - status: REGISTERED -> PAID | CANCELLED, PAID -> CANCELLED
    - fulfillment_status: PENDING -> DELIVERED
    - fiscal_status: NONE -> ISSUED (only while PAID)

    stock_committed is True exactly while this sale holds decremented stock.
    Cancellation restores stock only when it is set, then clears it.

    Totals and lines are written once at checkout and never updated.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "document_number", name="uq_sales_tenant_docnum"),
        db.Index("ix_sales_tenant_status_created", "tenant_id", "status", "created_at"),
        db.Index("ix_sales_tenant_channel_created", "tenant_id", "channel", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)

    # Human-readable document number (e.g., "V-001-000042")
    document_number = db.Column(db.String(64), nullable=False)

    channel = db.Column(db.String(16), nullable=False)
    payment_method = db.Column(db.String(16), nullable=False)

    status = db.Column(db.String(16), nullable=False, default=STATUS_REGISTERED, index=True)
    fulfillment_status = db.Column(db.String(16), nullable=False, default=FULFILLMENT_PENDING)
    fiscal_status = db.Column(db.String(16), nullable=False, default=FISCAL_NONE)

    # All amounts in cents
    total_cents = db.Column(db.Integer, nullable=False)
    discount_total_cents = db.Column(db.Integer, nullable=False, default=0)
    amount_received_cents = db.Column(db.Integer, nullable=True)
    change_cents = db.Column(db.Integer, nullable=True)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    billing_tax_id = db.Column(db.String(32), nullable=True)
    billing_name = db.Column(db.String(255), nullable=True)

    payment_proof_ref = db.Column(db.String(255), nullable=True)
    fiscal_number = db.Column(db.String(64), nullable=True)
    stock_committed = db.Column(db.Boolean, nullable=False, default=False)

    created_by_user_id = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    delivered_at = db.Column(db.DateTime(timezone=True), nullable=True)
    invoiced_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    tenant = db.relationship("Tenant")
    customer = db.relationship("Customer")
    lines = db.relationship(
        "SaleLine",
        backref="sale",
        order_by="SaleLine.position",
        lazy="selectin",
        cascade="all, delete-orphan",
    )
    __mapper_args__ = {"version_id_col": version_id}


class SaleLine(db.Model):
    """Line item with the catalog price captured at the instant of sale."""
    __tablename__ = "sale_lines"
    __table_args__ = (
        db.UniqueConstraint("sale_id", "position", name="uq_sale_lines_sale_position"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    product_name = db.Column(db.String(255), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    subtotal_cents = db.Column(db.Integer, nullable=False)
