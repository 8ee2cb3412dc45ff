from __future__ import annotations

from ..extensions import db


class Tenant(db.Model):
    """
    Multi-tenant root: every business account is a Tenant.

    All products, sales, purchases and documents belong to exactly one
    tenant. Display fields (name, address, phone, currency) and fiscal
    identity are read at render time, never copied into documents.
    """
    __tablename__ = "tenants"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    address = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(64), nullable=True)
    currency = db.Column(db.String(8), nullable=False, default="BOB")

    # Flat tax rate in basis points (1300 = 13.00%)
    tax_rate_bps = db.Column(db.Integer, nullable=False, default=0)

    # Printed in the fiscal box of invoices
    fiscal_tax_id = db.Column(db.String(32), nullable=True)
    fiscal_authorization = db.Column(db.String(64), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Tenant id={self.id} name={self.name!r}>"


class DocumentSequence(db.Model):
    """
    Per-tenant counters for document and fiscal numbers.

    One row per (tenant_id, document_type). Allocation increments
    next_number with a single UPDATE so concurrent callers never share a
    number.
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "document_type", name="uq_document_sequences_tenant_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    document_type = db.Column(db.String(32), nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)
