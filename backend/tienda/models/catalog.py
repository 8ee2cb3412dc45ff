from __future__ import annotations

from ..extensions import db


class Product(db.Model):
    """
    Product master data with its current stock.

    stock_current is a single mutable integer owned by the inventory
    ledger. Nothing else writes it. version is bumped on every ledger
    write and checked in the UPDATE's WHERE clause.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("stock_current >= 0", name="ck_products_stock_non_negative"),
        db.Index("ix_products_tenant_name", "tenant_id", "name"),
        db.Index("ix_products_tenant_status", "tenant_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)

    sku = db.Column(db.String(64), nullable=True)
    name = db.Column(db.String(255), nullable=False)

    # Authoritative storage in cents
    price_cents = db.Column(db.Integer, nullable=False, default=0)

    stock_current = db.Column(db.Integer, nullable=False, default=0)
    stock_minimum = db.Column(db.Integer, nullable=False, default=0)

    # ACTIVE / INACTIVE. Products are deactivated, never deleted.
    status = db.Column(db.String(16), nullable=False, default="ACTIVE")

    version = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    tenant = db.relationship("Tenant", backref=db.backref("products", lazy=True))

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} tenant_id={self.tenant_id} stock={self.stock_current}>"


class Supplier(db.Model):
    """Supplier a tenant buys from. Administered outside the engine."""
    __tablename__ = "suppliers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(64), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    status = db.Column(db.String(16), nullable=False, default="ACTIVE")
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())


class Customer(db.Model):
    """Customer of a tenant; referenced by sales and printed on documents."""
    __tablename__ = "customers"
    __table_args__ = (
        db.Index("ix_customers_tenant_tax_id", "tenant_id", "tax_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    tax_id = db.Column(db.String(32), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
