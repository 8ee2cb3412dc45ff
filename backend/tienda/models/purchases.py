from __future__ import annotations

from ..extensions import db


class Purchase(db.Model):
    """
    Supplier restocking event.

    Purchases settle on creation: status is REGISTERED and never changes.
    supplier_id NULL means the stock came from the tenant itself.
    """
    __tablename__ = "purchases"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "document_number", name="uq_purchases_tenant_docnum"),
        db.Index("ix_purchases_tenant_created", "tenant_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    document_number = db.Column(db.String(64), nullable=False)

    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=True, index=True)
    payment_method = db.Column(db.String(16), nullable=False)
    status = db.Column(db.String(16), nullable=False, default="REGISTERED")

    total_cents = db.Column(db.Integer, nullable=False)
    invoice_number = db.Column(db.String(64), nullable=True)
    observation = db.Column(db.Text, nullable=True)
    payment_proof_ref = db.Column(db.String(255), nullable=True)

    created_by_user_id = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    supplier = db.relationship("Supplier")
    lines = db.relationship(
        "PurchaseLine",
        backref="purchase",
        order_by="PurchaseLine.position",
        lazy="selectin",
        cascade="all, delete-orphan",
    )


class PurchaseLine(db.Model):
    __tablename__ = "purchase_lines"
    __table_args__ = (
        db.UniqueConstraint("purchase_id", "position", name="uq_purchase_lines_purchase_position"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    purchase_id = db.Column(db.Integer, db.ForeignKey("purchases.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    product_name = db.Column(db.String(255), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_cost_cents = db.Column(db.Integer, nullable=False)
    subtotal_cents = db.Column(db.Integer, nullable=False)

    lot_number = db.Column(db.String(64), nullable=True)
    expiry_date = db.Column(db.Date, nullable=True)
