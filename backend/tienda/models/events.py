from __future__ import annotations

from ..extensions import db


class DomainEvent(db.Model):
    """
    Append-only log of transaction-engine events.

    - Written inside the same DB transaction as the change it records.
    - Never updated or deleted.
    - stock.low / stock.depleted rows are what the notification
      collaborator polls to warn tenant owners.
    """
    __tablename__ = "domain_events"
    __table_args__ = (
        db.Index("ix_domain_events_tenant_type_occurred", "tenant_id", "event_type", "occurred_at"),
        db.Index("ix_domain_events_entity", "entity_type", "entity_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    event_type = db.Column(db.String(64), nullable=False)
    entity_type = db.Column(db.String(32), nullable=False)
    entity_id = db.Column(db.Integer, nullable=False)
    actor_user_id = db.Column(db.Integer, nullable=True)

    # JSON document
    payload = db.Column(db.Text, nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
