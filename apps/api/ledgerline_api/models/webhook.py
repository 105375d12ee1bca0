"""Inbound webhook event model."""

from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, String, UniqueConstraint

from ledgerline_api.db.base import Base, new_id


class WebhookEvent(Base):
    """One row per genuinely new inbound event. Never updated or deleted."""

    __tablename__ = "webhook_events"
    __table_args__ = (
        UniqueConstraint("tenant_id", "source", "event_id", name="uq_webhook_events_idempotency_key"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), nullable=False, index=True)
    source = Column(String(100), nullable=False)  # plaid, manual, etc.
    event_id = Column(String(255), nullable=False)
    payload_hash = Column(String(64), nullable=False)  # SHA-256 hex
    received_at = Column(DateTime, default=datetime.utcnow, nullable=False)
